# -*- coding: utf-8 -*-
"""
tests/modules/billing/test_stripe_webhook.py

Suite: POST /api/billing/webhooks/stripe y handle_stripe_settlement_webhook.
- Firma: ausente (400), inválida (401), válida (HMAC real), modo inseguro
- Eventos ignorados y sesiones ajenas
- Errores terminales reconocidos con 200; procesador caído con 503
- Liquidación interrumpida por la base de datos: 503 y el reenvío liquida

Autor: ScholarPay
Fecha: 2026-10-18
"""

import hashlib
import hmac
import json
import time

import pytest
import stripe
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from scholarpay.modules.billing.dto import METADATA_SOURCE
from scholarpay.modules.billing.enums import FeeType, PaymentRail
from scholarpay.modules.billing.errors import PaymentProcessorError, SettlementIncompleteError
from scholarpay.modules.billing.models import LedgerEntry
from scholarpay.modules.billing.webhooks.stripe_handler import handle_stripe_settlement_webhook
from scholarpay.shared.config.settings_payments import reset_payments_settings

URL = "/api/billing/webhooks/stripe"
SECRET = "whsec_test_secret"


def _event(session_id: str, metadata: dict, event_type: str = "checkout.session.completed") -> dict:
    return {
        "id": "evt_test_1",
        "object": "event",
        "type": event_type,
        "data": {"object": {"id": session_id, "object": "checkout.session", "metadata": metadata}},
    }


def _sign(payload: bytes, secret: str = SECRET) -> str:
    ts = int(time.time())
    signed = f"{ts}.{payload.decode()}".encode()
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={signature}"


def _failing_once(create):
    """Envuelve LedgerRepository.create: la primera escritura falla."""
    calls = {"n": 0}

    async def _create(*args, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            raise OperationalError("INSERT INTO ledger_entries", {}, Exception("connection reset"))
        return await create(*args, **kwargs)

    return _create


@pytest.fixture
def webhook_secret(monkeypatch):
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", SECRET)
    monkeypatch.delenv("ALLOW_INSECURE_WEBHOOKS", raising=False)
    reset_payments_settings()
    return SECRET


@pytest.fixture
def insecure_webhooks(monkeypatch):
    monkeypatch.setenv("ALLOW_INSECURE_WEBHOOKS", "true")
    reset_payments_settings()


class TestSignature:
    @pytest.mark.asyncio
    async def test_missing_header(self, async_client, webhook_secret):
        resp = await async_client.post(URL, content=b"{}")
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_invalid_signature(self, async_client, webhook_secret):
        payload = json.dumps(_event("cs_test_1", {})).encode()
        resp = await async_client.post(
            URL, content=payload, headers={"Stripe-Signature": _sign(payload, "whsec_other")}
        )
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_secret_not_configured(self, async_client, monkeypatch):
        monkeypatch.delenv("STRIPE_WEBHOOK_SECRET", raising=False)
        monkeypatch.delenv("ALLOW_INSECURE_WEBHOOKS", raising=False)
        reset_payments_settings()

        resp = await async_client.post(URL, content=b"{}", headers={"Stripe-Signature": "t=1,v1=abc"})
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_signed_event_settles(self, async_client, webhook_secret, seed, paid_checkout, processor, fetch):
        await seed.student("u1")
        session_id = await paid_checkout("u1")
        payload = json.dumps(_event(session_id, processor.sessions[session_id].metadata)).encode()

        resp = await async_client.post(URL, content=payload, headers={"Stripe-Signature": _sign(payload)})

        assert resp.status_code == 200
        assert resp.json() == {"status": "processed", "result": "complete", "session_id": session_id}
        assert await fetch.scalar(select(func.count(LedgerEntry.id))) == 1

    @pytest.mark.asyncio
    async def test_redelivery_settles_once(self, async_client, webhook_secret, seed, paid_checkout, processor, fetch, sink):
        await seed.student("u1")
        session_id = await paid_checkout("u1")
        payload = json.dumps(_event(session_id, processor.sessions[session_id].metadata)).encode()

        for _ in range(3):
            resp = await async_client.post(URL, content=payload, headers={"Stripe-Signature": _sign(payload)})
            assert resp.json()["result"] == "complete"

        assert await fetch.scalar(select(func.count(LedgerEntry.id))) == 1
        assert len(sink.messages) == 2

    @pytest.mark.asyncio
    async def test_insecure_mode_skips_check(self, async_client, insecure_webhooks, seed, paid_checkout, processor):
        await seed.student("u1")
        session_id = await paid_checkout("u1")
        payload = json.dumps(
            _event(session_id, processor.sessions[session_id].metadata, "checkout.session.async_payment_succeeded")
        ).encode()

        resp = await async_client.post(URL, content=payload, headers={"Stripe-Signature": "unsigned"})

        assert resp.status_code == 200
        assert resp.json()["status"] == "processed"


class TestEventRouting:
    @pytest.mark.asyncio
    async def test_other_event_types_ignored(self, async_client, insecure_webhooks, processor):
        payload = json.dumps(_event("cs_test_1", {}, "payment_intent.created")).encode()

        resp = await async_client.post(URL, content=payload, headers={"Stripe-Signature": "unsigned"})

        assert resp.status_code == 200
        assert resp.json()["status"] == "ignored"
        assert processor.retrieve_calls == 0

    @pytest.mark.asyncio
    async def test_foreign_session_ignored(self, async_client, insecure_webhooks, processor):
        payload = json.dumps(_event("cs_other", {"source": "donations"})).encode()

        resp = await async_client.post(URL, content=payload, headers={"Stripe-Signature": "unsigned"})

        assert resp.json() == {"status": "ignored", "reason": "foreign_session", "session_id": "cs_other"}
        assert processor.retrieve_calls == 0

    @pytest.mark.asyncio
    async def test_unknown_session_acknowledged(self, async_client, insecure_webhooks):
        payload = json.dumps(_event("cs_missing", {"source": METADATA_SOURCE})).encode()

        resp = await async_client.post(URL, content=payload, headers={"Stripe-Signature": "unsigned"})

        assert resp.status_code == 200
        assert resp.json()["status"] == "error"
        assert resp.json()["reason"] == "session_not_found"

    @pytest.mark.asyncio
    async def test_processor_down_asks_for_retry(
        self, async_client, insecure_webhooks, seed, paid_checkout, processor
    ):
        await seed.student("u1")
        session_id = await paid_checkout("u1")
        processor.retrieve_error = PaymentProcessorError("Stripe error: timeout")
        payload = json.dumps(_event(session_id, processor.sessions[session_id].metadata)).encode()

        resp = await async_client.post(URL, content=payload, headers={"Stripe-Signature": "unsigned"})

        assert resp.status_code == 503
        assert resp.json()["detail"]["error"] == "payment_provider_error"
        assert resp.headers["X-Request-ID"]

    @pytest.mark.asyncio
    async def test_interrupted_settlement_asks_for_retry(
        self, async_client, insecure_webhooks, seed, paid_checkout, processor, verifier, fetch, sink, monkeypatch
    ):
        await seed.student("u1")
        session_id = await paid_checkout("u1")
        monkeypatch.setattr(verifier.ledger_repo, "create", _failing_once(verifier.ledger_repo.create))
        payload = json.dumps(_event(session_id, processor.sessions[session_id].metadata)).encode()

        first = await async_client.post(URL, content=payload, headers={"Stripe-Signature": "unsigned"})

        assert first.status_code == 503
        assert first.json()["detail"]["error"] == "settlement_incomplete"
        assert await fetch.scalar(select(func.count(LedgerEntry.id))) == 0
        assert sink.messages == []

        redelivery = await async_client.post(URL, content=payload, headers={"Stripe-Signature": "unsigned"})

        assert redelivery.status_code == 200
        assert redelivery.json() == {"status": "processed", "result": "complete", "session_id": session_id}
        assert await fetch.scalar(select(func.count(LedgerEntry.id))) == 1
        assert len(sink.messages) == 2


class TestHandler:
    @pytest.mark.asyncio
    async def test_missing_session_id(self, db, verifier):
        event = stripe.Event.construct_from(
            {"id": "evt_2", "type": "checkout.session.completed", "data": {"object": {"metadata": {}}}},
            "sk_test_dummy",
        )

        result = await handle_stripe_settlement_webhook(db, event, verifier)

        assert result == {"status": "ignored", "reason": "missing_session_id"}

    @pytest.mark.asyncio
    async def test_unpaid_session_not_ready(self, db, seed, builder, verifier, processor):
        await seed.student("u1")
        submission = await builder.build_and_submit(
            db, user_id="u1", fee_type=FeeType.SELECTION_PROCESS, rail=PaymentRail.CARD
        )
        event = stripe.Event.construct_from(
            _event(submission.session_id, processor.sessions[submission.session_id].metadata),
            "sk_test_dummy",
        )

        result = await handle_stripe_settlement_webhook(db, event, verifier)

        assert result["status"] == "processed"
        assert result["result"] == "not_ready"

    @pytest.mark.asyncio
    async def test_interrupted_settlement_raises(self, db, seed, paid_checkout, processor, verifier, monkeypatch):
        await seed.student("u1")
        session_id = await paid_checkout("u1")
        monkeypatch.setattr(verifier.ledger_repo, "create", _failing_once(verifier.ledger_repo.create))
        event = stripe.Event.construct_from(
            _event(session_id, processor.sessions[session_id].metadata), "sk_test_dummy"
        )

        with pytest.raises(SettlementIncompleteError) as ei:
            await handle_stripe_settlement_webhook(db, event, verifier)

        assert ei.value.status_code == 503
        assert session_id in ei.value.message
