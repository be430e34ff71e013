# -*- coding: utf-8 -*-
"""
tests/modules/billing/test_billing_providers.py

Suite: adaptadores salientes.
- ExchangeRateProvider (httpx.MockTransport): margen, redondeo, respaldo
- WebhookNotificationSink: payload, reintento ante 5xx, sin URL
- StripeProvider (SDK parcheado): parámetros de sesión y transferencia,
  mapeo de errores

Autor: ScholarPay
Fecha: 2026-10-18
"""

import json
from decimal import Decimal
from types import SimpleNamespace

import httpx
import pytest
import stripe

from scholarpay.modules.billing.dto import CheckoutLineItem
from scholarpay.modules.billing.enums import NotificationTarget, PaymentRail
from scholarpay.modules.billing.errors import CheckoutSessionNotFoundError, PaymentProcessorError
from scholarpay.modules.billing.providers import (
    ExchangeRateProvider,
    StripeProvider,
    WebhookNotificationSink,
)
from scholarpay.modules.billing.providers.stripe_provider import metadata_as_dict
from scholarpay.shared.config.settings_payments import PaymentsSettings


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# =============================================================================
# Tipo de cambio
# =============================================================================

class TestExchangeRateProvider:
    @pytest.mark.asyncio
    async def test_applies_margin_and_rounds(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            return httpx.Response(200, json={"base": "USD", "rates": {"BRL": 5.4321}})

        async with _client(handler) as client:
            provider = ExchangeRateProvider(client=client, settings=PaymentsSettings())
            rate = await provider.get_rate("USD", "BRL")

        # 5.4321 * 1.04 = 5.649384
        assert rate == Decimal("5.649")
        assert seen["url"] == "https://api.exchangerate-api.com/v4/latest/USD"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(503, text="unavailable"),
            httpx.Response(200, json={"rates": {}}),
            httpx.Response(200, json={"rates": {"BRL": -1}}),
            httpx.Response(200, text="not json"),
        ],
    )
    async def test_falls_back_on_bad_responses(self, response):
        async with _client(lambda request: response) as client:
            provider = ExchangeRateProvider(client=client, settings=PaymentsSettings())
            assert await provider.get_rate() == Decimal("5.6")

    @pytest.mark.asyncio
    async def test_falls_back_on_network_error(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out")

        async with _client(handler) as client:
            settings = PaymentsSettings(exchange_rate_fallback=Decimal("5.25"))
            provider = ExchangeRateProvider(client=client, settings=settings)
            assert await provider.get_rate() == Decimal("5.25")


# =============================================================================
# Sink de notificaciones
# =============================================================================

class TestWebhookNotificationSink:
    @pytest.mark.asyncio
    async def test_posts_target_and_payload(self):
        received = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(json.loads(request.content))
            return httpx.Response(200, json={"ok": True})

        async with _client(handler) as client:
            sink = WebhookNotificationSink(url="https://hooks.test/notify", client=client, settings=PaymentsSettings())
            await sink.notify(NotificationTarget.STUDENT, {"event": "payment_confirmed", "amount": "416.55"})

        assert received == [{"target": "student", "payload": {"event": "payment_confirmed", "amount": "416.55"}}]

    @pytest.mark.asyncio
    async def test_retries_server_errors(self):
        attempts = {"n": 0}

        def handler(request):
            attempts["n"] += 1
            return httpx.Response(502 if attempts["n"] == 1 else 200)

        async with _client(handler) as client:
            settings = PaymentsSettings(notification_max_retries=1)
            sink = WebhookNotificationSink(url="https://hooks.test/notify", client=client, settings=settings)
            await sink.notify(NotificationTarget.ADMIN, {"event": "payment_confirmed"})

        assert attempts["n"] == 2

    @pytest.mark.asyncio
    async def test_client_error_raises(self):
        async with _client(lambda request: httpx.Response(400)) as client:
            sink = WebhookNotificationSink(url="https://hooks.test/notify", client=client, settings=PaymentsSettings())
            with pytest.raises(httpx.HTTPStatusError):
                await sink.notify(NotificationTarget.SELLER, {"event": "payment_confirmed"})

    @pytest.mark.asyncio
    async def test_without_url_only_logs(self, caplog):
        def handler(request):
            raise AssertionError("no request expected")

        async with _client(handler) as client:
            sink = WebhookNotificationSink(client=client, settings=PaymentsSettings(notification_webhook_url=None))
            with caplog.at_level("INFO"):
                await sink.notify(NotificationTarget.STUDENT, {"event": "payment_confirmed"})

        assert "notification_skipped" in caplog.text


# =============================================================================
# Stripe
# =============================================================================

LINE_ITEM = CheckoutLineItem(currency="brl", unit_amount_minor_units=513186, description="I-20 Control Fee")


class TestStripeProvider:
    @pytest.mark.asyncio
    async def test_create_checkout_session_params(self, monkeypatch):
        captured = {}

        def fake_create(**params):
            captured.update(params)
            return SimpleNamespace(id="cs_live_1", url="https://checkout.stripe.com/c/pay/cs_live_1")

        monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)
        provider = StripeProvider(secret_key="sk_test_dummy")

        checkout = await provider.create_checkout_session(
            line_item=LINE_ITEM,
            rail=PaymentRail.INSTANT_TRANSFER,
            success_url="https://app.test/ok?session_id={CHECKOUT_SESSION_ID}",
            cancel_url="https://app.test/ko",
            metadata={"user_id": "u1"},
            client_reference_id="u1",
            customer_email="u1@students.test",
        )

        assert checkout.session_id == "cs_live_1"
        assert checkout.redirect_url.endswith("cs_live_1")
        assert captured["mode"] == "payment"
        assert captured["payment_method_types"] == ["pix"]
        price = captured["line_items"][0]["price_data"]
        assert price["currency"] == "brl"
        assert price["unit_amount"] == 513186
        assert captured["metadata"] == {"user_id": "u1"}
        assert captured["client_reference_id"] == "u1"
        assert captured["customer_email"] == "u1@students.test"

    @pytest.mark.asyncio
    async def test_create_maps_stripe_errors(self, monkeypatch):
        def fake_create(**params):
            raise stripe.APIConnectionError("connection reset")

        monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)
        provider = StripeProvider(secret_key="sk_test_dummy")

        with pytest.raises(PaymentProcessorError):
            await provider.create_checkout_session(
                line_item=LINE_ITEM,
                rail=PaymentRail.CARD,
                success_url="https://app.test/ok",
                cancel_url="https://app.test/ko",
                metadata={},
            )

    @pytest.mark.asyncio
    async def test_retrieve_normalizes_session(self, monkeypatch):
        session = SimpleNamespace(
            id="cs_1",
            status="complete",
            payment_status="paid",
            amount_total=41655,
            currency="usd",
            metadata={"user_id": "u1", "application_id": None},
            payment_intent=SimpleNamespace(id="pi_expanded"),
            client_reference_id="u1",
            customer_details=SimpleNamespace(email="payer@students.test"),
        )
        monkeypatch.setattr(stripe.checkout.Session, "retrieve", lambda session_id: session)

        result = await StripeProvider(secret_key="sk_test_dummy").retrieve_checkout_session("cs_1")

        assert result.is_paid
        assert result.payment_intent_ref == "pi_expanded"
        assert result.customer_email == "payer@students.test"
        assert result.metadata == {"user_id": "u1", "application_id": ""}

    @pytest.mark.asyncio
    async def test_retrieve_missing_session(self, monkeypatch):
        def fake_retrieve(session_id):
            raise stripe.InvalidRequestError("No such checkout.session", "id", code="resource_missing")

        monkeypatch.setattr(stripe.checkout.Session, "retrieve", fake_retrieve)

        with pytest.raises(CheckoutSessionNotFoundError):
            await StripeProvider(secret_key="sk_test_dummy").retrieve_checkout_session("cs_nope")

    @pytest.mark.asyncio
    async def test_retrieve_expired_session(self, monkeypatch):
        session = SimpleNamespace(id="cs_old", status="expired", payment_status="unpaid", metadata={})
        monkeypatch.setattr(stripe.checkout.Session, "retrieve", lambda session_id: session)

        with pytest.raises(CheckoutSessionNotFoundError):
            await StripeProvider(secret_key="sk_test_dummy").retrieve_checkout_session("cs_old")

    @pytest.mark.asyncio
    async def test_retrieve_transient_error(self, monkeypatch):
        def fake_retrieve(session_id):
            raise stripe.RateLimitError("slow down")

        monkeypatch.setattr(stripe.checkout.Session, "retrieve", fake_retrieve)

        with pytest.raises(PaymentProcessorError):
            await StripeProvider(secret_key="sk_test_dummy").retrieve_checkout_session("cs_1")

    @pytest.mark.asyncio
    async def test_not_configured(self, monkeypatch):
        monkeypatch.delenv("STRIPE_SECRET_KEY", raising=False)
        monkeypatch.setattr(
            "scholarpay.modules.billing.providers.stripe_provider.get_payments_settings",
            lambda: PaymentsSettings(stripe_secret_key=None),
        )
        provider = StripeProvider()
        assert not provider.is_configured
        with pytest.raises(PaymentProcessorError):
            await provider.retrieve_checkout_session("cs_1")

    @pytest.mark.asyncio
    async def test_create_transfer_params(self, monkeypatch):
        captured = {}

        def fake_create(**params):
            captured.update(params)
            return SimpleNamespace(id="tr_live_1", pending=True)

        monkeypatch.setattr(stripe.Transfer, "create", fake_create)

        transfer = await StripeProvider(secret_key="sk_test_dummy").create_transfer(
            amount_minor=25000,
            currency="usd",
            destination="acct_lakeside",
            idempotency_key="application-fee-transfer-cs_1",
            description="Application fee transfer for session cs_1",
            metadata={"session_id": "cs_1"},
        )

        assert transfer.transfer_id == "tr_live_1"
        assert transfer.pending is True
        assert captured["amount"] == 25000
        assert captured["destination"] == "acct_lakeside"
        assert captured["idempotency_key"] == "application-fee-transfer-cs_1"
        assert captured["metadata"] == {"session_id": "cs_1"}

    @pytest.mark.asyncio
    async def test_create_transfer_maps_stripe_errors(self, monkeypatch):
        def fake_create(**params):
            raise stripe.InvalidRequestError("No such destination: acct_gone", "destination")

        monkeypatch.setattr(stripe.Transfer, "create", fake_create)

        with pytest.raises(PaymentProcessorError):
            await StripeProvider(secret_key="sk_test_dummy").create_transfer(
                amount_minor=25000,
                currency="usd",
                destination="acct_gone",
                idempotency_key="k",
                description="d",
                metadata={},
            )


def test_metadata_as_dict_handles_none():
    assert metadata_as_dict(None) == {}
    assert metadata_as_dict({"a": 1, "b": None}) == {"a": "1", "b": ""}
