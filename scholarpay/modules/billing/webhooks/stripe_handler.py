# -*- coding: utf-8 -*-
"""
scholarpay/modules/billing/webhooks/stripe_handler.py

Handler de webhooks Stripe para la liquidación de cuotas.

Procesa eventos:
- checkout.session.completed: pago con tarjeta (o PIX ya confirmado)
- checkout.session.async_payment_succeeded: PIX confirmado después

Ambos delegan en SettlementVerifier.verify(), el mismo camino que el
polling del navegador; el reclamo de liquidación evita el doble proceso.

Autor: ScholarPay
Fecha: 2026-10-18
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

import stripe
from sqlalchemy.ext.asyncio import AsyncSession

from scholarpay.modules.billing.dto import METADATA_SOURCE
from scholarpay.modules.billing.errors import (
    CheckoutOwnershipError,
    CheckoutSessionNotFoundError,
    CheckoutValidationError,
    SettlementIncompleteError,
)
from scholarpay.modules.billing.providers.stripe_provider import metadata_as_dict
from scholarpay.modules.billing.services.settlement_service import SettlementVerifier
from scholarpay.shared.config.settings_payments import get_payments_settings

logger = logging.getLogger(__name__)

SETTLEMENT_EVENTS = frozenset({
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
})


def verify_stripe_webhook_signature(
    payload: bytes,
    sig_header: str,
    webhook_secret: Optional[str] = None,
) -> stripe.Event:
    """
    Verifica la firma de un webhook de Stripe.

    Raises:
        stripe.SignatureVerificationError: Si la firma es inválida
        ValueError: Si no hay webhook secret configurado
    """
    settings = get_payments_settings()
    secret = webhook_secret or settings.stripe_webhook_secret or os.getenv("STRIPE_WEBHOOK_SECRET")

    if not secret:
        raise ValueError("STRIPE_WEBHOOK_SECRET not configured")

    return stripe.Webhook.construct_event(payload, sig_header, secret)


async def handle_stripe_settlement_webhook(
    session: AsyncSession,
    event: stripe.Event,
    verifier: SettlementVerifier,
) -> Dict[str, Any]:
    """
    Procesa un evento verificado de Stripe.

    Errores terminales (sesión inexistente, metadata inválida) se reconocen
    con 200 para que Stripe no reintente. PaymentProcessorError se propaga,
    y una liquidación interrumpida se eleva como SettlementIncompleteError:
    en ambos casos Stripe reintentará el evento.

    Returns:
        Dict con resultado del procesamiento
    """
    if event.type not in SETTLEMENT_EVENTS:
        logger.debug("stripe_webhook_ignored type=%s id=%s", event.type, event.id)
        return {"status": "ignored", "event_type": event.type}

    checkout_session = event.data.object
    session_id = getattr(checkout_session, "id", None)
    metadata = metadata_as_dict(getattr(checkout_session, "metadata", None))

    if not session_id:
        logger.warning("stripe_webhook_missing_session_id event_id=%s", event.id)
        return {"status": "ignored", "reason": "missing_session_id"}

    if metadata.get("source") != METADATA_SOURCE:
        logger.info("stripe_webhook_foreign_session session_id=%s source=%s", session_id, metadata.get("source"))
        return {"status": "ignored", "reason": "foreign_session", "session_id": session_id}

    try:
        result = await verifier.verify(session, session_id)
    except (CheckoutSessionNotFoundError, CheckoutValidationError, CheckoutOwnershipError) as e:
        logger.error(
            "stripe_webhook_settlement_rejected session_id=%s error=%s message=%s",
            session_id, e.error_code, e.message,
        )
        return {"status": "error", "reason": e.error_code, "session_id": session_id}

    if result.interrupted:
        logger.warning(
            "stripe_webhook_settlement_interrupted type=%s session_id=%s event_id=%s",
            event.type, session_id, event.id,
        )
        raise SettlementIncompleteError(f"Settlement for {session_id} was interrupted; retry the event")

    logger.info(
        "stripe_webhook_processed type=%s session_id=%s result=%s",
        event.type, session_id, result.status,
    )
    return {"status": "processed", "result": result.status, "session_id": session_id}


__all__ = [
    "SETTLEMENT_EVENTS",
    "verify_stripe_webhook_signature",
    "handle_stripe_settlement_webhook",
]
