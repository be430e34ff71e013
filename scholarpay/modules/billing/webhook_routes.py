# -*- coding: utf-8 -*-
"""
scholarpay/modules/billing/webhook_routes.py

Rutas de webhooks para la liquidación de cuotas.

Endpoint:
- POST /api/billing/webhooks/stripe

Autor: ScholarPay
Fecha: 2026-10-18
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from scholarpay.shared.config.settings_payments import get_payments_settings
from scholarpay.shared.database.database import get_async_session

from .errors import PaymentProcessorError, SettlementIncompleteError
from .routes import get_settlement_verifier
from .services.settlement_service import SettlementVerifier
from .webhooks.stripe_handler import (
    handle_stripe_settlement_webhook,
    verify_stripe_webhook_signature,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/billing/webhooks",
    tags=["billing:webhooks"],
)


@router.post(
    "/stripe",
    status_code=status.HTTP_200_OK,
)
async def stripe_settlement_webhook(
    request: Request,
    session: AsyncSession = Depends(get_async_session),
    verifier: SettlementVerifier = Depends(get_settlement_verifier),
) -> Dict[str, Any]:
    """
    Webhook de Stripe para la liquidación de cuotas.

    Procesa eventos:
    - checkout.session.completed
    - checkout.session.async_payment_succeeded

    Requiere header Stripe-Signature para validación.
    """
    settings = get_payments_settings()

    raw_body = await request.body()
    sig_header = request.headers.get("Stripe-Signature")

    if not sig_header:
        logger.warning("stripe_webhook_missing_signature")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing Stripe-Signature header",
        )

    try:
        if settings.allow_insecure_webhooks:
            logger.warning("stripe_webhook_insecure signature_check=skipped")
            event = stripe.Event.construct_from(json.loads(raw_body), stripe.api_key)
        else:
            event = verify_stripe_webhook_signature(raw_body, sig_header)
    except stripe.SignatureVerificationError as e:
        logger.warning("stripe_webhook_invalid_signature error=%s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid signature",
        ) from e
    except ValueError as e:
        # Secret ausente o body que no es JSON
        logger.error("stripe_webhook_rejected error=%s", e)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid webhook payload or configuration",
        ) from e

    logger.info("stripe_webhook_received type=%s id=%s", event.type, event.id)

    try:
        return await handle_stripe_settlement_webhook(session, event, verifier)
    except (PaymentProcessorError, SettlementIncompleteError) as e:
        # 503: Stripe reenvía el evento más tarde
        logger.error("stripe_webhook_retry_requested id=%s error=%s message=%s", event.id, e.error_code, e.message)
        raise


__all__ = ["router"]
