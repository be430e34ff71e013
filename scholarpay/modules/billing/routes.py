# -*- coding: utf-8 -*-
"""
scholarpay/modules/billing/routes.py

Rutas de checkout por cuota.

Endpoints:
- GET  /api/checkout/{fee_type}/quote   (auth requerido)
- POST /api/checkout/{fee_type}         (auth requerido)
- POST /api/checkout/{fee_type}/verify  (auth requerido)

Una misma ruta parametrizada sirve a las cuatro cuotas; fee_type inválido
responde 422. Los BillingError se propagan al handler de la app, que los
traduce a su status con detail {"error", "message"}.

Autor: ScholarPay
Fecha: 2026-10-18
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from scholarpay.modules.auth.dependencies import get_current_user_id
from scholarpay.shared.database.database import get_async_session

from .enums import FeeType, PaymentRail
from .errors import BillingError
from .schemas import (
    CheckoutRequest,
    CheckoutResponse,
    QuoteDiscount,
    QuoteResponse,
    VerifyRequest,
    VerifyResponse,
)
from .services.checkout_service import CheckoutRequestBuilder
from .services.settlement_service import SettlementVerifier

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/checkout",
    tags=["checkout"],
)

# =============================================================================
# Dependencias (sobrescribibles en tests)
# =============================================================================

def get_checkout_builder() -> CheckoutRequestBuilder:
    return CheckoutRequestBuilder()


def get_settlement_verifier() -> SettlementVerifier:
    return SettlementVerifier()


# =============================================================================
# Endpoints
# =============================================================================

@router.get(
    "/{fee_type}/quote",
    response_model=QuoteResponse,
    summary="Cotizar una cuota",
)
async def quote_fee(
    fee_type: FeeType,
    rail: PaymentRail = Query(default=PaymentRail.CARD),
    coupon_code: Optional[str] = Query(default=None, max_length=64),
    application_id: Optional[int] = Query(default=None),
    scholarship_id: Optional[int] = Query(default=None),
    session: AsyncSession = Depends(get_async_session),
    user_id: str = Depends(get_current_user_id),
    builder: CheckoutRequestBuilder = Depends(get_checkout_builder),
) -> QuoteResponse:
    """Monto base, descuento, bruto y comisión. No escribe nada."""
    quote = await builder.quote(
        session,
        user_id=user_id,
        fee_type=fee_type,
        rail=rail,
        coupon_code=coupon_code,
        application_id=application_id,
        scholarship_id=scholarship_id,
    )

    discount = quote.resolved.discount
    breakdown = quote.breakdown
    return QuoteResponse(
        fee_type=fee_type,
        rail=rail,
        currency=breakdown.currency,
        pricing_mode=quote.base.pricing_mode,
        base_amount=quote.base.amount,
        base_source=quote.base.source,
        discount=(
            QuoteDiscount(
                kind=discount.kind,
                amount=discount.discount_amount,
                code=getattr(discount, "code", None),
            )
            if discount is not None
            else None
        ),
        coupon_rejected_reason=quote.resolved.rejected_coupon_reason,
        net_amount=quote.net_amount,
        exchange_rate=breakdown.exchange_rate,
        gross_amount=breakdown.gross_amount,
        gross_amount_minor_units=breakdown.gross_amount_minor_units,
        processor_fee=breakdown.processor_fee,
        total_with_iof=breakdown.total_with_iof,
    )


@router.post(
    "/{fee_type}",
    response_model=CheckoutResponse,
    status_code=status.HTTP_200_OK,
    summary="Iniciar el cobro de una cuota",
)
async def start_checkout(
    fee_type: FeeType,
    payload: CheckoutRequest,
    session: AsyncSession = Depends(get_async_session),
    user_id: str = Depends(get_current_user_id),
    builder: CheckoutRequestBuilder = Depends(get_checkout_builder),
) -> CheckoutResponse:
    """
    Crea la sesión de pago en el procesador y devuelve la URL de redirección.

    Raises:
        401: No autenticado
        422: Cuota desconocida, beca/solicitud faltante o inexistente
        503: Procesador no disponible (reintentable)
    """
    try:
        submission = await builder.build_and_submit(
            session,
            user_id=user_id,
            fee_type=fee_type,
            rail=payload.rail,
            coupon_code=payload.coupon_code,
            application_id=payload.application_id,
            scholarship_id=payload.scholarship_id,
            referral_discount_applied=payload.referral_discount_applied,
        )
    except BillingError as e:
        logger.warning(
            "checkout_rejected user_id=%s fee_type=%s error=%s message=%s",
            user_id, fee_type.value, e.error_code, e.message,
        )
        raise

    return CheckoutResponse(redirect_url=submission.redirect_url, session_id=submission.session_id)


@router.post(
    "/{fee_type}/verify",
    response_model=VerifyResponse,
    summary="Verificar y liquidar una sesión de pago",
)
async def verify_checkout(
    fee_type: FeeType,
    payload: VerifyRequest,
    session: AsyncSession = Depends(get_async_session),
    user_id: str = Depends(get_current_user_id),
    verifier: SettlementVerifier = Depends(get_settlement_verifier),
) -> VerifyResponse:
    """
    Idempotente: se puede llamar en bucle tras el redirect de éxito.

    Raises:
        403: La sesión es de otro usuario o de otra cuota
        404: Sesión inexistente o expirada (no reintentar)
        503: Procesador no disponible
    """
    result = await verifier.verify(
        session,
        payload.external_session_id,
        expected_user_id=user_id,
        expected_fee_type=fee_type,
    )

    return VerifyResponse(status=result.status, details=result.details)


__all__ = ["router", "get_checkout_builder", "get_settlement_verifier"]
