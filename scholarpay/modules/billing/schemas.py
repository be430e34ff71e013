# -*- coding: utf-8 -*-
"""
scholarpay/modules/billing/schemas.py

Esquemas Pydantic de la API de checkout y verificación.

Autor: ScholarPay
Fecha: 2026-10-18
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

from .enums import DiscountKind, FeeType, PaymentRail, PricingMode


class CheckoutRequest(BaseModel):
    """
    Request para iniciar el cobro de una cuota.

    El monto nunca viaja desde el cliente: el backend lo resuelve desde el
    catálogo, el paquete del usuario o la beca.
    """

    rail: PaymentRail = Field(
        default=PaymentRail.CARD,
        description="Riel de pago: card (USD) o instant_transfer (PIX, BRL).",
    )

    coupon_code: Optional[str] = Field(
        default=None,
        max_length=64,
        description="Código de cupón promocional.",
    )

    application_id: Optional[int] = Field(
        default=None,
        description="Solicitud de beca existente (application_fee / scholarship_fee).",
    )

    scholarship_id: Optional[int] = Field(
        default=None,
        description="Beca; se crea la solicitud pendiente si no existe.",
    )

    referral_discount_applied: bool = Field(
        default=False,
        description="El descuento de referido ya fue aplicado aguas arriba.",
    )


class CheckoutResponse(BaseModel):
    """Respuesta al iniciar un checkout."""

    redirect_url: str = Field(description="URL del procesador a la que redirigir al usuario.")
    session_id: str = Field(description="ID de la sesión en el procesador (para verificar).")


class VerifyRequest(BaseModel):
    external_session_id: str = Field(min_length=1, max_length=255)


class VerifyResponse(BaseModel):
    """
    Resultado de la verificación. El cliente solo ve complete o not_ready;
    con not_ready debe volver a consultar más tarde.
    """

    status: Literal["complete", "not_ready"]
    details: Dict[str, Any] = Field(default_factory=dict)


class QuoteDiscount(BaseModel):
    kind: DiscountKind
    amount: Decimal
    code: Optional[str] = None


class QuoteResponse(BaseModel):
    """Cotización de una cuota en un riel, sin efectos."""

    fee_type: FeeType
    rail: PaymentRail
    currency: str
    pricing_mode: PricingMode
    base_amount: Decimal
    base_source: str
    discount: Optional[QuoteDiscount] = None
    coupon_rejected_reason: Optional[str] = None
    net_amount: Decimal
    exchange_rate: Decimal
    gross_amount: Decimal
    gross_amount_minor_units: int
    processor_fee: Decimal
    total_with_iof: Optional[Decimal] = None


__all__ = [
    "CheckoutRequest",
    "CheckoutResponse",
    "VerifyRequest",
    "VerifyResponse",
    "QuoteDiscount",
    "QuoteResponse",
]
