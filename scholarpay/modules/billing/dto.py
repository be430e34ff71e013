# -*- coding: utf-8 -*-
"""
scholarpay/modules/billing/dto.py

Objetos de transferencia del motor de cobro.

- CouponDiscount / ReferralDiscount: variantes de descuento (a lo sumo una)
- ResolvedAmount: salida del resolvedor de descuentos
- CheckoutIntent: intento de cobro; el bruto siempre se deriva del neto
- CheckoutMetadata: bolsa de metadata enviada al procesador, único canal
  para reconstruir el intento al liquidar
- ProcessorCheckout / ProcessorSession: formas que devuelve el procesador
- VerificationResult: resultado de la verificación de liquidación

Autor: ScholarPay
Fecha: 2026-10-18
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator

from scholarpay.modules.billing.enums import (
    CouponDiscountType,
    DiscountKind,
    FeeType,
    PaymentRail,
    PricingMode,
)
from scholarpay.modules.billing.services.fee_calculator import FeeCalculator, FeeParameters, from_minor_units
from scholarpay.shared.database.base import utcnow

METADATA_SOURCE = "scholarpay_checkout"


# =============================================================================
# DESCUENTOS
# =============================================================================

@dataclass(frozen=True)
class CouponDiscount:
    code: str
    coupon_id: int
    discount_type: CouponDiscountType
    discount_value: Decimal
    original_amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal

    kind: Literal[DiscountKind.COUPON] = DiscountKind.COUPON

    def __post_init__(self) -> None:
        if self.final_amount < 0:
            raise ValueError("final_amount must be >= 0")
        if self.original_amount - self.discount_amount != self.final_amount:
            raise ValueError("final_amount must equal original_amount - discount_amount")


@dataclass(frozen=True)
class ReferralDiscount:
    referrer_id: str
    affiliate_code: str
    discount_amount: Decimal
    referral_code_id: Optional[int] = None

    kind: Literal[DiscountKind.REFERRAL] = DiscountKind.REFERRAL


Discount = Union[CouponDiscount, ReferralDiscount]


@dataclass(frozen=True)
class ResolvedAmount:
    """Monto (USD) tras aplicar, como mucho, un descuento."""
    amount: Decimal
    discount: Optional[Discount] = None
    rejected_coupon_reason: Optional[str] = None


# =============================================================================
# INTENTO DE COBRO
# =============================================================================

@dataclass
class CheckoutIntent:
    """
    Un intento de cobrar una cuota.

    gross_amount_minor_units no es un argumento: se calcula con la
    calculadora de comisiones a partir de net_amount, rail y exchange_rate.
    """

    user_id: str
    fee_type: FeeType
    rail: PaymentRail
    net_amount: Decimal
    exchange_rate: Decimal = Decimal("1")
    discount: Optional[Discount] = None
    application_id: Optional[int] = None
    external_session_id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    fee_params: FeeParameters = field(default_factory=FeeParameters, repr=False, compare=False)
    gross_amount_minor_units: int = field(init=False)

    def __post_init__(self) -> None:
        self.net_amount = Decimal(self.net_amount)
        if self.rail is PaymentRail.CARD:
            self.exchange_rate = Decimal("1")
        if self.net_amount < self.fee_params.min_charge_usd:
            raise ValueError(
                f"net_amount {self.net_amount} below minimum charge {self.fee_params.min_charge_usd}"
            )
        calculator = FeeCalculator(self.fee_params)
        self.gross_amount_minor_units = calculator.gross_for_net(self.net_amount, self.rail, self.exchange_rate)

    @property
    def currency(self) -> str:
        return self.rail.currency

    @property
    def gross_amount(self) -> Decimal:
        return from_minor_units(self.gross_amount_minor_units)


class CheckoutMetadata(BaseModel):
    """
    Metadata del checkout. El procesador solo guarda strings; to_processor()
    serializa y from_processor() reconstruye con coerción de tipos.
    """

    model_config = ConfigDict(extra="ignore")

    source: str = METADATA_SOURCE
    user_id: str
    fee_type: FeeType
    rail: PaymentRail
    currency: str
    net_amount: Decimal
    gross_amount: Decimal
    gross_amount_minor: int
    exchange_rate: Decimal = Decimal("1")
    base_amount: Optional[Decimal] = None
    pricing_mode: Optional[PricingMode] = None
    application_id: Optional[int] = None
    scholarship_id: Optional[int] = None

    # Procedencia del descuento
    discount_kind: Optional[DiscountKind] = None
    discount_amount: Optional[Decimal] = None
    original_amount: Optional[Decimal] = None
    final_amount: Optional[Decimal] = None
    coupon_code: Optional[str] = None
    coupon_id: Optional[int] = None
    coupon_discount_type: Optional[CouponDiscountType] = None
    coupon_discount_value: Optional[Decimal] = None
    referrer_id: Optional[str] = None
    affiliate_code: Optional[str] = None
    referral_code_id: Optional[int] = None
    referral_discount_applied: bool = False

    # Transferencia Stripe Connect a la universidad (solo application_fee)
    university_id: Optional[int] = None
    stripe_connect_account_id: Optional[str] = None
    requires_transfer: bool = False
    transfer_amount_minor: Optional[int] = None

    @field_validator("*", mode="before")
    @classmethod
    def _empty_as_none(cls, value: Any) -> Any:
        if isinstance(value, str) and value == "":
            return None
        return value

    @classmethod
    def from_intent(
        cls,
        intent: CheckoutIntent,
        *,
        base_amount: Optional[Decimal] = None,
        pricing_mode: Optional[PricingMode] = None,
        scholarship_id: Optional[int] = None,
        referral_discount_applied: bool = False,
        transfer: Optional["TransferDestination"] = None,
    ) -> "CheckoutMetadata":
        data: dict[str, Any] = dict(
            user_id=intent.user_id,
            fee_type=intent.fee_type,
            rail=intent.rail,
            currency=intent.currency,
            net_amount=intent.net_amount,
            gross_amount=intent.gross_amount,
            gross_amount_minor=intent.gross_amount_minor_units,
            exchange_rate=intent.exchange_rate,
            base_amount=base_amount,
            pricing_mode=pricing_mode,
            application_id=intent.application_id,
            scholarship_id=scholarship_id,
            referral_discount_applied=referral_discount_applied,
        )
        discount = intent.discount
        if isinstance(discount, CouponDiscount):
            data.update(
                discount_kind=DiscountKind.COUPON,
                discount_amount=discount.discount_amount,
                original_amount=discount.original_amount,
                final_amount=discount.final_amount,
                coupon_code=discount.code,
                coupon_id=discount.coupon_id,
                coupon_discount_type=discount.discount_type,
                coupon_discount_value=discount.discount_value,
            )
        elif isinstance(discount, ReferralDiscount):
            data.update(
                discount_kind=DiscountKind.REFERRAL,
                discount_amount=discount.discount_amount,
                referrer_id=discount.referrer_id,
                affiliate_code=discount.affiliate_code,
                referral_code_id=discount.referral_code_id,
                referral_discount_applied=True,
            )
        if transfer is not None:
            data.update(
                university_id=transfer.university_id,
                stripe_connect_account_id=transfer.account_id,
                requires_transfer=True,
                transfer_amount_minor=transfer.amount_minor,
            )
        return cls(**data)

    def to_processor(self) -> dict[str, str]:
        """Dict plano de strings, sin claves vacías."""
        out: dict[str, str] = {}
        for key, value in self.model_dump(mode="json").items():
            if value is None:
                continue
            if isinstance(value, bool):
                out[key] = "true" if value else "false"
            else:
                out[key] = str(value)
        return out

    @classmethod
    def from_processor(cls, metadata: Mapping[str, Any]) -> "CheckoutMetadata":
        return cls.model_validate(dict(metadata))


# =============================================================================
# PROCESADOR
# =============================================================================

@dataclass(frozen=True)
class CheckoutLineItem:
    """Línea de cobro agnóstica del procesador."""
    currency: str
    unit_amount_minor_units: int
    description: str
    quantity: int = 1


@dataclass(frozen=True)
class ProcessorCheckout:
    """Resultado de crear un checkout en el procesador."""
    session_id: str
    redirect_url: str
    provider: str = "stripe"


@dataclass(frozen=True)
class TransferDestination:
    """Cuenta Stripe Connect de la universidad y monto a transferirle (USD, centavos)."""
    university_id: int
    account_id: str
    amount_minor: int


@dataclass(frozen=True)
class ProcessorTransfer:
    """Resultado de crear una transferencia Connect."""
    transfer_id: str
    pending: bool = False


@dataclass(frozen=True)
class ProcessorSession:
    """Estado vivo de una sesión de checkout en el procesador."""
    session_id: str
    status: Optional[str]
    payment_status: Optional[str]
    amount_total: Optional[int]
    currency: Optional[str]
    metadata: dict[str, str]
    payment_intent_ref: Optional[str] = None
    client_reference_id: Optional[str] = None
    customer_email: Optional[str] = None

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"


# =============================================================================
# VERIFICACIÓN
# =============================================================================

VerificationStatus = Literal["complete", "not_ready"]


@dataclass(frozen=True)
class VerificationResult:
    """
    Resultado visible para el llamador: solo complete / not_ready. El detalle
    interno (ganador, perdedor de carrera, recuperación) va en `details`.

    `interrupted` marca un not_ready de una sesión ya pagada cuya
    liquidación falló a mitad de camino: el polling vuelve a intentar, el
    webhook debe pedir a Stripe que reenvíe.
    """
    status: VerificationStatus
    details: dict = field(default_factory=dict)
    interrupted: bool = False

    @classmethod
    def complete(cls, **details: Any) -> "VerificationResult":
        return cls(status="complete", details=details)

    @classmethod
    def not_ready(cls, **details: Any) -> "VerificationResult":
        return cls(status="not_ready", details=details)

    @classmethod
    def interrupted_settlement(cls, **details: Any) -> "VerificationResult":
        return cls(status="not_ready", details=details, interrupted=True)


__all__ = [
    "METADATA_SOURCE",
    "CouponDiscount",
    "ReferralDiscount",
    "Discount",
    "ResolvedAmount",
    "CheckoutIntent",
    "CheckoutMetadata",
    "CheckoutLineItem",
    "ProcessorCheckout",
    "ProcessorSession",
    "ProcessorTransfer",
    "TransferDestination",
    "VerificationResult",
    "VerificationStatus",
]
