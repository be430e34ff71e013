# -*- coding: utf-8 -*-
"""
scholarpay/modules/billing/enums.py

Enums del motor de cobro y liquidación.

- FeeType: cuotas cobrables del flujo del estudiante
- PaymentRail: riel de pago (tarjeta en USD, PIX en moneda local)
- PricingMode: catálogo de precios resuelto por usuario (legacy / simplified)
- DiscountKind, CouponDiscountType: procedencia y tipo de descuento
- ClaimStatus: estados del reclamo de liquidación
- ApplicationStatus: estados de la solicitud de beca con rango de avance
- NotificationTarget: destinatarios del fan-out
- TransferStatus: resultado de la transferencia Connect a la universidad

Autor: ScholarPay
Fecha: 2026-10-18
"""

from enum import StrEnum


class FeeType(StrEnum):
    """Cuota cobrable. El valor es el segmento usado en las rutas HTTP."""

    SELECTION_PROCESS = "selection_process"
    APPLICATION_FEE = "application_fee"
    SCHOLARSHIP_FEE = "scholarship_fee"
    I20_CONTROL_FEE = "i20_control_fee"

    @property
    def requires_application(self) -> bool:
        # Cuotas ligadas a una beca concreta
        return self in (FeeType.APPLICATION_FEE, FeeType.SCHOLARSHIP_FEE)

    @property
    def label(self) -> str:
        return _FEE_LABELS[self]


_FEE_LABELS = {
    FeeType.SELECTION_PROCESS: "Selection Process Fee",
    FeeType.APPLICATION_FEE: "Application Fee",
    FeeType.SCHOLARSHIP_FEE: "Scholarship Fee",
    FeeType.I20_CONTROL_FEE: "I-20 Control Fee",
}


class PaymentRail(StrEnum):
    """Riel de pago: CARD liquida en USD; INSTANT_TRANSFER (PIX) en BRL."""

    CARD = "card"
    INSTANT_TRANSFER = "instant_transfer"

    @property
    def currency(self) -> str:
        return "usd" if self is PaymentRail.CARD else "brl"

    @property
    def processor_method(self) -> str:
        return "card" if self is PaymentRail.CARD else "pix"


class PricingMode(StrEnum):
    LEGACY = "legacy"
    SIMPLIFIED = "simplified"


class DiscountKind(StrEnum):
    COUPON = "coupon"
    REFERRAL = "referral"


class CouponDiscountType(StrEnum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class ClaimStatus(StrEnum):
    """Reclamo de liquidación: processing -> notifying -> complete."""

    PROCESSING = "processing"
    NOTIFYING = "notifying"
    COMPLETE = "complete"


class ApplicationStatus(StrEnum):
    """
    Estado de la solicitud de beca.

    El rango define el orden de avance; un pago nunca mueve la solicitud a un
    estado de rango menor. REJECTED no se sobrescribe por pagos.
    """

    PENDING = "pending"
    SELECTION_PROCESS_PAID = "selection_process_paid"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    ENROLLED = "enrolled"
    REJECTED = "rejected"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    def advance_to(self, target: "ApplicationStatus") -> "ApplicationStatus":
        """Devuelve el estado resultante de intentar avanzar a `target`."""
        if self is ApplicationStatus.REJECTED:
            return self
        return target if target.rank > self.rank else self


_STATUS_RANK = {
    ApplicationStatus.PENDING: 0,
    ApplicationStatus.SELECTION_PROCESS_PAID: 1,
    ApplicationStatus.UNDER_REVIEW: 2,
    ApplicationStatus.APPROVED: 3,
    ApplicationStatus.ENROLLED: 4,
    ApplicationStatus.REJECTED: 5,
}


class NotificationTarget(StrEnum):
    STUDENT = "student"
    UNIVERSITY = "university"
    SELLER = "seller"
    AFFILIATE_ADMIN = "affiliate_admin"
    ADMIN = "admin"


class TransferStatus(StrEnum):
    SUCCEEDED = "succeeded"
    PENDING = "pending"
    FAILED = "failed"


__all__ = [
    "FeeType",
    "PaymentRail",
    "PricingMode",
    "DiscountKind",
    "CouponDiscountType",
    "ClaimStatus",
    "ApplicationStatus",
    "NotificationTarget",
    "TransferStatus",
]

# Fin del archivo scholarpay/modules/billing/enums.py
