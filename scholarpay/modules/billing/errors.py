# -*- coding: utf-8 -*-
"""
scholarpay/modules/billing/errors.py

Excepciones de dominio del motor de cobro.

Cada error lleva su código HTTP; el handler de la app responde con
detail {"error", "message"}:
- CheckoutValidationError      -> 422 (no reintentable)
- CheckoutOwnershipError       -> 403
- CheckoutSessionNotFoundError -> 404 (terminal)
- PaymentProcessorError        -> 503 (reintentable)
- SettlementIncompleteError    -> 503 (reintentable; solo webhook)

Autor: ScholarPay
Fecha: 2026-10-18
"""

from __future__ import annotations


class BillingError(Exception):
    """Base de errores del módulo billing."""

    error_code = "billing_error"
    status_code = 400

    def __init__(self, message: str, *, error_code: str | None = None):
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code

    def to_detail(self) -> dict:
        return {"error": self.error_code, "message": self.message}


class CheckoutValidationError(BillingError):
    """Solicitud inválida: campo faltante, cuota desconocida, monto fuera de rango."""

    error_code = "validation_error"
    status_code = 422


class CheckoutOwnershipError(BillingError):
    """La sesión de pago pertenece a otro usuario o a otra cuota."""

    error_code = "session_mismatch"
    status_code = 403


class CheckoutSessionNotFoundError(BillingError):
    """El procesador no reconoce la sesión o ya expiró. No se reintenta."""

    error_code = "session_not_found"
    status_code = 404


class PaymentProcessorError(BillingError):
    """Fallo transitorio al hablar con el procesador de pagos."""

    error_code = "payment_provider_error"
    status_code = 503


class SettlementIncompleteError(BillingError):
    """
    Sesión pagada cuya liquidación se interrumpió por un fallo de base de
    datos. El reclamo quedó liberado; el webhook responde 503 para que
    Stripe reenvíe el evento.
    """

    error_code = "settlement_incomplete"
    status_code = 503


__all__ = [
    "BillingError",
    "CheckoutValidationError",
    "CheckoutOwnershipError",
    "CheckoutSessionNotFoundError",
    "PaymentProcessorError",
    "SettlementIncompleteError",
]
