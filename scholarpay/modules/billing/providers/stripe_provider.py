# -*- coding: utf-8 -*-
"""
scholarpay/modules/billing/providers/stripe_provider.py

Proveedor Stripe: crea Checkout Sessions (tarjeta en USD o PIX en BRL),
consulta su estado para la liquidación y transfiere a la cuenta Connect de
la universidad lo cobrado por una application fee.

Las llamadas al SDK (síncrono) se ejecutan en threadpool para no bloquear
el event loop.

Autor: ScholarPay
Fecha: 2026-10-18
"""

from __future__ import annotations

import logging
import os
from typing import Any, Mapping, Optional, Protocol

import stripe
from fastapi.concurrency import run_in_threadpool

from scholarpay.modules.billing.dto import CheckoutLineItem, ProcessorCheckout, ProcessorSession, ProcessorTransfer
from scholarpay.modules.billing.enums import PaymentRail
from scholarpay.modules.billing.errors import CheckoutSessionNotFoundError, PaymentProcessorError
from scholarpay.shared.config.settings_payments import get_payments_settings

logger = logging.getLogger(__name__)


class PaymentProcessor(Protocol):
    """Superficie del procesador que consume el motor de cobro."""

    async def create_checkout_session(
        self,
        *,
        line_item: CheckoutLineItem,
        rail: PaymentRail,
        success_url: str,
        cancel_url: str,
        metadata: Mapping[str, str],
        client_reference_id: Optional[str] = None,
        customer_email: Optional[str] = None,
    ) -> ProcessorCheckout: ...

    async def retrieve_checkout_session(self, session_id: str) -> ProcessorSession: ...

    async def create_transfer(
        self,
        *,
        amount_minor: int,
        currency: str,
        destination: str,
        idempotency_key: str,
        description: str,
        metadata: Mapping[str, str],
    ) -> ProcessorTransfer: ...


def metadata_as_dict(obj: Any) -> dict[str, str]:
    """Convierte metadata de Stripe (StripeObject) en dict de strings."""
    if obj is None:
        return {}
    to_dict = getattr(obj, "to_dict", None)
    data = to_dict() if callable(to_dict) else dict(obj)
    return {str(k): "" if v is None else str(v) for k, v in data.items()}


def _payment_intent_ref(session: Any) -> Optional[str]:
    ref = getattr(session, "payment_intent", None)
    if ref is None:
        return None
    # Puede venir expandido como objeto
    return ref if isinstance(ref, str) else getattr(ref, "id", None)


def _customer_email(session: Any) -> Optional[str]:
    details = getattr(session, "customer_details", None)
    email = getattr(details, "email", None) if details is not None else None
    return email or getattr(session, "customer_email", None)


def to_processor_session(session: Any) -> ProcessorSession:
    """Normaliza un objeto Checkout Session de Stripe."""
    return ProcessorSession(
        session_id=session.id,
        status=getattr(session, "status", None),
        payment_status=getattr(session, "payment_status", None),
        amount_total=getattr(session, "amount_total", None),
        currency=getattr(session, "currency", None),
        metadata=metadata_as_dict(getattr(session, "metadata", None)),
        payment_intent_ref=_payment_intent_ref(session),
        client_reference_id=getattr(session, "client_reference_id", None),
        customer_email=_customer_email(session),
    )


class StripeProvider:
    """
    Proveedor de pagos Stripe.

    Args:
        secret_key: Stripe secret key. Si no se proporciona, se carga
            desde settings o env.
    """

    def __init__(self, secret_key: Optional[str] = None):
        self._secret_key = secret_key or self._load_secret_key()
        if self._secret_key:
            stripe.api_key = self._secret_key

    def _load_secret_key(self) -> Optional[str]:
        settings = get_payments_settings()
        key = settings.stripe_secret_key or os.getenv("STRIPE_SECRET_KEY")
        if not key:
            logger.warning("STRIPE_SECRET_KEY not configured")
        return key

    @property
    def is_configured(self) -> bool:
        return bool(self._secret_key)

    async def create_checkout_session(
        self,
        *,
        line_item: CheckoutLineItem,
        rail: PaymentRail,
        success_url: str,
        cancel_url: str,
        metadata: Mapping[str, str],
        client_reference_id: Optional[str] = None,
        customer_email: Optional[str] = None,
    ) -> ProcessorCheckout:
        """
        Crea una Checkout Session.

        Returns:
            ProcessorCheckout con session_id y redirect_url

        Raises:
            PaymentProcessorError: Stripe no configurado o error de la API
        """
        if not self.is_configured:
            raise PaymentProcessorError("Stripe is not configured. Set STRIPE_SECRET_KEY.")

        params: dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": [rail.processor_method],
            "line_items": [
                {
                    "price_data": {
                        "currency": line_item.currency,
                        "unit_amount": line_item.unit_amount_minor_units,
                        "product_data": {"name": line_item.description},
                    },
                    "quantity": line_item.quantity,
                }
            ],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": dict(metadata),
        }
        if client_reference_id:
            params["client_reference_id"] = client_reference_id
        if customer_email:
            params["customer_email"] = customer_email

        try:
            session = await run_in_threadpool(stripe.checkout.Session.create, **params)
        except stripe.StripeError as e:
            logger.error(
                "stripe_checkout_create_failed rail=%s error=%s",
                rail.value, getattr(e, "user_message", None) or str(e),
            )
            raise PaymentProcessorError(f"Stripe error: {e}") from e

        logger.info(
            "stripe_checkout_created session_id=%s rail=%s amount=%d currency=%s",
            session.id, rail.value, line_item.unit_amount_minor_units, line_item.currency,
        )
        return ProcessorCheckout(session_id=session.id, redirect_url=session.url)

    async def retrieve_checkout_session(self, session_id: str) -> ProcessorSession:
        """
        Consulta el estado vivo de una sesión.

        Raises:
            CheckoutSessionNotFoundError: Sesión inexistente o expirada (terminal)
            PaymentProcessorError: Error transitorio de Stripe
        """
        if not self.is_configured:
            raise PaymentProcessorError("Stripe is not configured. Set STRIPE_SECRET_KEY.")

        try:
            session = await run_in_threadpool(stripe.checkout.Session.retrieve, session_id)
        except stripe.InvalidRequestError as e:
            if getattr(e, "code", None) == "resource_missing" or getattr(e, "http_status", None) == 404:
                raise CheckoutSessionNotFoundError(f"Checkout session {session_id} not found") from e
            raise PaymentProcessorError(f"Stripe error: {e}") from e
        except stripe.StripeError as e:
            raise PaymentProcessorError(f"Stripe error: {e}") from e

        result = to_processor_session(session)
        if result.status == "expired":
            raise CheckoutSessionNotFoundError(f"Checkout session {session_id} expired")
        return result

    async def create_transfer(
        self,
        *,
        amount_minor: int,
        currency: str,
        destination: str,
        idempotency_key: str,
        description: str,
        metadata: Mapping[str, str],
    ) -> ProcessorTransfer:
        """
        Transfiere a una cuenta Stripe Connect. La idempotency key hace que
        un reintento devuelva la misma transferencia en lugar de crear otra.

        Raises:
            PaymentProcessorError: Stripe no configurado, cuenta inválida,
                saldo insuficiente o error de la API
        """
        if not self.is_configured:
            raise PaymentProcessorError("Stripe is not configured. Set STRIPE_SECRET_KEY.")

        try:
            transfer = await run_in_threadpool(
                stripe.Transfer.create,
                amount=amount_minor,
                currency=currency,
                destination=destination,
                description=description,
                metadata=dict(metadata),
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as e:
            logger.error(
                "stripe_transfer_failed destination=%s amount=%d error=%s",
                destination, amount_minor, getattr(e, "user_message", None) or str(e),
            )
            raise PaymentProcessorError(f"Stripe error: {e}") from e

        pending = bool(getattr(transfer, "pending", False))
        logger.info(
            "stripe_transfer_created transfer_id=%s destination=%s amount=%d pending=%s",
            transfer.id, destination, amount_minor, pending,
        )
        return ProcessorTransfer(transfer_id=transfer.id, pending=pending)


__all__ = ["PaymentProcessor", "StripeProvider", "metadata_as_dict", "to_processor_session"]
