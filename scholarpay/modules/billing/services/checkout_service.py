# -*- coding: utf-8 -*-
"""
scholarpay/modules/billing/services/checkout_service.py

Construcción y envío de checkouts al procesador.

Un único pipeline parametrizado por FeeType:
1. Contexto de precios del usuario (modo, dependientes, paquete, beca)
2. Solicitud pendiente (solo cuotas ligadas a beca, upsert idempotente)
3. Monto base -> descuento -> piso mínimo sobre el neto
4. Tipo de cambio (solo PIX) -> bruto con comisiones
5. Línea de cobro + metadata -> procesador. Una application fee de una
   universidad con cuenta Stripe Connect lleva en la metadata el destino
   y el neto a transferirle al liquidar.

La única escritura previa al pago es la solicitud pendiente. Un fallo del
procesador se propaga como PaymentProcessorError (reintentable).

Autor: ScholarPay
Fecha: 2026-10-18
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from scholarpay.modules.billing.dto import (
    CheckoutIntent,
    CheckoutLineItem,
    CheckoutMetadata,
    ResolvedAmount,
    TransferDestination,
)
from scholarpay.modules.billing.enums import FeeType, PaymentRail, PricingMode
from scholarpay.modules.billing.errors import CheckoutValidationError, PaymentProcessorError
from scholarpay.modules.billing.fee_schedule import BaseAmount, resolve_base_amount
from scholarpay.modules.billing.metrics import CHECKOUT_SESSIONS_CREATED
from scholarpay.modules.billing.models import Scholarship
from scholarpay.modules.billing.providers.exchange_rate_provider import ExchangeRateProvider
from scholarpay.modules.billing.providers.stripe_provider import PaymentProcessor, StripeProvider
from scholarpay.modules.billing.repositories import StudentRepository
from scholarpay.modules.billing.services.discount_resolver import DiscountResolver
from scholarpay.modules.billing.services.fee_calculator import (
    FeeBreakdown,
    FeeCalculator,
    FeeParameters,
    to_minor_units,
)
from scholarpay.shared.config import get_settings
from scholarpay.shared.config.settings_payments import PaymentsSettings, get_payments_settings

logger = logging.getLogger(__name__)

SESSION_ID_PLACEHOLDER = "{CHECKOUT_SESSION_ID}"


@dataclass(frozen=True)
class PricingContext:
    pricing_mode: PricingMode
    base: BaseAmount
    customer_email: Optional[str] = None
    scholarship: Optional[Scholarship] = None


@dataclass(frozen=True)
class CheckoutQuote:
    """Cotización sin efectos para mostrar antes de pagar."""
    fee_type: FeeType
    rail: PaymentRail
    base: BaseAmount
    resolved: ResolvedAmount
    net_amount: Decimal
    breakdown: FeeBreakdown


@dataclass(frozen=True)
class CheckoutSubmission:
    redirect_url: str
    session_id: str
    intent: CheckoutIntent


class CheckoutRequestBuilder:
    """
    Arma el intento de cobro y lo envía al procesador.

    Args:
        processor: Procesador de pagos (por defecto, Stripe)
        exchange_rates: Proveedor de tipo de cambio
        resolver: Resolvedor de descuentos
        student_repo: Repositorio del estudiante
        settings: Configuración de pagos
    """

    def __init__(
        self,
        processor: Optional[PaymentProcessor] = None,
        exchange_rates: Optional[ExchangeRateProvider] = None,
        resolver: Optional[DiscountResolver] = None,
        student_repo: Optional[StudentRepository] = None,
        settings: Optional[PaymentsSettings] = None,
    ):
        self.settings = settings or get_payments_settings()
        self.processor = processor or StripeProvider()
        self.exchange_rates = exchange_rates or ExchangeRateProvider(settings=self.settings)
        self.resolver = resolver or DiscountResolver()
        self.student_repo = student_repo or StudentRepository()
        self.calculator = FeeCalculator(FeeParameters.from_settings(self.settings))

    # ------------------------------------------------------------------
    # Contexto de precios
    # ------------------------------------------------------------------
    async def _pricing_context(
        self,
        session: AsyncSession,
        *,
        user_id: str,
        fee_type: FeeType,
        scholarship_id: Optional[int] = None,
    ) -> PricingContext:
        profile = await self.student_repo.get_profile(session, user_id)
        pricing_mode = PricingMode(profile.pricing_mode) if profile and profile.pricing_mode else PricingMode.LEGACY
        dependents = profile.dependents if profile else 0

        scholarship: Optional[Scholarship] = None
        if scholarship_id is not None:
            scholarship = await self.student_repo.get_scholarship(session, scholarship_id)
            if scholarship is None:
                raise CheckoutValidationError(f"Scholarship {scholarship_id} not found")

        package = await self.student_repo.get_package_fees(session, user_id)
        base = resolve_base_amount(
            fee_type,
            pricing_mode=pricing_mode,
            dependents=dependents,
            package=package,
            scholarship_application_fee=scholarship.application_fee_amount if scholarship else None,
        )
        return PricingContext(
            pricing_mode=pricing_mode,
            base=base,
            customer_email=profile.email if profile else None,
            scholarship=scholarship,
        )

    async def _resolve_scholarship_id(
        self,
        session: AsyncSession,
        *,
        user_id: str,
        application_id: Optional[int],
        scholarship_id: Optional[int],
    ) -> Optional[int]:
        if application_id is None:
            return scholarship_id
        application = await self.student_repo.get_application(session, application_id)
        if application is None or application.student_id != user_id:
            raise CheckoutValidationError(f"Application {application_id} not found")
        return application.scholarship_id

    async def _net_and_rate(self, resolved: ResolvedAmount, rail: PaymentRail) -> tuple[Decimal, Decimal]:
        net = self.calculator.clamp_net(resolved.amount)
        if net != resolved.amount:
            logger.info("net_amount_clamped resolved=%s net=%s", resolved.amount, net)
        if rail is PaymentRail.INSTANT_TRANSFER:
            rate = await self.exchange_rates.get_rate("USD", "BRL")
        else:
            rate = Decimal("1")
        return net, rate

    # ------------------------------------------------------------------
    # Cotización
    # ------------------------------------------------------------------
    async def quote(
        self,
        session: AsyncSession,
        *,
        user_id: str,
        fee_type: FeeType,
        rail: PaymentRail,
        coupon_code: Optional[str] = None,
        application_id: Optional[int] = None,
        scholarship_id: Optional[int] = None,
        referral_discount_applied: bool = False,
    ) -> CheckoutQuote:
        """Calcula lo que pagaría el usuario. No escribe nada."""
        scholarship_id = await self._resolve_scholarship_id(
            session, user_id=user_id, application_id=application_id, scholarship_id=scholarship_id
        )
        ctx = await self._pricing_context(session, user_id=user_id, fee_type=fee_type, scholarship_id=scholarship_id)
        resolved = await self.resolver.resolve(
            session,
            user_id=user_id,
            fee_type=fee_type,
            proposed_amount=ctx.base.amount,
            coupon_code=coupon_code,
            canonical_amount=ctx.base.amount,
            pricing_mode=ctx.pricing_mode,
            referral_applied_upstream=referral_discount_applied,
        )
        net, rate = await self._net_and_rate(resolved, rail)
        return CheckoutQuote(
            fee_type=fee_type,
            rail=rail,
            base=ctx.base,
            resolved=resolved,
            net_amount=net,
            breakdown=self.calculator.breakdown(net, rail, rate),
        )

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------
    async def _transfer_destination(
        self,
        session: AsyncSession,
        fee_type: FeeType,
        scholarship: Optional[Scholarship],
        net: Decimal,
    ) -> Optional[TransferDestination]:
        """La universidad recibe el neto de su application fee, en centavos USD."""
        if fee_type is not FeeType.APPLICATION_FEE or scholarship is None or scholarship.university_id is None:
            return None
        university = await self.student_repo.get_university(session, scholarship.university_id)
        if university is None or not university.stripe_connect_account_id:
            return None
        return TransferDestination(
            university_id=university.id,
            account_id=university.stripe_connect_account_id,
            amount_minor=to_minor_units(net),
        )

    def _return_urls(self, fee_type: FeeType) -> tuple[str, str]:
        frontend = (self.settings.frontend_url or get_settings().frontend_url).rstrip("/")
        slug = fee_type.value.replace("_", "-")
        success_url = f"{frontend}/student/dashboard/{slug}-success?session_id={SESSION_ID_PLACEHOLDER}"
        cancel_url = f"{frontend}/student/dashboard/{slug}-error"
        return success_url, cancel_url

    async def build_and_submit(
        self,
        session: AsyncSession,
        *,
        user_id: str,
        fee_type: FeeType,
        rail: PaymentRail,
        coupon_code: Optional[str] = None,
        application_id: Optional[int] = None,
        scholarship_id: Optional[int] = None,
        referral_discount_applied: bool = False,
        success_url: Optional[str] = None,
        cancel_url: Optional[str] = None,
    ) -> CheckoutSubmission:
        """
        Crea el checkout en el procesador para una cuota.

        Args:
            session: Sesión de base de datos
            user_id: Usuario que paga (del token)
            fee_type: Cuota a cobrar
            rail: Riel de pago
            coupon_code: Código de cupón opcional
            application_id: Solicitud existente (cuotas ligadas a beca)
            scholarship_id: Beca, para crear la solicitud si no existe
            referral_discount_applied: El descuento de referido ya se aplicó
            success_url / cancel_url: URLs de retorno explícitas

        Returns:
            CheckoutSubmission con la URL de redirección y el intento

        Raises:
            CheckoutValidationError: Falta la beca/solicitud o no existe
            PaymentProcessorError: Pagos deshabilitados o error del procesador
        """
        if not self.settings.payments_enabled:
            raise PaymentProcessorError("Payments are disabled", error_code="payments_disabled")

        if fee_type.requires_application and application_id is None and scholarship_id is None:
            raise CheckoutValidationError(
                f"{fee_type.value} requires application_id or scholarship_id"
            )

        scholarship_id = await self._resolve_scholarship_id(
            session, user_id=user_id, application_id=application_id, scholarship_id=scholarship_id
        )
        ctx = await self._pricing_context(session, user_id=user_id, fee_type=fee_type, scholarship_id=scholarship_id)

        if fee_type.requires_application and application_id is None:
            application, created = await self.student_repo.create_or_get_pending_application(
                session, student_id=user_id, scholarship_id=scholarship_id
            )
            application_id = application.id
            logger.info(
                "pending_application_ready user_id=%s scholarship_id=%s application_id=%s created=%s",
                user_id, scholarship_id, application_id, created,
            )

        resolved = await self.resolver.resolve(
            session,
            user_id=user_id,
            fee_type=fee_type,
            proposed_amount=ctx.base.amount,
            coupon_code=coupon_code,
            canonical_amount=ctx.base.amount,
            pricing_mode=ctx.pricing_mode,
            referral_applied_upstream=referral_discount_applied,
        )
        net, rate = await self._net_and_rate(resolved, rail)

        intent = CheckoutIntent(
            user_id=user_id,
            fee_type=fee_type,
            rail=rail,
            net_amount=net,
            exchange_rate=rate,
            discount=resolved.discount,
            application_id=application_id,
            fee_params=self.calculator.params,
        )
        metadata = CheckoutMetadata.from_intent(
            intent,
            base_amount=ctx.base.amount,
            pricing_mode=ctx.pricing_mode,
            scholarship_id=scholarship_id,
            referral_discount_applied=referral_discount_applied,
            transfer=await self._transfer_destination(session, fee_type, ctx.scholarship, net),
        )

        description = fee_type.label
        if ctx.scholarship is not None:
            description = f"{fee_type.label} - {ctx.scholarship.title}"
        line_item = CheckoutLineItem(
            currency=intent.currency,
            unit_amount_minor_units=intent.gross_amount_minor_units,
            description=description,
        )

        default_success, default_cancel = self._return_urls(fee_type)
        checkout = await self.processor.create_checkout_session(
            line_item=line_item,
            rail=rail,
            success_url=success_url or default_success,
            cancel_url=cancel_url or default_cancel,
            metadata=metadata.to_processor(),
            client_reference_id=user_id,
            customer_email=ctx.customer_email,
        )
        intent.external_session_id = checkout.session_id
        CHECKOUT_SESSIONS_CREATED.labels(fee_type=fee_type.value, rail=rail.value).inc()

        logger.info(
            "checkout_created user_id=%s fee_type=%s rail=%s session_id=%s net=%s gross_minor=%d currency=%s discount=%s",
            user_id, fee_type.value, rail.value, checkout.session_id, net,
            intent.gross_amount_minor_units, intent.currency,
            intent.discount.kind.value if intent.discount else None,
        )
        return CheckoutSubmission(
            redirect_url=checkout.redirect_url,
            session_id=checkout.session_id,
            intent=intent,
        )


__all__ = [
    "CheckoutRequestBuilder",
    "CheckoutQuote",
    "CheckoutSubmission",
    "PricingContext",
    "SESSION_ID_PLACEHOLDER",
]
