# -*- coding: utf-8 -*-
"""
scholarpay/modules/billing/services/settlement_service.py

Verificación y liquidación idempotente de sesiones de pago.

La invocan el polling del navegador tras el redirect y el webhook de
Stripe, repetida y concurrentemente, desde cualquier proceso. La
exclusividad sale solo del reclamo persistido, único por
(external_session_id, fee_type):

    processing --(checkpoint)--> notifying --> complete

Flujo de verify():
1. Reclamo completo para la sesión -> complete, sin efectos
2. Estado vivo en el procesador; no pagado -> not_ready, sin escrituras
3. Metadata del checkout -> intento (dueño y cuota deben coincidir)
4. Reclamo: INSERT con token propio. Conflicto:
   - reclamo completo o reciente: otro verificador trabaja -> complete
   - "processing" abandonado: se retoma con UPDATE condicionado al token
   - "notifying" abandonado: se cierra sin reenviar notificaciones
5. Efectos, cada uno con su propio commit y re-chequeo:
   a. banderas de pago y estado de solicitud (sin retroceder)
   b. asiento contable (y transferencia Connect de la application fee)
   c. uso de cupón
   d. crédito de referido + puntos del referidor
   e. carrito
6. Checkpoint processing -> notifying, fan-out, -> complete

Un fallo de base de datos a mitad de camino libera el reclamo y responde
not_ready marcado como interrumpido: la siguiente invocación retoma desde
arriba, y el webhook lo convierte en 503 para que Stripe reenvíe.

Autor: ScholarPay
Fecha: 2026-10-18
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from scholarpay.modules.billing.dto import CheckoutMetadata, ProcessorSession, VerificationResult
from scholarpay.modules.billing.enums import ApplicationStatus, ClaimStatus, DiscountKind, FeeType, TransferStatus
from scholarpay.modules.billing.errors import CheckoutOwnershipError, CheckoutValidationError, PaymentProcessorError
from scholarpay.modules.billing.metrics import CONNECT_TRANSFERS, SETTLEMENT_VERIFICATIONS
from scholarpay.modules.billing.providers.stripe_provider import PaymentProcessor, StripeProvider
from scholarpay.modules.billing.repositories import (
    REFERRAL_REWARD_REFERENCE,
    ConnectTransferRepository,
    CouponRepository,
    LedgerRepository,
    ReferralRepository,
    SettlementClaimRepository,
    StudentRepository,
)
from scholarpay.modules.billing.services.fee_calculator import from_minor_units, to_minor_units
from scholarpay.modules.billing.services.notification_service import NotificationFanout, PaymentNotice
from scholarpay.shared.config.settings_payments import PaymentsSettings, get_payments_settings
from scholarpay.shared.database.base import as_utc, utcnow

logger = logging.getLogger(__name__)

TRANSFER_CURRENCY = "usd"

# Estado al que un pago lleva la solicitud, y qué bandera marca
APPLICATION_TRANSITIONS = {
    FeeType.SELECTION_PROCESS: (ApplicationStatus.SELECTION_PROCESS_PAID, False, False),
    FeeType.APPLICATION_FEE: (ApplicationStatus.UNDER_REVIEW, True, False),
    FeeType.SCHOLARSHIP_FEE: (None, False, True),
    FeeType.I20_CONTROL_FEE: (None, False, False),
}


@dataclass(frozen=True)
class ClaimHandle:
    """Reclamo ganado por esta invocación."""
    claim_id: int
    claim_token: str
    recovered: bool = False


class SettlementVerifier:
    """
    Verificador de liquidación.

    Args:
        processor: Procesador de pagos (por defecto, Stripe)
        fanout: Fan-out de notificaciones
        claim_repo, ledger_repo, coupon_repo, referral_repo, student_repo,
        transfer_repo:
            Repositorios (inyectables para tests)
        settings: Configuración de pagos
    """

    def __init__(
        self,
        processor: Optional[PaymentProcessor] = None,
        fanout: Optional[NotificationFanout] = None,
        claim_repo: Optional[SettlementClaimRepository] = None,
        ledger_repo: Optional[LedgerRepository] = None,
        coupon_repo: Optional[CouponRepository] = None,
        referral_repo: Optional[ReferralRepository] = None,
        student_repo: Optional[StudentRepository] = None,
        transfer_repo: Optional[ConnectTransferRepository] = None,
        settings: Optional[PaymentsSettings] = None,
    ):
        self.settings = settings or get_payments_settings()
        self.processor = processor or StripeProvider()
        self.student_repo = student_repo or StudentRepository()
        self.fanout = fanout or NotificationFanout(student_repo=self.student_repo, settings=self.settings)
        self.claim_repo = claim_repo or SettlementClaimRepository()
        self.ledger_repo = ledger_repo or LedgerRepository()
        self.coupon_repo = coupon_repo or CouponRepository()
        self.referral_repo = referral_repo or ReferralRepository()
        self.transfer_repo = transfer_repo or ConnectTransferRepository()

    @property
    def stale_window(self) -> timedelta:
        return timedelta(seconds=self.settings.settlement_claim_stale_seconds)

    # ------------------------------------------------------------------
    # API pública
    # ------------------------------------------------------------------
    async def verify(
        self,
        session: AsyncSession,
        external_session_id: str,
        *,
        expected_user_id: Optional[str] = None,
        expected_fee_type: Optional[FeeType] = None,
    ) -> VerificationResult:
        """
        Verifica una sesión de pago y, si está pagada, la liquida una sola vez.

        Args:
            session: Sesión de base de datos propia de esta invocación
            external_session_id: ID de la sesión en el procesador
            expected_user_id: Usuario autenticado (None desde el webhook)
            expected_fee_type: Cuota de la ruta (None desde el webhook)

        Returns:
            VerificationResult complete / not_ready

        Raises:
            CheckoutSessionNotFoundError: Sesión inexistente o expirada
            PaymentProcessorError: Procesador no disponible
            CheckoutOwnershipError: La sesión es de otro usuario o cuota
            CheckoutValidationError: Metadata incompleta
        """
        # 1) Ya liquidada
        completed = await self.claim_repo.get_completed_for_session(session, external_session_id)
        if completed is not None:
            if expected_user_id is not None and completed.user_id != expected_user_id:
                raise CheckoutOwnershipError("Checkout session belongs to another user")
            if expected_fee_type is not None and completed.fee_type != expected_fee_type.value:
                raise CheckoutOwnershipError("Checkout session is for another fee type")
            SETTLEMENT_VERIFICATIONS.labels(outcome="already_complete").inc()
            logger.debug("settlement_already_complete session_id=%s", external_session_id)
            return VerificationResult.complete(session_id=external_session_id, fee_type=completed.fee_type)

        # 2) Estado vivo en el procesador
        processor_session = await self.processor.retrieve_checkout_session(external_session_id)
        if not processor_session.is_paid:
            SETTLEMENT_VERIFICATIONS.labels(outcome="not_ready").inc()
            logger.info(
                "settlement_not_ready session_id=%s status=%s payment_status=%s",
                external_session_id, processor_session.status, processor_session.payment_status,
            )
            return VerificationResult.not_ready(
                session_id=external_session_id,
                payment_status=processor_session.payment_status,
            )

        # 3) Reconstrucción del intento
        metadata = self._parse_metadata(processor_session)
        if expected_user_id is not None and metadata.user_id != expected_user_id:
            logger.warning(
                "settlement_owner_mismatch session_id=%s expected=%s actual=%s",
                external_session_id, expected_user_id, metadata.user_id,
            )
            raise CheckoutOwnershipError("Checkout session belongs to another user")
        if expected_fee_type is not None and metadata.fee_type is not expected_fee_type:
            raise CheckoutOwnershipError("Checkout session is for another fee type")

        details = {
            "session_id": external_session_id,
            "fee_type": metadata.fee_type.value,
            "application_id": metadata.application_id,
        }

        # 4) Reclamo
        handle = await self._acquire_claim(session, processor_session, metadata)
        if handle is None:
            return VerificationResult.complete(**details)

        # 5-6) Efectos y notificaciones
        try:
            await self._apply_side_effects(session, processor_session, metadata)
            await self._notify_and_complete(session, handle, processor_session, metadata)
        except SQLAlchemyError as e:
            await session.rollback()
            logger.exception(
                "settlement_step_failed session_id=%s fee_type=%s error=%s",
                external_session_id, metadata.fee_type.value, e,
            )
            await self._release_claim(session, handle)
            SETTLEMENT_VERIFICATIONS.labels(outcome="failed").inc()
            return VerificationResult.interrupted_settlement(**details)

        SETTLEMENT_VERIFICATIONS.labels(outcome="recovered" if handle.recovered else "settled").inc()
        return VerificationResult.complete(**details)

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------
    def _parse_metadata(self, processor_session: ProcessorSession) -> CheckoutMetadata:
        try:
            metadata = CheckoutMetadata.from_processor(processor_session.metadata)
        except ValidationError as e:
            logger.error(
                "settlement_metadata_invalid session_id=%s errors=%s",
                processor_session.session_id, e.errors(include_url=False),
            )
            raise CheckoutValidationError("Checkout session metadata is incomplete") from e

        if processor_session.client_reference_id and processor_session.client_reference_id != metadata.user_id:
            logger.warning(
                "settlement_reference_mismatch session_id=%s client_reference_id=%s user_id=%s",
                processor_session.session_id, processor_session.client_reference_id, metadata.user_id,
            )
        return metadata

    # ------------------------------------------------------------------
    # Reclamo
    # ------------------------------------------------------------------
    async def _acquire_claim(
        self,
        session: AsyncSession,
        processor_session: ProcessorSession,
        metadata: CheckoutMetadata,
    ) -> Optional[ClaimHandle]:
        """
        Devuelve el reclamo si esta invocación debe liquidar, o None si otra
        ya lo hizo o lo está haciendo.
        """
        session_id = processor_session.session_id
        fee_type = metadata.fee_type.value
        token = uuid.uuid4().hex

        try:
            claim = await self.claim_repo.create(
                session,
                external_session_id=session_id,
                fee_type=fee_type,
                user_id=metadata.user_id,
                claim_token=token,
                payment_intent_ref=processor_session.payment_intent_ref,
            )
            claim_id = claim.id
            await session.commit()
            logger.info("settlement_claim_acquired session_id=%s fee_type=%s", session_id, fee_type)
            return ClaimHandle(claim_id=claim_id, claim_token=token)
        except IntegrityError:
            await session.rollback()

        existing = await self.claim_repo.get(session, session_id, fee_type)
        if existing is None or existing.is_complete:
            SETTLEMENT_VERIFICATIONS.labels(outcome="race_lost").inc()
            logger.info("settlement_claim_lost session_id=%s fee_type=%s state=complete", session_id, fee_type)
            return None

        claim_id, observed_token, status = existing.id, existing.claim_token, ClaimStatus(existing.status)
        age = utcnow() - as_utc(existing.updated_at)
        if age < self.stale_window:
            SETTLEMENT_VERIFICATIONS.labels(outcome="race_lost").inc()
            logger.info(
                "settlement_claim_lost session_id=%s fee_type=%s state=%s age=%.3fs",
                session_id, fee_type, status.value, age.total_seconds(),
            )
            return None

        if status is ClaimStatus.NOTIFYING:
            # Las notificaciones pudieron salir: se cierra sin reenviarlas
            closed = await self.claim_repo.transition(
                session,
                claim_id=claim_id,
                claim_token=observed_token,
                from_status=ClaimStatus.NOTIFYING,
                to_status=ClaimStatus.COMPLETE,
            )
            await session.commit()
            SETTLEMENT_VERIFICATIONS.labels(outcome="closed_without_notify").inc()
            logger.warning(
                "settlement_stale_notifying_closed session_id=%s fee_type=%s age=%.3fs closed=%s",
                session_id, fee_type, age.total_seconds(), closed,
            )
            return None

        new_token = uuid.uuid4().hex
        taken = await self.claim_repo.take_over(
            session, claim_id=claim_id, expected_token=observed_token, new_token=new_token
        )
        await session.commit()
        if not taken:
            SETTLEMENT_VERIFICATIONS.labels(outcome="race_lost").inc()
            logger.info("settlement_takeover_lost session_id=%s fee_type=%s", session_id, fee_type)
            return None

        logger.warning(
            "settlement_claim_recovered session_id=%s fee_type=%s age=%.3fs",
            session_id, fee_type, age.total_seconds(),
        )
        return ClaimHandle(claim_id=claim_id, claim_token=new_token, recovered=True)

    async def _release_claim(self, session: AsyncSession, handle: ClaimHandle) -> None:
        try:
            await self.claim_repo.release(
                session,
                claim_id=handle.claim_id,
                claim_token=handle.claim_token,
                stale_before=utcnow() - self.stale_window - timedelta(seconds=1),
            )
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error("settlement_claim_release_failed claim_id=%s error=%s", handle.claim_id, e)

    # ------------------------------------------------------------------
    # Efectos
    # ------------------------------------------------------------------
    async def _apply_side_effects(
        self,
        session: AsyncSession,
        processor_session: ProcessorSession,
        metadata: CheckoutMetadata,
    ) -> None:
        await self._mark_paid(session, metadata)
        await self._record_ledger_entry(session, processor_session, metadata)
        if metadata.fee_type is FeeType.APPLICATION_FEE:
            await self._transfer_to_university(session, processor_session, metadata)
        await self._record_coupon_usage(session, processor_session.session_id, metadata)
        if metadata.fee_type is FeeType.SELECTION_PROCESS:
            await self._credit_referral(session, processor_session.session_id, metadata)
        removed = await self.student_repo.clear_cart(session, metadata.user_id)
        await session.commit()
        logger.debug("settlement_cart_cleared user_id=%s removed=%d", metadata.user_id, removed)

    async def _mark_paid(self, session: AsyncSession, metadata: CheckoutMetadata) -> None:
        """Paso a: banderas del perfil y avance de la solicitud."""
        flagged = await self.student_repo.mark_fee_paid(session, metadata.user_id, metadata.fee_type)

        resulting: Optional[ApplicationStatus] = None
        if metadata.application_id is not None:
            application = await self.student_repo.get_application(session, metadata.application_id)
            if application is None or application.student_id != metadata.user_id:
                logger.warning(
                    "settlement_application_skipped application_id=%s user_id=%s",
                    metadata.application_id, metadata.user_id,
                )
            else:
                target, app_fee_paid, scholarship_fee_paid = APPLICATION_TRANSITIONS[metadata.fee_type]
                resulting = await self.student_repo.advance_application(
                    session,
                    metadata.application_id,
                    target_status=target,
                    mark_application_fee_paid=app_fee_paid,
                    mark_scholarship_fee_paid=scholarship_fee_paid,
                )
        await session.commit()
        logger.info(
            "settlement_flags_updated user_id=%s fee_type=%s profile_updated=%s application_status=%s",
            metadata.user_id, metadata.fee_type.value, flagged, resulting.value if resulting else None,
        )

    async def _record_ledger_entry(
        self,
        session: AsyncSession,
        processor_session: ProcessorSession,
        metadata: CheckoutMetadata,
    ) -> None:
        """Paso b: un asiento por (user_id, fee_type, payment_intent_ref)."""
        ref = processor_session.payment_intent_ref or processor_session.session_id
        if await self.ledger_repo.exists(
            session, user_id=metadata.user_id, fee_type=metadata.fee_type.value, payment_intent_ref=ref
        ):
            logger.info("settlement_ledger_exists session_id=%s ref=%s", processor_session.session_id, ref)
            return

        gross_minor = metadata.gross_amount_minor
        if processor_session.amount_total is not None and processor_session.amount_total != gross_minor:
            logger.warning(
                "settlement_amount_mismatch session_id=%s expected=%d charged=%d",
                processor_session.session_id, gross_minor, processor_session.amount_total,
            )
            gross_minor = processor_session.amount_total

        try:
            await self.ledger_repo.create(
                session,
                user_id=metadata.user_id,
                fee_type=metadata.fee_type.value,
                payment_intent_ref=ref,
                external_session_id=processor_session.session_id,
                net_amount_cents=to_minor_units(metadata.net_amount),
                gross_amount_minor=gross_minor,
                currency=(processor_session.currency or metadata.currency).lower(),
                rail=metadata.rail.value,
                exchange_rate=metadata.exchange_rate,
                application_id=metadata.application_id,
            )
            await session.commit()
        except IntegrityError:
            await session.rollback()
            logger.info("settlement_ledger_exists session_id=%s ref=%s race=true", processor_session.session_id, ref)
            return
        logger.info(
            "settlement_ledger_recorded session_id=%s user_id=%s fee_type=%s gross_minor=%d",
            processor_session.session_id, metadata.user_id, metadata.fee_type.value, gross_minor,
        )

    async def _transfer_to_university(
        self,
        session: AsyncSession,
        processor_session: ProcessorSession,
        metadata: CheckoutMetadata,
    ) -> None:
        """
        Paso b2: transferencia Connect de la application fee a la universidad.

        A lo sumo un registro por sesión. Un error de Stripe no detiene la
        liquidación: queda registrado como "failed".
        """
        destination = metadata.stripe_connect_account_id
        if not metadata.requires_transfer or not destination:
            return
        session_id = processor_session.session_id
        if await self.transfer_repo.get_for_session(session, session_id) is not None:
            logger.info("settlement_transfer_exists session_id=%s", session_id)
            return

        amount_minor = metadata.transfer_amount_minor or to_minor_units(metadata.net_amount)
        transfer_metadata = {
            "session_id": session_id,
            "user_id": metadata.user_id,
            "fee_type": metadata.fee_type.value,
        }
        if metadata.application_id is not None:
            transfer_metadata["application_id"] = str(metadata.application_id)
        if metadata.university_id is not None:
            transfer_metadata["university_id"] = str(metadata.university_id)

        transfer_id: Optional[str] = None
        error_message: Optional[str] = None
        try:
            transfer = await self.processor.create_transfer(
                amount_minor=amount_minor,
                currency=TRANSFER_CURRENCY,
                destination=destination,
                idempotency_key=f"application-fee-transfer-{session_id}",
                description=f"Application fee transfer for session {session_id}",
                metadata=transfer_metadata,
            )
            transfer_id = transfer.transfer_id
            status = TransferStatus.PENDING if transfer.pending else TransferStatus.SUCCEEDED
        except PaymentProcessorError as e:
            status = TransferStatus.FAILED
            error_message = e.message
            logger.error(
                "settlement_transfer_failed session_id=%s destination=%s amount=%d error=%s",
                session_id, destination, amount_minor, e.message,
            )

        try:
            await self.transfer_repo.record(
                session,
                external_session_id=session_id,
                user_id=metadata.user_id,
                amount_minor=amount_minor,
                destination_account=destination,
                status=status,
                transfer_id=transfer_id,
                payment_intent_ref=processor_session.payment_intent_ref,
                application_id=metadata.application_id,
                university_id=metadata.university_id,
                error_message=error_message,
            )
            await session.commit()
        except IntegrityError:
            await session.rollback()
            logger.info("settlement_transfer_exists session_id=%s race=true", session_id)
            return
        CONNECT_TRANSFERS.labels(status=status.value).inc()
        logger.info(
            "settlement_transfer_recorded session_id=%s transfer_id=%s status=%s amount=%d",
            session_id, transfer_id, status.value, amount_minor,
        )

    async def _record_coupon_usage(
        self,
        session: AsyncSession,
        session_id: str,
        metadata: CheckoutMetadata,
    ) -> None:
        """Paso c: uso del cupón, único por sesión."""
        if metadata.discount_kind is not DiscountKind.COUPON or metadata.coupon_id is None:
            return
        if await self.coupon_repo.usage_exists_for_session(session, session_id):
            return

        try:
            await self.coupon_repo.record_usage(
                session,
                coupon_id=metadata.coupon_id,
                user_id=metadata.user_id,
                fee_type=metadata.fee_type.value,
                external_session_id=session_id,
                original_amount=metadata.original_amount if metadata.original_amount is not None else metadata.net_amount,
                discount_amount=metadata.discount_amount or 0,
                final_amount=metadata.final_amount if metadata.final_amount is not None else metadata.net_amount,
            )
            await session.commit()
        except IntegrityError:
            await session.rollback()
            logger.info("settlement_coupon_usage_exists session_id=%s", session_id)
            return
        logger.info("settlement_coupon_recorded session_id=%s code=%s", session_id, metadata.coupon_code)

    async def _credit_referral(
        self,
        session: AsyncSession,
        session_id: str,
        metadata: CheckoutMetadata,
    ) -> None:
        """Paso d: crédito por referido (upsert) y puntos del referidor (aditivo)."""
        used = await self.referral_repo.get_used_code(session, metadata.user_id)
        if used is None:
            return
        used_code_id, referrer_id, affiliate_code = used.id, used.referrer_id, used.affiliate_code
        points = self.settings.referral_reward_points

        if await self.referral_repo.get_credit(session, metadata.user_id) is None:
            try:
                await self.referral_repo.create_credit(
                    session,
                    referred_user_id=metadata.user_id,
                    referrer_id=referrer_id,
                    affiliate_code=affiliate_code,
                    points_awarded=points,
                    external_session_id=session_id,
                )
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.info("settlement_referral_credit_exists referred_user_id=%s", metadata.user_id)
        else:
            await self.referral_repo.update_credit(
                session,
                referred_user_id=metadata.user_id,
                referrer_id=referrer_id,
                affiliate_code=affiliate_code,
                points_awarded=points,
                external_session_id=session_id,
            )
            await session.commit()

        reference_id = str(used_code_id)
        if not await self.referral_repo.reward_transaction_exists(
            session, user_id=referrer_id, reference_type=REFERRAL_REWARD_REFERENCE, reference_id=reference_id
        ):
            try:
                await self.referral_repo.add_reward(
                    session,
                    user_id=referrer_id,
                    amount=points,
                    reference_type=REFERRAL_REWARD_REFERENCE,
                    reference_id=reference_id,
                    description=f"Referral {affiliate_code}: {metadata.user_id} paid selection process",
                )
                await session.commit()
                logger.info(
                    "settlement_referral_rewarded referrer_id=%s referred_user_id=%s points=%d",
                    referrer_id, metadata.user_id, points,
                )
            except IntegrityError:
                await session.rollback()
                logger.info("settlement_referral_reward_exists referrer_id=%s ref=%s", referrer_id, reference_id)

        if metadata.discount_kind is DiscountKind.REFERRAL or metadata.referral_discount_applied:
            await self.referral_repo.mark_consumed(session, metadata.referral_code_id or used_code_id)
            await session.commit()

    # ------------------------------------------------------------------
    # Notificaciones
    # ------------------------------------------------------------------
    async def _notify_and_complete(
        self,
        session: AsyncSession,
        handle: ClaimHandle,
        processor_session: ProcessorSession,
        metadata: CheckoutMetadata,
    ) -> None:
        session_id = processor_session.session_id
        checkpoint = await self.claim_repo.transition(
            session,
            claim_id=handle.claim_id,
            claim_token=handle.claim_token,
            from_status=ClaimStatus.PROCESSING,
            to_status=ClaimStatus.NOTIFYING,
        )
        await session.commit()
        if not checkpoint:
            # Otro verificador retomó el reclamo y se encarga de notificar
            logger.info("settlement_checkpoint_lost session_id=%s", session_id)
            return

        gross_minor = processor_session.amount_total
        if gross_minor is None:
            gross_minor = metadata.gross_amount_minor
        notice = PaymentNotice(
            user_id=metadata.user_id,
            fee_type=metadata.fee_type,
            rail=metadata.rail,
            external_session_id=session_id,
            gross_amount=from_minor_units(gross_minor),
            currency=processor_session.currency or metadata.currency,
            net_amount_usd=metadata.net_amount,
            application_id=metadata.application_id,
            customer_email=processor_session.customer_email,
        )
        await self.fanout.dispatch(session, notice)

        completed = await self.claim_repo.transition(
            session,
            claim_id=handle.claim_id,
            claim_token=handle.claim_token,
            from_status=ClaimStatus.NOTIFYING,
            to_status=ClaimStatus.COMPLETE,
        )
        await session.commit()
        logger.info(
            "settlement_completed session_id=%s user_id=%s fee_type=%s recovered=%s marked=%s",
            session_id, metadata.user_id, metadata.fee_type.value, handle.recovered, completed,
        )


__all__ = ["SettlementVerifier", "ClaimHandle", "APPLICATION_TRANSITIONS"]
