# -*- coding: utf-8 -*-
"""
scholarpay/modules/billing/services/notification_service.py

Fan-out de notificaciones de pago confirmado.

Características:
- Destinatarios: estudiante (siempre), universidad (application fee y
  scholarship fee con solicitud vinculada), vendedor y admin de afiliados
  (si el perfil trae un código de vendedor activo), admin de la plataforma
  (si hay e-mail configurado)
- Best-effort: cada envío se aísla; un fallo se registra y no se propaga
- Solo lee; no hace commit (rollback únicamente si falla la lectura)

La idempotencia del envío (un único lote por sesión) la garantiza el
checkpoint "notifying" del verificador, no este servicio.

Autor: ScholarPay
Fecha: 2026-10-18
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from scholarpay.modules.billing.enums import FeeType, NotificationTarget, PaymentRail
from scholarpay.modules.billing.metrics import NOTIFICATIONS_DISPATCHED
from scholarpay.modules.billing.providers.notification_sink import NotificationSink, WebhookNotificationSink
from scholarpay.modules.billing.repositories import StudentRepository
from scholarpay.shared.config.settings_payments import PaymentsSettings, get_payments_settings
from scholarpay.shared.database.base import utcnow

logger = logging.getLogger(__name__)

EVENT_PAYMENT_CONFIRMED = "payment_confirmed"

# Cuotas cuyo pago se avisa a la universidad de la beca
UNIVERSITY_FEE_TYPES = frozenset({FeeType.APPLICATION_FEE, FeeType.SCHOLARSHIP_FEE})


@dataclass(frozen=True)
class PaymentNotice:
    """Hechos de un cobro liquidado que se comunican a los interesados."""
    user_id: str
    fee_type: FeeType
    rail: PaymentRail
    external_session_id: str
    gross_amount: Decimal
    currency: str
    net_amount_usd: Decimal
    application_id: Optional[int] = None
    customer_email: Optional[str] = None
    paid_at: datetime = field(default_factory=utcnow)


@dataclass
class DispatchReport:
    sent: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.sent) + len(self.failed)


Message = Tuple[NotificationTarget, Dict[str, Any]]


def _base_payload(notice: PaymentNotice) -> Dict[str, Any]:
    return {
        "event": EVENT_PAYMENT_CONFIRMED,
        "fee_type": notice.fee_type.value,
        "fee_label": notice.fee_type.label,
        "amount": str(notice.gross_amount),
        "currency": notice.currency.upper(),
        "net_amount_usd": str(notice.net_amount_usd),
        "payment_method": notice.rail.processor_method,
        "session_id": notice.external_session_id,
        "user_id": notice.user_id,
        "application_id": notice.application_id,
        "paid_at": notice.paid_at.isoformat(),
    }


class NotificationFanout:
    """
    Construye y envía los mensajes de un pago confirmado.

    Args:
        sink: Destino de los mensajes (por defecto, webhook configurado)
        student_repo: Repositorio para resolver contactos
        settings: Configuración de pagos (e-mail del admin)
    """

    def __init__(
        self,
        sink: Optional[NotificationSink] = None,
        student_repo: Optional[StudentRepository] = None,
        settings: Optional[PaymentsSettings] = None,
    ):
        self.settings = settings or get_payments_settings()
        self.sink = sink or WebhookNotificationSink(settings=self.settings)
        self.student_repo = student_repo or StudentRepository()

    async def build_messages(self, session: AsyncSession, notice: PaymentNotice) -> List[Message]:
        """Resuelve destinatarios y arma un payload por destinatario."""
        base = _base_payload(notice)
        profile = await self.student_repo.get_profile(session, notice.user_id)

        student_name = profile.full_name if profile else None
        student_email = (profile.email if profile else None) or notice.customer_email
        base.update(student_name=student_name, student_email=student_email)

        messages: List[Message] = [
            (NotificationTarget.STUDENT, {**base, "recipient_email": student_email, "recipient_name": student_name}),
        ]

        if notice.fee_type in UNIVERSITY_FEE_TYPES and notice.application_id is not None:
            application = await self.student_repo.get_application(session, notice.application_id)
            scholarship = (
                await self.student_repo.get_scholarship(session, application.scholarship_id)
                if application is not None
                else None
            )
            university = (
                await self.student_repo.get_university(session, scholarship.university_id)
                if scholarship is not None and scholarship.university_id is not None
                else None
            )
            if university is not None and university.contact_email:
                messages.append((
                    NotificationTarget.UNIVERSITY,
                    {
                        **base,
                        "recipient_email": university.contact_email,
                        "recipient_name": university.name,
                        "scholarship_title": scholarship.title,
                    },
                ))

        seller_code = profile.seller_referral_code if profile else None
        if seller_code:
            seller = await self.student_repo.get_seller_by_code(session, seller_code)
            if seller is not None:
                if seller.email:
                    messages.append((
                        NotificationTarget.SELLER,
                        {**base, "recipient_email": seller.email, "recipient_name": seller.name,
                         "seller_referral_code": seller_code},
                    ))
                if seller.affiliate_admin_email:
                    messages.append((
                        NotificationTarget.AFFILIATE_ADMIN,
                        {**base, "recipient_email": seller.affiliate_admin_email,
                         "recipient_name": seller.affiliate_admin_name,
                         "seller_name": seller.name, "seller_referral_code": seller_code},
                    ))

        if self.settings.admin_notification_email:
            messages.append((
                NotificationTarget.ADMIN,
                {**base, "recipient_email": self.settings.admin_notification_email, "recipient_name": "Admin"},
            ))

        return messages

    async def dispatch(self, session: AsyncSession, notice: PaymentNotice) -> DispatchReport:
        """
        Envía un lote de notificaciones. Nunca lanza.

        Returns:
            DispatchReport con los destinatarios enviados y fallidos
        """
        report = DispatchReport()
        try:
            messages = await self.build_messages(session, notice)
        except SQLAlchemyError as e:
            # Sin contactos: al menos avisar al estudiante con los datos del cobro
            await session.rollback()
            logger.error(
                "notification_contacts_lookup_failed session_id=%s error=%s",
                notice.external_session_id, e,
            )
            messages = [(NotificationTarget.STUDENT, _base_payload(notice))]

        for target, payload in messages:
            try:
                await self.sink.notify(target, payload)
            except Exception as e:
                report.failed.append(target.value)
                NOTIFICATIONS_DISPATCHED.labels(target=target.value, result="failed").inc()
                logger.warning(
                    "notification_failed target=%s session_id=%s error=%s",
                    target.value, notice.external_session_id, repr(e),
                )
                continue
            report.sent.append(target.value)
            NOTIFICATIONS_DISPATCHED.labels(target=target.value, result="sent").inc()

        logger.info(
            "notifications_dispatched session_id=%s fee_type=%s sent=%s failed=%s",
            notice.external_session_id, notice.fee_type.value, report.sent, report.failed,
        )
        return report


__all__ = ["NotificationFanout", "PaymentNotice", "DispatchReport", "EVENT_PAYMENT_CONFIRMED"]
