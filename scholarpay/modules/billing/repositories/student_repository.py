# -*- coding: utf-8 -*-
"""
scholarpay/modules/billing/repositories/student_repository.py

Repositorio de perfil del estudiante, paquete de cuotas, becas, vendedores,
solicitudes de beca y carrito.

Autor: ScholarPay
Fecha: 2026-10-18
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from scholarpay.modules.billing.enums import ApplicationStatus, FeeType
from scholarpay.modules.billing.fee_schedule import PackageFees
from scholarpay.modules.billing.models import (
    CartItem,
    Scholarship,
    ScholarshipApplication,
    Seller,
    StudentProfile,
    University,
    UserFeeOverride,
)
from scholarpay.shared.database.base import utcnow

logger = logging.getLogger(__name__)

# Columna de perfil que marca cada cuota como pagada
PROFILE_PAID_FLAGS = {
    FeeType.SELECTION_PROCESS: "has_paid_selection_process_fee",
    FeeType.APPLICATION_FEE: "is_application_fee_paid",
    FeeType.SCHOLARSHIP_FEE: "is_scholarship_fee_paid",
    FeeType.I20_CONTROL_FEE: "has_paid_i20_control_fee",
}


class StudentRepository:
    """Lecturas y escrituras acotadas sobre las entidades del estudiante."""

    async def get_profile(self, session: AsyncSession, user_id: str) -> Optional[StudentProfile]:
        stmt = select(StudentProfile).where(StudentProfile.user_id == user_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_package_fees(self, session: AsyncSession, user_id: str) -> Optional[PackageFees]:
        """Paquete asignado al usuario, o None."""
        stmt = select(UserFeeOverride).where(UserFeeOverride.user_id == user_id)
        result = await session.execute(stmt)
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return PackageFees(
            selection_process_fee=row.selection_process_fee,
            scholarship_fee=row.scholarship_fee,
            i20_control_fee=row.i20_control_fee,
            package_name=row.package_name,
        )

    async def get_scholarship(self, session: AsyncSession, scholarship_id: int) -> Optional[Scholarship]:
        return await session.get(Scholarship, scholarship_id)

    async def get_university(self, session: AsyncSession, university_id: int) -> Optional[University]:
        return await session.get(University, university_id)

    async def get_seller_by_code(self, session: AsyncSession, referral_code: str) -> Optional[Seller]:
        stmt = select(Seller).where(Seller.referral_code == referral_code, Seller.is_active.is_(True))
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Solicitudes de beca
    # ------------------------------------------------------------------
    async def get_application(self, session: AsyncSession, application_id: int) -> Optional[ScholarshipApplication]:
        return await session.get(ScholarshipApplication, application_id, populate_existing=True)

    async def get_application_by_natural_key(
        self,
        session: AsyncSession,
        student_id: str,
        scholarship_id: int,
    ) -> Optional[ScholarshipApplication]:
        stmt = select(ScholarshipApplication).where(
            ScholarshipApplication.student_id == student_id,
            ScholarshipApplication.scholarship_id == scholarship_id,
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_or_get_pending_application(
        self,
        session: AsyncSession,
        *,
        student_id: str,
        scholarship_id: int,
    ) -> tuple[ScholarshipApplication, bool]:
        """
        Upsert idempotente por (student_id, scholarship_id).

        Returns:
            Tuple de (ScholarshipApplication, created: bool)
        """
        existing = await self.get_application_by_natural_key(session, student_id, scholarship_id)
        if existing is not None:
            return existing, False

        try:
            application = ScholarshipApplication(
                student_id=student_id,
                scholarship_id=scholarship_id,
                status=ApplicationStatus.PENDING.value,
            )
            session.add(application)
            await session.flush()
            await session.commit()
            return application, True
        except IntegrityError as e:
            # Otra petición creó la solicitud entre el select y el insert
            logger.info(
                "application_upsert_conflict student_id=%s scholarship_id=%s",
                student_id,
                scholarship_id,
            )
            await session.rollback()
            existing = await self.get_application_by_natural_key(session, student_id, scholarship_id)
            if existing is None:
                logger.error("application_upsert_conflict_without_row error=%s", e)
                raise
            return existing, False

    async def advance_application(
        self,
        session: AsyncSession,
        application_id: int,
        *,
        target_status: Optional[ApplicationStatus],
        mark_application_fee_paid: bool = False,
        mark_scholarship_fee_paid: bool = False,
    ) -> Optional[ApplicationStatus]:
        """
        Marca pagos en la solicitud y avanza su estado sin retroceder.

        Returns:
            Estado resultante, o None si la solicitud no existe
        """
        application = await self.get_application(session, application_id)
        if application is None:
            return None

        current = ApplicationStatus(application.status)
        resulting = current.advance_to(target_status) if target_status else current

        values: dict = {"updated_at": utcnow()}
        if resulting is not current:
            values["status"] = resulting.value
        if mark_application_fee_paid and not application.is_application_fee_paid:
            values.update(is_application_fee_paid=True, payment_status="paid", paid_at=utcnow())
        if mark_scholarship_fee_paid and not application.is_scholarship_fee_paid:
            values["is_scholarship_fee_paid"] = True

        if len(values) > 1:
            await session.execute(
                update(ScholarshipApplication)
                .where(ScholarshipApplication.id == application_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
        return resulting

    # ------------------------------------------------------------------
    # Perfil
    # ------------------------------------------------------------------
    async def mark_fee_paid(self, session: AsyncSession, user_id: str, fee_type: FeeType) -> bool:
        """Pone a True la bandera de pago de la cuota. Devuelve False si ya estaba."""
        column = PROFILE_PAID_FLAGS[fee_type]
        values: dict = {column: True, "updated_at": utcnow()}
        if fee_type is FeeType.SELECTION_PROCESS:
            values["selection_process_paid_at"] = utcnow()
        elif fee_type is FeeType.I20_CONTROL_FEE:
            values["i20_control_fee_paid_at"] = utcnow()

        result = await session.execute(
            update(StudentProfile)
            .where(
                StudentProfile.user_id == user_id,
                getattr(StudentProfile, column).is_(False),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # ------------------------------------------------------------------
    # Carrito
    # ------------------------------------------------------------------
    async def clear_cart(self, session: AsyncSession, user_id: str) -> int:
        result = await session.execute(
            delete(CartItem)
            .where(CartItem.user_id == user_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0


__all__ = ["StudentRepository", "PROFILE_PAID_FLAGS"]
