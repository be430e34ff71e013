# -*- coding: utf-8 -*-
"""
scholarpay/modules/billing/repositories/coupon_repository.py

Repositorio de cupones: validación de reglas (lectura pura) y registro de
uso al liquidar.

Autor: ScholarPay
Fecha: 2026-10-18
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from scholarpay.modules.billing.enums import CouponDiscountType, FeeType
from scholarpay.modules.billing.models import Coupon, CouponUsage
from scholarpay.modules.billing.services.fee_calculator import round_money
from scholarpay.shared.database.base import as_utc, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CouponValidation:
    """Resultado de validar un cupón contra el monto canónico de la cuota."""

    valid: bool
    code: str
    reason: Optional[str] = None
    coupon_id: Optional[int] = None
    discount_type: Optional[CouponDiscountType] = None
    discount_value: Optional[Decimal] = None
    original_amount: Optional[Decimal] = None
    discount_amount: Optional[Decimal] = None
    final_amount: Optional[Decimal] = None

    @classmethod
    def invalid(cls, code: str, reason: str) -> "CouponValidation":
        return cls(valid=False, code=code, reason=reason)


def apply_coupon(
    discount_type: CouponDiscountType,
    discount_value: Decimal,
    original_amount: Decimal,
) -> tuple[Decimal, Decimal]:
    """
    Calcula (discount_amount, final_amount).

    Fixed resta el valor con piso en 0; Percentage multiplica por
    (1 - value/100). Siempre final = original - discount.
    """
    original = Decimal(original_amount)
    value = Decimal(discount_value)
    if discount_type is CouponDiscountType.PERCENTAGE:
        pct = min(max(value, Decimal("0")), Decimal("100"))
        final = round_money(original * (Decimal("1") - pct / Decimal("100")))
    else:
        final = round_money(max(Decimal("0"), original - value))
    return original - final, final


class CouponRepository:
    """Operaciones sobre coupons / coupon_usages."""

    async def get_by_code(self, session: AsyncSession, code: str) -> Optional[Coupon]:
        stmt = select(Coupon).where(Coupon.code == code.strip().upper())
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def count_user_usages(self, session: AsyncSession, coupon_id: int, user_id: str) -> int:
        stmt = select(func.count(CouponUsage.id)).where(
            CouponUsage.coupon_id == coupon_id,
            CouponUsage.user_id == user_id,
        )
        result = await session.execute(stmt)
        return int(result.scalar_one())

    async def validate(
        self,
        session: AsyncSession,
        *,
        user_id: str,
        code: str,
        fee_type: FeeType,
        canonical_amount: Decimal,
        now: Optional[datetime] = None,
    ) -> CouponValidation:
        """
        Valida reglas del cupón: activo, ventana de vigencia, tope de usos,
        exclusión por cuota e historial del usuario (un uso por usuario).
        No escribe nada.
        """
        normalized = (code or "").strip().upper()
        if not normalized:
            return CouponValidation.invalid(normalized, "empty_code")

        coupon = await self.get_by_code(session, normalized)
        if coupon is None:
            return CouponValidation.invalid(normalized, "not_found")
        if not coupon.is_active:
            return CouponValidation.invalid(normalized, "inactive")

        now = now or utcnow()
        if coupon.valid_from is not None and now < as_utc(coupon.valid_from):
            return CouponValidation.invalid(normalized, "not_yet_valid")
        if coupon.valid_until is not None and now > as_utc(coupon.valid_until):
            return CouponValidation.invalid(normalized, "expired")
        if coupon.max_uses is not None and coupon.current_uses >= coupon.max_uses:
            return CouponValidation.invalid(normalized, "usage_limit_reached")
        if fee_type.value in (coupon.excluded_fee_types or []):
            return CouponValidation.invalid(normalized, "fee_type_excluded")
        if await self.count_user_usages(session, coupon.id, user_id) > 0:
            return CouponValidation.invalid(normalized, "already_used_by_user")

        try:
            discount_type = CouponDiscountType(coupon.discount_type)
        except ValueError:
            return CouponValidation.invalid(normalized, "unknown_discount_type")

        discount_amount, final_amount = apply_coupon(discount_type, coupon.discount_value, canonical_amount)
        return CouponValidation(
            valid=True,
            code=normalized,
            coupon_id=coupon.id,
            discount_type=discount_type,
            discount_value=Decimal(coupon.discount_value),
            original_amount=Decimal(canonical_amount),
            discount_amount=discount_amount,
            final_amount=final_amount,
        )

    async def usage_exists_for_session(self, session: AsyncSession, external_session_id: str) -> bool:
        stmt = select(CouponUsage.id).where(CouponUsage.external_session_id == external_session_id)
        result = await session.execute(stmt)
        return result.first() is not None

    async def record_usage(
        self,
        session: AsyncSession,
        *,
        coupon_id: int,
        user_id: str,
        fee_type: str,
        external_session_id: str,
        original_amount: Decimal,
        discount_amount: Decimal,
        final_amount: Decimal,
    ) -> CouponUsage:
        """
        Inserta el uso y suma 1 al contador en la misma transacción. El
        IntegrityError por external_session_id duplicado deshace ambos.
        """
        usage = CouponUsage(
            coupon_id=coupon_id,
            user_id=user_id,
            fee_type=fee_type,
            external_session_id=external_session_id,
            original_amount=original_amount,
            discount_amount=discount_amount,
            final_amount=final_amount,
        )
        session.add(usage)
        await session.flush()
        await session.execute(
            update(Coupon)
            .where(Coupon.id == coupon_id)
            .values(current_uses=Coupon.current_uses + 1)
            .execution_options(synchronize_session=False)
        )
        return usage


__all__ = ["CouponRepository", "CouponValidation", "apply_coupon"]
