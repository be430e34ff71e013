# -*- coding: utf-8 -*-
"""
scholarpay/modules/billing/models/coupon.py

Modelos ORM de cupones promocionales y su uso.

El uso (coupon_usages) se registra solo al liquidar, nunca al crear el
checkout, y es único por external_session_id.

Autor: ScholarPay
Fecha: 2026-10-18
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from scholarpay.shared.database.base import Base, BigIntPK, JSONType, utcnow


class Coupon(Base):
    __tablename__ = "coupons"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, doc="Siempre en mayúsculas.")
    discount_type: Mapped[str] = mapped_column(String(16), nullable=False, doc="percentage | fixed")
    discount_value: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    valid_from: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    valid_until: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    max_uses: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, doc="None = ilimitado.")
    current_uses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    excluded_fee_types: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Coupon(code={self.code}, type={self.discount_type}, value={self.discount_value})>"


class CouponUsage(Base):
    __tablename__ = "coupon_usages"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    coupon_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("coupons.id"), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    fee_type: Mapped[str] = mapped_column(String(32), nullable=False)
    external_session_id: Mapped[str] = mapped_column(String(255), nullable=False)
    original_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    final_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    used_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("external_session_id", name="uq_coupon_usages_session"),
    )


__all__ = ["Coupon", "CouponUsage"]
