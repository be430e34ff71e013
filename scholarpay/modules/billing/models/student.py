# -*- coding: utf-8 -*-
"""
scholarpay/modules/billing/models/student.py

Modelos ORM de los colaboradores que el motor de cobro lee o actualiza:
perfil del estudiante, paquete de cuotas, universidades, becas, vendedores,
solicitudes de beca y carrito.

El CRUD de estas entidades vive en otros servicios; aquí solo se mapean las
columnas que el cobro y la liquidación necesitan.

Autor: ScholarPay
Fecha: 2026-10-18
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from scholarpay.modules.billing.enums import ApplicationStatus, PricingMode
from scholarpay.shared.database.base import Base, BigIntPK, utcnow


class StudentProfile(Base):
    __tablename__ = "student_profiles"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    country: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    dependents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pricing_mode: Mapped[str] = mapped_column(String(16), nullable=False, default=PricingMode.LEGACY.value)
    seller_referral_code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    has_paid_selection_process_fee: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_application_fee_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_scholarship_fee_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    has_paid_i20_control_fee: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    selection_process_paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    i20_control_fee_paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class UserFeeOverride(Base):
    """Paquete de cuotas asignado a un usuario."""

    __tablename__ = "user_fee_overrides"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    package_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    selection_process_fee: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    scholarship_fee: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    i20_control_fee: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)


class University(Base):
    __tablename__ = "universities"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    stripe_connect_account_id: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, doc="Cuenta Connect que recibe las application fees."
    )


class Scholarship(Base):
    __tablename__ = "scholarships"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    university_id: Mapped[Optional[int]] = mapped_column(BigInteger, ForeignKey("universities.id"), nullable=True)
    application_fee_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)


class Seller(Base):
    __tablename__ = "sellers"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    referral_code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    affiliate_admin_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    affiliate_admin_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class ScholarshipApplication(Base):
    __tablename__ = "scholarship_applications"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    student_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    scholarship_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("scholarships.id"), nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default=ApplicationStatus.PENDING.value)

    is_application_fee_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_scholarship_fee_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    payment_status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("student_id", "scholarship_id", name="uq_scholarship_applications_student_scholarship"),
    )

    def __repr__(self) -> str:
        return f"<ScholarshipApplication(id={self.id}, student_id={self.student_id}, status={self.status})>"


class CartItem(Base):
    __tablename__ = "cart_items"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    scholarship_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    added_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


__all__ = [
    "StudentProfile",
    "UserFeeOverride",
    "University",
    "Scholarship",
    "Seller",
    "ScholarshipApplication",
    "CartItem",
]
