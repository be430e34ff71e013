# -*- coding: utf-8 -*-
"""
scholarpay/modules/billing/models/referral.py

Modelos ORM del programa de referidos:
- UsedReferralCode: código de afiliado usado al registrarse (fuente del
  descuento de referido activo).
- ReferralCredit: crédito por referido, a lo sumo uno por referred_user_id.
- RewardBalance / RewardTransaction: saldo de puntos del referidor; cada
  transacción es única por (user_id, reference_type, reference_id).

Autor: ScholarPay
Fecha: 2026-10-18
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import BigInteger, Boolean, DateTime, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from scholarpay.shared.database.base import Base, BigIntPK, utcnow


class UsedReferralCode(Base):
    __tablename__ = "used_referral_codes"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True, doc="Usuario referido.")
    referrer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    affiliate_code: Mapped[str] = mapped_column(String(64), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="applied", doc="applied | revoked")
    consumed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, doc="True cuando el descuento ya se cobró en un checkout."
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class ReferralCredit(Base):
    __tablename__ = "referral_credits"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    referred_user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    referrer_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    affiliate_code: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="completed")
    points_awarded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    external_session_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("referred_user_id", name="uq_referral_credits_referred_user"),
    )


class RewardBalance(Base):
    __tablename__ = "reward_balances"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_earned: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", name="uq_reward_balances_user"),
    )


class RewardTransaction(Base):
    __tablename__ = "reward_transactions"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    reference_type: Mapped[str] = mapped_column(String(64), nullable=False)
    reference_id: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "reference_type", "reference_id", name="uq_reward_transactions_reference"),
    )


__all__ = ["UsedReferralCode", "ReferralCredit", "RewardBalance", "RewardTransaction"]
