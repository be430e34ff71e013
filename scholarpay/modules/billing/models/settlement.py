# -*- coding: utf-8 -*-
"""
scholarpay/modules/billing/models/settlement.py

Modelos ORM de liquidación:
- SettlementClaim: reclamo/registro de liquidación, único por
  (external_session_id, fee_type). Es el único punto de sincronización
  entre verificadores concurrentes.
- LedgerEntry: asiento contable por cobro liquidado, único por
  (user_id, fee_type, payment_intent_ref).
- ConnectTransfer: transferencia Stripe Connect a la universidad por una
  application fee liquidada; a lo sumo una por sesión.

Autor: ScholarPay
Fecha: 2026-10-18
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import BigInteger, DateTime, Index, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from scholarpay.modules.billing.enums import ClaimStatus
from scholarpay.shared.database.base import Base, BigIntPK, utcnow


class SettlementClaim(Base):
    """
    Reclamo de procesamiento de una sesión pagada.

    Ciclo de vida: processing -> notifying -> complete. Nunca se borra.
    `claim_token` identifica al verificador dueño del reclamo; toda transición
    de estado es un UPDATE condicionado a ese token.
    """

    __tablename__ = "settlement_claims"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    external_session_id: Mapped[str] = mapped_column(String(255), nullable=False)
    fee_type: Mapped[str] = mapped_column(String(32), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    status: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default=ClaimStatus.PROCESSING.value,
        doc="processing, notifying, complete.",
    )
    claim_token: Mapped[str] = mapped_column(String(64), nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    payment_intent_ref: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("external_session_id", "fee_type", name="uq_settlement_claims_session_fee"),
        Index("ix_settlement_claims_session", "external_session_id"),
    )

    @property
    def is_complete(self) -> bool:
        return self.status == ClaimStatus.COMPLETE.value

    def __repr__(self) -> str:
        return (
            f"<SettlementClaim(id={self.id}, session={self.external_session_id}, "
            f"fee_type={self.fee_type}, status={self.status})>"
        )


class LedgerEntry(Base):
    """Asiento por cobro liquidado. Montos en unidades mínimas."""

    __tablename__ = "ledger_entries"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    fee_type: Mapped[str] = mapped_column(String(32), nullable=False)
    payment_intent_ref: Mapped[str] = mapped_column(String(255), nullable=False)
    external_session_id: Mapped[str] = mapped_column(String(255), nullable=False)

    net_amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, doc="Neto en centavos USD.")
    gross_amount_minor: Mapped[int] = mapped_column(
        BigInteger, nullable=False, doc="Bruto cobrado en unidades mínimas de `currency`."
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    rail: Mapped[str] = mapped_column(String(32), nullable=False)
    exchange_rate: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False, default=Decimal("1"))
    application_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "fee_type", "payment_intent_ref", name="uq_ledger_entries_user_fee_ref"),
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry(id={self.id}, user_id={self.user_id}, fee_type={self.fee_type}, "
            f"gross={self.gross_amount_minor} {self.currency})>"
        )


class ConnectTransfer(Base):
    """
    Resultado de transferir a la universidad lo cobrado por una application
    fee. Un registro "failed" no se reintenta automáticamente.
    """

    __tablename__ = "stripe_connect_transfers"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    external_session_id: Mapped[str] = mapped_column(String(255), nullable=False)
    transfer_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    payment_intent_ref: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    application_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    university_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    amount_minor: Mapped[int] = mapped_column(BigInteger, nullable=False, doc="Monto transferido en centavos USD.")
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="usd")
    destination_account: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, doc="succeeded, pending, failed.")
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("external_session_id", name="uq_stripe_connect_transfers_session"),
    )


__all__ = ["SettlementClaim", "LedgerEntry", "ConnectTransfer"]
