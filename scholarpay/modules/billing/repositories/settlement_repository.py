# -*- coding: utf-8 -*-
"""
scholarpay/modules/billing/repositories/settlement_repository.py

Repositorio de reclamos de liquidación, asientos contables y
transferencias Connect a universidades.

Las transiciones de estado del reclamo son UPDATE condicionados al
claim_token y al estado esperado; el llamador decide por rowcount si la
transición fue suya. Los métodos no hacen commit.

Autor: ScholarPay
Fecha: 2026-10-18
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from scholarpay.modules.billing.enums import ClaimStatus, TransferStatus
from scholarpay.modules.billing.models import ConnectTransfer, LedgerEntry, SettlementClaim
from scholarpay.shared.database.base import utcnow

logger = logging.getLogger(__name__)


class SettlementClaimRepository:
    """Operaciones sobre settlement_claims."""

    async def get_completed_for_session(
        self,
        session: AsyncSession,
        external_session_id: str,
    ) -> Optional[SettlementClaim]:
        stmt = (
            select(SettlementClaim)
            .where(
                SettlementClaim.external_session_id == external_session_id,
                SettlementClaim.status == ClaimStatus.COMPLETE.value,
            )
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def get(
        self,
        session: AsyncSession,
        external_session_id: str,
        fee_type: str,
    ) -> Optional[SettlementClaim]:
        stmt = select(SettlementClaim).where(
            SettlementClaim.external_session_id == external_session_id,
            SettlementClaim.fee_type == fee_type,
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(
        self,
        session: AsyncSession,
        *,
        external_session_id: str,
        fee_type: str,
        user_id: str,
        claim_token: str,
        payment_intent_ref: Optional[str],
    ) -> SettlementClaim:
        """
        Inserta el marcador "processing". Lanza IntegrityError en flush si
        otro verificador ya tiene el reclamo de (external_session_id, fee_type).
        """
        now = utcnow()
        claim = SettlementClaim(
            external_session_id=external_session_id,
            fee_type=fee_type,
            user_id=user_id,
            status=ClaimStatus.PROCESSING.value,
            claim_token=claim_token,
            attempts=1,
            payment_intent_ref=payment_intent_ref,
            created_at=now,
            updated_at=now,
        )
        session.add(claim)
        await session.flush()
        return claim

    async def take_over(
        self,
        session: AsyncSession,
        *,
        claim_id: int,
        expected_token: str,
        new_token: str,
    ) -> bool:
        """
        Retoma un reclamo "processing" abandonado. Solo un verificador puede
        ganar: el UPDATE exige el token observado.
        """
        stmt = (
            update(SettlementClaim)
            .where(
                SettlementClaim.id == claim_id,
                SettlementClaim.claim_token == expected_token,
                SettlementClaim.status == ClaimStatus.PROCESSING.value,
            )
            .values(
                claim_token=new_token,
                attempts=SettlementClaim.attempts + 1,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1

    async def transition(
        self,
        session: AsyncSession,
        *,
        claim_id: int,
        claim_token: str,
        from_status: ClaimStatus,
        to_status: ClaimStatus,
    ) -> bool:
        """Cambia de estado solo si el reclamo sigue en `from_status` con este token."""
        now = utcnow()
        values: dict = {"status": to_status.value, "updated_at": now}
        if to_status is ClaimStatus.COMPLETE:
            values["completed_at"] = now

        stmt = (
            update(SettlementClaim)
            .where(
                SettlementClaim.id == claim_id,
                SettlementClaim.claim_token == claim_token,
                SettlementClaim.status == from_status.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1

    async def release(
        self,
        session: AsyncSession,
        *,
        claim_id: int,
        claim_token: str,
        stale_before: datetime,
    ) -> bool:
        """
        Marca como abandonado un reclamo "processing" propio (updated_at en
        el pasado) para que la próxima invocación lo retome sin esperar.
        """
        stmt = (
            update(SettlementClaim)
            .where(
                SettlementClaim.id == claim_id,
                SettlementClaim.claim_token == claim_token,
                SettlementClaim.status == ClaimStatus.PROCESSING.value,
            )
            .values(updated_at=stale_before)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1


class LedgerRepository:
    """Operaciones sobre ledger_entries."""

    async def exists(
        self,
        session: AsyncSession,
        *,
        user_id: str,
        fee_type: str,
        payment_intent_ref: str,
    ) -> bool:
        stmt = select(LedgerEntry.id).where(
            LedgerEntry.user_id == user_id,
            LedgerEntry.fee_type == fee_type,
            LedgerEntry.payment_intent_ref == payment_intent_ref,
        )
        result = await session.execute(stmt)
        return result.first() is not None

    async def create(
        self,
        session: AsyncSession,
        *,
        user_id: str,
        fee_type: str,
        payment_intent_ref: str,
        external_session_id: str,
        net_amount_cents: int,
        gross_amount_minor: int,
        currency: str,
        rail: str,
        exchange_rate,
        application_id: Optional[int] = None,
        recorded_at: Optional[datetime] = None,
    ) -> LedgerEntry:
        entry = LedgerEntry(
            user_id=user_id,
            fee_type=fee_type,
            payment_intent_ref=payment_intent_ref,
            external_session_id=external_session_id,
            net_amount_cents=net_amount_cents,
            gross_amount_minor=gross_amount_minor,
            currency=currency,
            rail=rail,
            exchange_rate=exchange_rate,
            application_id=application_id,
            recorded_at=recorded_at or utcnow(),
        )
        session.add(entry)
        await session.flush()
        return entry

    async def list_for_user(self, session: AsyncSession, user_id: str) -> list[LedgerEntry]:
        stmt = select(LedgerEntry).where(LedgerEntry.user_id == user_id).order_by(LedgerEntry.id)
        result = await session.execute(stmt)
        return list(result.scalars().all())


class ConnectTransferRepository:
    """Operaciones sobre stripe_connect_transfers."""

    async def get_for_session(self, session: AsyncSession, external_session_id: str) -> Optional[ConnectTransfer]:
        stmt = select(ConnectTransfer).where(ConnectTransfer.external_session_id == external_session_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def record(
        self,
        session: AsyncSession,
        *,
        external_session_id: str,
        user_id: str,
        amount_minor: int,
        destination_account: str,
        status: TransferStatus,
        transfer_id: Optional[str] = None,
        payment_intent_ref: Optional[str] = None,
        application_id: Optional[int] = None,
        university_id: Optional[int] = None,
        error_message: Optional[str] = None,
    ) -> ConnectTransfer:
        transfer = ConnectTransfer(
            external_session_id=external_session_id,
            transfer_id=transfer_id,
            payment_intent_ref=payment_intent_ref,
            user_id=user_id,
            application_id=application_id,
            university_id=university_id,
            amount_minor=amount_minor,
            destination_account=destination_account,
            status=status.value,
            error_message=error_message,
        )
        session.add(transfer)
        await session.flush()
        return transfer


__all__ = ["SettlementClaimRepository", "LedgerRepository", "ConnectTransferRepository"]
