# -*- coding: utf-8 -*-
"""
scholarpay/modules/billing/repositories/referral_repository.py

Repositorio del programa de referidos: descuento activo del referido,
crédito por referido (upsert por referred_user_id) y puntos del referidor.

Autor: ScholarPay
Fecha: 2026-10-18
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from scholarpay.modules.billing.models import (
    ReferralCredit,
    RewardBalance,
    RewardTransaction,
    UsedReferralCode,
)
from scholarpay.shared.database.base import utcnow

logger = logging.getLogger(__name__)

REFERRAL_REWARD_REFERENCE = "selection_process_referral"


class ReferralRepository:
    """Operaciones sobre used_referral_codes / referral_credits / rewards."""

    async def get_used_code(self, session: AsyncSession, user_id: str) -> Optional[UsedReferralCode]:
        """Último código de afiliado aplicado por el usuario al registrarse."""
        stmt = (
            select(UsedReferralCode)
            .where(
                UsedReferralCode.user_id == user_id,
                UsedReferralCode.status == "applied",
            )
            .order_by(UsedReferralCode.created_at.desc(), UsedReferralCode.id.desc())
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_active_discount(self, session: AsyncSession, user_id: str) -> Optional[UsedReferralCode]:
        """Código con descuento todavía no cobrado en ningún checkout."""
        used = await self.get_used_code(session, user_id)
        if used is None or used.consumed:
            return None
        return used

    async def mark_consumed(self, session: AsyncSession, used_code_id: int) -> bool:
        stmt = (
            update(UsedReferralCode)
            .where(UsedReferralCode.id == used_code_id, UsedReferralCode.consumed.is_(False))
            .values(consumed=True)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1

    # ------------------------------------------------------------------
    # Crédito por referido
    # ------------------------------------------------------------------
    async def get_credit(self, session: AsyncSession, referred_user_id: str) -> Optional[ReferralCredit]:
        stmt = select(ReferralCredit).where(ReferralCredit.referred_user_id == referred_user_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_credit(
        self,
        session: AsyncSession,
        *,
        referred_user_id: str,
        referrer_id: str,
        affiliate_code: str,
        points_awarded: int,
        external_session_id: str,
    ) -> ReferralCredit:
        credit = ReferralCredit(
            referred_user_id=referred_user_id,
            referrer_id=referrer_id,
            affiliate_code=affiliate_code,
            status="completed",
            points_awarded=points_awarded,
            external_session_id=external_session_id,
        )
        session.add(credit)
        await session.flush()
        return credit

    async def update_credit(
        self,
        session: AsyncSession,
        *,
        referred_user_id: str,
        referrer_id: str,
        affiliate_code: str,
        points_awarded: int,
        external_session_id: str,
    ) -> None:
        await session.execute(
            update(ReferralCredit)
            .where(ReferralCredit.referred_user_id == referred_user_id)
            .values(
                referrer_id=referrer_id,
                affiliate_code=affiliate_code,
                status="completed",
                points_awarded=points_awarded,
                external_session_id=external_session_id,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )

    # ------------------------------------------------------------------
    # Puntos del referidor
    # ------------------------------------------------------------------
    async def reward_transaction_exists(
        self,
        session: AsyncSession,
        *,
        user_id: str,
        reference_type: str,
        reference_id: str,
    ) -> bool:
        stmt = select(RewardTransaction.id).where(
            RewardTransaction.user_id == user_id,
            RewardTransaction.reference_type == reference_type,
            RewardTransaction.reference_id == reference_id,
        )
        result = await session.execute(stmt)
        return result.first() is not None

    async def add_reward(
        self,
        session: AsyncSession,
        *,
        user_id: str,
        amount: int,
        reference_type: str,
        reference_id: str,
        description: Optional[str] = None,
    ) -> None:
        """
        Inserta la transacción de puntos y suma al saldo en la misma
        transacción. La unicidad de la transacción hace aditiva e idempotente
        la operación: un duplicado falla en flush y no toca el saldo.

        El alta del saldo va en SAVEPOINT: si otro settlement del mismo
        referidor lo creó entre el UPDATE y el INSERT, se repite el UPDATE
        sin perder la transacción de puntos.
        """
        session.add(
            RewardTransaction(
                user_id=user_id,
                amount=amount,
                reference_type=reference_type,
                reference_id=reference_id,
                description=description,
            )
        )
        await session.flush()

        if await self._increment_balance(session, user_id, amount):
            return

        try:
            async with session.begin_nested():
                session.add(RewardBalance(user_id=user_id, balance=amount, total_earned=amount))
                await session.flush()
            return
        except IntegrityError:
            logger.info("reward_balance_created_concurrently user_id=%s", user_id)

        if not await self._increment_balance(session, user_id, amount):
            raise RuntimeError(f"Failed to update reward balance for user {user_id}")

    async def _increment_balance(self, session: AsyncSession, user_id: str, amount: int) -> int:
        result = await session.execute(
            update(RewardBalance)
            .where(RewardBalance.user_id == user_id)
            .values(
                balance=RewardBalance.balance + amount,
                total_earned=RewardBalance.total_earned + amount,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def get_balance(self, session: AsyncSession, user_id: str) -> int:
        stmt = select(RewardBalance.balance).where(RewardBalance.user_id == user_id)
        result = await session.execute(stmt)
        value = result.scalar_one_or_none()
        return int(value or 0)


__all__ = ["ReferralRepository", "REFERRAL_REWARD_REFERENCE"]
