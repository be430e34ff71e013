# -*- coding: utf-8 -*-
"""
scholarpay/modules/billing/services/discount_resolver.py

Resolución de descuento para un cobro: cupón promocional o descuento de
referido, nunca ambos.

Precedencia estricta:
1. Cupón (si se envió y es válido). Se valida contra el monto canónico de la
   cuota calculado en el servidor, nunca contra un monto del cliente.
2. Descuento de referido activo, si no se aplicó ya aguas arriba.
3. Sin descuento.

Es una función de decisión sin efectos: el uso del cupón y el consumo del
descuento de referido se registran al liquidar. Un cupón inválido no es un
error; se registra en log y el cobro sigue sin ese descuento.

Autor: ScholarPay
Fecha: 2026-10-18
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from scholarpay.modules.billing.dto import CouponDiscount, ReferralDiscount, ResolvedAmount
from scholarpay.modules.billing.enums import FeeType, PricingMode
from scholarpay.modules.billing.fee_schedule import canonical_amount as platform_canonical_amount
from scholarpay.modules.billing.repositories import CouponRepository, ReferralRepository
from scholarpay.modules.billing.services.fee_calculator import round_money

logger = logging.getLogger(__name__)

# El descuento por código de afiliado se concede sobre el proceso de selección
REFERRAL_DISCOUNT_FEE_TYPES = frozenset({FeeType.SELECTION_PROCESS})


class DiscountResolver:
    """
    Decide el descuento aplicable a un cobro.

    Args:
        coupon_repo: Repositorio de cupones (inyectable para tests)
        referral_repo: Repositorio de referidos (inyectable para tests)
    """

    def __init__(
        self,
        coupon_repo: Optional[CouponRepository] = None,
        referral_repo: Optional[ReferralRepository] = None,
    ):
        self.coupon_repo = coupon_repo or CouponRepository()
        self.referral_repo = referral_repo or ReferralRepository()

    async def resolve(
        self,
        session: AsyncSession,
        *,
        user_id: str,
        fee_type: FeeType,
        proposed_amount: Decimal,
        coupon_code: Optional[str] = None,
        canonical_amount: Optional[Decimal] = None,
        pricing_mode: PricingMode = PricingMode.LEGACY,
        referral_applied_upstream: bool = False,
    ) -> ResolvedAmount:
        """
        Resuelve el monto (USD) a cobrar tras descuento.

        Args:
            session: Sesión de base de datos (solo lectura)
            user_id: Usuario que paga
            fee_type: Cuota
            proposed_amount: Monto base resuelto en el servidor
            coupon_code: Código de cupón opcional
            canonical_amount: Monto sin descuento contra el que se valida el
                cupón; por defecto, el default de la plataforma para la cuota
            pricing_mode: Modo de precios del usuario
            referral_applied_upstream: True si el descuento de referido ya se
                restó antes de llegar aquí

        Returns:
            ResolvedAmount con el monto final y, como mucho, un descuento
        """
        proposed = Decimal(proposed_amount)
        rejected_reason: Optional[str] = None

        if coupon_code and coupon_code.strip():
            base = Decimal(canonical_amount) if canonical_amount is not None else platform_canonical_amount(
                fee_type, pricing_mode
            )
            validation = await self.coupon_repo.validate(
                session,
                user_id=user_id,
                code=coupon_code,
                fee_type=fee_type,
                canonical_amount=base,
            )
            if validation.valid:
                discount = CouponDiscount(
                    code=validation.code,
                    coupon_id=validation.coupon_id,
                    discount_type=validation.discount_type,
                    discount_value=validation.discount_value,
                    original_amount=validation.original_amount,
                    discount_amount=validation.discount_amount,
                    final_amount=validation.final_amount,
                )
                logger.info(
                    "discount_resolved kind=coupon user_id=%s fee_type=%s code=%s discount=%s final=%s",
                    user_id, fee_type.value, validation.code, validation.discount_amount, validation.final_amount,
                )
                return ResolvedAmount(amount=validation.final_amount, discount=discount)

            rejected_reason = validation.reason
            logger.warning(
                "coupon_rejected user_id=%s fee_type=%s code=%s reason=%s",
                user_id, fee_type.value, validation.code, validation.reason,
            )

        if not referral_applied_upstream and fee_type in REFERRAL_DISCOUNT_FEE_TYPES:
            used = await self.referral_repo.get_active_discount(session, user_id)
            if used is not None and used.discount_amount > 0:
                discount_amount = min(Decimal(used.discount_amount), proposed)
                amount = round_money(proposed - discount_amount)
                logger.info(
                    "discount_resolved kind=referral user_id=%s fee_type=%s affiliate_code=%s discount=%s final=%s",
                    user_id, fee_type.value, used.affiliate_code, discount_amount, amount,
                )
                return ResolvedAmount(
                    amount=amount,
                    discount=ReferralDiscount(
                        referrer_id=used.referrer_id,
                        affiliate_code=used.affiliate_code,
                        discount_amount=discount_amount,
                        referral_code_id=used.id,
                    ),
                    rejected_coupon_reason=rejected_reason,
                )

        return ResolvedAmount(amount=proposed, rejected_coupon_reason=rejected_reason)


__all__ = ["DiscountResolver", "REFERRAL_DISCOUNT_FEE_TYPES"]
