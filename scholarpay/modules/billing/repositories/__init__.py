# -*- coding: utf-8 -*-
"""
scholarpay/modules/billing/repositories/__init__.py

Repositorios de billing. Ninguno hace commit salvo el upsert de solicitud,
que debe quedar persistido antes de hablar con el procesador.
"""

from .coupon_repository import CouponRepository, CouponValidation, apply_coupon
from .referral_repository import REFERRAL_REWARD_REFERENCE, ReferralRepository
from .settlement_repository import ConnectTransferRepository, LedgerRepository, SettlementClaimRepository
from .student_repository import PROFILE_PAID_FLAGS, StudentRepository

__all__ = [
    "ConnectTransferRepository",
    "CouponRepository",
    "CouponValidation",
    "LedgerRepository",
    "PROFILE_PAID_FLAGS",
    "REFERRAL_REWARD_REFERENCE",
    "ReferralRepository",
    "SettlementClaimRepository",
    "StudentRepository",
    "apply_coupon",
]
