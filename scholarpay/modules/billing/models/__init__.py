# -*- coding: utf-8 -*-
"""
scholarpay/modules/billing/models/__init__.py

Modelos ORM de billing. Este módulo NO importa services ni routers para
evitar imports circulares.

Uso:
    from scholarpay.modules.billing.models import SettlementClaim, LedgerEntry

Autor: ScholarPay
Fecha: 2026-10-18
"""

from scholarpay.modules.billing.models.coupon import Coupon, CouponUsage
from scholarpay.modules.billing.models.referral import (
    ReferralCredit,
    RewardBalance,
    RewardTransaction,
    UsedReferralCode,
)
from scholarpay.modules.billing.models.settlement import ConnectTransfer, LedgerEntry, SettlementClaim
from scholarpay.modules.billing.models.student import (
    CartItem,
    Scholarship,
    ScholarshipApplication,
    Seller,
    StudentProfile,
    University,
    UserFeeOverride,
)

__all__ = [
    "CartItem",
    "ConnectTransfer",
    "Coupon",
    "CouponUsage",
    "LedgerEntry",
    "ReferralCredit",
    "RewardBalance",
    "RewardTransaction",
    "Scholarship",
    "ScholarshipApplication",
    "Seller",
    "SettlementClaim",
    "StudentProfile",
    "University",
    "UsedReferralCode",
    "UserFeeOverride",
]
