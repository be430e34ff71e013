# -*- coding: utf-8 -*-
"""
scholarpay/modules/billing/__init__.py

Motor de cobro de cuotas y liquidación idempotente.

Exporta un router unificado que incluye:
- /api/checkout/{fee_type}, /quote, /verify
- /api/billing/webhooks/stripe

Autor: ScholarPay
Fecha: 2026-10-18
"""

from fastapi import APIRouter

from .routes import router as checkout_router
from .webhook_routes import router as billing_webhook_router

router = APIRouter()
router.include_router(checkout_router)
router.include_router(billing_webhook_router)

__all__ = ["router"]
