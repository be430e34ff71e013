# -*- coding: utf-8 -*-
"""
scholarpay/modules/billing/webhooks/__init__.py

Handlers de webhooks de procesadores de pago.
"""

from .stripe_handler import (
    SETTLEMENT_EVENTS,
    handle_stripe_settlement_webhook,
    verify_stripe_webhook_signature,
)

__all__ = [
    "SETTLEMENT_EVENTS",
    "handle_stripe_settlement_webhook",
    "verify_stripe_webhook_signature",
]
