# -*- coding: utf-8 -*-
"""
scholarpay/modules/billing/providers/__init__.py

Adaptadores de colaboradores externos: procesador de pagos (Stripe),
tipo de cambio y sink de notificaciones.
"""

from .exchange_rate_provider import ExchangeRateProvider
from .notification_sink import NotificationSink, WebhookNotificationSink
from .stripe_provider import PaymentProcessor, StripeProvider

__all__ = [
    "ExchangeRateProvider",
    "NotificationSink",
    "PaymentProcessor",
    "StripeProvider",
    "WebhookNotificationSink",
]
