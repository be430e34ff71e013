# -*- coding: utf-8 -*-
"""
scholarpay/modules/billing/metrics.py

Métricas Prometheus del motor de cobro.

Autor: ScholarPay
Fecha: 2026-10-18
"""

from __future__ import annotations

from prometheus_client import Counter

CHECKOUT_SESSIONS_CREATED = Counter(
    "billing_checkout_sessions_created_total",
    "Checkout sessions created at the payment processor",
    ["fee_type", "rail"],
)

SETTLEMENT_VERIFICATIONS = Counter(
    "billing_settlement_verifications_total",
    "Settlement verification outcomes",
    ["outcome"],
)

NOTIFICATIONS_DISPATCHED = Counter(
    "billing_notifications_dispatched_total",
    "Payment notifications dispatched by target and result",
    ["target", "result"],
)

CONNECT_TRANSFERS = Counter(
    "billing_connect_transfers_total",
    "Stripe Connect transfers to universities by recorded status",
    ["status"],
)


__all__ = [
    "CHECKOUT_SESSIONS_CREATED",
    "SETTLEMENT_VERIFICATIONS",
    "NOTIFICATIONS_DISPATCHED",
    "CONNECT_TRANSFERS",
]
