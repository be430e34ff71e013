# -*- coding: utf-8 -*-
"""
scholarpay/modules/billing/providers/notification_sink.py

Sink de notificaciones: publica cada mensaje en un webhook externo
(n8n u otro orquestador que envía el e-mail).

Sin URL configurada solo registra en log. Reintenta con backoff ante
429/5xx y errores de transporte; el último error se propaga al fan-out,
que es quien decide no escalarlo.

Autor: ScholarPay
Fecha: 2026-10-18
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Protocol

import httpx

from scholarpay.modules.billing.enums import NotificationTarget
from scholarpay.shared.config.settings_payments import PaymentsSettings, get_payments_settings
from scholarpay.shared.core import get_http_client, retry_with_backoff

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    async def notify(self, target: NotificationTarget, payload: Mapping[str, Any]) -> None: ...


class WebhookNotificationSink:
    """
    Publica {"target", "payload"} por POST en el webhook de notificaciones.

    Args:
        url: URL del webhook (por defecto, NOTIFICATION_WEBHOOK_URL)
        client: Cliente httpx (por defecto, el global compartido)
        settings: Configuración de pagos
    """

    def __init__(
        self,
        url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        settings: Optional[PaymentsSettings] = None,
    ):
        self.settings = settings or get_payments_settings()
        self.url = url or self.settings.notification_webhook_url
        self._client = client

    async def notify(self, target: NotificationTarget, payload: Mapping[str, Any]) -> None:
        if not self.url:
            logger.info(
                "notification_skipped reason=no_webhook target=%s event=%s",
                target.value, payload.get("event"),
            )
            return

        client = self._client or await get_http_client()
        response = await retry_with_backoff(
            client.post,
            self.url,
            json={"target": target.value, "payload": dict(payload)},
            timeout=self.settings.notification_timeout_seconds,
            max_retries=self.settings.notification_max_retries,
        )
        response.raise_for_status()


__all__ = ["NotificationSink", "WebhookNotificationSink"]
