# -*- coding: utf-8 -*-
"""
scholarpay/modules/billing/providers/exchange_rate_provider.py

Tipo de cambio USD -> moneda local para el riel PIX.

Consulta la API pública de tasas, aplica el margen comercial (+4%) y
redondea a 3 decimales. Cualquier fallo (red, timeout, HTTP, payload)
degrada a la tasa de respaldo configurada; nunca lanza.

Autor: ScholarPay
Fecha: 2026-10-18
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional

import httpx

from scholarpay.shared.config.settings_payments import PaymentsSettings, get_payments_settings
from scholarpay.shared.core import get_http_client

logger = logging.getLogger(__name__)

RATE_QUANTUM = Decimal("0.001")


class ExchangeRateProvider:
    """
    Proveedor de tipo de cambio con respaldo.

    Args:
        client: Cliente httpx (por defecto, el cliente global compartido)
        settings: Configuración de pagos (URL, margen, respaldo, timeout)
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        settings: Optional[PaymentsSettings] = None,
    ):
        self._client = client
        self.settings = settings or get_payments_settings()

    async def _fetch_raw_rate(self, base: str, quote: str) -> Decimal:
        client = self._client or await get_http_client()
        url = f"{self.settings.exchange_rate_api_url.rstrip('/')}/{base.upper()}"

        response = await client.get(url, timeout=self.settings.exchange_rate_timeout_seconds)
        response.raise_for_status()
        payload = response.json()
        return Decimal(str(payload["rates"][quote.upper()]))

    def apply_margin(self, raw_rate: Decimal) -> Decimal:
        rate = raw_rate * (Decimal("1") + self.settings.exchange_rate_margin)
        return rate.quantize(RATE_QUANTUM, rounding=ROUND_HALF_UP)

    async def get_rate(self, base: str = "USD", quote: str = "BRL") -> Decimal:
        """
        Tasa base -> quote con margen comercial, o la tasa de respaldo.

        Returns:
            Decimal con 3 decimales
        """
        try:
            raw = await self._fetch_raw_rate(base, quote)
            if raw <= 0:
                raise ValueError(f"non-positive rate {raw}")
        except (httpx.HTTPError, KeyError, TypeError, ValueError, InvalidOperation) as e:
            fallback = self.settings.exchange_rate_fallback
            logger.warning(
                "exchange_rate_fallback base=%s quote=%s rate=%s error=%s",
                base, quote, fallback, repr(e),
            )
            return fallback

        rate = self.apply_margin(raw)
        logger.info("exchange_rate_fetched base=%s quote=%s raw=%s rate=%s", base, quote, raw, rate)
        return rate


__all__ = ["ExchangeRateProvider"]
