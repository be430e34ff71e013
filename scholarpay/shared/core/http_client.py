# -*- coding: utf-8 -*-
"""
scholarpay/shared/core/http_client.py

Cliente HTTP global compartido (httpx.AsyncClient).

Se crea en el lifespan de la aplicación y se reutiliza en los adaptadores
salientes (tipo de cambio, webhook de notificaciones). Si se pide antes de
inicializarse, se crea bajo demanda.

Autor: ScholarPay
Fecha: 2026-10-18
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx

from scholarpay.shared.config import get_settings

logger = logging.getLogger(__name__)

_http_client: Optional[httpx.AsyncClient] = None
# Lock async para evitar creación concurrente del cliente
_http_client_lock = asyncio.Lock()


def _build_client() -> httpx.AsyncClient:
    settings = get_settings()
    timeout = httpx.Timeout(settings.http_timeout_seconds, connect=5.0)
    limits = httpx.Limits(
        max_connections=20,
        max_keepalive_connections=10,
        keepalive_expiry=30.0,
    )
    return httpx.AsyncClient(
        timeout=timeout,
        limits=limits,
        transport=httpx.AsyncHTTPTransport(retries=1),
        headers={"User-Agent": settings.http_user_agent},
    )


async def create_http_client() -> httpx.AsyncClient:
    """Crea (o recrea) el cliente global, cerrando el anterior si existía."""
    global _http_client
    async with _http_client_lock:
        if _http_client is not None:
            await _http_client.aclose()
        _http_client = _build_client()
        logger.info("http_client_created")
        return _http_client


async def get_http_client() -> httpx.AsyncClient:
    """Devuelve el cliente global, creándolo si aún no existe."""
    global _http_client
    if _http_client is None or _http_client.is_closed:
        async with _http_client_lock:
            if _http_client is None or _http_client.is_closed:
                _http_client = _build_client()
    return _http_client


async def close_http_client() -> None:
    global _http_client
    async with _http_client_lock:
        if _http_client is not None:
            await _http_client.aclose()
            _http_client = None
            logger.info("http_client_closed")


__all__ = ["create_http_client", "get_http_client", "close_http_client"]
# Fin del archivo scholarpay/shared/core/http_client.py
