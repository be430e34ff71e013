# -*- coding: utf-8 -*-
"""
scholarpay/shared/core/http_retry.py

Reintentos con backoff exponencial y jitter para llamadas HTTP salientes.

Uso:
    client = await get_http_client()
    response = await retry_with_backoff(client.post, url, json=body, max_retries=2)

Autor: ScholarPay
Fecha: 2026-10-18
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Optional

import httpx

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


async def retry_with_backoff(
    func: Callable[..., Awaitable[httpx.Response]],
    *args: Any,
    max_retries: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 10.0,
    backoff_factor: float = 2.0,
    retry_on_status: Optional[frozenset[int]] = None,
    **kwargs: Any,
) -> httpx.Response:
    """
    Ejecuta una llamada httpx con reintentos.

    Args:
        func: Método async del cliente (client.get, client.post, ...)
        max_retries: Reintentos adicionales tras el primer intento
        base_delay: Espera inicial en segundos
        max_delay: Espera máxima en segundos
        backoff_factor: Factor multiplicativo de la espera
        retry_on_status: Códigos que disparan reintento (default: 429 y 5xx)

    Returns:
        La respuesta final. Si tras agotar reintentos sigue siendo un código
        reintentable, se lanza httpx.HTTPStatusError.

    Raises:
        httpx.TransportError: Si el último intento falla a nivel transporte
        httpx.HTTPStatusError: Si se agotan reintentos con código reintentable
    """
    if max_retries < 0:
        raise ValueError(f"max_retries debe ser >= 0, recibido: {max_retries}")

    statuses = RETRYABLE_STATUS if retry_on_status is None else retry_on_status
    delay = base_delay

    for attempt in range(max_retries + 1):
        is_last = attempt == max_retries
        try:
            response = await func(*args, **kwargs)
        except httpx.TransportError as exc:
            if is_last:
                logger.error("http_retry_exhausted attempts=%d error=%r", attempt + 1, exc)
                raise
            logger.warning(
                "http_transport_error attempt=%d/%d error=%s retry_in=%.2fs",
                attempt + 1, max_retries + 1, type(exc).__name__, delay,
            )
        else:
            if response.status_code not in statuses:
                return response
            if is_last:
                logger.error(
                    "http_retry_exhausted attempts=%d status=%d",
                    attempt + 1, response.status_code,
                )
                response.raise_for_status()
                return response
            logger.warning(
                "http_retryable_status attempt=%d/%d status=%d retry_in=%.2fs",
                attempt + 1, max_retries + 1, response.status_code, delay,
            )

        # Jitter para evitar thundering herd
        await asyncio.sleep(delay + random.uniform(0, 0.2 * delay))
        delay = min(delay * backoff_factor, max_delay)

    raise RuntimeError("retry loop exited without result")


__all__ = ["retry_with_backoff", "RETRYABLE_STATUS"]
# Fin del archivo scholarpay/shared/core/http_retry.py
