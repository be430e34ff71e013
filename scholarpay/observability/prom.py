# -*- coding: utf-8 -*-
"""
scholarpay/observability/prom.py

Observabilidad Prometheus del backend de cobro:
- Middleware HTTP: conteo y latencia por plantilla de ruta y estado
  ("/api/checkout/{fee_type}/verify", nunca el path crudo)
- /metrics y /health no se instrumentan; rutas sin match se agrupan
  como "unmatched"
- Endpoint /metrics (pull model, con soporte multiproceso)

Autor: ScholarPay
Fecha: 2026-10-18
"""
from __future__ import annotations

import os
from time import perf_counter
from typing import Optional

from fastapi import FastAPI
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
    multiprocess,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

METRICS_PATH = "/metrics"
EXCLUDED_PATHS = frozenset({METRICS_PATH, "/health"})
UNMATCHED_ROUTE = "unmatched"

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "route", "status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_latency_seconds",
    "Latency per request (s)",
    ["method", "route", "status"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)


def route_label(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", None) or UNMATCHED_ROUTE


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Instrumenta peticiones HTTP de la API."""

    async def dispatch(self, request, call_next):
        if request.url.path in EXCLUDED_PATHS:
            return await call_next(request)

        start = perf_counter()
        resp = await call_next(request)
        elapsed = perf_counter() - start

        labels = (request.method, route_label(request), str(resp.status_code))
        REQUEST_LATENCY.labels(*labels).observe(elapsed)
        REQUEST_COUNT.labels(*labels).inc()
        return resp


def _build_registry() -> Optional[CollectorRegistry]:
    if os.environ.get("PROMETHEUS_MULTIPROC_DIR"):
        registry = CollectorRegistry()
        multiprocess.MultiProcessCollector(registry)
        return registry
    return None


def mount_metrics(app: FastAPI, path: str = METRICS_PATH) -> None:
    registry = _build_registry()

    @app.get(path, include_in_schema=False)
    def metrics():
        data = generate_latest(registry) if registry else generate_latest()
        return Response(content=data, media_type=CONTENT_TYPE_LATEST)


def setup_observability(app: FastAPI, *, http_metrics: bool = True) -> None:
    """Monta /metrics y, si se pide, el middleware HTTP."""
    if http_metrics:
        app.add_middleware(PrometheusMiddleware)
    mount_metrics(app)


__all__ = [
    "setup_observability",
    "mount_metrics",
    "route_label",
    "PrometheusMiddleware",
    "EXCLUDED_PATHS",
]
# Fin del archivo scholarpay/observability/prom.py
