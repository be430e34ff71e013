# -*- coding: utf-8 -*-
"""
scholarpay/shared/middleware/exception_handler.py

Manejo de errores de la API de cobro.

- BillingError -> status propio del error, detail {"error", "message"}
- Cualquier otra excepción no manejada -> 500 JSON con request_id

Toda respuesta de error lleva X-Request-ID para correlacionar con los logs.

Autor: ScholarPay
Fecha: 2026-10-18
"""

from __future__ import annotations

import logging
import uuid
from typing import Awaitable, Callable

from fastapi import FastAPI
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from scholarpay.modules.billing.errors import BillingError

logger = logging.getLogger(__name__)

REQUEST_ID_HEADERS = ("x-request-id", "x-correlation-id")


def get_request_id(request: Request) -> str:
    """request_id ya asignado, el de los headers, o uno nuevo."""
    assigned = getattr(request.state, "request_id", None)
    if assigned:
        return assigned
    for header in REQUEST_ID_HEADERS:
        value = request.headers.get(header)
        if value:
            return value
    return uuid.uuid4().hex[:16]


async def billing_exception_handler(request: Request, exc: BillingError) -> JSONResponse:
    request_id = get_request_id(request)
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "billing_error request_id=%s path=%s status=%d error=%s message=%s",
        request_id, request.url.path, exc.status_code, exc.error_code, exc.message,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.to_detail()},
        headers={"X-Request-ID": request_id},
    )


class JSONExceptionMiddleware(BaseHTTPMiddleware):
    """
    Captura excepciones no manejadas y devuelve un 500 JSON estable:
    {"detail": {"error", "message", "request_id"}}.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = get_request_id(request)
        request.state.request_id = request_id

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "unhandled_exception request_id=%s method=%s path=%s",
                request_id, request.method, request.url.path,
            )
            return JSONResponse(
                status_code=500,
                content={
                    "detail": {
                        "error": "internal_error",
                        "message": "Internal server error",
                        "request_id": request_id,
                    }
                },
                headers={"X-Request-ID": request_id},
            )
        response.headers.setdefault("X-Request-ID", request_id)
        return response


def register_exception_handlers(app: FastAPI) -> None:
    """Middleware de 500 y handler de errores de cobro."""
    app.add_middleware(JSONExceptionMiddleware)
    app.add_exception_handler(BillingError, billing_exception_handler)


__all__ = [
    "JSONExceptionMiddleware",
    "billing_exception_handler",
    "get_request_id",
    "register_exception_handlers",
]
# Fin del archivo scholarpay/shared/middleware/exception_handler.py
