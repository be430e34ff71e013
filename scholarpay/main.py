# -*- coding: utf-8 -*-
"""
scholarpay/main.py

Punto de entrada del backend de cobro ScholarPay.

- Carga .env antes de leer configuración
- Logging (plain/json) según LOG_LEVEL / LOG_FORMAT
- CORS, errores de cobro y 500 en JSON, observabilidad Prometheus
- Ciclo de vida: cliente httpx compartido (startup/shutdown)
- /health y routers bajo /api

Autor: ScholarPay
Fecha: 2026-10-18
"""

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402

from scholarpay import __version__  # noqa: E402
from scholarpay.modules.billing import router as billing_router  # noqa: E402
from scholarpay.observability import setup_observability  # noqa: E402
from scholarpay.shared.config import get_settings, setup_logging  # noqa: E402
from scholarpay.shared.core import close_http_client, create_http_client  # noqa: E402
from scholarpay.shared.database.database import check_database_health  # noqa: E402
from scholarpay.shared.middleware import register_exception_handlers  # noqa: E402

settings = get_settings()
setup_logging(settings.log_level, settings.log_format)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ────────── STARTUP ──────────
    await create_http_client()
    logger.info("app_started env=%s version=%s", settings.python_env, __version__)
    try:
        yield
    finally:
        # ────────── SHUTDOWN ──────────
        await close_http_client()
        logger.info("app_stopped")


app = FastAPI(
    title="ScholarPay API",
    description="Cobro de cuotas y liquidación idempotente",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=settings.get_cors_origins() != ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
register_exception_handlers(app)
setup_observability(app, http_metrics=settings.http_metrics_enabled)


@app.get("/health", tags=["health"])
async def health() -> dict:
    db_ok = await check_database_health()
    return {"status": "ok" if db_ok else "degraded", "database": db_ok, "version": __version__}


app.include_router(billing_router, prefix="/api")


__all__ = ["app"]

# Fin del archivo scholarpay/main.py
