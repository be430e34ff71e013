# -*- coding: utf-8 -*-
"""
scholarpay/shared/database/database.py

SQLAlchemy async (asyncpg en producción, aiosqlite en pruebas).

Provee:
- build_engine(url): engine configurado según el dialecto
- engine / SessionLocal (async_sessionmaker)
- Dependencia FastAPI: get_async_session
- context manager: session_scope()
- check_database_health()

Autor: ScholarPay
Fecha: 2026-10-18
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from scholarpay.shared.config import get_settings

logger = logging.getLogger(__name__)


def build_engine(url: str, *, echo: bool = False) -> AsyncEngine:
    """
    Crea un AsyncEngine para la URL dada.

    SQLite: NullPool (una conexión por sesión) y timeout de bloqueo amplio
    para que los escritores concurrentes esperen en lugar de fallar.
    PostgreSQL: pool acotado con pre-ping.
    """
    if url.startswith("sqlite"):
        return create_async_engine(
            url,
            echo=echo,
            poolclass=NullPool,
            connect_args={"timeout": 30},
        )

    settings = get_settings()
    return create_async_engine(
        url,
        echo=echo,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
    )


def build_sessionmaker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=bind,
        expire_on_commit=False,
        class_=AsyncSession,
        autoflush=False,
    )


_settings = get_settings()
engine = build_engine(_settings.database_url, echo=_settings.db_echo_sql)
SessionLocal = build_sessionmaker(engine)


# ── Dependencia FastAPI
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    async with SessionLocal() as session:
        try:
            yield session
        except SQLAlchemyError:
            # Liberar la transacción antes de propagar
            await session.rollback()
            raise


# ── Context manager reutilizable en scripts/tests
@asynccontextmanager
async def session_scope() -> AsyncGenerator[AsyncSession, None]:
    async with SessionLocal() as session:
        try:
            yield session
        finally:
            if session.in_transaction():
                await session.rollback()


# ── Health check
async def check_database_health(timeout_s: float = 3.0) -> bool:
    """
    Verifica conectividad a la base de datos con SELECT 1.

    Returns:
        True si la conexión es exitosa, False en caso contrario
    """
    try:
        async with asyncio.timeout(timeout_s):
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        return True
    except (SQLAlchemyError, OSError, TimeoutError) as exc:
        logger.warning("database_health_failed error=%s", exc)
        return False


__all__ = [
    "build_engine",
    "build_sessionmaker",
    "engine",
    "SessionLocal",
    "get_async_session",
    "session_scope",
    "check_database_health",
]
# Fin del archivo scholarpay/shared/database/database.py
