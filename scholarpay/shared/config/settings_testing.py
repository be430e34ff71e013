# -*- coding: utf-8 -*-
"""
scholarpay/shared/config/settings_testing.py

Overrides para entorno de PRUEBAS (test).
Determinista: logging moderado y base SQLite local en lugar de PostgreSQL.

Autor: ScholarPay
Fecha: 2026-10-18
"""

from typing import Optional

from pydantic import Field, SecretStr
from pydantic_settings import SettingsConfigDict

from .settings_base import BaseAppSettings


class EnvTestingSettings(BaseAppSettings):
    # --- Identidad de entorno ---
    python_env: str = "test"

    # --- Logging en test: menos ruido ---
    log_level: str = "WARNING"
    log_format: str = "plain"

    # --- Base de datos aislada (sobreescribible con DB_URL) ---
    db_url: Optional[str] = Field(
        default="sqlite+aiosqlite:///./scholarpay_test.db", validation_alias="DB_URL"
    )

    # --- Auth: secreto fijo para firmar tokens en pruebas ---
    jwt_secret_key: SecretStr = Field(
        default=SecretStr("test-secret-key"), validation_alias="JWT_SECRET_KEY"
    )

    http_metrics_enabled: bool = False

    model_config = SettingsConfigDict(
        env_file=".env.test",
        env_file_encoding="utf-8",
        extra="ignore",
    )


__all__ = ["EnvTestingSettings"]
# Fin del archivo scholarpay/shared/config/settings_testing.py
