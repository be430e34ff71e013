# -*- coding: utf-8 -*-
"""
scholarpay/shared/config/settings_dev.py

Overrides para entorno de DESARROLLO local.

Autor: ScholarPay
Fecha: 2026-10-18
"""

from pydantic_settings import SettingsConfigDict

from .settings_base import BaseAppSettings


class DevSettings(BaseAppSettings):
    # --- Identidad de entorno ---
    python_env: str = "development"

    # --- Logging legible en consola ---
    log_level: str = "DEBUG"
    log_format: str = "plain"
    debug: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


__all__ = ["DevSettings"]
# Fin del archivo scholarpay/shared/config/settings_dev.py
