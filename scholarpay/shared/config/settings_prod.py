# -*- coding: utf-8 -*-
"""
scholarpay/shared/config/settings_prod.py

Overrides para entorno de PRODUCCIÓN.
Lee solo variables de entorno / secret stores, logging INFO en JSON.

Autor: ScholarPay
Fecha: 2026-10-18
"""

from typing import Literal

from pydantic_settings import SettingsConfigDict

from .settings_base import BaseAppSettings, DEFAULT_JWT_SECRET


class ProdSettings(BaseAppSettings):
    # --- Identidad de entorno ---
    python_env: Literal["development", "test", "production"] = "production"

    # --- Logging en prod: nivel estable y formato estructurado ---
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["json", "pretty", "plain"] = "json"

    model_config = SettingsConfigDict(
        env_file=None,  # No leemos .env en producción
        extra="ignore",
    )

    def _security_checks(self) -> None:
        if self.jwt_secret_key.get_secret_value() == DEFAULT_JWT_SECRET:
            raise ValueError("JWT_SECRET_KEY must be set in production")
        if self.debug:
            raise ValueError("DEBUG must be disabled in production")


__all__ = ["ProdSettings"]
# Fin del archivo scholarpay/shared/config/settings_prod.py
