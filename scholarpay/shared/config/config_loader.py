# -*- coding: utf-8 -*-
"""
scholarpay/shared/config/config_loader.py

Carga de configuración según PYTHON_ENV.

- Acepta alias de entorno ("prod", "testing", "dev")
- Ejecuta las validaciones de seguridad de la subclase
- En producción exige que el cobro esté listo para recibir dinero real:
  clave de Stripe, secreto de webhook y firma obligatoria
- Cachea la instancia (singleton); reset_settings() la invalida junto
  con la de pagos

Autor: ScholarPay
Fecha: 2026-10-18
"""

import logging
import os
from functools import lru_cache
from typing import Optional

from .settings_base import BaseAppSettings
from .settings_dev import DevSettings
from .settings_payments import PaymentsSettings, get_payments_settings, reset_payments_settings
from .settings_prod import ProdSettings
from .settings_testing import EnvTestingSettings

logger = logging.getLogger(__name__)

_ENV_ALIASES = {
    "production": "production",
    "prod": "production",
    "test": "test",
    "testing": "test",
}

_SETTINGS_BY_ENV = {
    "production": ProdSettings,
    "test": EnvTestingSettings,
    "development": DevSettings,
}


def resolve_environment(raw: Optional[str]) -> str:
    """Normaliza PYTHON_ENV; cualquier valor desconocido es development."""
    return _ENV_ALIASES.get((raw or "").strip().lower(), "development")


def check_payments_ready(payments: PaymentsSettings) -> None:
    """
    Validaciones de cobro para producción.

    Raises:
        ValueError: Falta un secreto de Stripe o los webhooks aceptan
            eventos sin firma
    """
    if not payments.payments_enabled:
        return
    if not payments.stripe_secret_key:
        raise ValueError("STRIPE_SECRET_KEY must be set in production when payments are enabled")
    if not payments.stripe_webhook_secret:
        raise ValueError("STRIPE_WEBHOOK_SECRET must be set in production when payments are enabled")
    if payments.allow_insecure_webhooks:
        raise ValueError("ALLOW_INSECURE_WEBHOOKS must be disabled in production")


@lru_cache(maxsize=1)
def get_settings() -> BaseAppSettings:
    """
    Devuelve la configuración apropiada según PYTHON_ENV.

    Returns:
        BaseAppSettings: Instancia de configuración para el entorno actual

    Raises:
        ValueError: Si las validaciones de seguridad o de cobro fallan
    """
    env = resolve_environment(os.getenv("PYTHON_ENV"))
    settings = _SETTINGS_BY_ENV[env]()

    settings._security_checks()
    if env == "production":
        check_payments_ready(get_payments_settings())

    logger.debug("settings_loaded env=%s log_format=%s", settings.python_env, settings.log_format)
    return settings


def reset_settings() -> None:
    """Invalida la configuración cacheada (app y pagos)."""
    get_settings.cache_clear()
    reset_payments_settings()


__all__ = ["get_settings", "reset_settings", "resolve_environment", "check_payments_ready"]
# Fin del archivo scholarpay/shared/config/config_loader.py
