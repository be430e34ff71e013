# -*- coding: utf-8 -*-
"""
scholarpay/shared/config/logging_config.py

Configuración centralizada de logging para ScholarPay.
Soporta formato plain (desarrollo) y json (producción, python-json-logger).

Autor: ScholarPay
Fecha: 2026-10-18
"""

import logging.config
from typing import Literal


def setup_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO",
    fmt: Literal["plain", "pretty", "json"] = "plain",
) -> None:
    """
    Configura el logger raíz de la aplicación.

    Args:
        level: Nivel de logging (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        fmt: Formato de salida (plain, pretty, json)

    Ejemplos:
        >>> setup_logging("INFO", "plain")
        >>> setup_logging("WARNING", "json")
    """
    use_json = fmt == "json"

    formatters = {
        "default": {
            "format": "%(levelname)s [%(name)s]: %(message)s",
        },
        "json": {
            "()": "pythonjsonlogger.json.JsonFormatter",
            "format": "%(asctime)s %(name)s %(levelname)s %(message)s",
            "rename_fields": {"levelname": "level", "asctime": "ts"},
        },
    }

    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json" if use_json else "default",
            "stream": "ext://sys.stdout",
        }
    }

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": formatters,
            "handlers": handlers,
            "root": {
                "handlers": ["console"],
                "level": level.upper(),
            },
            "loggers": {
                # El SDK de Stripe es muy verboso en DEBUG
                "stripe": {"level": "WARNING"},
                "httpx": {"level": "WARNING"},
            },
        }
    )


__all__ = ["setup_logging"]
# Fin del archivo scholarpay/shared/config/logging_config.py
