# -*- coding: utf-8 -*-
"""
scholarpay/shared/config/settings_payments.py

Configuración de cobro de cuotas y liquidación para ScholarPay.

Descripción:
    Centraliza credenciales de Stripe, parámetros de comisión por riel
    (tarjeta / PIX), tipo de cambio, ventana de reclamo de liquidación,
    recompensas de referidos y destino de notificaciones.

Autor: ScholarPay
Fecha: 2026-10-18
"""

from __future__ import annotations

import os
from decimal import Decimal
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PaymentsSettings(BaseSettings):
    """Configuración del motor de cobro y liquidación."""

    # =========================================================================
    # FEATURE FLAGS
    # =========================================================================

    payments_enabled: bool = Field(
        default=True,
        description="Habilita la creación de checkouts globalmente"
    )

    # =========================================================================
    # STRIPE
    # =========================================================================

    stripe_secret_key: Optional[str] = Field(
        default=None,
        description="Stripe secret key (sk_live_... o sk_test_...)"
    )

    stripe_webhook_secret: Optional[str] = Field(
        default=None,
        description="Stripe webhook signing secret (whsec_...)"
    )

    allow_insecure_webhooks: bool = Field(
        default=False,
        description="Permite webhooks sin validación de firma (SOLO DESARROLLO)"
    )

    # =========================================================================
    # URLs DE RETORNO
    # =========================================================================

    frontend_url: Optional[str] = Field(
        default=None,
        description="URL base del frontend para redirects de checkout"
    )

    @field_validator("frontend_url", mode="before")
    @classmethod
    def _load_frontend_url(cls, v: Optional[str]) -> Optional[str]:
        """Fallback a FRONTEND_URL si no se configuró explícitamente."""
        if v:
            return v
        return os.getenv("FRONTEND_URL")

    # =========================================================================
    # COMISIONES DEL PROCESADOR
    # =========================================================================

    card_percent_fee: Decimal = Field(
        default=Decimal("0.039"),
        description="Porcentaje conservador de tarjeta (incluye recargo internacional)"
    )

    card_fixed_fee: Decimal = Field(
        default=Decimal("0.30"),
        description="Cargo fijo por transacción con tarjeta (USD)"
    )

    pix_processing_fee: Decimal = Field(
        default=Decimal("0.0119"),
        description="Comisión de procesamiento PIX"
    )

    pix_conversion_fee: Decimal = Field(
        default=Decimal("0.006"),
        description="Comisión de conversión de moneda PIX"
    )

    pix_iof_rate: Decimal = Field(
        default=Decimal("0.035"),
        description="IOF mostrado al pagador en cotizaciones PIX"
    )

    min_charge_usd: Decimal = Field(
        default=Decimal("0.50"),
        description="Monto neto mínimo cobrable (USD); se aplica antes del cálculo de comisión"
    )

    # =========================================================================
    # TIPO DE CAMBIO
    # =========================================================================

    exchange_rate_api_url: str = Field(
        default="https://api.exchangerate-api.com/v4/latest",
        description="Endpoint de tasas; se le agrega /<BASE>"
    )

    exchange_rate_fallback: Decimal = Field(
        default=Decimal("5.6"),
        description="Tasa USD->BRL usada si la API falla"
    )

    exchange_rate_margin: Decimal = Field(
        default=Decimal("0.04"),
        description="Margen comercial aplicado sobre la tasa de mercado"
    )

    exchange_rate_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout de la consulta de tipo de cambio"
    )

    # =========================================================================
    # LIQUIDACIÓN
    # =========================================================================

    settlement_claim_stale_seconds: float = Field(
        default=5.0,
        description=(
            "Antigüedad a partir de la cual un reclamo 'processing' se considera "
            "abandonado y puede retomarse"
        )
    )

    # =========================================================================
    # REFERIDOS
    # =========================================================================

    referral_reward_points: int = Field(
        default=180,
        description="Puntos acreditados al referidor cuando el referido paga el proceso de selección"
    )

    # =========================================================================
    # CATÁLOGO DE CUOTAS
    # =========================================================================

    fee_schedule_json: Optional[str] = Field(
        default=None,
        description="JSON que reemplaza el catálogo de cuotas por defecto"
    )

    # =========================================================================
    # NOTIFICACIONES
    # =========================================================================

    notification_webhook_url: Optional[str] = Field(
        default=None,
        description="Webhook que recibe los mensajes de pago (n8n u otro)"
    )

    notification_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout por notificación"
    )

    notification_max_retries: int = Field(
        default=2,
        description="Reintentos ante 429/5xx del webhook de notificaciones"
    )

    admin_notification_email: Optional[str] = Field(
        default=None,
        description="E-mail del administrador de la plataforma"
    )

    # =========================================================================
    # CONFIGURACIÓN DE PYDANTIC
    # =========================================================================

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def pix_total_percent_fee(self) -> Decimal:
        return self.pix_processing_fee + self.pix_conversion_fee


# Singleton global
_payments_settings: Optional[PaymentsSettings] = None


def get_payments_settings() -> PaymentsSettings:
    """
    Obtiene la instancia global de configuración de pagos.

    Returns:
        PaymentsSettings: Configuración de pagos
    """
    global _payments_settings
    if _payments_settings is None:
        _payments_settings = PaymentsSettings()
    return _payments_settings


def reset_payments_settings() -> None:
    """Descarta el singleton (usado por tests que cambian variables de entorno)."""
    global _payments_settings
    _payments_settings = None


__all__ = [
    "PaymentsSettings",
    "get_payments_settings",
    "reset_payments_settings",
]
# Fin del archivo scholarpay/shared/config/settings_payments.py
