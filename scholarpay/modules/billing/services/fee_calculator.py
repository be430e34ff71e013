# -*- coding: utf-8 -*-
"""
scholarpay/modules/billing/services/fee_calculator.py

Calculadora de comisiones del procesador (pura, sin I/O).

Convierte el neto que la plataforma debe recibir en el bruto a cobrar al
pagador, para cada riel:

    Tarjeta (USD):  gross = (net + fixed) / (1 - percent)
    PIX (BRL):      gross = (net * rate) / (1 - (processing + conversion))

El bruto se redondea a 2 decimales (ROUND_HALF_UP) y se expresa en unidades
mínimas (x100). El tipo de cambio siempre llega como parámetro; el piso de
cobro mínimo lo aplica quien llama (clamp_net) antes de invocar gross_for_net.

Autor: ScholarPay
Fecha: 2026-10-18
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from scholarpay.modules.billing.enums import PaymentRail
from scholarpay.shared.config.settings_payments import PaymentsSettings

CENT = Decimal("0.01")
ONE = Decimal("1")


def round_money(value: Decimal) -> Decimal:
    """Redondeo monetario a 2 decimales, mitad hacia arriba."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(value: Decimal) -> int:
    return int(round_money(value) * 100)


def from_minor_units(minor: int) -> Decimal:
    return (Decimal(minor) / 100).quantize(CENT)


@dataclass(frozen=True)
class FeeParameters:
    """Parámetros de comisión por riel."""

    card_percent_fee: Decimal = Decimal("0.039")
    card_fixed_fee: Decimal = Decimal("0.30")
    pix_processing_fee: Decimal = Decimal("0.0119")
    pix_conversion_fee: Decimal = Decimal("0.006")
    pix_iof_rate: Decimal = Decimal("0.035")
    min_charge_usd: Decimal = Decimal("0.50")

    @property
    def pix_total_percent_fee(self) -> Decimal:
        return self.pix_processing_fee + self.pix_conversion_fee

    @classmethod
    def from_settings(cls, settings: PaymentsSettings) -> "FeeParameters":
        return cls(
            card_percent_fee=settings.card_percent_fee,
            card_fixed_fee=settings.card_fixed_fee,
            pix_processing_fee=settings.pix_processing_fee,
            pix_conversion_fee=settings.pix_conversion_fee,
            pix_iof_rate=settings.pix_iof_rate,
            min_charge_usd=settings.min_charge_usd,
        )


@dataclass(frozen=True)
class FeeBreakdown:
    """Cotización completa para mostrar al pagador."""

    rail: PaymentRail
    currency: str
    net_amount_usd: Decimal
    exchange_rate: Decimal
    net_amount_local: Decimal
    gross_amount: Decimal
    gross_amount_minor_units: int
    processor_fee: Decimal
    total_with_iof: Optional[Decimal] = None


class FeeCalculator:
    """
    Cálculo de bruto a partir de neto y extracción de comisión.

    Args:
        params: Parámetros de comisión (por defecto, los de la plataforma)
    """

    def __init__(self, params: Optional[FeeParameters] = None):
        self.params = params or FeeParameters()

    # ------------------------------------------------------------------
    # Operaciones principales
    # ------------------------------------------------------------------
    def gross_amount(self, net_amount: Decimal, rail: PaymentRail, exchange_rate: Decimal = ONE) -> Decimal:
        """Bruto en la moneda del riel, redondeado a 2 decimales."""
        net = Decimal(net_amount)
        if net < 0:
            raise ValueError("net_amount must be >= 0")

        if rail is PaymentRail.CARD:
            gross = (net + self.params.card_fixed_fee) / (ONE - self.params.card_percent_fee)
        else:
            rate = Decimal(exchange_rate)
            if rate <= 0:
                raise ValueError("exchange_rate must be > 0")
            net_local = net * rate
            gross = net_local / (ONE - self.params.pix_total_percent_fee)
        return round_money(gross)

    def gross_for_net(self, net_amount: Decimal, rail: PaymentRail, exchange_rate: Decimal = ONE) -> int:
        """
        Bruto a cobrar, en unidades mínimas de la moneda del riel.

        Monótono creciente en net_amount. No aplica el piso mínimo:
        usar clamp_net() antes.
        """
        return to_minor_units(self.gross_amount(net_amount, rail, exchange_rate))

    def extract_fee(self, gross_amount: Decimal, rail: PaymentRail) -> Decimal:
        """Comisión contenida en un bruto (uso en reportes)."""
        gross = Decimal(gross_amount)
        if rail is PaymentRail.CARD:
            fee = gross * self.params.card_percent_fee + self.params.card_fixed_fee
        else:
            fee = gross * self.params.pix_total_percent_fee
        return round_money(fee)

    # ------------------------------------------------------------------
    # Auxiliares
    # ------------------------------------------------------------------
    def clamp_net(self, net_amount: Decimal) -> Decimal:
        """Eleva el neto al mínimo cobrable de la plataforma."""
        return max(Decimal(net_amount), self.params.min_charge_usd)

    def pix_total_with_iof(self, gross_local: Decimal) -> Decimal:
        """Total PIX mostrado al pagador con IOF incluido."""
        return round_money(Decimal(gross_local) * (ONE + self.params.pix_iof_rate))

    def breakdown(self, net_amount: Decimal, rail: PaymentRail, exchange_rate: Decimal = ONE) -> FeeBreakdown:
        rate = ONE if rail is PaymentRail.CARD else Decimal(exchange_rate)
        gross = self.gross_amount(net_amount, rail, rate)
        return FeeBreakdown(
            rail=rail,
            currency=rail.currency,
            net_amount_usd=round_money(Decimal(net_amount)),
            exchange_rate=rate,
            net_amount_local=round_money(Decimal(net_amount) * rate),
            gross_amount=gross,
            gross_amount_minor_units=to_minor_units(gross),
            processor_fee=self.extract_fee(gross, rail),
            total_with_iof=self.pix_total_with_iof(gross) if rail is PaymentRail.INSTANT_TRANSFER else None,
        )


__all__ = [
    "FeeCalculator",
    "FeeParameters",
    "FeeBreakdown",
    "round_money",
    "to_minor_units",
    "from_minor_units",
]

# Fin del archivo scholarpay/modules/billing/services/fee_calculator.py
