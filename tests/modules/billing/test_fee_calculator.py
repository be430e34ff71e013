# -*- coding: utf-8 -*-
"""
tests/modules/billing/test_fee_calculator.py

Suite: calculadora de comisiones (tarjeta / PIX), piso mínimo e intento de cobro.

Autor: ScholarPay
Fecha: 2026-10-18
"""

from decimal import Decimal

import pytest

from scholarpay.modules.billing.dto import CheckoutIntent
from scholarpay.modules.billing.enums import FeeType, PaymentRail
from scholarpay.modules.billing.services.fee_calculator import (
    FeeCalculator,
    FeeParameters,
    from_minor_units,
    round_money,
    to_minor_units,
)
from scholarpay.shared.config.settings_payments import PaymentsSettings

CARD = PaymentRail.CARD
PIX = PaymentRail.INSTANT_TRANSFER


@pytest.fixture
def calc() -> FeeCalculator:
    return FeeCalculator()


class TestGrossForNet:
    """Bruto en unidades mínimas a partir del neto."""

    def test_card_thousand_dollars(self, calc):
        """Test: (1000 + 0.30) / 0.961 = 1040.89 -> 104089."""
        assert calc.gross_for_net(Decimal("1000"), CARD) == 104089

    def test_pix_with_exchange_rate(self, calc):
        """Test: 900 USD a 5.6 BRL/USD -> 5040 / 0.9821 = 5131.86 BRL."""
        assert calc.gross_for_net(Decimal("900"), PIX, Decimal("5.6")) == 513186

    def test_card_ignores_exchange_rate(self, calc):
        assert calc.gross_for_net(Decimal("400"), CARD, Decimal("5.6")) == calc.gross_for_net(Decimal("400"), CARD)

    def test_floor_applied_before_calculation(self, calc):
        """Test: neto 0.01 se eleva a 0.50; (0.50 + 0.30) / 0.961 = 0.83."""
        net = calc.clamp_net(Decimal("0.01"))
        assert net == Decimal("0.50")
        assert calc.gross_for_net(net, CARD) == 83

    def test_clamp_keeps_amounts_above_floor(self, calc):
        assert calc.clamp_net(Decimal("12.34")) == Decimal("12.34")

    def test_zero_net_card_is_fixed_fee_only(self, calc):
        assert calc.gross_for_net(Decimal("0"), CARD) == 31

    def test_negative_net_rejected(self, calc):
        with pytest.raises(ValueError):
            calc.gross_for_net(Decimal("-1"), CARD)

    def test_pix_requires_positive_rate(self, calc):
        with pytest.raises(ValueError):
            calc.gross_for_net(Decimal("10"), PIX, Decimal("0"))

    @pytest.mark.parametrize("rail,rate", [(CARD, Decimal("1")), (PIX, Decimal("5.824"))])
    def test_monotonic_in_net(self, calc, rail, rate):
        previous = -1
        net = Decimal("0.50")
        while net < Decimal("60"):
            gross = calc.gross_for_net(net, rail, rate)
            assert gross >= previous
            previous = gross
            net += Decimal("0.37")

    def test_custom_parameters(self):
        calc = FeeCalculator(FeeParameters(card_percent_fee=Decimal("0.029"), card_fixed_fee=Decimal("0.30")))
        # (100.30) / 0.971 = 103.295...
        assert calc.gross_for_net(Decimal("100"), CARD) == 10330


class TestExtractFee:
    """El neto recuperado de un bruto difiere del pedido en a lo sumo un centavo."""

    @pytest.mark.parametrize(
        "net",
        ["0.50", "1", "9.99", "49.95", "123.45", "350", "400", "900", "1000", "2574.13"],
    )
    def test_card_round_trip_within_a_cent(self, calc, net):
        net = Decimal(net)
        gross = calc.gross_amount(net, CARD)
        recovered = gross - calc.extract_fee(gross, CARD)
        assert abs(recovered - net) <= Decimal("0.01")

    @pytest.mark.parametrize("net", ["0.50", "17.80", "350", "900", "1234.56"])
    def test_pix_round_trip_within_a_cent(self, calc, net):
        rate = Decimal("5.824")
        net_local = Decimal(net) * rate
        gross = calc.gross_amount(Decimal(net), PIX, rate)
        recovered = gross - calc.extract_fee(gross, PIX)
        assert abs(recovered - net_local) <= Decimal("0.01")

    def test_card_fee_value(self, calc):
        # 1040.89 * 0.039 + 0.30 = 40.8947
        assert calc.extract_fee(Decimal("1040.89"), CARD) == Decimal("40.89")


class TestBreakdown:
    def test_card_breakdown(self, calc):
        b = calc.breakdown(Decimal("1000"), CARD, Decimal("5.6"))
        assert b.currency == "usd"
        assert b.exchange_rate == Decimal("1")
        assert b.gross_amount == Decimal("1040.89")
        assert b.gross_amount_minor_units == 104089
        assert b.processor_fee == Decimal("40.89")
        assert b.total_with_iof is None

    def test_pix_breakdown_includes_iof(self, calc):
        b = calc.breakdown(Decimal("900"), PIX, Decimal("5.6"))
        assert b.currency == "brl"
        assert b.net_amount_local == Decimal("5040.00")
        assert b.gross_amount == Decimal("5131.86")
        # 5131.86 * 1.035
        assert b.total_with_iof == Decimal("5311.48")


class TestMoneyHelpers:
    def test_round_half_up(self):
        assert round_money(Decimal("0.125")) == Decimal("0.13")
        assert round_money(Decimal("0.124")) == Decimal("0.12")

    def test_minor_units(self):
        assert to_minor_units(Decimal("1040.894")) == 104089
        assert from_minor_units(104089) == Decimal("1040.89")


class TestFeeParametersFromSettings:
    def test_reads_rates_from_settings(self):
        settings = PaymentsSettings(card_percent_fee=Decimal("0.05"), min_charge_usd=Decimal("1"))
        params = FeeParameters.from_settings(settings)
        assert params.card_percent_fee == Decimal("0.05")
        assert params.min_charge_usd == Decimal("1")
        assert params.pix_total_percent_fee == Decimal("0.0179")


class TestCheckoutIntent:
    def test_gross_is_derived_from_net(self):
        intent = CheckoutIntent(user_id="u1", fee_type=FeeType.SELECTION_PROCESS, rail=CARD, net_amount=Decimal("1000"))
        assert intent.gross_amount_minor_units == 104089
        assert intent.gross_amount == Decimal("1040.89")
        assert intent.currency == "usd"

    def test_card_forces_unit_rate(self):
        intent = CheckoutIntent(
            user_id="u1",
            fee_type=FeeType.I20_CONTROL_FEE,
            rail=CARD,
            net_amount=Decimal("900"),
            exchange_rate=Decimal("5.6"),
        )
        assert intent.exchange_rate == Decimal("1")

    def test_pix_intent(self):
        intent = CheckoutIntent(
            user_id="u1",
            fee_type=FeeType.I20_CONTROL_FEE,
            rail=PIX,
            net_amount=Decimal("900"),
            exchange_rate=Decimal("5.6"),
        )
        assert intent.gross_amount_minor_units == 513186
        assert intent.currency == "brl"

    def test_below_minimum_rejected(self):
        with pytest.raises(ValueError):
            CheckoutIntent(user_id="u1", fee_type=FeeType.SELECTION_PROCESS, rail=CARD, net_amount=Decimal("0.10"))
