# -*- coding: utf-8 -*-
"""
tests/modules/billing/test_fee_schedule.py

Suite: resolución del monto base por cuota (catálogo, paquete, beca, dependientes).

Autor: ScholarPay
Fecha: 2026-10-18
"""

import json
from decimal import Decimal

import pytest

from scholarpay.modules.billing.enums import FeeType, PricingMode
from scholarpay.modules.billing.fee_schedule import (
    PackageFees,
    canonical_amount,
    get_pricing_catalogs,
    resolve_base_amount,
)
from scholarpay.shared.config.settings_payments import reset_payments_settings

LEGACY = PricingMode.LEGACY
SIMPLIFIED = PricingMode.SIMPLIFIED


@pytest.mark.parametrize(
    "fee_type,mode,expected",
    [
        (FeeType.SELECTION_PROCESS, LEGACY, "400"),
        (FeeType.APPLICATION_FEE, LEGACY, "350"),
        (FeeType.SCHOLARSHIP_FEE, LEGACY, "900"),
        (FeeType.I20_CONTROL_FEE, LEGACY, "900"),
        (FeeType.SELECTION_PROCESS, SIMPLIFIED, "350"),
        (FeeType.SCHOLARSHIP_FEE, SIMPLIFIED, "550"),
    ],
)
def test_canonical_amounts(fee_type, mode, expected):
    assert canonical_amount(fee_type, mode) == Decimal(expected)


class TestResolveBaseAmount:
    def test_platform_default(self):
        base = resolve_base_amount(FeeType.I20_CONTROL_FEE, pricing_mode=LEGACY)
        assert base.amount == Decimal("900")
        assert base.source == "platform"

    def test_legacy_dependents_surcharge_on_selection_process(self):
        base = resolve_base_amount(FeeType.SELECTION_PROCESS, pricing_mode=LEGACY, dependents=2)
        assert base.amount == Decimal("700")

    def test_legacy_dependents_surcharge_on_application_fee(self):
        base = resolve_base_amount(FeeType.APPLICATION_FEE, pricing_mode=LEGACY, dependents=1)
        assert base.amount == Decimal("450")

    def test_simplified_has_no_surcharge(self):
        base = resolve_base_amount(FeeType.SELECTION_PROCESS, pricing_mode=SIMPLIFIED, dependents=3)
        assert base.amount == Decimal("350")

    def test_negative_dependents_ignored(self):
        base = resolve_base_amount(FeeType.SELECTION_PROCESS, pricing_mode=LEGACY, dependents=-4)
        assert base.amount == Decimal("400")

    def test_package_overrides_platform_amount(self):
        package = PackageFees(selection_process_fee=Decimal("999"), package_name="Premium")
        base = resolve_base_amount(FeeType.SELECTION_PROCESS, pricing_mode=LEGACY, dependents=2, package=package)
        # Sin recargo por dependientes sobre un monto de paquete
        assert base.amount == Decimal("999")
        assert base.source == "package"
        assert base.package_name == "Premium"

    def test_package_without_value_falls_back(self):
        package = PackageFees(scholarship_fee=Decimal("0"))
        base = resolve_base_amount(FeeType.SCHOLARSHIP_FEE, pricing_mode=LEGACY, package=package)
        assert base.amount == Decimal("900")
        assert base.source == "platform"

    def test_package_never_applies_to_application_fee(self):
        package = PackageFees(selection_process_fee=Decimal("1"), scholarship_fee=Decimal("1"))
        base = resolve_base_amount(FeeType.APPLICATION_FEE, pricing_mode=LEGACY, package=package)
        assert base.amount == Decimal("350")

    def test_scholarship_application_fee(self):
        base = resolve_base_amount(
            FeeType.APPLICATION_FEE,
            pricing_mode=LEGACY,
            dependents=1,
            scholarship_application_fee=Decimal("250"),
        )
        assert base.amount == Decimal("350")
        assert base.source == "scholarship"


class TestFeeScheduleOverride:
    def test_json_override_replaces_one_mode(self, monkeypatch):
        override = [
            {
                "mode": "simplified",
                "selection_process": "299",
                "application_fee": "350",
                "scholarship_fee": "550",
                "i20_control_fee": "900",
            }
        ]
        monkeypatch.setenv("FEE_SCHEDULE_JSON", json.dumps(override))
        reset_payments_settings()

        catalogs = get_pricing_catalogs()
        assert catalogs[SIMPLIFIED].selection_process == Decimal("299")
        assert catalogs[LEGACY].selection_process == Decimal("400")

    def test_invalid_json_uses_defaults(self, monkeypatch):
        monkeypatch.setenv("FEE_SCHEDULE_JSON", "{not json")
        reset_payments_settings()
        assert canonical_amount(FeeType.SELECTION_PROCESS) == Decimal("400")

    def test_invalid_entry_skipped(self, monkeypatch):
        monkeypatch.setenv("FEE_SCHEDULE_JSON", json.dumps([{"mode": "legacy", "selection_process": "-5"}]))
        reset_payments_settings()
        assert canonical_amount(FeeType.SELECTION_PROCESS, LEGACY) == Decimal("400")
