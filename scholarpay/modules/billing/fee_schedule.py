# -*- coding: utf-8 -*-
"""
scholarpay/modules/billing/fee_schedule.py

Catálogo de cuotas de la plataforma (source of truth) y resolución del monto
base por cuota.

Reglas de monto base:
- Paquete asignado al usuario: reemplaza proceso de selección, beca e I-20.
- Application fee: monto configurado en la beca, o el default de la plataforma.
- Modo legacy: recargo por dependiente en proceso de selección ($150) y en
  application fee ($100). El modo simplified no tiene recargos.
- El recargo de proceso de selección no se suma sobre un monto de paquete.

El catálogo completo puede reemplazarse con FEE_SCHEDULE_JSON (lista de
objetos PricingCatalog).

Autor: ScholarPay
Fecha: 2026-10-18
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError

from scholarpay.modules.billing.enums import FeeType, PricingMode
from scholarpay.shared.config.settings_payments import get_payments_settings

logger = logging.getLogger(__name__)


class PricingCatalog(BaseModel):
    """Montos por defecto (USD) de un modo de precios."""
    mode: PricingMode
    selection_process: Decimal = Field(gt=0)
    application_fee: Decimal = Field(gt=0)
    scholarship_fee: Decimal = Field(gt=0)
    i20_control_fee: Decimal = Field(gt=0)
    selection_process_per_dependent: Decimal = Field(default=Decimal("0"), ge=0)
    application_fee_per_dependent: Decimal = Field(default=Decimal("0"), ge=0)

    def amount_for(self, fee_type: FeeType) -> Decimal:
        return getattr(self, fee_type.value)


class PackageFees(BaseModel):
    """Montos del paquete asignado a un usuario (cualquier campo puede faltar)."""
    selection_process_fee: Optional[Decimal] = None
    scholarship_fee: Optional[Decimal] = None
    i20_control_fee: Optional[Decimal] = None
    package_name: Optional[str] = None

    def amount_for(self, fee_type: FeeType) -> Optional[Decimal]:
        value = {
            FeeType.SELECTION_PROCESS: self.selection_process_fee,
            FeeType.SCHOLARSHIP_FEE: self.scholarship_fee,
            FeeType.I20_CONTROL_FEE: self.i20_control_fee,
        }.get(fee_type)
        if value is not None and value > 0:
            return value
        return None


DEFAULT_CATALOGS: List[dict] = [
    {
        "mode": "legacy",
        "selection_process": "400",
        "application_fee": "350",
        "scholarship_fee": "900",
        "i20_control_fee": "900",
        "selection_process_per_dependent": "150",
        "application_fee_per_dependent": "100",
    },
    {
        "mode": "simplified",
        "selection_process": "350",
        "application_fee": "350",
        "scholarship_fee": "550",
        "i20_control_fee": "900",
    },
]


@dataclass(frozen=True)
class BaseAmount:
    """Monto base resuelto para una cuota, con su procedencia."""
    amount: Decimal
    source: Literal["platform", "package", "scholarship"]
    pricing_mode: PricingMode
    package_name: Optional[str] = None


def _load_catalog_data() -> List[dict]:
    raw = get_payments_settings().fee_schedule_json
    if not raw:
        return DEFAULT_CATALOGS
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("fee_schedule_json_invalid error=%s using=defaults", e)
        return DEFAULT_CATALOGS
    if not isinstance(data, list):
        logger.warning("fee_schedule_json_not_a_list using=defaults")
        return DEFAULT_CATALOGS
    return data


def get_pricing_catalogs() -> dict[PricingMode, PricingCatalog]:
    """
    Catálogos indexados por modo. Los modos ausentes en el override JSON se
    completan con los defaults.
    """
    catalogs = {
        PricingMode(item["mode"]): PricingCatalog(**item) for item in DEFAULT_CATALOGS
    }
    data = _load_catalog_data()
    if data is DEFAULT_CATALOGS:
        return catalogs
    for item in data:
        try:
            catalog = PricingCatalog(**item)
        except (ValidationError, TypeError) as e:
            logger.warning("fee_schedule_entry_invalid entry=%r error=%s", item, e)
            continue
        catalogs[catalog.mode] = catalog
    return catalogs


def get_catalog(mode: PricingMode) -> PricingCatalog:
    return get_pricing_catalogs()[mode]


def canonical_amount(fee_type: FeeType, mode: PricingMode = PricingMode.LEGACY) -> Decimal:
    """Monto por defecto de la plataforma, sin recargos ni overrides."""
    return get_catalog(mode).amount_for(fee_type)


def resolve_base_amount(
    fee_type: FeeType,
    *,
    pricing_mode: PricingMode,
    dependents: int = 0,
    package: Optional[PackageFees] = None,
    scholarship_application_fee: Optional[Decimal] = None,
) -> BaseAmount:
    """
    Resuelve el monto base (USD) de una cuota para un usuario.

    Args:
        fee_type: Cuota a cobrar
        pricing_mode: Modo de precios del usuario (resuelto por request)
        dependents: Número de dependientes declarados
        package: Montos del paquete asignado, si existe
        scholarship_application_fee: Application fee configurado en la beca

    Returns:
        BaseAmount con monto y procedencia
    """
    catalog = get_catalog(pricing_mode)
    dependents = max(int(dependents or 0), 0)

    if fee_type is FeeType.APPLICATION_FEE:
        if scholarship_application_fee is not None and scholarship_application_fee > 0:
            amount, source = Decimal(scholarship_application_fee), "scholarship"
        else:
            amount, source = catalog.application_fee, "platform"
        amount += catalog.application_fee_per_dependent * dependents
        return BaseAmount(amount=amount, source=source, pricing_mode=pricing_mode)

    package_amount = package.amount_for(fee_type) if package else None
    if package_amount is not None:
        return BaseAmount(
            amount=package_amount,
            source="package",
            pricing_mode=pricing_mode,
            package_name=package.package_name if package else None,
        )

    amount = catalog.amount_for(fee_type)
    if fee_type is FeeType.SELECTION_PROCESS:
        amount += catalog.selection_process_per_dependent * dependents
    return BaseAmount(amount=amount, source="platform", pricing_mode=pricing_mode)


__all__ = [
    "PricingCatalog",
    "PackageFees",
    "BaseAmount",
    "DEFAULT_CATALOGS",
    "get_pricing_catalogs",
    "get_catalog",
    "canonical_amount",
    "resolve_base_amount",
]
