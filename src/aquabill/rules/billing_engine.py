# src/aquabill/rules/billing_engine.py
"""Water bill charge calculation.

``calculate_bill_details`` turns a billing period's consumption into the
full charge breakdown printed on a bill:

  basic charge (tariff schedule for the service class)
  + FCDA                    = water charge
  + environmental charge    (on the water charge)
  + sewerage charge         (on the water charge, commercial-like classes only)
  + maintenance service     (fixed, by meter size)
                            = subtotal / vatable sales
  + government taxes        (on the subtotal)
  + VAT                     (on the subtotal, not on subtotal + government taxes)
                            = total calculated charges

All arithmetic runs at full Decimal precision and every exposed amount is
rounded half-up to the cent independently at the end, so the components
need not add up exactly to the rounded totals.

The function is total: unknown service types fall back to the default
schedule, unknown meter sizes to the smallest meter charge, missing
settings to the compiled defaults, and unparseable consumption to zero.
"""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, fields
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Mapping, Optional, Union

from .meter_size import DEFAULT_METER_SIZE, maintenance_charge, normalize_meter_size
from .service_type import is_sewerage_applicable, service_type_value
from .tariff_schedule import schedule_for
from .tariff_settings import TariffSettings

logger = logging.getLogger(__name__)

__all__ = ["ChargeBreakdown", "calculate_bill_details", "coerce_consumption"]

_LEADING_NUMBER = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")

_ZERO = Decimal("0")


# Exact half-cent ties round up (13.75 m³ Residential basic charge is 284.82).
# A binary-float toFixed can land a cent lower on such ties; totals agree.
def _money(x: Decimal | int | float | str) -> Decimal:
    if not isinstance(x, Decimal):
        x = Decimal(str(x))
    return x.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def coerce_consumption(value: Any) -> Decimal:
    """Lenient numeric parse; anything without a usable number becomes 0.

    Strings are read up to the first non-numeric character, so ``"12.5 cu.m"``
    gives ``12.5``.
    """
    if value is None or isinstance(value, bool):
        return _ZERO
    if isinstance(value, Decimal):
        return value if value.is_finite() else _ZERO
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return _ZERO
        return Decimal(str(value))
    match = _LEADING_NUMBER.match(str(value).strip())
    if not match:
        return _ZERO
    try:
        parsed = Decimal(match.group(0))
    except InvalidOperation:  # pragma: no cover - regex only admits valid literals
        return _ZERO
    return parsed if parsed.is_finite() else _ZERO


@dataclass(frozen=True)
class ChargeBreakdown:
    consumption: Decimal
    service_type: str
    meter_size: str
    basic_charge: Decimal
    fcda: Decimal
    water_charge: Decimal
    environmental_charge: Decimal
    sewerage_charge: Decimal
    maintenance_service_charge: Decimal
    sub_total_before_taxes: Decimal
    government_taxes: Decimal
    vat: Decimal
    total_calculated_charges: Decimal

    @property
    def vatable_sales(self) -> Decimal:
        return self.sub_total_before_taxes

    def to_dict(self, *, camel: bool = False) -> Dict[str, Union[Decimal, str]]:
        """Plain dict of the breakdown, including ``vatable_sales``.

        With ``camel=True`` the keys follow the stored bill document
        (``basicCharge``, ``vatableSales`` ...).
        """
        out: Dict[str, Union[Decimal, str]] = {f.name: getattr(self, f.name) for f in fields(self)}
        out["vatable_sales"] = self.vatable_sales
        if camel:
            return {_camel(k): v for k, v in out.items()}
        return out


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def calculate_bill_details(
    consumption: Any,
    service_type: Any,
    meter_size: Any = DEFAULT_METER_SIZE,
    settings: Optional[Union[TariffSettings, Mapping[str, Any]]] = None,
) -> ChargeBreakdown:
    """Compute the charge breakdown for one billing period."""
    cons = coerce_consumption(consumption)
    service = service_type_value(service_type)
    size = normalize_meter_size(meter_size)
    merged = settings if isinstance(settings, TariffSettings) else TariffSettings.from_mapping(settings)

    schedule = schedule_for(service)
    basic_charge = schedule.basic_charge(cons)

    fcda = basic_charge * merged.fcda_rate
    water_charge = basic_charge + fcda
    environmental_charge = water_charge * merged.environmental_charge_rate
    if is_sewerage_applicable(service):
        sewerage_charge = water_charge * merged.sewerage_charge_rate
    else:
        sewerage_charge = _ZERO
    maintenance = maintenance_charge(size)

    vatable_sales = water_charge + environmental_charge + sewerage_charge + maintenance
    government_taxes = vatable_sales * merged.government_tax_rate
    vat = vatable_sales * merged.vat_rate
    total = vatable_sales + government_taxes + vat

    logger.debug(
        "bill calc service=%s schedule=%s consumption=%s meter=%s total=%s",
        service, schedule.name, cons, size, total,
    )

    return ChargeBreakdown(
        consumption=cons,
        service_type=service,
        meter_size=size,
        basic_charge=_money(basic_charge),
        fcda=_money(fcda),
        water_charge=_money(water_charge),
        environmental_charge=_money(environmental_charge),
        sewerage_charge=_money(sewerage_charge),
        maintenance_service_charge=_money(maintenance),
        sub_total_before_taxes=_money(vatable_sales),
        government_taxes=_money(government_taxes),
        vat=_money(vat),
        total_calculated_charges=_money(total),
    )
