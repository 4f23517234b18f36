"""Meter size normalization and the fixed maintenance service charge."""
from __future__ import annotations

import re
from decimal import Decimal
from typing import Dict

DEFAULT_METER_SIZE = '1/2"'

_QUOTES = re.compile(r'["“”]')

# Fixed monthly maintenance service charge by meter size (inch or mm label)
MAINTENANCE_CHARGES: Dict[str, Decimal] = {
    "1/2": Decimal("1.50"),
    "15mm": Decimal("1.50"),
    "3/4": Decimal("2.00"),
    "20mm": Decimal("2.00"),
    "1": Decimal("3.00"),
    "25mm": Decimal("3.00"),
    "1 1/4": Decimal("4.00"),
    "40mm": Decimal("4.00"),
    "1 1/2": Decimal("4.00"),
    "32mm": Decimal("4.00"),
    "2": Decimal("6.00"),
    "50mm": Decimal("6.00"),
    "3": Decimal("10.00"),
    "75mm": Decimal("10.00"),
    "4": Decimal("20.00"),
    "100mm": Decimal("20.00"),
    "6": Decimal("35.00"),
    "150mm": Decimal("35.00"),
    "8": Decimal("50.00"),
    "200mm": Decimal("50.00"),
}

FALLBACK_MAINTENANCE_CHARGE = MAINTENANCE_CHARGES["1/2"]


def normalize_meter_size(meter_size: object) -> str:
    """Strip straight and curly double quotes and surrounding whitespace.

    ``None`` is read as the default half-inch meter and comes back as ``"1/2"``.
    """
    if meter_size is None:
        meter_size = DEFAULT_METER_SIZE
    return _QUOTES.sub("", str(meter_size)).strip()


def maintenance_charge(meter_size: object) -> Decimal:
    return MAINTENANCE_CHARGES.get(normalize_meter_size(meter_size), FALLBACK_MAINTENANCE_CHARGE)
