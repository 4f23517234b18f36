"""Basic-charge tariff schedules for each service class.

Every schedule is progressive: a fixed charge covers consumption up to
``fixed_limit`` cubic meters, and each band above it charges its own
marginal rate only for the volume that falls inside the band. Charges of
completed lower bands are always carried in full.

The rates are the regulated per-cubic-meter steps of the water tariff and
change far less often than the percentage surcharges kept in system
settings, so they are compiled in here rather than stored.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

__all__ = [
    "TariffBand",
    "TariffSchedule",
    "RESIDENTIAL",
    "RESIDENTIAL_LOW_INCOME",
    "SEMI_BUSINESS",
    "COMMERCIAL",
    "INDUSTRIAL",
    "DEFAULT",
    "SCHEDULES",
    "schedule_for",
]


@dataclass(frozen=True)
class TariffBand:
    """One marginal-rate band; ``upper`` is cumulative m³, ``None`` means unbounded."""

    upper: Optional[Decimal]
    rate: Decimal


@dataclass(frozen=True)
class TariffSchedule:
    name: str
    fixed_charge: Decimal
    fixed_limit: Decimal
    bands: Tuple[TariffBand, ...]

    def boundaries(self) -> List[Decimal]:
        """Cumulative consumption values where the marginal rate changes."""
        points = [self.fixed_limit] if self.fixed_limit > 0 else []
        points.extend(b.upper for b in self.bands if b.upper is not None)
        return points

    def basic_charge(self, consumption: Decimal) -> Decimal:
        """Full-precision charge for ``consumption`` cubic meters (not rounded)."""
        total = self.fixed_charge
        lower = self.fixed_limit
        for band in self.bands:
            if consumption <= lower:
                break
            top = consumption if band.upper is None else min(consumption, band.upper)
            total += (top - lower) * band.rate
            if band.upper is None:
                break
            lower = band.upper
        return total

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "fixed_charge": str(self.fixed_charge),
            "fixed_limit": str(self.fixed_limit),
            "bands": [
                {
                    "upper": None if b.upper is None else str(b.upper),
                    "rate": str(b.rate),
                }
                for b in self.bands
            ],
        }


def _schedule(
    name: str,
    fixed_charge: str,
    fixed_limit: str,
    bands: List[Tuple[Optional[str], str]],
) -> TariffSchedule:
    return TariffSchedule(
        name=name,
        fixed_charge=Decimal(fixed_charge),
        fixed_limit=Decimal(fixed_limit),
        bands=tuple(
            TariffBand(upper=None if upper is None else Decimal(upper), rate=Decimal(rate))
            for upper, rate in bands
        ),
    )


RESIDENTIAL_LOW_INCOME = _schedule(
    "Residential Low-Income",
    "70.07",
    "10",
    [
        ("20", "14.29"),
        ("30", "23.82"),
        ("40", "45.17"),
        (None, "59.54"),
    ],
)

RESIDENTIAL = _schedule(
    "Residential",
    "195.49",
    "10",
    [
        ("20", "23.82"),
        ("30", "45.17"),
        ("50", "59.54"),
        ("70", "69.52"),
        ("90", "72.89"),
        ("140", "76.14"),
        ("200", "79.42"),
        (None, "82.67"),
    ],
)

# Semi-Business bands are defined on the excess over the first 10 m³:
# 10/30/50/70/120/170 of excess, i.e. 20/40/60/80/130/180 cumulative.
SEMI_BUSINESS = _schedule(
    "Semi-Business",
    "195.49",
    "10",
    [
        ("20", "39.90"),
        ("40", "49.22"),
        ("60", "62.55"),
        ("80", "72.88"),
        ("130", "76.14"),
        ("180", "79.42"),
        (None, "82.67"),
    ],
)

# Business Group I (Commercial, Admin)
COMMERCIAL = _schedule(
    "Commercial",
    "512.30",
    "10",
    [
        ("20", "53.61"),
        ("40", "58.98"),
        ("60", "64.33"),
        ("80", "69.69"),
        ("100", "72.88"),
        ("150", "76.14"),
        ("200", "79.42"),
        (None, "82.67"),
    ],
)

# Business Group II (Industrial, Meter Reading Personnel)
INDUSTRIAL = _schedule("Industrial", "0", "0", [(None, "72.68")])

# Fallback for unrecognized service types. Only the first two Residential
# tiers; usage above 20 m³ stays at 23.82.
DEFAULT = _schedule("Default", "195.49", "10", [(None, "23.82")])

SCHEDULES: Dict[str, TariffSchedule] = {
    "Residential Low-Income": RESIDENTIAL_LOW_INCOME,
    "Residential": RESIDENTIAL,
    "Semi-Business": SEMI_BUSINESS,
    "Commercial": COMMERCIAL,
    "Admin": COMMERCIAL,
    "Industrial": INDUSTRIAL,
    "Meter Reading Personnel": INDUSTRIAL,
}


def schedule_for(service_type: object) -> TariffSchedule:
    """Return the schedule for a service type; anything unknown gets ``DEFAULT``."""
    key = getattr(service_type, "value", service_type)
    return SCHEDULES.get(key if isinstance(key, str) else "", DEFAULT)
