"""Percentage surcharges and taxes applied on top of the basic charge."""
from __future__ import annotations

import math
from dataclasses import asdict, dataclass, fields, replace
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional

__all__ = [
    "TariffSettings",
    "DEFAULT_SETTINGS",
    "SettingsValidationError",
    "merge_settings",
]

_HUNDRED = Decimal("100")

# camelCase keys as stored in the system-settings document
_CAMEL_KEYS: Dict[str, str] = {
    "fcdaPercentage": "fcda_percentage",
    "environmentalChargePercentage": "environmental_charge_percentage",
    "sewerageChargePercentageCommercial": "sewerage_charge_percentage_commercial",
    "governmentTaxPercentage": "government_tax_percentage",
    "vatPercentage": "vat_percentage",
    "latePaymentPenaltyPercentage": "late_payment_penalty_percentage",
}

MAX_PENALTY_PERCENTAGE = Decimal("50")


class SettingsValidationError(ValueError):
    """Raised when administrators try to save out-of-range percentages."""

    def __init__(self, field_name: str, message: str):
        super().__init__(f"{field_name}: {message}")
        self.field_name = field_name


def _to_percentage(value: Any) -> Optional[Decimal]:
    """Coerce a stored value to Decimal, or None when it should fall back to the default.

    Zero counts as unset: a stored 0 bills at the compiled default rate.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not result.is_finite() or result == 0:
        return None
    return result


@dataclass(frozen=True)
class TariffSettings:
    """Fully populated settings record; percentages are whole-number percent."""

    fcda_percentage: Decimal = Decimal("1.29")
    environmental_charge_percentage: Decimal = Decimal("25")
    sewerage_charge_percentage_commercial: Decimal = Decimal("32.85")
    government_tax_percentage: Decimal = Decimal("2")
    vat_percentage: Decimal = Decimal("12")
    late_payment_penalty_percentage: Decimal = Decimal("2.0")

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]] = None) -> "TariffSettings":
        """Merge ``data`` over the defaults, one field at a time.

        Accepts snake_case field names and the camelCase names used by the
        stored settings document. Missing, null, zero or non-numeric values
        keep the default; unknown keys are ignored.
        """
        return DEFAULT_SETTINGS.merged(data)

    def merged(self, data: Optional[Mapping[str, Any]] = None) -> "TariffSettings":
        if not data:
            return self
        if isinstance(data, TariffSettings):
            return data
        updates: Dict[str, Decimal] = {}
        names = {f.name for f in fields(self)}
        for key, raw in data.items():
            name = _CAMEL_KEYS.get(key, key)
            if name not in names:
                continue
            value = _to_percentage(raw)
            if value is not None:
                updates[name] = value
        return replace(self, **updates) if updates else self

    # -- derived decimal rates --

    @property
    def fcda_rate(self) -> Decimal:
        return self.fcda_percentage / _HUNDRED

    @property
    def environmental_charge_rate(self) -> Decimal:
        return self.environmental_charge_percentage / _HUNDRED

    @property
    def sewerage_charge_rate(self) -> Decimal:
        return self.sewerage_charge_percentage_commercial / _HUNDRED

    @property
    def government_tax_rate(self) -> Decimal:
        return self.government_tax_percentage / _HUNDRED

    @property
    def vat_rate(self) -> Decimal:
        return self.vat_percentage / _HUNDRED

    @property
    def late_payment_penalty_rate(self) -> Decimal:
        return self.late_payment_penalty_percentage / _HUNDRED

    def validate(self) -> "TariffSettings":
        """Check ranges before the record is saved; returns ``self``."""
        for f in fields(self):
            if getattr(self, f.name) < 0:
                raise SettingsValidationError(f.name, "must not be negative")
        if self.late_payment_penalty_percentage > MAX_PENALTY_PERCENTAGE:
            raise SettingsValidationError(
                "late_payment_penalty_percentage",
                f"must be between 0 and {MAX_PENALTY_PERCENTAGE}",
            )
        return self

    def to_dict(self) -> Dict[str, Decimal]:
        return asdict(self)


DEFAULT_SETTINGS = TariffSettings()


def merge_settings(data: Optional[Mapping[str, Any]] = None) -> TariffSettings:
    return TariffSettings.from_mapping(data)
