from decimal import Decimal

import pytest

from aquabill.rules.billing_engine import calculate_bill_details
from aquabill.rules.tariff_settings import (
    DEFAULT_SETTINGS,
    SettingsValidationError,
    TariffSettings,
    merge_settings,
)


def test_defaults():
    s = TariffSettings()
    assert s.fcda_percentage == Decimal("1.29")
    assert s.environmental_charge_percentage == Decimal("25")
    assert s.sewerage_charge_percentage_commercial == Decimal("32.85")
    assert s.government_tax_percentage == Decimal("2")
    assert s.vat_percentage == Decimal("12")
    assert s.late_payment_penalty_percentage == Decimal("2.0")


def test_rates_are_percent_over_hundred():
    s = TariffSettings()
    assert s.fcda_rate == Decimal("0.0129")
    assert s.environmental_charge_rate == Decimal("0.25")
    assert s.sewerage_charge_rate == Decimal("0.3285")
    assert s.government_tax_rate == Decimal("0.02")
    assert s.vat_rate == Decimal("0.12")


def test_merge_is_field_by_field():
    s = merge_settings({"vatPercentage": 15, "fcda_percentage": "1.5"})
    assert s.vat_percentage == Decimal("15")
    assert s.fcda_percentage == Decimal("1.5")
    assert s.environmental_charge_percentage == DEFAULT_SETTINGS.environmental_charge_percentage
    assert s.government_tax_percentage == DEFAULT_SETTINGS.government_tax_percentage


@pytest.mark.parametrize("raw", [None, "", "abc", float("nan"), True])
def test_unusable_values_keep_default(raw):
    assert merge_settings({"vatPercentage": raw}).vat_percentage == Decimal("12")


@pytest.mark.parametrize("zero", [0, 0.0, "0", Decimal("0.0000")])
def test_zero_falls_back_to_default(zero):
    s = merge_settings({"fcdaPercentage": zero, "vat_percentage": zero})
    assert s.fcda_rate == Decimal("0.0129")
    assert s.vat_percentage == Decimal("12")


def test_zero_vat_bills_at_default_rate():
    charges = calculate_bill_details(10, "Residential", '1/2"', {"vatPercentage": 0})
    assert charges.vat == Decimal("29.88")


def test_unknown_keys_are_ignored():
    assert merge_settings({"portalAnnouncement": "hello", "maintenanceMode": True}) == DEFAULT_SETTINGS


def test_merged_on_top_of_existing_settings():
    stored = merge_settings({"vatPercentage": 10})
    updated = stored.merged({"governmentTaxPercentage": 3})
    assert updated.vat_percentage == Decimal("10")
    assert updated.government_tax_percentage == Decimal("3")


def test_validate_rejects_negative():
    with pytest.raises(SettingsValidationError) as exc:
        merge_settings({"vatPercentage": -1}).validate()
    assert exc.value.field_name == "vat_percentage"


def test_validate_rejects_penalty_above_fifty():
    with pytest.raises(SettingsValidationError):
        merge_settings({"latePaymentPenaltyPercentage": 51}).validate()
    assert merge_settings({"latePaymentPenaltyPercentage": 50}).validate().late_payment_penalty_rate == Decimal("0.5")


def test_settings_are_immutable():
    with pytest.raises(AttributeError):
        DEFAULT_SETTINGS.vat_percentage = Decimal("1")  # type: ignore[misc]
