from decimal import Decimal

import pytest

from aquabill.rules.billing_engine import calculate_bill_details, coerce_consumption
from aquabill.rules.service_type import ServiceType
from aquabill.rules.tariff_settings import TariffSettings

MONEY_FIELDS = (
    "basic_charge",
    "fcda",
    "water_charge",
    "environmental_charge",
    "sewerage_charge",
    "maintenance_service_charge",
    "sub_total_before_taxes",
    "government_taxes",
    "vat",
    "total_calculated_charges",
)

EXPLICIT_DEFAULTS = {
    "fcdaPercentage": 1.29,
    "environmentalChargePercentage": 25,
    "sewerageChargePercentageCommercial": 32.85,
    "governmentTaxPercentage": 2,
    "vatPercentage": 12,
}


def test_residential_ten_cubic_meters():
    charges = calculate_bill_details(10, "Residential", '1/2"', {})

    assert charges.basic_charge == Decimal("195.49")
    assert charges.fcda == Decimal("2.52")
    assert charges.water_charge == Decimal("198.01")
    assert charges.environmental_charge == Decimal("49.50")
    assert charges.sewerage_charge == Decimal("0.00")
    assert charges.maintenance_service_charge == Decimal("1.50")
    assert charges.sub_total_before_taxes == Decimal("249.01")
    assert charges.vatable_sales == charges.sub_total_before_taxes
    assert charges.government_taxes == Decimal("4.98")
    assert charges.vat == Decimal("29.88")
    assert charges.total_calculated_charges == Decimal("283.88")
    assert charges.meter_size == "1/2"


def test_industrial_zero_consumption_only_pays_maintenance():
    charges = calculate_bill_details(0, "Industrial", '2"', {})

    assert charges.basic_charge == Decimal("0.00")
    assert charges.sewerage_charge == Decimal("0.00")
    assert charges.maintenance_service_charge == Decimal("6.00")
    assert charges.sub_total_before_taxes == Decimal("6.00")
    assert charges.government_taxes == Decimal("0.12")
    assert charges.vat == Decimal("0.72")
    assert charges.total_calculated_charges == Decimal("6.84")


def test_residential_second_tier():
    charges = calculate_bill_details(15, "Residential", '1/2"', {})

    assert charges.basic_charge == Decimal("314.59")
    assert charges.fcda == Decimal("4.06")
    assert charges.water_charge == Decimal("318.65")
    assert charges.total_calculated_charges == Decimal("455.78")


def test_commercial_fixed_tier_with_sewerage():
    charges = calculate_bill_details(10, "Commercial", '1/2"', {})

    assert charges.basic_charge == Decimal("512.30")
    assert charges.fcda == Decimal("6.61")
    assert charges.water_charge == Decimal("518.91")
    assert charges.environmental_charge == Decimal("129.73")
    assert charges.sewerage_charge == Decimal("170.46")
    assert charges.sub_total_before_taxes == Decimal("820.60")
    assert charges.government_taxes == Decimal("16.41")
    assert charges.vat == Decimal("98.47")
    assert charges.total_calculated_charges == Decimal("935.48")


def test_vat_is_charged_on_pre_tax_subtotal():
    charges = calculate_bill_details(15, "Residential", '1/2"')
    # 399.81026375 * 12%; on subtotal + government taxes it would be 48.94
    assert charges.vat == Decimal("47.98")


@pytest.mark.parametrize("meter_size", ['1/2"', "1/2”", "1/2", " 1/2 ", "“1/2”", "15mm"])
def test_meter_size_quote_normalization(meter_size):
    charges = calculate_bill_details(10, "Residential", meter_size, {})
    assert charges.maintenance_service_charge == Decimal("1.50")


@pytest.mark.parametrize(
    "service_type, expected",
    [
        ("Residential", Decimal("195.49")),
        ("Residential Low-Income", Decimal("70.07")),
        ("Semi-Business", Decimal("195.49")),
        ("Commercial", Decimal("512.30")),
        ("Admin", Decimal("512.30")),
        ("Industrial", Decimal("0.00")),
        ("Meter Reading Personnel", Decimal("0.00")),
        ("Something Else", Decimal("195.49")),
    ],
)
def test_zero_consumption_charges_fixed_component(service_type, expected):
    assert calculate_bill_details(0, service_type).basic_charge == expected


@pytest.mark.parametrize("service_type", ["Residential", "Residential Low-Income", "Semi-Business"])
def test_no_sewerage_for_residential_classes(service_type):
    assert calculate_bill_details(55, service_type).sewerage_charge == Decimal("0.00")


@pytest.mark.parametrize(
    "service_type",
    ["Commercial", "Industrial", "Admin", "Meter Reading Personnel", ServiceType.INDUSTRIAL],
)
def test_sewerage_for_business_classes(service_type):
    assert calculate_bill_details(3, service_type).sewerage_charge > 0


@pytest.mark.parametrize("service_type", ["Residential", "Semi-Business", "Commercial", "Industrial", "Unknown"])
@pytest.mark.parametrize("consumption", [0, 7.3, 10, 33.33, 101.7, 250])
def test_every_amount_is_whole_cents(service_type, consumption):
    charges = calculate_bill_details(consumption, service_type, "3/4")
    for name in MONEY_FIELDS:
        value = getattr(charges, name)
        assert value == value.quantize(Decimal("0.01"))
        assert value.as_tuple().exponent == -2


def test_empty_settings_match_explicit_defaults():
    for service_type in ("Residential", "Commercial", "Industrial"):
        assert calculate_bill_details(42, service_type, "1", {}) == calculate_bill_details(
            42, service_type, "1", EXPLICIT_DEFAULTS
        )
    assert calculate_bill_details(42, "Commercial", "1", None) == calculate_bill_details(
        42, "Commercial", "1", TariffSettings()
    )


def test_partial_override_only_touches_vat():
    base = calculate_bill_details(10, "Residential", '1/2"', {})
    bumped = calculate_bill_details(10, "Residential", '1/2"', {"vatPercentage": 15})

    assert bumped.vat == Decimal("37.35")
    assert bumped.total_calculated_charges != base.total_calculated_charges
    for name in (
        "basic_charge",
        "fcda",
        "water_charge",
        "environmental_charge",
        "sewerage_charge",
        "sub_total_before_taxes",
        "government_taxes",
    ):
        assert getattr(bumped, name) == getattr(base, name)


def test_settings_accept_snake_case_keys():
    camel = calculate_bill_details(10, "Commercial", "2", {"sewerageChargePercentageCommercial": 40})
    snake = calculate_bill_details(10, "Commercial", "2", {"sewerage_charge_percentage_commercial": "40"})
    assert camel == snake


def test_deterministic():
    first = calculate_bill_details("27.5", "Semi-Business", '1 1/2"', {"fcdaPercentage": 2})
    second = calculate_bill_details("27.5", "Semi-Business", '1 1/2"', {"fcdaPercentage": 2})
    assert first == second


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, Decimal("0")),
        ("abc", Decimal("0")),
        ("", Decimal("0")),
        ("15", Decimal("15")),
        ("12.5 cu.m", Decimal("12.5")),
        (float("nan"), Decimal("0")),
        (float("inf"), Decimal("0")),
        (True, Decimal("0")),
        (7, Decimal("7")),
        (Decimal("3.25"), Decimal("3.25")),
    ],
)
def test_coerce_consumption(value, expected):
    assert coerce_consumption(value) == expected


def test_non_numeric_consumption_bills_as_zero():
    assert calculate_bill_details("n/a", "Residential") == calculate_bill_details(0, "Residential")


def test_to_dict_camel_case_keys():
    payload = calculate_bill_details(10, "Residential", '1/2"').to_dict(camel=True)
    assert payload["basicCharge"] == Decimal("195.49")
    assert payload["vatableSales"] == payload["subTotalBeforeTaxes"]
    assert payload["maintenanceServiceCharge"] == Decimal("1.50")
    assert payload["serviceType"] == "Residential"


def test_half_cent_tie_rounds_up():
    # 195.49 + 3.75 * 23.82 = 284.815
    assert calculate_bill_details("13.75", "Residential").basic_charge == Decimal("284.82")
