"""Customer service classes and the account-number prefix convention."""
from __future__ import annotations

from enum import Enum
from typing import Optional, Tuple


class ServiceType(str, Enum):
    RESIDENTIAL = "Residential"
    RESIDENTIAL_LOW_INCOME = "Residential Low-Income"
    SEMI_BUSINESS = "Semi-Business"
    COMMERCIAL = "Commercial"
    ADMIN = "Admin"
    INDUSTRIAL = "Industrial"
    METER_READING_PERSONNEL = "Meter Reading Personnel"
    CLERK_OPERATIONS = "Clerk Operations"


# Classes billed the commercial sewerage charge
SEWERAGE_SERVICE_TYPES = frozenset(
    {
        ServiceType.COMMERCIAL.value,
        ServiceType.INDUSTRIAL.value,
        ServiceType.ADMIN.value,
        ServiceType.METER_READING_PERSONNEL.value,
    }
)

# Order matters: RES-LI must be tested before RES.
_PREFIX_RULES: Tuple[Tuple[str, ServiceType, str], ...] = (
    ("ADM", ServiceType.ADMIN, "admin"),
    ("PER", ServiceType.METER_READING_PERSONNEL, "meterReader"),
    ("CLK", ServiceType.CLERK_OPERATIONS, "clerk_cashier"),
    ("RES-LI", ServiceType.RESIDENTIAL_LOW_INCOME, "customer"),
    ("RES", ServiceType.RESIDENTIAL, "customer"),
    ("COM", ServiceType.COMMERCIAL, "customer"),
    ("IND", ServiceType.INDUSTRIAL, "customer"),
)


def service_type_value(service_type: object) -> str:
    """Plain string form of a ServiceType or free-form label."""
    if isinstance(service_type, ServiceType):
        return service_type.value
    return "" if service_type is None else str(service_type)


def is_sewerage_applicable(service_type: object) -> bool:
    return service_type_value(service_type) in SEWERAGE_SERVICE_TYPES


def determine_service_type_and_role(account_number: Optional[str]) -> Tuple[ServiceType, str]:
    """Derive ``(service_type, role)`` from an account number such as ``RES-00123``."""
    if not account_number:
        return ServiceType.RESIDENTIAL, "customer"
    upper = account_number.strip().upper()
    for prefix, service_type, role in _PREFIX_RULES:
        if upper.startswith(prefix):
            return service_type, role
    return ServiceType.RESIDENTIAL, "customer"
