# src/aquabill/rules/bill_generation.py
from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .billing_engine import ChargeBreakdown, _money, calculate_bill_details
from .meter_size import DEFAULT_METER_SIZE
from .service_type import determine_service_type_and_role, service_type_value
from .tariff_settings import TariffSettings
from ..models import Account, Bill, MeterReading, SystemSetting
from ..settings import settings as app_settings

logger = logging.getLogger(__name__)

BILL_STATUS_UNPAID = "Unpaid"
BILL_STATUS_PAID = "Paid"

_SETTINGS_ROW_ID = 1


# -------------------------------
# Errors
# -------------------------------

class BillingError(Exception):
    """Base class for bill-generation workflow errors."""


class AccountNotFoundError(BillingError):
    def __init__(self, account_number: str):
        super().__init__(f"account {account_number} not found")
        self.account_number = account_number


class DuplicateAccountError(BillingError):
    def __init__(self, account_number: str):
        super().__init__(f"account {account_number} already exists")
        self.account_number = account_number


class InsufficientReadingsError(BillingError):
    def __init__(self, account_number: str, count: int):
        super().__init__(f"account {account_number} needs two meter readings to bill (has {count})")
        self.account_number = account_number
        self.count = count


class NegativeConsumptionError(BillingError):
    def __init__(self, account_number: str, previous: Decimal, latest: Decimal):
        super().__init__(
            f"latest reading {latest} is lower than previous reading {previous} for account {account_number}"
        )
        self.account_number = account_number
        self.previous = previous
        self.latest = latest


class ReadingAlreadyBilledError(BillingError):
    def __init__(self, account_number: str, reading_id: int):
        super().__init__(f"latest reading {reading_id} of account {account_number} is already billed")
        self.account_number = account_number
        self.reading_id = reading_id


class BillNotFoundError(BillingError):
    def __init__(self, bill_id: int):
        super().__init__(f"bill {bill_id} not found")
        self.bill_id = bill_id


@dataclass
class BatchResult:
    account_number: str
    success: bool
    bill_id: Optional[int] = None
    error: Optional[str] = None


# -------------------------------
# Billing service
# -------------------------------

class BillingService:
    """
    Bill generation on top of the pure calculator:
      - loads the administrator settings and the two latest meter readings,
      - refuses negative consumption,
      - persists the breakdown as an immutable Bill row.
    """

    def __init__(self, db: Session, *, due_days: Optional[int] = None):
        self.db = db
        self.due_days = app_settings.bill_due_days if due_days is None else due_days

    # --- settings ---

    def load_settings(self) -> TariffSettings:
        row = self.db.get(SystemSetting, _SETTINGS_ROW_ID)
        if row is None:
            return TariffSettings()
        return TariffSettings.from_mapping(
            {f.name: getattr(row, f.name) for f in fields(TariffSettings)}
        )

    def save_settings(self, updates: Mapping[str, Any]) -> TariffSettings:
        """Merge ``updates`` over the stored settings, validate, and persist."""
        merged = self.load_settings().merged(updates).validate()
        row = self.db.get(SystemSetting, _SETTINGS_ROW_ID)
        if row is None:
            row = SystemSetting(id=_SETTINGS_ROW_ID)
            self.db.add(row)
        for name, value in merged.to_dict().items():
            setattr(row, name, value)
        row.updated_at = datetime.now()
        self.db.commit()
        logger.info("System settings updated: %s", {k: str(v) for k, v in merged.to_dict().items()})
        return merged

    # --- accounts & readings ---

    def get_account(self, account_number: str) -> Account:
        account = self.db.execute(
            select(Account).where(Account.account_number == account_number)
        ).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(account_number)
        return account

    def register_account(
        self,
        account_number: str,
        *,
        name: Optional[str] = None,
        meter_size: str = DEFAULT_METER_SIZE,
        location: Optional[str] = None,
        service_type: Optional[str] = None,
    ) -> Account:
        exists = self.db.execute(
            select(Account.id).where(Account.account_number == account_number)
        ).first()
        if exists:
            raise DuplicateAccountError(account_number)
        derived_type, role = determine_service_type_and_role(account_number)
        account = Account(
            account_number=account_number,
            name=name,
            service_type=service_type_value(service_type or derived_type),
            role=role,
            meter_size=meter_size,
            location=location,
        )
        self.db.add(account)
        self.db.commit()
        self.db.refresh(account)
        return account

    def record_meter_reading(
        self,
        account_number: str,
        reading_value: Decimal | int | float | str,
        reading_date: date,
        *,
        recorded_by: Optional[str] = None,
    ) -> MeterReading:
        account = self.get_account(account_number)
        reading = MeterReading(
            account_id=account.id,
            reading_value=Decimal(str(reading_value)),
            reading_date=reading_date,
            is_billed=False,
            recorded_by=recorded_by,
        )
        self.db.add(reading)
        self.db.commit()
        self.db.refresh(reading)
        return reading

    def _latest_readings(self, account: Account, limit: int = 2) -> List[MeterReading]:
        return list(
            self.db.execute(
                select(MeterReading)
                .where(MeterReading.account_id == account.id)
                .order_by(MeterReading.reading_date.desc(), MeterReading.id.desc())
                .limit(limit)
            )
            .scalars()
            .all()
        )

    def _unpaid_total(self, account: Account) -> Decimal:
        total = self.db.execute(
            select(func.coalesce(func.sum(Bill.total_calculated_charges), 0)).where(
                Bill.account_id == account.id, Bill.status == BILL_STATUS_UNPAID
            )
        ).scalar_one()
        return _money(total)

    # --- bills ---

    def generate_bill(
        self,
        account_number: str,
        *,
        billing_period: Optional[str] = None,
        bill_date: Optional[date] = None,
        senior_citizen_discount: Decimal = Decimal("0.00"),
    ) -> Bill:
        account = self.get_account(account_number)
        readings = self._latest_readings(account)
        if len(readings) < 2:
            raise InsufficientReadingsError(account_number, len(readings))

        latest, previous = readings
        if latest.is_billed:
            raise ReadingAlreadyBilledError(account_number, latest.id)

        consumption = Decimal(latest.reading_value) - Decimal(previous.reading_value)
        if consumption < 0:
            raise NegativeConsumptionError(account_number, previous.reading_value, latest.reading_value)

        charges: ChargeBreakdown = calculate_bill_details(
            consumption, account.service_type, account.meter_size, self.load_settings()
        )

        bill_date = bill_date or date.today()
        bill = Bill(
            account_id=account.id,
            reading_id=latest.id,
            billing_period=billing_period or bill_date.strftime("%B %Y"),
            bill_date=bill_date,
            due_date=bill_date + timedelta(days=self.due_days),
            status=BILL_STATUS_UNPAID,
            previous_reading=previous.reading_value,
            current_reading=latest.reading_value,
            consumption=charges.consumption,
            service_type=charges.service_type,
            meter_size=charges.meter_size,
            basic_charge=charges.basic_charge,
            fcda=charges.fcda,
            water_charge=charges.water_charge,
            environmental_charge=charges.environmental_charge,
            sewerage_charge=charges.sewerage_charge,
            maintenance_service_charge=charges.maintenance_service_charge,
            sub_total_before_taxes=charges.sub_total_before_taxes,
            government_taxes=charges.government_taxes,
            vat=charges.vat,
            total_calculated_charges=charges.total_calculated_charges,
            previous_unpaid_amount=self._unpaid_total(account),
            senior_citizen_discount=_money(senior_citizen_discount),
        )
        latest.is_billed = True
        self.db.add(bill)
        self.db.commit()
        self.db.refresh(bill)

        logger.info(
            "Generated bill %s for %s period=%s consumption=%s total=%s",
            bill.id, account_number, bill.billing_period, charges.consumption, charges.total_calculated_charges,
        )
        return bill

    def billable_accounts(self, location: Optional[str] = None) -> List[Account]:
        """Accounts with at least two readings whose latest reading is unbilled."""
        q = select(Account).order_by(Account.account_number)
        if location:
            q = q.where(Account.location == location)
        eligible: List[Account] = []
        for account in self.db.execute(q).scalars().all():
            readings = self._latest_readings(account)
            if len(readings) == 2 and not readings[0].is_billed:
                eligible.append(account)
        return eligible

    def generate_bills_for_accounts(
        self,
        account_numbers: Iterable[str],
        *,
        bill_date: Optional[date] = None,
    ) -> List[BatchResult]:
        results: List[BatchResult] = []
        for account_number in account_numbers:
            try:
                bill = self.generate_bill(account_number, bill_date=bill_date)
            except BillingError as exc:
                self.db.rollback()
                logger.warning("Batch billing skipped %s: %s", account_number, exc)
                results.append(BatchResult(account_number=account_number, success=False, error=str(exc)))
                continue
            except SQLAlchemyError as exc:
                self.db.rollback()
                logger.exception("Batch billing failed to store a bill for %s", account_number)
                results.append(
                    BatchResult(account_number=account_number, success=False, error=f"database error: {exc}")
                )
                continue
            results.append(BatchResult(account_number=account_number, success=True, bill_id=bill.id))
        generated = sum(1 for r in results if r.success)
        logger.info("Batch billing finished: %d generated, %d skipped", generated, len(results) - generated)
        return results

    def list_bills(self, account_number: str) -> List[Bill]:
        account = self.get_account(account_number)
        return list(
            self.db.execute(
                select(Bill)
                .where(Bill.account_id == account.id)
                .order_by(Bill.bill_date.desc(), Bill.id.desc())
            )
            .scalars()
            .all()
        )

    def get_bill(self, bill_id: int) -> Bill:
        bill = self.db.get(Bill, bill_id)
        if bill is None:
            raise BillNotFoundError(bill_id)
        return bill

    def mark_bill_paid(self, bill_id: int, *, paid_at: Optional[datetime] = None) -> Bill:
        bill = self.get_bill(bill_id)
        bill.status = BILL_STATUS_PAID
        bill.paid_at = paid_at or datetime.now()
        self.db.commit()
        self.db.refresh(bill)
        logger.info("Bill %s marked paid", bill_id)
        return bill

    # --- amounts ---

    def late_payment_penalty(
        self,
        bill: Bill,
        as_of: Optional[date] = None,
        settings: Optional[TariffSettings] = None,
    ) -> Decimal:
        """Penalty on the bill's own charges once an unpaid bill is past due."""
        as_of = as_of or date.today()
        if bill.status != BILL_STATUS_UNPAID or as_of <= bill.due_date:
            return Decimal("0.00")
        rate = (settings or self.load_settings()).late_payment_penalty_rate
        return _money(Decimal(bill.total_calculated_charges) * rate)

    def amount_due(
        self,
        bill: Bill,
        as_of: Optional[date] = None,
        settings: Optional[TariffSettings] = None,
    ) -> Decimal:
        base = (
            Decimal(bill.total_calculated_charges)
            + Decimal(bill.previous_unpaid_amount or 0)
            - Decimal(bill.senior_citizen_discount or 0)
        )
        return _money(base + self.late_payment_penalty(bill, as_of, settings))


def bill_to_dict(bill: Bill) -> Dict[str, Any]:
    """Serialize a Bill row with money as 2-dp strings."""
    money_fields = (
        "consumption", "previous_reading", "current_reading",
        "basic_charge", "fcda", "water_charge", "environmental_charge",
        "sewerage_charge", "maintenance_service_charge", "sub_total_before_taxes",
        "government_taxes", "vat", "total_calculated_charges",
        "previous_unpaid_amount", "senior_citizen_discount",
    )
    payload: Dict[str, Any] = {
        "id": bill.id,
        "billing_period": bill.billing_period,
        "bill_date": bill.bill_date.isoformat(),
        "due_date": bill.due_date.isoformat(),
        "status": bill.status,
        "paid_at": bill.paid_at.isoformat() if bill.paid_at else None,
        "service_type": bill.service_type,
        "meter_size": bill.meter_size,
    }
    for name in money_fields:
        payload[name] = str(_money(getattr(bill, name)))
    payload["vatable_sales"] = payload["sub_total_before_taxes"]
    return payload
