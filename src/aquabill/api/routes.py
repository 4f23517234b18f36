# src/aquabill/api/routes.py
"""
Billing API routes.

Notes:
- Money is returned as 2-dp decimal strings.
- Workflow errors map to 404 (unknown account/bill), 409 (cannot bill) and
  422 (settings out of range); anything unexpected is logged and returned as 500.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..db import SessionLocal
from ..rules.billing_engine import calculate_bill_details
from ..rules.bill_generation import (
    AccountNotFoundError,
    BillingError,
    BillingService,
    BillNotFoundError,
    DuplicateAccountError,
    bill_to_dict,
)
from ..rules.meter_size import DEFAULT_METER_SIZE
from ..rules.tariff_schedule import SCHEDULES, DEFAULT
from ..rules.tariff_settings import SettingsValidationError, TariffSettings

logger = logging.getLogger("aquabill-api")

router = APIRouter()

# ============ Pydantic Models ============

class TariffSettingsIn(BaseModel):
    fcda_percentage: Optional[Decimal] = Field(None, example="1.29")
    environmental_charge_percentage: Optional[Decimal] = Field(None, example="25")
    sewerage_charge_percentage_commercial: Optional[Decimal] = Field(None, example="32.85")
    government_tax_percentage: Optional[Decimal] = Field(None, example="2")
    vat_percentage: Optional[Decimal] = Field(None, example="12")
    late_payment_penalty_percentage: Optional[Decimal] = Field(None, example="2.0")

    def provided(self) -> Dict[str, Decimal]:
        return {k: v for k, v in self.model_dump().items() if v is not None}


class CalculateRequest(BaseModel):
    consumption: Any = Field(..., example=15, description="Cubic meters; unparseable values count as 0")
    service_type: str = Field(..., example="Residential")
    meter_size: str = Field(DEFAULT_METER_SIZE, example='1/2"')
    settings: Optional[TariffSettingsIn] = Field(
        None, description="Overrides merged over the stored system settings"
    )


class AccountIn(BaseModel):
    account_number: str = Field(..., example="RES-00123")
    name: Optional[str] = Field(None, example="Juan Dela Cruz")
    meter_size: str = Field(DEFAULT_METER_SIZE, example='1/2"')
    location: Optional[str] = Field(None, example="Poblacion")
    service_type: Optional[str] = Field(
        None, description="Defaults to the class implied by the account number prefix"
    )


class ReadingIn(BaseModel):
    reading_value: Decimal = Field(..., ge=0, example="1234.50")
    reading_date: date = Field(..., example="2026-10-01")
    recorded_by: Optional[str] = None


class GenerateBillIn(BaseModel):
    billing_period: Optional[str] = Field(None, example="October 2026")
    bill_date: Optional[date] = None
    senior_citizen_discount: Decimal = Field(Decimal("0"), ge=0)


class BatchBillingIn(BaseModel):
    location: Optional[str] = Field(None, description="Bill every eligible account in this service area")
    account_numbers: Optional[List[str]] = Field(None, description="Explicit accounts; overrides location")
    bill_date: Optional[date] = None


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _settings_payload(s: TariffSettings) -> Dict[str, str]:
    return {k: str(v) for k, v in s.to_dict().items()}


# ============ Tariff ============

@router.post("/tariff/calculate", tags=["Tariff"])
def calculate(body: CalculateRequest, db: Session = Depends(get_db)) -> Dict[str, Any]:
    stored = BillingService(db).load_settings()
    merged = stored.merged(body.settings.provided()) if body.settings else stored
    charges = calculate_bill_details(body.consumption, body.service_type, body.meter_size, merged)
    payload = {k: str(v) for k, v in charges.to_dict().items()}
    payload["settings"] = _settings_payload(merged)
    return payload


@router.get("/tariff/schedules", tags=["Tariff"])
def list_schedules() -> Dict[str, Any]:
    return {
        "schedules": {service: schedule.to_dict() for service, schedule in SCHEDULES.items()},
        "default": DEFAULT.to_dict(),
    }


# ============ System settings ============

@router.get("/settings", tags=["Settings"])
def get_settings(db: Session = Depends(get_db)) -> Dict[str, str]:
    return _settings_payload(BillingService(db).load_settings())


@router.put("/settings", tags=["Settings"])
def update_settings(body: TariffSettingsIn, db: Session = Depends(get_db)) -> Dict[str, str]:
    try:
        saved = BillingService(db).save_settings(body.provided())
    except SettingsValidationError as e:
        db.rollback()
        raise HTTPException(status_code=422, detail=str(e))
    return _settings_payload(saved)


# ============ Accounts, readings, bills ============

@router.post("/accounts", status_code=201, tags=["Accounts"])
def create_account(body: AccountIn, db: Session = Depends(get_db)) -> Dict[str, Any]:
    try:
        account = BillingService(db).register_account(
            body.account_number,
            name=body.name,
            meter_size=body.meter_size,
            location=body.location,
            service_type=body.service_type,
        )
    except DuplicateAccountError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {
        "id": account.id,
        "account_number": account.account_number,
        "name": account.name,
        "service_type": account.service_type,
        "role": account.role,
        "meter_size": account.meter_size,
        "location": account.location,
    }


@router.post("/accounts/{account_number}/readings", status_code=201, tags=["Accounts"])
def add_reading(account_number: str, body: ReadingIn, db: Session = Depends(get_db)) -> Dict[str, Any]:
    try:
        reading = BillingService(db).record_meter_reading(
            account_number, body.reading_value, body.reading_date, recorded_by=body.recorded_by
        )
    except AccountNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {
        "id": reading.id,
        "account_number": account_number,
        "reading_value": str(reading.reading_value),
        "reading_date": reading.reading_date.isoformat(),
        "is_billed": reading.is_billed,
    }


@router.post("/accounts/{account_number}/bills", status_code=201, tags=["Bills"])
def generate_bill(
    account_number: str,
    body: Optional[GenerateBillIn] = None,
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    body = body or GenerateBillIn()
    service = BillingService(db)
    try:
        bill = service.generate_bill(
            account_number,
            billing_period=body.billing_period,
            bill_date=body.bill_date,
            senior_citizen_discount=body.senior_citizen_discount,
        )
    except AccountNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except BillingError as e:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(e))
    except Exception:
        db.rollback()
        logger.exception("Bill generation failed for %s", account_number)
        raise HTTPException(status_code=500, detail="bill generation failed")
    payload = bill_to_dict(bill)
    payload["amount_due"] = str(service.amount_due(bill, as_of=bill.bill_date))
    return payload


@router.get("/accounts/{account_number}/bills", tags=["Bills"])
def list_bills(
    account_number: str,
    as_of: Optional[date] = Query(None, description="Date used for late-payment penalties"),
    db: Session = Depends(get_db),
) -> List[Dict[str, Any]]:
    service = BillingService(db)
    try:
        bills = service.list_bills(account_number)
    except AccountNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    tariff = service.load_settings()
    out: List[Dict[str, Any]] = []
    for bill in bills:
        payload = bill_to_dict(bill)
        payload["late_payment_penalty"] = str(service.late_payment_penalty(bill, as_of, tariff))
        payload["amount_due"] = str(service.amount_due(bill, as_of, tariff))
        out.append(payload)
    return out


@router.post("/bills/{bill_id}/pay", tags=["Bills"])
def pay_bill(bill_id: int, db: Session = Depends(get_db)) -> Dict[str, Any]:
    try:
        bill = BillingService(db).mark_bill_paid(bill_id)
    except BillNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return bill_to_dict(bill)


@router.post("/billing/batch", tags=["Bills"])
def batch_billing(body: BatchBillingIn, db: Session = Depends(get_db)) -> Dict[str, Any]:
    service = BillingService(db)
    try:
        if body.account_numbers is not None:
            targets = list(body.account_numbers)
        else:
            targets = [a.account_number for a in service.billable_accounts(body.location)]
        results = service.generate_bills_for_accounts(targets, bill_date=body.bill_date)
    except Exception:
        db.rollback()
        logger.exception("Batch billing failed")
        raise HTTPException(status_code=500, detail="batch billing failed")
    return {
        "requested": len(targets),
        "generated": sum(1 for r in results if r.success),
        "results": [
            {
                "account_number": r.account_number,
                "success": r.success,
                "bill_id": r.bill_id,
                "error": r.error,
            }
            for r in results
        ],
    }
