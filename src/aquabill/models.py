from __future__ import annotations
from typing import Optional
import datetime
from decimal import Decimal

from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy import String, Boolean, Numeric, Date, DateTime, Integer, ForeignKey, UniqueConstraint

class Base(DeclarativeBase):
    pass


class Account(Base):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(primary_key=True)
    account_number: Mapped[str] = mapped_column(String(32), unique=True)
    name: Mapped[Optional[str]] = mapped_column(String(200))
    service_type: Mapped[str] = mapped_column(String(48))
    role: Mapped[str] = mapped_column(String(24), default="customer")
    meter_size: Mapped[str] = mapped_column(String(32), default='1/2"')
    location: Mapped[Optional[str]] = mapped_column(String(120))     # service area / barangay

    readings: Mapped[list["MeterReading"]] = relationship(back_populates="account", cascade="all, delete-orphan")
    bills: Mapped[list["Bill"]] = relationship(back_populates="account", cascade="all, delete-orphan")


class MeterReading(Base):
    __tablename__ = "meter_readings"

    id: Mapped[int] = mapped_column(primary_key=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id", ondelete="CASCADE"))
    reading_value: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    reading_date: Mapped[datetime.date] = mapped_column(Date)
    is_billed: Mapped[bool] = mapped_column(Boolean, default=False)
    recorded_by: Mapped[Optional[str]] = mapped_column(String(64))

    account: Mapped[Account] = relationship(back_populates="readings")


class Bill(Base):
    """
    Persisted bill. The charge columns are written once at generation time
    and never recomputed; a correction means generating a new bill.
    Only status / paid_at change afterwards.
    """

    __tablename__ = "bills"
    __table_args__ = (UniqueConstraint("reading_id", name="uq_bills_reading"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id", ondelete="CASCADE"))
    reading_id: Mapped[Optional[int]] = mapped_column(ForeignKey("meter_readings.id", ondelete="SET NULL"))

    billing_period: Mapped[str] = mapped_column(String(32))      # e.g. "October 2026"
    bill_date: Mapped[datetime.date] = mapped_column(Date)
    due_date: Mapped[datetime.date] = mapped_column(Date)
    status: Mapped[str] = mapped_column(String(12), default="Unpaid")   # Unpaid/Paid
    paid_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime)

    previous_reading: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    current_reading: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    consumption: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    service_type: Mapped[str] = mapped_column(String(48))
    meter_size: Mapped[str] = mapped_column(String(32))

    basic_charge: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    fcda: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    water_charge: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    environmental_charge: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    sewerage_charge: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    maintenance_service_charge: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    sub_total_before_taxes: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    government_taxes: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    vat: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    total_calculated_charges: Mapped[Decimal] = mapped_column(Numeric(12, 2))

    previous_unpaid_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"))
    senior_citizen_discount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"))

    account: Mapped[Account] = relationship(back_populates="bills")


class SystemSetting(Base):
    """Administrator-maintained tariff percentages (single row, id=1).

    Nullable columns: a NULL falls back to the compiled default at
    calculation time.
    """

    __tablename__ = "system_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    fcda_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 4))
    environmental_charge_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 4))
    sewerage_charge_percentage_commercial: Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 4))
    government_tax_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 4))
    vat_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 4))
    late_payment_penalty_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 4))
    updated_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime)
