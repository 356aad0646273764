# receivables/models/layaway.py

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class PaymentFrequency(str, Enum):
    MONTHLY = "monthly"
    BI_WEEKLY = "bi-weekly"
    WEEKLY = "weekly"


class InstallmentIn(BaseModel):
    due_date: date
    amount: Decimal
    label: str
    is_paid: bool = False
    paid_date: Optional[date] = None
    paid_amount: Optional[Decimal] = None


class LayawayPlanCreate(BaseModel):
    months: int = Field(ge=1)
    payment_frequency: PaymentFrequency = PaymentFrequency.MONTHLY
    down_payment: Decimal = Decimal("0")
    notes: Optional[str] = None
    installments: List[InstallmentIn] = []


class LayawayPlanUpdate(BaseModel):
    is_cancelled: Optional[bool] = None
    notes: Optional[str] = None


class InstallmentPaidIn(BaseModel):
    paid: bool
    paid_date: Optional[date] = None
    paid_amount: Optional[Decimal] = None


class InstallmentOut(BaseModel):
    id: int
    plan_id: int
    due_date: date
    amount: Decimal
    label: str
    is_paid: bool
    paid_date: Optional[date] = None
    paid_amount: Optional[Decimal] = None

    class Config:
        from_attributes = True


class LayawayPlanOut(BaseModel):
    id: int
    invoice_id: int
    months: int
    payment_frequency: str
    down_payment: Decimal
    is_cancelled: bool
    notes: Optional[str] = None
    created_at: datetime
    installments: List[InstallmentOut]


class ScheduleEntry(BaseModel):
    label: str
    due_date: date
    amount: Decimal
