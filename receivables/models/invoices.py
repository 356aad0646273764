# receivables/models/invoices.py

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class InvoiceCreate(BaseModel):
    client_name: Optional[str] = None
    customer_id: Optional[int] = None
    subtotal: Decimal = Field(ge=0)
    tax: Decimal = Field(default=Decimal("0"), ge=0)
    discount: Decimal = Field(default=Decimal("0"), ge=0)
    due_date: date
    is_layaway: bool = False
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _needs_a_payer(self):
        if not (self.client_name and self.client_name.strip()) and self.customer_id is None:
            raise ValueError("client_name or customer_id is required")
        return self


class InvoiceUpdate(BaseModel):
    client_name: Optional[str] = None
    subtotal: Optional[Decimal] = Field(default=None, ge=0)
    tax: Optional[Decimal] = Field(default=None, ge=0)
    discount: Optional[Decimal] = Field(default=None, ge=0)
    due_date: Optional[date] = None
    is_layaway: Optional[bool] = None
    inactive: Optional[bool] = None
    notes: Optional[str] = None

    @field_validator("client_name", "subtotal", "tax", "discount", "due_date", "is_layaway")
    @classmethod
    def _not_null(cls, value):
        # omit a field to leave it unchanged; null is not a value for these columns
        if value is None:
            raise ValueError("may be omitted but not null")
        return value


class InvoiceOut(BaseModel):
    id: int
    invoice_number: str
    customer_id: Optional[int] = None
    client_name: str
    subtotal: Decimal
    tax: Decimal
    discount: Decimal
    amount: Decimal
    paid_amount: Decimal
    outstanding: Decimal
    due_date: date
    status: str
    is_layaway: bool
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class InvoiceSummary(BaseModel):
    id: int
    invoice_number: str
    client_name: str
    amount: Decimal
    paid_amount: Decimal
    remaining: Decimal
    status: str
    due_date: date


class InvoiceBalanceOut(BaseModel):
    invoice_id: int
    paid_amount: Decimal
    outstanding: Decimal
    status: str


class InvoiceCreditItem(BaseModel):
    payment_id: int
    match_id: Optional[int] = None
    kind: str  # "direct" | "matched"
    amount: Decimal
    method: str
    payment_date: date
    notes: Optional[str] = None
    created_at: datetime


class PastDueInvoiceItem(BaseModel):
    id: int
    invoice_number: str
    client_name: str
    due_date: date
    amount: Decimal
    paid_amount: Decimal
    outstanding: Decimal
    status: str
    days_past_due: int
    aging_bucket: str


class PastDueResponse(BaseModel):
    items: List[PastDueInvoiceItem]
    total: int
    limit: int
    offset: int
