# receivables/models/payments.py

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from receivables.models.invoices import InvoiceBalanceOut, InvoiceSummary


class PaymentMethod(str, Enum):
    CASH = "cash"
    CHECK = "check"
    CARD = "card"
    ACH = "ach"
    WIRE = "wire"
    ZELLE = "zelle"
    OTHER = "other"


class PaymentSource(str, Enum):
    MANUAL = "manual"
    CSV_UPLOAD = "csv_upload"
    QUICKBOOKS = "quickbooks"


class PaymentCreate(BaseModel):
    amount: Decimal
    payment_date: Optional[date] = None
    method: PaymentMethod
    invoice_id: Optional[int] = None
    notes: Optional[str] = None
    source: PaymentSource = PaymentSource.MANUAL


class AllocationRequest(BaseModel):
    invoice_id: int
    amount: Decimal


class LinkRequest(AllocationRequest):
    payment_id: int


class BatchAllocationRequest(BaseModel):
    matches: List[AllocationRequest] = Field(min_length=1)


class AllocationOut(BaseModel):
    id: int
    payment_id: int
    invoice_id: int
    amount: Decimal
    created_at: datetime
    invoice: Optional[InvoiceBalanceOut] = None


class PaymentOut(BaseModel):
    id: int
    amount: Decimal
    payment_date: date
    method: str
    invoice_id: Optional[int] = None
    is_matched: bool
    source: str
    notes: Optional[str] = None
    created_at: datetime
    allocated: Decimal
    remaining: Decimal
    allocations: List[AllocationOut] = []

    class Config:
        from_attributes = True


class UnmatchedSummary(BaseModel):
    count: int
    total_unallocated: Decimal


class UnmatchedPaymentsResponse(BaseModel):
    payments: List[PaymentOut]
    summary: UnmatchedSummary


class SuggestionOut(BaseModel):
    invoice: InvoiceSummary
    confidence: int
    reason: str


class SuggestionsResponse(BaseModel):
    payment_id: int
    payment_amount: Decimal
    remaining_to_allocate: Decimal
    suggestions: List[SuggestionOut]
