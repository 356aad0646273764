# receivables/models/customers.py

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field


class HealthScore(str, Enum):
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


class CustomerSort(str, Enum):
    REVENUE = "revenue"
    NAME = "name"
    OUTSTANDING = "outstanding"
    INVOICE_COUNT = "invoiceCount"
    LAST_ACTIVITY = "lastActivity"


class CustomerIn(BaseModel):
    name: str = Field(min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None


class AgingOut(BaseModel):
    current: Decimal
    days30: Decimal
    days60: Decimal
    days90: Decimal


class CustomerStatsOut(BaseModel):
    total_revenue: Decimal
    total_paid: Decimal
    total_outstanding: Decimal
    invoice_count: int
    overdue_count: int
    last_activity_date: Optional[datetime] = None
    health_score: HealthScore
    aging: AgingOut


class CustomerOut(BaseModel):
    id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class CustomerInvoiceItem(BaseModel):
    id: int
    invoice_number: str
    client_name: str
    amount: Decimal
    paid_amount: Decimal
    status: str
    due_date: date
    created_at: datetime


class CustomerWithStats(CustomerOut):
    stats: CustomerStatsOut


class CustomerDetailOut(CustomerWithStats):
    invoices: List[CustomerInvoiceItem]


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class CustomerListResponse(BaseModel):
    customers: List[CustomerWithStats]
    pagination: Optional[Pagination] = None
