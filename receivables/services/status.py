# receivables/services/status.py
"""
Invoice lifecycle status and aging buckets.

Pure functions over amounts and dates; nothing here touches the database.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from zoneinfo import ZoneInfo

from receivables.config import settings
from receivables.services.money import ZERO


class InvoiceStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    OVERDUE = "overdue"
    PAID = "paid"
    INACTIVE = "inactive"


class AgingBucket(str, Enum):
    CURRENT = "current"
    DAYS_30 = "days30"
    DAYS_60 = "days60"
    DAYS_90 = "days90"


OPEN_STATUSES = (InvoiceStatus.PENDING, InvoiceStatus.PARTIAL, InvoiceStatus.OVERDUE)


def business_today() -> date:
    """'today' in the configured business timezone (America/New_York by default)."""
    return datetime.now(ZoneInfo(settings.timezone)).date()


def derive_status(
    amount: Decimal,
    paid_amount: Decimal,
    due_date: date,
    today: Optional[date] = None,
) -> InvoiceStatus:
    """
    Paid and partial are decided before the due date is looked at: a fully
    paid invoice is never overdue, and a partially paid invoice past its due
    date stays partial. Overdue means late with nothing paid at all.
    """
    if today is None:
        today = business_today()

    if paid_amount >= amount:
        return InvoiceStatus.PAID
    if paid_amount > ZERO:
        return InvoiceStatus.PARTIAL
    if due_date < today:
        return InvoiceStatus.OVERDUE
    return InvoiceStatus.PENDING


def days_overdue(due_date: date, today: Optional[date] = None) -> int:
    if today is None:
        today = business_today()
    return (today - due_date).days


def age_bucket(days: int) -> AgingBucket:
    if days > 90:
        return AgingBucket.DAYS_90
    if days > 60:
        return AgingBucket.DAYS_60
    if days > 30:
        return AgingBucket.DAYS_30
    return AgingBucket.CURRENT


def is_agable(outstanding: Decimal, status: InvoiceStatus) -> bool:
    return outstanding > ZERO and status != InvoiceStatus.PAID
