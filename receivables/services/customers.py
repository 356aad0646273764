# receivables/services/customers.py
"""
Customer records and the figures derived from their invoices.

Revenue, paid, outstanding, aging and health are never stored; they are
computed on read from the customer's invoice set and the ledger.
"""

import logging
import math
from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional

from sqlalchemy import func, insert, or_, select, update, delete

from receivables.db.engine import transaction
from receivables.db.schema import customers, invoices
from receivables.models.customers import (
    AgingOut,
    CustomerDetailOut,
    CustomerIn,
    CustomerInvoiceItem,
    CustomerListResponse,
    CustomerOut,
    CustomerSort,
    CustomerStatsOut,
    CustomerWithStats,
    HealthScore,
    Pagination,
)
from receivables.services.ledger import credited_totals, fetch_row
from receivables.services.money import ZERO, to_money
from receivables.services.status import (
    AgingBucket,
    InvoiceStatus,
    age_bucket,
    business_today,
    days_overdue,
    derive_status,
    is_agable,
)

logger = logging.getLogger(__name__)

RED_RATIO = Decimal("0.5")
YELLOW_RATIO = Decimal("0.3")


# ---- Aggregation ----

def health_score(aging: Mapping[AgingBucket, Decimal], overdue_count: int, outstanding_ratio: Decimal) -> HealthScore:
    if aging[AgingBucket.DAYS_60] + aging[AgingBucket.DAYS_90] > ZERO or outstanding_ratio > RED_RATIO:
        return HealthScore.RED
    if aging[AgingBucket.DAYS_30] > ZERO or overdue_count > 0 or outstanding_ratio > YELLOW_RATIO:
        return HealthScore.YELLOW
    return HealthScore.GREEN


def summarize_invoices(invoice_rows: Iterable[Mapping], today: Optional[date] = None) -> CustomerStatsOut:
    """
    Fold one customer's invoices into revenue, paid, aging and health.

    Each row carries the invoice columns plus ``paid``, the amount credited
    to it through direct payments and allocations.
    """
    if today is None:
        today = business_today()

    total_revenue = ZERO
    total_paid = ZERO
    aging: Dict[AgingBucket, Decimal] = {bucket: ZERO for bucket in AgingBucket}
    overdue_count = 0
    invoice_count = 0
    last_activity: Optional[datetime] = None

    for inv in invoice_rows:
        invoice_count += 1
        amount = to_money(inv["amount"])
        paid = to_money(inv["paid"])
        outstanding = amount - paid
        total_revenue += amount
        total_paid += paid

        if last_activity is None or inv["created_at"] > last_activity:
            last_activity = inv["created_at"]

        if inv["status"] == InvoiceStatus.INACTIVE.value:
            status = InvoiceStatus.INACTIVE
        else:
            status = derive_status(amount, paid, inv["due_date"], today)
        if not is_agable(outstanding, status):
            continue

        days = days_overdue(inv["due_date"], today)
        bucket = age_bucket(days)
        aging[bucket] += outstanding
        if bucket != AgingBucket.CURRENT or days > 0:
            overdue_count += 1

    total_outstanding = total_revenue - total_paid
    ratio = total_outstanding / total_revenue if total_revenue > ZERO else ZERO

    return CustomerStatsOut(
        total_revenue=total_revenue,
        total_paid=total_paid,
        total_outstanding=total_outstanding,
        invoice_count=invoice_count,
        overdue_count=overdue_count,
        last_activity_date=last_activity,
        health_score=health_score(aging, overdue_count, ratio),
        aging=AgingOut(
            current=aging[AgingBucket.CURRENT],
            days30=aging[AgingBucket.DAYS_30],
            days60=aging[AgingBucket.DAYS_60],
            days90=aging[AgingBucket.DAYS_90],
        ),
    )


def _invoices_by_customer(conn, customer_ids: List[int]) -> Dict[int, List[dict]]:
    grouped: Dict[int, List[dict]] = defaultdict(list)
    if not customer_ids:
        return grouped

    rows = conn.execute(
        select(invoices)
        .where(invoices.c.customer_id.in_(customer_ids))
        .order_by(invoices.c.created_at.desc(), invoices.c.id.desc())
    ).mappings().all()
    credited = credited_totals(conn, [row["id"] for row in rows])
    for row in rows:
        grouped[row["customer_id"]].append(dict(row, paid=credited[row["id"]]))
    return grouped


def _row_to_customer(row) -> CustomerOut:
    return CustomerOut(
        id=row["id"],
        name=row["name"],
        email=row["email"],
        phone=row["phone"],
        address=row["address"],
        notes=row["notes"],
        created_at=row["created_at"],
    )


# ---- Reads ----

def customer_stats(customer_id: int, today: Optional[date] = None) -> CustomerStatsOut:
    with transaction() as conn:
        fetch_row(conn, customers, customer_id, "customer")
        invoice_rows = _invoices_by_customer(conn, [customer_id])[customer_id]
    return summarize_invoices(invoice_rows, today)


def customer_detail(customer_id: int, today: Optional[date] = None) -> CustomerDetailOut:
    with transaction() as conn:
        row = fetch_row(conn, customers, customer_id, "customer")
        invoice_rows = _invoices_by_customer(conn, [customer_id])[customer_id]

    customer = _row_to_customer(row)
    return CustomerDetailOut(
        **customer.model_dump(),
        stats=summarize_invoices(invoice_rows, today),
        invoices=[
            CustomerInvoiceItem(
                id=inv["id"],
                invoice_number=inv["invoice_number"],
                client_name=inv["client_name"],
                amount=to_money(inv["amount"]),
                paid_amount=inv["paid"],
                status=inv["status"],
                due_date=inv["due_date"],
                created_at=inv["created_at"],
            )
            for inv in invoice_rows
        ],
    )


_SORT_KEYS = {
    CustomerSort.REVENUE: (lambda c: c.stats.total_revenue, True),
    CustomerSort.OUTSTANDING: (lambda c: c.stats.total_outstanding, True),
    CustomerSort.INVOICE_COUNT: (lambda c: c.stats.invoice_count, True),
    CustomerSort.NAME: (lambda c: c.name.lower(), False),
}


def _sort_customers(items: List[CustomerWithStats], sort: CustomerSort) -> List[CustomerWithStats]:
    # stable: the name ordering from the query breaks ties
    if sort == CustomerSort.LAST_ACTIVITY:
        active = [c for c in items if c.stats.last_activity_date is not None]
        idle = [c for c in items if c.stats.last_activity_date is None]
        active.sort(key=lambda c: c.stats.last_activity_date, reverse=True)
        return active + idle

    key, descending = _SORT_KEYS[sort]
    return sorted(items, key=key, reverse=descending)


def list_customers(
    search: Optional[str] = None,
    sort: CustomerSort = CustomerSort.REVENUE,
    page: int = 1,
    limit: int = 50,
    top: Optional[int] = None,
    today: Optional[date] = None,
) -> CustomerListResponse:
    """
    Customers with their derived stats, sorted by ``sort``.

    ``top`` returns the first N customers after sorting and skips pagination.
    """
    stmt = select(customers).order_by(customers.c.name, customers.c.id)
    if search:
        pattern = f"%{search.lower()}%"
        stmt = stmt.where(
            or_(
                func.lower(customers.c.name).like(pattern),
                func.lower(customers.c.email).like(pattern),
                func.lower(customers.c.phone).like(pattern),
            )
        )

    with transaction() as conn:
        rows = conn.execute(stmt).mappings().all()
        grouped = _invoices_by_customer(conn, [row["id"] for row in rows])

    items = [
        CustomerWithStats(
            **_row_to_customer(row).model_dump(),
            stats=summarize_invoices(grouped.get(row["id"], []), today),
        )
        for row in rows
    ]
    items = _sort_customers(items, sort)

    if top is not None:
        return CustomerListResponse(customers=items[:top])

    total = len(items)
    start = (page - 1) * limit
    return CustomerListResponse(
        customers=items[start:start + limit],
        pagination=Pagination(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit) if limit else 0,
        ),
    )


# ---- Writes ----

def create_customer(data: CustomerIn) -> CustomerOut:
    values = data.model_dump()
    values["name"] = values["name"].strip()
    with transaction() as conn:
        customer_id = conn.execute(insert(customers).values(**values)).inserted_primary_key[0]
        row = fetch_row(conn, customers, customer_id, "customer")
    return _row_to_customer(row)


def update_customer(customer_id: int, data: CustomerIn) -> CustomerOut:
    values = data.model_dump()
    values["name"] = values["name"].strip()
    with transaction() as conn:
        fetch_row(conn, customers, customer_id, "customer", lock=True)
        conn.execute(update(customers).where(customers.c.id == customer_id).values(**values))
        row = fetch_row(conn, customers, customer_id, "customer")
    return _row_to_customer(row)


def delete_customer(customer_id: int) -> int:
    """Delete a customer, detaching (never deleting) its invoices. Returns how many were detached."""
    with transaction() as conn:
        fetch_row(conn, customers, customer_id, "customer", lock=True)
        detached = conn.execute(
            update(invoices)
            .where(invoices.c.customer_id == customer_id)
            .values(customer_id=None)
        ).rowcount
        conn.execute(delete(customers).where(customers.c.id == customer_id))

    logger.info("Deleted customer %s, detached %s invoice(s)", customer_id, detached)
    return detached
