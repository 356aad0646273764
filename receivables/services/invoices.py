# receivables/services/invoices.py

import logging
from datetime import date
from typing import List, Optional

from sqlalchemy import and_, delete, func, insert, select, update
from sqlalchemy.engine import Connection

from receivables.db.engine import transaction
from receivables.db.schema import (
    customers,
    invoice_sequences,
    invoices,
    layaway_installments,
    layaway_plans,
    payment_invoice_matches,
    payments,
)
from receivables.models.invoices import (
    InvoiceCreate,
    InvoiceCreditItem,
    InvoiceOut,
    InvoiceUpdate,
    PastDueInvoiceItem,
    PastDueResponse,
)
from receivables.services.errors import InvalidAmount, OverAllocation
from receivables.services.ledger import credited_total, fetch_row, recompute_in, refresh_payment_flag
from receivables.services.money import ZERO, format_money, to_money
from receivables.services.status import (
    InvoiceStatus,
    age_bucket,
    business_today,
    days_overdue,
)

logger = logging.getLogger(__name__)

matches = payment_invoice_matches


def _row_to_invoice(row) -> InvoiceOut:
    amount = to_money(row["amount"])
    paid = to_money(row["paid_amount"])
    return InvoiceOut(
        id=row["id"],
        invoice_number=row["invoice_number"],
        customer_id=row["customer_id"],
        client_name=row["client_name"],
        subtotal=to_money(row["subtotal"]),
        tax=to_money(row["tax"]),
        discount=to_money(row["discount"]),
        amount=amount,
        paid_amount=paid,
        outstanding=amount - paid,
        due_date=row["due_date"],
        status=row["status"],
        is_layaway=row["is_layaway"],
        notes=row["notes"],
        created_at=row["created_at"],
    )


def _highest_issued(conn: Connection, prefix: str) -> int:
    last = conn.execute(
        select(invoices.c.invoice_number)
        .where(invoices.c.invoice_number.like(f"{prefix}%"))
        .order_by(func.length(invoices.c.invoice_number).desc(), invoices.c.invoice_number.desc())
        .limit(1)
    ).scalar()
    return 0 if last is None else int(last[len(prefix):])


def next_invoice_number(conn: Connection, year: int) -> str:
    """
    INV-<year>-<seq>. The sequence restarts every year and never goes
    backwards, even when the newest invoice of the year is deleted.

    The per-year counter is seeded from the invoices table the first time a
    year is seen, so databases created before the counter existed continue
    from their highest number.
    """
    prefix = f"INV-{year}-"
    last_seq = conn.execute(
        select(invoice_sequences.c.last_seq)
        .where(invoice_sequences.c.year == year)
        .with_for_update()
    ).scalar()

    if last_seq is None:
        next_seq = _highest_issued(conn, prefix) + 1
        conn.execute(insert(invoice_sequences).values(year=year, last_seq=next_seq))
    else:
        next_seq = last_seq + 1
        conn.execute(
            update(invoice_sequences)
            .where(invoice_sequences.c.year == year)
            .values(last_seq=next_seq)
        )
    return f"{prefix}{next_seq:04d}"


def _compute_amount(subtotal, tax, discount):
    amount = to_money(subtotal) + to_money(tax) - to_money(discount)
    if amount < ZERO:
        raise InvalidAmount(
            f"Invoice total {format_money(amount)} cannot be negative",
            requested=amount,
        )
    return amount


def get_invoice(invoice_id: int) -> InvoiceOut:
    with transaction() as conn:
        row = fetch_row(conn, invoices, invoice_id, "invoice")
    return _row_to_invoice(row)


def create_invoice(data: InvoiceCreate, today: Optional[date] = None) -> InvoiceOut:
    if today is None:
        today = business_today()
    amount = _compute_amount(data.subtotal, data.tax, data.discount)

    with transaction() as conn:
        client_name = (data.client_name or "").strip()
        if data.customer_id is not None:
            customer = fetch_row(conn, customers, data.customer_id, "customer")
            client_name = client_name or customer["name"]
        invoice_number = next_invoice_number(conn, today.year)
        invoice_id = conn.execute(
            insert(invoices).values(
                invoice_number=invoice_number,
                customer_id=data.customer_id,
                client_name=client_name,
                subtotal=to_money(data.subtotal),
                tax=to_money(data.tax),
                discount=to_money(data.discount),
                amount=amount,
                paid_amount=ZERO,
                due_date=data.due_date,
                status=InvoiceStatus.PENDING.value,
                is_layaway=data.is_layaway,
                notes=data.notes,
            )
        ).inserted_primary_key[0]
        row = fetch_row(conn, invoices, invoice_id, "invoice")

    logger.info("Created invoice %s for %s (%s)", invoice_number, client_name, amount)
    return _row_to_invoice(row)


def update_invoice(invoice_id: int, data: InvoiceUpdate) -> InvoiceOut:
    """
    Edit the billed figures or due date. ``amount`` is recomputed from
    subtotal, tax and discount; the paid amount is left to the ledger.
    """
    changes = data.model_dump(exclude_unset=True)
    inactive = changes.pop("inactive", None)

    with transaction() as conn:
        row = fetch_row(conn, invoices, invoice_id, "invoice", lock=True)
        values = {}
        for key in ("client_name", "due_date", "is_layaway", "notes"):
            if key in changes:
                values[key] = changes[key]

        if {"subtotal", "tax", "discount"} & changes.keys():
            subtotal = changes.get("subtotal", row["subtotal"])
            tax = changes.get("tax", row["tax"])
            discount = changes.get("discount", row["discount"])
            amount = _compute_amount(subtotal, tax, discount)
            credited = credited_total(conn, invoice_id)
            if amount < credited:
                raise OverAllocation(
                    f"Invoice total {format_money(amount)} would fall below the "
                    f"{format_money(credited)} already credited to it",
                    invoice_id=invoice_id,
                    available=credited,
                    requested=amount,
                )
            values.update(
                subtotal=to_money(subtotal),
                tax=to_money(tax),
                discount=to_money(discount),
                amount=amount,
            )

        if inactive is True:
            values["status"] = InvoiceStatus.INACTIVE.value
        elif inactive is False and row["status"] == InvoiceStatus.INACTIVE.value:
            # recompute_in re-derives anything that is not inactive
            values["status"] = InvoiceStatus.PENDING.value

        if values:
            conn.execute(update(invoices).where(invoices.c.id == invoice_id).values(**values))
        recompute_in(conn, invoice_id)
        row = fetch_row(conn, invoices, invoice_id, "invoice")

    return _row_to_invoice(row)


def delete_invoice(invoice_id: int) -> None:
    """
    Delete an invoice after detaching everything that points at it.

    Allocation rows are removed and direct payments are unbound; the
    payments themselves always survive.
    """
    with transaction() as conn:
        row = fetch_row(conn, invoices, invoice_id, "invoice", lock=True)

        matched_payment_ids = conn.execute(
            select(matches.c.payment_id).where(matches.c.invoice_id == invoice_id)
        ).scalars().all()
        direct_payment_ids = conn.execute(
            select(payments.c.id).where(payments.c.invoice_id == invoice_id)
        ).scalars().all()

        conn.execute(delete(matches).where(matches.c.invoice_id == invoice_id))
        conn.execute(
            update(payments)
            .where(payments.c.invoice_id == invoice_id)
            .values(invoice_id=None)
        )

        plan_ids = select(layaway_plans.c.id).where(layaway_plans.c.invoice_id == invoice_id)
        conn.execute(delete(layaway_installments).where(layaway_installments.c.plan_id.in_(plan_ids)))
        conn.execute(delete(layaway_plans).where(layaway_plans.c.invoice_id == invoice_id))
        conn.execute(delete(invoices).where(invoices.c.id == invoice_id))

        for payment_id in set(matched_payment_ids) | set(direct_payment_ids):
            refresh_payment_flag(conn, payment_id)

    logger.info(
        "Deleted invoice %s; detached %d allocation(s) and %d direct payment(s)",
        row["invoice_number"], len(matched_payment_ids), len(direct_payment_ids),
    )


def invoice_payments(invoice_id: int) -> List[InvoiceCreditItem]:
    """Direct payments and allocations credited to an invoice, newest first."""
    with transaction() as conn:
        fetch_row(conn, invoices, invoice_id, "invoice")
        direct = conn.execute(
            select(payments).where(payments.c.invoice_id == invoice_id)
        ).mappings().all()
        matched = conn.execute(
            select(
                matches.c.id.label("match_id"),
                matches.c.amount.label("match_amount"),
                matches.c.created_at.label("match_created_at"),
                payments,
            )
            .select_from(matches.join(payments, matches.c.payment_id == payments.c.id))
            .where(matches.c.invoice_id == invoice_id)
        ).mappings().all()

    items = [
        InvoiceCreditItem(
            payment_id=row["id"],
            kind="direct",
            amount=to_money(row["amount"]),
            method=row["method"],
            payment_date=row["payment_date"],
            notes=row["notes"],
            created_at=row["created_at"],
        )
        for row in direct
    ]
    items += [
        InvoiceCreditItem(
            payment_id=row["id"],
            match_id=row["match_id"],
            kind="matched",
            # the allocated portion, not the whole payment
            amount=to_money(row["match_amount"]),
            method=row["method"],
            payment_date=row["payment_date"],
            notes=row["notes"],
            created_at=row["match_created_at"],
        )
        for row in matched
    ]
    items.sort(key=lambda item: item.created_at, reverse=True)
    return items


def past_due_invoices(
    as_of: Optional[date] = None,
    limit: int = 50,
    offset: int = 0,
    sort: str = "due_date.asc",
) -> PastDueResponse:
    """
    Invoices with positive outstanding balance whose due date is before as_of.
    """
    if as_of is None:
        as_of = business_today()

    if sort == "due_date.desc":
        order_clause = invoices.c.due_date.desc()
    else:
        order_clause = invoices.c.due_date.asc()

    outstanding_expr = invoices.c.amount - invoices.c.paid_amount
    base_where = and_(
        outstanding_expr > 0,
        invoices.c.due_date < as_of,
        invoices.c.status != InvoiceStatus.PAID.value,
    )

    with transaction() as conn:
        total = conn.execute(select(func.count()).select_from(invoices).where(base_where)).scalar_one()
        rows = conn.execute(
            select(invoices)
            .where(base_where)
            .order_by(order_clause, invoices.c.id)
            .limit(limit)
            .offset(offset)
        ).mappings().all()

    items: List[PastDueInvoiceItem] = []
    for row in rows:
        amount = to_money(row["amount"])
        paid = to_money(row["paid_amount"])
        days_past_due = days_overdue(row["due_date"], as_of)
        items.append(
            PastDueInvoiceItem(
                id=row["id"],
                invoice_number=row["invoice_number"],
                client_name=row["client_name"],
                due_date=row["due_date"],
                amount=amount,
                paid_amount=paid,
                outstanding=amount - paid,
                status=row["status"],
                days_past_due=days_past_due,
                aging_bucket=age_bucket(days_past_due).value,
            )
        )

    return PastDueResponse(items=items, total=total, limit=limit, offset=offset)
