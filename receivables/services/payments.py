# receivables/services/payments.py

import logging
from typing import List

from sqlalchemy import delete, insert, select
from sqlalchemy.engine import Connection, RowMapping

from receivables.db.engine import transaction
from receivables.db.schema import invoices, payment_invoice_matches, payments
from receivables.models.payments import (
    PaymentCreate,
    PaymentOut,
    UnmatchedPaymentsResponse,
    UnmatchedSummary,
)
from receivables.services.errors import InvalidAmount, OverAllocation
from receivables.services.ledger import (
    BindingKind,
    allocations_for_payment,
    credited_total,
    fetch_row,
    payment_binding,
    recompute_in,
)
from receivables.services.money import ZERO, format_money, to_money, total
from receivables.services.status import business_today

logger = logging.getLogger(__name__)

matches = payment_invoice_matches


def _payment_out(conn: Connection, row: RowMapping) -> PaymentOut:
    binding = payment_binding(conn, row)
    return PaymentOut(
        id=row["id"],
        amount=binding.amount,
        payment_date=row["payment_date"],
        method=row["method"],
        invoice_id=row["invoice_id"],
        is_matched=row["is_matched"],
        source=row["source"],
        notes=row["notes"],
        created_at=row["created_at"],
        allocated=binding.amount if binding.kind == BindingKind.DIRECT else binding.allocated,
        remaining=binding.available,
        allocations=allocations_for_payment(conn, row["id"]),
    )


def insert_payment(conn: Connection, data: PaymentCreate) -> int:
    """
    Write one payment. A payment created with ``invoice_id`` is bound
    directly to that invoice and is never allocated through the ledger.
    """
    amount = to_money(data.amount)
    if amount <= ZERO:
        raise InvalidAmount("Payment amount must be positive", requested=amount)

    if data.invoice_id is not None:
        invoice = fetch_row(conn, invoices, data.invoice_id, "invoice", lock=True)
        remaining = to_money(invoice["amount"]) - credited_total(conn, data.invoice_id)
        if amount > remaining:
            raise OverAllocation(
                f"Payment {format_money(amount)} exceeds invoice {invoice['invoice_number']} "
                f"remaining balance {format_money(remaining)}",
                invoice_id=data.invoice_id,
                available=remaining,
                requested=amount,
            )

    payment_id = conn.execute(
        insert(payments).values(
            amount=amount,
            payment_date=data.payment_date or business_today(),
            method=data.method.value,
            invoice_id=data.invoice_id,
            is_matched=data.invoice_id is not None,
            source=data.source.value,
            notes=data.notes,
        )
    ).inserted_primary_key[0]

    if data.invoice_id is not None:
        recompute_in(conn, data.invoice_id)
    return payment_id


def create_payment(data: PaymentCreate) -> PaymentOut:
    with transaction() as conn:
        payment_id = insert_payment(conn, data)
        row = fetch_row(conn, payments, payment_id, "payment")
        out = _payment_out(conn, row)

    logger.info(
        "Recorded payment %s of %s (%s)%s",
        payment_id, out.amount, out.method,
        f" for invoice {data.invoice_id}" if data.invoice_id is not None else "",
    )
    return out


def get_payment(payment_id: int) -> PaymentOut:
    with transaction() as conn:
        row = fetch_row(conn, payments, payment_id, "payment")
        return _payment_out(conn, row)


def delete_payment(payment_id: int) -> None:
    """Delete a payment and its allocations, then re-derive every invoice it credited."""
    with transaction() as conn:
        row = fetch_row(conn, payments, payment_id, "payment", lock=True)
        invoice_ids = set(
            conn.execute(
                select(matches.c.invoice_id).where(matches.c.payment_id == payment_id)
            ).scalars()
        )
        if row["invoice_id"] is not None:
            invoice_ids.add(row["invoice_id"])

        conn.execute(delete(matches).where(matches.c.payment_id == payment_id))
        conn.execute(delete(payments).where(payments.c.id == payment_id))
        for invoice_id in sorted(invoice_ids):
            recompute_in(conn, invoice_id)

    logger.info("Deleted payment %s; recomputed %d invoice(s)", payment_id, len(invoice_ids))


def unmatched_payments() -> UnmatchedPaymentsResponse:
    """Payments with an unallocated balance, oldest first."""
    with transaction() as conn:
        rows = conn.execute(
            select(payments)
            .where(payments.c.invoice_id.is_(None))
            .order_by(payments.c.payment_date, payments.c.id)
        ).mappings().all()
        items: List[PaymentOut] = [_payment_out(conn, row) for row in rows]

    items = [item for item in items if item.remaining > ZERO]
    return UnmatchedPaymentsResponse(
        payments=items,
        summary=UnmatchedSummary(
            count=len(items),
            total_unallocated=total(item.remaining for item in items),
        ),
    )
