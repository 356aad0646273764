# receivables/services/ledger.py
"""
Allocation ledger and reconciliation service.

The ledger is the set of ``payment_invoice_matches`` rows plus the payments
bound directly to an invoice through ``payments.invoice_id``. Two caches are
derived from it and written only here, always by full recomputation:

    invoices.paid_amount / invoices.status
    payments.is_matched

Every mutation runs its read-validate-write sequence inside one
``transaction()``; the invoice recompute happens in that same transaction, so
a failed recompute rolls the allocation back with it.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import Table, delete, insert, select, update
from sqlalchemy.engine import Connection, RowMapping

from receivables.db.engine import transaction
from receivables.db.schema import invoices, payment_invoice_matches, payments
from receivables.models.invoices import InvoiceBalanceOut
from receivables.models.payments import AllocationOut, AllocationRequest
from receivables.services.errors import (
    AlreadyDirectlyBound,
    InvalidAmount,
    NotFound,
    OverAllocation,
)
from receivables.services.money import ZERO, format_money, to_money, total
from receivables.services.status import InvoiceStatus, derive_status

logger = logging.getLogger(__name__)

matches = payment_invoice_matches


# ---- Reads ----

def fetch_row(
    conn: Connection,
    table: Table,
    row_id: int,
    label: str,
    lock: bool = False,
) -> RowMapping:
    stmt = select(table).where(table.c.id == row_id)
    if lock:
        # renders nothing on SQLite, where BEGIN IMMEDIATE already holds the lock
        stmt = stmt.with_for_update()
    row = conn.execute(stmt).mappings().first()
    if row is None:
        raise NotFound(f"{label.capitalize()} {row_id} not found", **{f"{label}_id": row_id})
    return row


def credited_total(conn: Connection, invoice_id: int) -> Decimal:
    """Direct payments plus allocations credited to one invoice."""
    return credited_totals(conn, [invoice_id]).get(invoice_id, ZERO)


def credited_totals(conn: Connection, invoice_ids: Iterable[int]) -> Dict[int, Decimal]:
    ids = list(set(invoice_ids))
    totals: Dict[int, Decimal] = {invoice_id: ZERO for invoice_id in ids}
    if not ids:
        return totals

    direct = conn.execute(
        select(payments.c.invoice_id, payments.c.amount)
        .where(payments.c.invoice_id.in_(ids))
    )
    matched = conn.execute(
        select(matches.c.invoice_id, matches.c.amount)
        .where(matches.c.invoice_id.in_(ids))
    )
    for invoice_id, amount in list(direct) + list(matched):
        totals[invoice_id] += to_money(amount)
    return totals


# ---- Payment binding state ----

class BindingKind(str, Enum):
    UNBOUND = "unbound"
    DIRECT = "direct"
    LEDGER = "ledger"


@dataclass(frozen=True)
class PaymentBinding:
    """A payment is unbound, bound directly to one invoice, or allocated through the ledger."""

    kind: BindingKind
    amount: Decimal
    allocated: Decimal = ZERO
    invoice_id: Optional[int] = None
    allocation_ids: Sequence[int] = field(default_factory=tuple)

    @property
    def available(self) -> Decimal:
        if self.kind == BindingKind.DIRECT:
            return ZERO
        return self.amount - self.allocated

    @property
    def fully_matched(self) -> bool:
        if self.kind == BindingKind.DIRECT:
            return True
        return self.allocated >= self.amount


def payment_binding(conn: Connection, payment: RowMapping) -> PaymentBinding:
    amount = to_money(payment["amount"])
    if payment["invoice_id"] is not None:
        return PaymentBinding(BindingKind.DIRECT, amount, invoice_id=payment["invoice_id"])

    rows = conn.execute(
        select(matches.c.id, matches.c.amount)
        .where(matches.c.payment_id == payment["id"])
        .order_by(matches.c.id)
    ).all()
    if not rows:
        return PaymentBinding(BindingKind.UNBOUND, amount)
    return PaymentBinding(
        BindingKind.LEDGER,
        amount,
        allocated=total(row.amount for row in rows),
        allocation_ids=tuple(row.id for row in rows),
    )


# ---- Derived caches ----

def refresh_payment_flag(conn: Connection, payment_id: int) -> bool:
    payment = fetch_row(conn, payments, payment_id, "payment")
    is_matched = payment_binding(conn, payment).fully_matched
    if bool(payment["is_matched"]) != is_matched:
        conn.execute(
            update(payments)
            .where(payments.c.id == payment_id)
            .values(is_matched=is_matched)
        )
    return is_matched


def recompute_in(conn: Connection, invoice_id: int) -> InvoiceBalanceOut:
    """Re-derive paid amount and status of one invoice from the ledger."""
    invoice = fetch_row(conn, invoices, invoice_id, "invoice", lock=True)
    amount = to_money(invoice["amount"])
    paid = credited_total(conn, invoice_id)

    previous_status = invoice["status"]
    if previous_status == InvoiceStatus.INACTIVE.value:
        # inactive is set by an operator and survives recomputation
        status = InvoiceStatus.INACTIVE
    else:
        status = derive_status(amount, paid, invoice["due_date"])

    if paid > amount:
        logger.warning(
            "Overpayment detected on invoice %s: amount=%s credited=%s over=%s",
            invoice["invoice_number"], amount, paid, paid - amount,
        )

    previous_paid = to_money(invoice["paid_amount"])
    if previous_paid != paid or previous_status != status.value:
        conn.execute(
            update(invoices)
            .where(invoices.c.id == invoice_id)
            .values(paid_amount=paid, status=status.value)
        )
        logger.info(
            "Invoice %s recomputed: paid %s -> %s, status %s -> %s",
            invoice["invoice_number"], previous_paid, paid, previous_status, status.value,
        )

    return InvoiceBalanceOut(
        invoice_id=invoice_id,
        paid_amount=paid,
        outstanding=amount - paid,
        status=status.value,
    )


def recompute_invoice(invoice_id: int) -> InvoiceBalanceOut:
    with transaction() as conn:
        return recompute_in(conn, invoice_id)


# ---- Allocation ----

def _check_invoice_capacity(conn: Connection, invoice: RowMapping, requested: Decimal) -> None:
    remaining = to_money(invoice["amount"]) - credited_total(conn, invoice["id"])
    if requested > remaining:
        raise OverAllocation(
            f"Amount {format_money(requested)} exceeds invoice {invoice['invoice_number']} "
            f"remaining balance {format_money(remaining)}",
            invoice_id=invoice["id"],
            available=remaining,
            requested=requested,
        )


def _insert_allocation(conn: Connection, payment_id: int, invoice_id: int, amount: Decimal) -> RowMapping:
    match_id = conn.execute(
        insert(matches).values(payment_id=payment_id, invoice_id=invoice_id, amount=amount)
    ).inserted_primary_key[0]
    return fetch_row(conn, matches, match_id, "allocation")


def _allocation_out(row: RowMapping, balance: Optional[InvoiceBalanceOut] = None) -> AllocationOut:
    return AllocationOut(
        id=row["id"],
        payment_id=row["payment_id"],
        invoice_id=row["invoice_id"],
        amount=to_money(row["amount"]),
        created_at=row["created_at"],
        invoice=balance,
    )


def _locked_payment(conn: Connection, payment_id: int) -> RowMapping:
    return fetch_row(conn, payments, payment_id, "payment", lock=True)


def _ensure_ledger_bindable(payment: RowMapping, binding: PaymentBinding) -> None:
    if binding.kind == BindingKind.DIRECT:
        raise AlreadyDirectlyBound(
            f"Payment {payment['id']} is already bound directly to invoice "
            f"{binding.invoice_id}; it cannot also be allocated through the ledger",
            payment_id=payment["id"],
            invoice_id=binding.invoice_id,
        )


def allocate(payment_id: int, invoice_id: int, amount) -> AllocationOut:
    """Credit ``amount`` of one payment to one invoice."""
    requested = to_money(amount)

    with transaction() as conn:
        payment = _locked_payment(conn, payment_id)
        invoice = fetch_row(conn, invoices, invoice_id, "invoice", lock=True)

        if requested <= ZERO:
            raise InvalidAmount("Allocation amount must be positive", requested=requested)

        binding = payment_binding(conn, payment)
        _ensure_ledger_bindable(payment, binding)

        if requested > binding.available:
            raise OverAllocation(
                f"Payment {payment_id} has {format_money(binding.available)} left to "
                f"allocate; {format_money(requested)} requested",
                payment_id=payment_id,
                available=binding.available,
                requested=requested,
            )
        _check_invoice_capacity(conn, invoice, requested)

        row = _insert_allocation(conn, payment_id, invoice_id, requested)
        refresh_payment_flag(conn, payment_id)
        balance = recompute_in(conn, invoice_id)

    logger.info(
        "Allocated %s of payment %s to invoice %s (allocation %s)",
        requested, payment_id, invoice_id, row["id"],
    )
    return _allocation_out(row, balance)


def allocate_batch(payment_id: int, entries: Sequence[AllocationRequest]) -> List[AllocationOut]:
    """
    Allocate one payment across several invoices, all or nothing.

    The sum of the requested amounts is checked against the payment's
    available balance before any row is written; the invoice-side check is
    made per invoice against the sum requested for that invoice.
    """
    if not entries:
        raise InvalidAmount("At least one allocation is required")

    requested = [(entry.invoice_id, to_money(entry.amount)) for entry in entries]

    with transaction() as conn:
        payment = _locked_payment(conn, payment_id)
        per_invoice: Dict[int, Decimal] = defaultdict(lambda: ZERO)
        invoice_rows: Dict[int, RowMapping] = {}
        for invoice_id, amount in requested:
            if invoice_id not in invoice_rows:
                invoice_rows[invoice_id] = fetch_row(conn, invoices, invoice_id, "invoice", lock=True)
            if amount <= ZERO:
                raise InvalidAmount(
                    "Allocation amount must be positive",
                    invoice_id=invoice_id,
                    requested=amount,
                )
            per_invoice[invoice_id] += amount

        binding = payment_binding(conn, payment)
        _ensure_ledger_bindable(payment, binding)

        batch_total = total(amount for _, amount in requested)
        if batch_total > binding.available:
            raise OverAllocation(
                f"Total allocation {format_money(binding.allocated + batch_total)} exceeds "
                f"payment amount {format_money(binding.amount)}",
                payment_id=payment_id,
                available=binding.available,
                requested=batch_total,
            )
        for invoice_id, amount in per_invoice.items():
            _check_invoice_capacity(conn, invoice_rows[invoice_id], amount)

        rows = [
            _insert_allocation(conn, payment_id, invoice_id, amount)
            for invoice_id, amount in requested
        ]
        refresh_payment_flag(conn, payment_id)
        balances = {invoice_id: recompute_in(conn, invoice_id) for invoice_id in per_invoice}

    logger.info(
        "Allocated %s of payment %s across %d invoice(s)",
        batch_total, payment_id, len(per_invoice),
    )
    return [_allocation_out(row, balances[row["invoice_id"]]) for row in rows]


def remove_allocation(payment_id: int, match_id: int) -> InvoiceBalanceOut:
    """Delete one allocation row and re-derive both sides."""
    with transaction() as conn:
        row = conn.execute(
            select(matches).where(matches.c.id == match_id)
        ).mappings().first()
        if row is None or row["payment_id"] != payment_id:
            raise NotFound(
                f"Allocation {match_id} not found on payment {payment_id}",
                payment_id=payment_id,
                match_id=match_id,
            )
        _locked_payment(conn, payment_id)
        fetch_row(conn, invoices, row["invoice_id"], "invoice", lock=True)

        conn.execute(delete(matches).where(matches.c.id == match_id))
        refresh_payment_flag(conn, payment_id)
        balance = recompute_in(conn, row["invoice_id"])

    logger.info(
        "Removed allocation %s (%s of payment %s to invoice %s)",
        match_id, row["amount"], payment_id, row["invoice_id"],
    )
    return balance


def allocations_for_payment(conn: Connection, payment_id: int) -> List[AllocationOut]:
    rows = conn.execute(
        select(matches)
        .where(matches.c.payment_id == payment_id)
        .order_by(matches.c.id)
    ).mappings().all()
    return [_allocation_out(row) for row in rows]
