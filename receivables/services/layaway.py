# receivables/services/layaway.py
"""
Layaway plans: one installment schedule per layaway invoice.

Installment paid/unpaid flags are bookkeeping layered over the invoice.
Marking an installment paid records no allocation and leaves the invoice's
paid amount and status alone; the two ledgers are not reconciled here.
"""

import calendar
import logging
from datetime import date, timedelta
from decimal import ROUND_DOWN
from typing import List, Optional

from sqlalchemy import insert, select, update

from receivables.db.engine import transaction
from receivables.db.schema import invoices, layaway_installments, layaway_plans
from receivables.models.layaway import (
    InstallmentOut,
    LayawayPlanCreate,
    LayawayPlanOut,
    PaymentFrequency,
    ScheduleEntry,
)
from receivables.services.errors import Conflict, NotFound, NotLayaway
from receivables.services.ledger import fetch_row
from receivables.services.money import CENT, ZERO, to_money
from receivables.services.status import business_today

logger = logging.getLogger(__name__)

INSTALLMENTS_PER_MONTH = {
    PaymentFrequency.MONTHLY: 1,
    PaymentFrequency.BI_WEEKLY: 2,
    PaymentFrequency.WEEKLY: 4,
}


def _installment_out(row) -> InstallmentOut:
    return InstallmentOut(
        id=row["id"],
        plan_id=row["plan_id"],
        due_date=row["due_date"],
        amount=to_money(row["amount"]),
        label=row["label"],
        is_paid=row["is_paid"],
        paid_date=row["paid_date"],
        paid_amount=None if row["paid_amount"] is None else to_money(row["paid_amount"]),
    )


def _load_plan(conn, invoice_id: int) -> LayawayPlanOut:
    plan = conn.execute(
        select(layaway_plans).where(layaway_plans.c.invoice_id == invoice_id)
    ).mappings().first()
    if plan is None:
        raise NotFound(f"No layaway plan for invoice {invoice_id}", invoice_id=invoice_id)

    installments = conn.execute(
        select(layaway_installments)
        .where(layaway_installments.c.plan_id == plan["id"])
        .order_by(layaway_installments.c.due_date, layaway_installments.c.id)
    ).mappings().all()

    return LayawayPlanOut(
        id=plan["id"],
        invoice_id=plan["invoice_id"],
        months=plan["months"],
        payment_frequency=plan["payment_frequency"],
        down_payment=to_money(plan["down_payment"]),
        is_cancelled=plan["is_cancelled"],
        notes=plan["notes"],
        created_at=plan["created_at"],
        installments=[_installment_out(row) for row in installments],
    )


def get_plan(invoice_id: int) -> LayawayPlanOut:
    with transaction() as conn:
        return _load_plan(conn, invoice_id)


def create_plan(invoice_id: int, data: LayawayPlanCreate) -> LayawayPlanOut:
    """
    Attach an installment plan to a layaway invoice.

    The schedule is stored exactly as supplied; dates and amounts are the
    caller's decision.
    """
    with transaction() as conn:
        invoice = fetch_row(conn, invoices, invoice_id, "invoice", lock=True)
        if not invoice["is_layaway"]:
            raise NotLayaway(
                f"Invoice {invoice['invoice_number']} is not marked as layaway",
                invoice_id=invoice_id,
            )
        existing = conn.execute(
            select(layaway_plans.c.id).where(layaway_plans.c.invoice_id == invoice_id)
        ).first()
        if existing is not None:
            raise Conflict(
                f"Layaway plan already exists for invoice {invoice['invoice_number']}",
                invoice_id=invoice_id,
                plan_id=existing.id,
            )

        plan_id = conn.execute(
            insert(layaway_plans).values(
                invoice_id=invoice_id,
                months=data.months,
                payment_frequency=data.payment_frequency.value,
                down_payment=to_money(data.down_payment),
                notes=data.notes or None,
            )
        ).inserted_primary_key[0]

        if data.installments:
            conn.execute(
                insert(layaway_installments),
                [
                    {
                        "plan_id": plan_id,
                        "due_date": inst.due_date,
                        "amount": to_money(inst.amount),
                        "label": inst.label,
                        "is_paid": inst.is_paid,
                        "paid_date": inst.paid_date,
                        "paid_amount": None if inst.paid_amount is None else to_money(inst.paid_amount),
                    }
                    for inst in data.installments
                ],
            )
        plan = _load_plan(conn, invoice_id)

    logger.info(
        "Created layaway plan %s for invoice %s with %d installment(s)",
        plan_id, invoice["invoice_number"], len(plan.installments),
    )
    return plan


def update_plan(
    invoice_id: int,
    is_cancelled: Optional[bool] = None,
    notes: Optional[str] = None,
) -> LayawayPlanOut:
    """Cancel/uncancel a plan or replace its notes. Installment flags are left as they are."""
    values = {}
    if is_cancelled is not None:
        values["is_cancelled"] = is_cancelled
    if notes is not None:
        values["notes"] = notes

    with transaction() as conn:
        plan = _load_plan(conn, invoice_id)
        if values:
            conn.execute(
                update(layaway_plans)
                .where(layaway_plans.c.id == plan.id)
                .values(**values)
            )
            plan = _load_plan(conn, invoice_id)
    return plan


def cancel_plan(invoice_id: int) -> LayawayPlanOut:
    return update_plan(invoice_id, is_cancelled=True)


def update_notes(invoice_id: int, notes: str) -> LayawayPlanOut:
    return update_plan(invoice_id, notes=notes)


def set_installment_paid(
    installment_id: int,
    paid: bool,
    paid_date: Optional[date] = None,
    paid_amount=None,
) -> InstallmentOut:
    """
    Flip one installment between paid and unpaid.

    Becoming paid stamps the paid date (today unless given) and paid amount
    (the installment amount unless given); becoming unpaid clears both.
    """
    with transaction() as conn:
        row = fetch_row(conn, layaway_installments, installment_id, "installment", lock=True)
        if paid and not row["is_paid"]:
            values = {
                "is_paid": True,
                "paid_date": paid_date or business_today(),
                "paid_amount": to_money(row["amount"] if paid_amount is None else paid_amount),
            }
        elif not paid and row["is_paid"]:
            values = {"is_paid": False, "paid_date": None, "paid_amount": None}
        else:
            values = {}

        if values:
            conn.execute(
                update(layaway_installments)
                .where(layaway_installments.c.id == installment_id)
                .values(**values)
            )
            row = fetch_row(conn, layaway_installments, installment_id, "installment")

    return _installment_out(row)


def _add_months(start: date, months: int) -> date:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def _ordinal(n: int) -> str:
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def propose_schedule(
    total_amount,
    months: int,
    frequency: PaymentFrequency,
    down_payment=ZERO,
    first_due_date: Optional[date] = None,
) -> List[ScheduleEntry]:
    """
    Even split of ``total - down payment`` over the plan's installments.

    Only a proposal for callers building a plan; ``create_plan`` never calls
    it. Rounding cents land on the last installment so the entries sum to
    the total exactly.
    """
    if first_due_date is None:
        first_due_date = business_today()
    total_amount = to_money(total_amount)
    down = min(to_money(down_payment), total_amount)
    count = months * INSTALLMENTS_PER_MONTH[frequency]

    entries: List[ScheduleEntry] = []
    if down > ZERO:
        entries.append(ScheduleEntry(label="Down Payment", due_date=first_due_date, amount=down))
    if count <= 0:
        return entries

    remaining = total_amount - down
    each = (remaining / count).quantize(CENT, rounding=ROUND_DOWN)
    for i in range(1, count + 1):
        if frequency == PaymentFrequency.MONTHLY:
            due = _add_months(first_due_date, i)
        else:
            step = 14 if frequency == PaymentFrequency.BI_WEEKLY else 7
            due = first_due_date + timedelta(days=step * i)
        amount = each if i < count else remaining - each * (count - 1)
        entries.append(ScheduleEntry(label=f"{_ordinal(i)} Payment", due_date=due, amount=amount))
    return entries
