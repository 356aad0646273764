# receivables/services/matching.py
"""
Suggest open invoices for a payment that is not fully allocated.

Each open invoice is scored by the first rule of the cascade it satisfies:

    95  remaining-to-allocate equals the invoice's remaining balance
    90  payment amount equals the invoice total
    80  remaining-to-allocate within 5% of the invoice's remaining balance
    70  remaining-to-allocate smaller than the invoice's remaining balance
    60  invoice created within 7 days of the payment date
    50  invoice created within 30 days of the payment date

The day gap is fractional: the payment date counts from midnight and the
invoice from its creation timestamp, so 7 days and 10 hours is not "within 7".

Anything scoring below 50 is dropped.
"""

from datetime import date, datetime, time
from decimal import Decimal
from typing import Iterable, List, Mapping, Optional, Tuple

from sqlalchemy import select

from receivables.config import settings
from receivables.db.engine import transaction
from receivables.db.schema import invoices, payments
from receivables.models.invoices import InvoiceSummary
from receivables.models.payments import SuggestionOut, SuggestionsResponse
from receivables.services.ledger import BindingKind, credited_totals, fetch_row, payment_binding
from receivables.services.money import ZERO, to_money, within_cent
from receivables.services.status import OPEN_STATUSES

MIN_CONFIDENCE = 50
CLOSE_RATIO = Decimal("0.05")


def _as_datetime(value) -> datetime:
    return value if isinstance(value, datetime) else datetime.combine(value, time.min)


def score_invoice(
    payment_amount: Decimal,
    remaining_to_allocate: Decimal,
    payment_date: date,
    invoice_amount: Decimal,
    invoice_remaining: Decimal,
    invoice_created: datetime,
) -> Tuple[int, str]:
    if within_cent(remaining_to_allocate, invoice_remaining):
        return 95, "Exact amount match"
    if within_cent(payment_amount, invoice_amount):
        return 90, "Payment matches invoice total"
    if abs(remaining_to_allocate - invoice_remaining) / invoice_remaining <= CLOSE_RATIO:
        return 80, "Amount close to remaining balance"
    if remaining_to_allocate < invoice_remaining:
        return 70, "Possible partial payment"

    gap = _as_datetime(payment_date) - _as_datetime(invoice_created)
    days_diff = abs(gap.total_seconds()) / 86400
    if days_diff <= 7:
        return 60, "Created within same week"
    if days_diff <= 30:
        return 50, "Created within same month"
    return 0, ""


def rank_suggestions(
    payment_amount: Decimal,
    remaining_to_allocate: Decimal,
    payment_date: date,
    candidates: Iterable[Mapping],
    limit: Optional[int] = None,
) -> List[SuggestionOut]:
    """
    Score and rank candidate invoices for one payment.

    ``candidates`` are mappings with the invoice columns plus ``paid``, the
    amount already credited to the invoice. Deterministic for a fixed input:
    confidence descending, then due date descending, then id descending.
    """
    if limit is None:
        limit = settings.suggestion_limit
    if remaining_to_allocate <= ZERO:
        return []

    scored = []
    for invoice in candidates:
        amount = to_money(invoice["amount"])
        paid = to_money(invoice["paid"])
        remaining = amount - paid
        if remaining <= ZERO:
            continue

        confidence, reason = score_invoice(
            payment_amount,
            remaining_to_allocate,
            payment_date,
            amount,
            remaining,
            invoice["created_at"],
        )
        if confidence < MIN_CONFIDENCE:
            continue

        summary = InvoiceSummary(
            id=invoice["id"],
            invoice_number=invoice["invoice_number"],
            client_name=invoice["client_name"],
            amount=amount,
            paid_amount=paid,
            remaining=remaining,
            status=invoice["status"],
            due_date=invoice["due_date"],
        )
        scored.append(SuggestionOut(invoice=summary, confidence=confidence, reason=reason))

    scored.sort(
        key=lambda s: (s.confidence, s.invoice.due_date, s.invoice.id),
        reverse=True,
    )
    return scored[:limit]


def suggest_matches(payment_id: int) -> SuggestionsResponse:
    with transaction() as conn:
        payment = fetch_row(conn, payments, payment_id, "payment")
        binding = payment_binding(conn, payment)
        remaining_to_allocate = binding.available

        candidates = []
        if binding.kind != BindingKind.DIRECT and remaining_to_allocate > ZERO:
            rows = conn.execute(
                select(invoices)
                .where(invoices.c.status.in_([s.value for s in OPEN_STATUSES]))
                .order_by(invoices.c.created_at.desc())
            ).mappings().all()
            credited = credited_totals(conn, [row["id"] for row in rows])
            candidates = [dict(row, paid=credited[row["id"]]) for row in rows]

    suggestions = rank_suggestions(
        binding.amount,
        remaining_to_allocate,
        payment["payment_date"],
        candidates,
    )
    return SuggestionsResponse(
        payment_id=payment_id,
        payment_amount=binding.amount,
        remaining_to_allocate=remaining_to_allocate,
        suggestions=suggestions,
    )
