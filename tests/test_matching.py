from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from receivables.services import ledger
from receivables.services.matching import rank_suggestions, score_invoice, suggest_matches

PAID_ON = date(2025, 3, 10)


def _invoice(invoice_id, amount, paid="0", created_days_before=45, due=None):
    return {
        "id": invoice_id,
        "invoice_number": f"INV-2025-{invoice_id:04d}",
        "client_name": "Acme Corp",
        "amount": Decimal(amount),
        "paid": Decimal(paid),
        "status": "pending",
        "due_date": due or date(2025, 4, 1),
        "created_at": datetime.combine(PAID_ON - timedelta(days=created_days_before), datetime.min.time()),
    }


@pytest.mark.parametrize(
    "remaining, invoice_amount, invoice_remaining, created_days_before, expected",
    [
        ("250.00", "250.00", "250.00", 90, (95, "Exact amount match")),
        ("100.00", "300.00", "200.00", 90, (90, "Payment matches invoice total")),
        ("245.00", "250.00", "250.00", 90, (80, "Amount close to remaining balance")),
        ("100.00", "500.00", "500.00", 90, (70, "Possible partial payment")),
        ("900.00", "500.00", "500.00", 3, (60, "Created within same week")),
        ("900.00", "500.00", "500.00", 20, (50, "Created within same month")),
        ("900.00", "500.00", "500.00", 90, (0, "")),
    ],
)
def test_score_cascade(remaining, invoice_amount, invoice_remaining, created_days_before, expected):
    payment_amount = Decimal("300.00") if expected[0] == 90 else Decimal(remaining)
    score = score_invoice(
        payment_amount,
        Decimal(remaining),
        PAID_ON,
        Decimal(invoice_amount),
        Decimal(invoice_remaining),
        PAID_ON - timedelta(days=created_days_before),
    )
    assert score == expected


@pytest.mark.parametrize(
    "created_before, expected",
    [
        (timedelta(days=7), 60),
        (timedelta(days=7, hours=10), 50),
        (timedelta(days=-7, hours=-10), 50),
        (timedelta(days=30, hours=1), 0),
    ],
)
def test_day_gap_counts_hours(created_before, expected):
    created_at = datetime.combine(PAID_ON, datetime.min.time()) - created_before
    confidence, _ = score_invoice(
        Decimal("900.00"),
        Decimal("900.00"),
        PAID_ON,
        Decimal("500.00"),
        Decimal("500.00"),
        created_at,
    )
    assert confidence == expected


def test_exact_remaining_ranks_first():
    candidates = [
        _invoice(1, "1000.00"),
        _invoice(2, "250.00"),
        _invoice(3, "400.00", paid="100.00"),
    ]

    ranked = rank_suggestions(Decimal("250.00"), Decimal("250.00"), PAID_ON, candidates)

    assert ranked[0].invoice.id == 2
    assert ranked[0].confidence == 95
    assert ranked[0].reason == "Exact amount match"


def test_at_most_five_and_never_below_fifty():
    candidates = [_invoice(i, "1000.00") for i in range(1, 9)]
    candidates.append(_invoice(20, "10.00", created_days_before=200))

    ranked = rank_suggestions(Decimal("100.00"), Decimal("100.00"), PAID_ON, candidates)

    assert len(ranked) == 5
    assert all(s.confidence >= 50 for s in ranked)
    assert 20 not in [s.invoice.id for s in ranked]


def test_ties_break_on_due_date_then_id():
    candidates = [
        _invoice(1, "1000.00", due=date(2025, 4, 1)),
        _invoice(2, "1000.00", due=date(2025, 5, 1)),
        _invoice(3, "1000.00", due=date(2025, 4, 1)),
    ]

    ranked = rank_suggestions(Decimal("100.00"), Decimal("100.00"), PAID_ON, candidates)
    again = rank_suggestions(Decimal("100.00"), Decimal("100.00"), PAID_ON, list(reversed(candidates)))

    assert [s.invoice.id for s in ranked] == [2, 3, 1]
    assert ranked == again


def test_settled_invoices_and_spent_payments_get_nothing():
    settled = [_invoice(1, "250.00", paid="250.00")]
    assert rank_suggestions(Decimal("250.00"), Decimal("250.00"), PAID_ON, settled) == []
    assert rank_suggestions(Decimal("250.00"), Decimal("0.00"), PAID_ON, [_invoice(2, "250.00")]) == []


def test_suggest_matches_uses_remaining_to_allocate(make_invoice, make_payment):
    first = make_invoice("600.00")
    second = make_invoice("400.00")
    make_invoice("5000.00")
    payment = make_payment("1000.00")
    ledger.allocate(payment.id, first.id, "600.00")

    response = suggest_matches(payment.id)

    assert response.remaining_to_allocate == Decimal("400.00")
    assert response.suggestions[0].invoice.id == second.id
    assert response.suggestions[0].confidence == 95
    assert first.id not in [s.invoice.id for s in response.suggestions]


def test_paid_and_inactive_invoices_are_not_suggested(make_invoice, make_payment, client):
    paid = make_invoice("250.00")
    make_payment("250.00", invoice_id=paid.id)
    inactive = make_invoice("250.00")
    client.patch(f"/invoices/{inactive.id}", json={"inactive": True})
    payment = make_payment("250.00")

    response = suggest_matches(payment.id)

    ids = [s.invoice.id for s in response.suggestions]
    assert paid.id not in ids
    assert inactive.id not in ids


def test_directly_bound_payment_gets_no_suggestions(make_invoice, make_payment):
    invoice = make_invoice("1000.00")
    make_invoice("250.00")
    payment = make_payment("250.00", invoice_id=invoice.id)

    response = suggest_matches(payment.id)

    assert response.remaining_to_allocate == Decimal("0")
    assert response.suggestions == []
