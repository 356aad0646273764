from datetime import date, timedelta
from decimal import Decimal

import pytest

from receivables.models.layaway import InstallmentIn, LayawayPlanCreate, PaymentFrequency
from receivables.services import layaway
from receivables.services.errors import Conflict, NotFound, NotLayaway
from receivables.services.invoices import get_invoice


def _plan_body(today, count=3, amount="100.00"):
    return LayawayPlanCreate(
        months=count,
        payment_frequency=PaymentFrequency.MONTHLY,
        installments=[
            InstallmentIn(
                due_date=today + timedelta(days=30 * i),
                amount=Decimal(amount),
                label=f"Payment {i}",
            )
            for i in range(1, count + 1)
        ],
    )


def test_plan_requires_layaway_invoice(make_invoice, today):
    invoice = make_invoice("300.00", is_layaway=False)

    with pytest.raises(NotLayaway):
        layaway.create_plan(invoice.id, _plan_body(today))


def test_plan_on_missing_invoice_is_not_found(today):
    with pytest.raises(NotFound):
        layaway.create_plan(777, _plan_body(today))


def test_one_plan_per_invoice(make_invoice, today):
    invoice = make_invoice("300.00", is_layaway=True)
    layaway.create_plan(invoice.id, _plan_body(today))

    with pytest.raises(Conflict):
        layaway.create_plan(invoice.id, _plan_body(today))


def test_installments_are_stored_as_given(make_invoice, today):
    invoice = make_invoice("300.00", is_layaway=True)

    plan = layaway.create_plan(invoice.id, _plan_body(today))

    assert [i.label for i in plan.installments] == ["Payment 1", "Payment 2", "Payment 3"]
    assert all(i.amount == Decimal("100.00") for i in plan.installments)
    assert not any(i.is_paid for i in plan.installments)


def test_marking_installment_paid_leaves_invoice_alone(make_invoice, today):
    invoice = make_invoice("300.00", is_layaway=True)
    plan = layaway.create_plan(invoice.id, _plan_body(today))

    for installment in plan.installments:
        marked = layaway.set_installment_paid(installment.id, True)
        assert marked.is_paid is True
        assert marked.paid_date == today
        assert marked.paid_amount == Decimal("100.00")

    refreshed = get_invoice(invoice.id)
    assert refreshed.paid_amount == Decimal("0.00")
    assert refreshed.status == "pending"


def test_unmarking_clears_paid_stamps(make_invoice, today):
    invoice = make_invoice("300.00", is_layaway=True)
    installment = layaway.create_plan(invoice.id, _plan_body(today)).installments[0]
    layaway.set_installment_paid(installment.id, True, paid_date=date(2025, 1, 2), paid_amount="90.00")

    cleared = layaway.set_installment_paid(installment.id, False)

    assert cleared.is_paid is False
    assert cleared.paid_date is None
    assert cleared.paid_amount is None


def test_unknown_installment_is_not_found():
    with pytest.raises(NotFound):
        layaway.set_installment_paid(31337, True)


def test_cancel_keeps_installment_flags(make_invoice, today):
    invoice = make_invoice("300.00", is_layaway=True)
    plan = layaway.create_plan(invoice.id, _plan_body(today))
    layaway.set_installment_paid(plan.installments[0].id, True)

    cancelled = layaway.cancel_plan(invoice.id)

    assert cancelled.is_cancelled is True
    assert [i.is_paid for i in cancelled.installments] == [True, False, False]


def test_update_notes(make_invoice, today):
    invoice = make_invoice("300.00", is_layaway=True)
    layaway.create_plan(invoice.id, _plan_body(today))

    assert layaway.update_notes(invoice.id, "Picked up on completion").notes == "Picked up on completion"


@pytest.mark.parametrize(
    "frequency, months, expected_count",
    [
        (PaymentFrequency.MONTHLY, 3, 3),
        (PaymentFrequency.BI_WEEKLY, 3, 6),
        (PaymentFrequency.WEEKLY, 2, 8),
    ],
)
def test_proposed_schedule_sums_to_total(frequency, months, expected_count):
    entries = layaway.propose_schedule("1000.00", months, frequency, down_payment="100.00",
                                       first_due_date=date(2025, 1, 31))

    assert entries[0].label == "Down Payment"
    assert entries[0].amount == Decimal("100.00")
    assert len(entries) == expected_count + 1
    assert sum(e.amount for e in entries) == Decimal("1000.00")


def test_monthly_schedule_clamps_to_month_end():
    entries = layaway.propose_schedule("300.00", 3, PaymentFrequency.MONTHLY, first_due_date=date(2025, 1, 31))

    assert [e.due_date for e in entries] == [date(2025, 2, 28), date(2025, 3, 31), date(2025, 4, 30)]
    assert [e.label for e in entries] == ["1st Payment", "2nd Payment", "3rd Payment"]
    assert [e.amount for e in entries] == [Decimal("100.00")] * 3


def test_rounding_cents_land_on_last_installment():
    entries = layaway.propose_schedule("100.00", 3, PaymentFrequency.MONTHLY, first_due_date=date(2025, 1, 1))

    assert [e.amount for e in entries] == [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")]
