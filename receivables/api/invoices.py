# receivables/api/invoices.py

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Query, Response

from receivables.models.invoices import (
    InvoiceBalanceOut,
    InvoiceCreate,
    InvoiceCreditItem,
    InvoiceOut,
    InvoiceUpdate,
    PastDueResponse,
)
from receivables.models.layaway import (
    LayawayPlanCreate,
    LayawayPlanOut,
    LayawayPlanUpdate,
    PaymentFrequency,
    ScheduleEntry,
)
from receivables.services import invoices as invoice_service
from receivables.services import layaway as layaway_service
from receivables.services.ledger import recompute_invoice

router = APIRouter(prefix="/invoices", tags=["invoices"])


@router.post("/", response_model=InvoiceOut, status_code=201)
def create_invoice(body: InvoiceCreate) -> InvoiceOut:
    return invoice_service.create_invoice(body)


@router.get("/past-due", response_model=PastDueResponse)
def list_past_due_invoices(
    as_of: Optional[date] = Query(
        default=None,
        description="ISO date (YYYY-MM-DD); defaults to the business 'today'",
    ),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    sort: Optional[str] = Query(
        default="due_date.asc",
        description="due_date.asc | due_date.desc",
    ),
) -> PastDueResponse:
    """
    Returns invoices with positive outstanding balance whose due date is before as_of.
    """
    return invoice_service.past_due_invoices(as_of=as_of, limit=limit, offset=offset, sort=sort)


@router.get("/{invoice_id}", response_model=InvoiceOut)
def get_invoice(invoice_id: int) -> InvoiceOut:
    return invoice_service.get_invoice(invoice_id)


@router.patch("/{invoice_id}", response_model=InvoiceOut)
def update_invoice(invoice_id: int, body: InvoiceUpdate) -> InvoiceOut:
    return invoice_service.update_invoice(invoice_id, body)


@router.delete("/{invoice_id}", status_code=204)
def delete_invoice(invoice_id: int) -> Response:
    """
    Delete an invoice. Its allocations are removed and its direct payments
    are unbound; no payment is deleted.
    """
    invoice_service.delete_invoice(invoice_id)
    return Response(status_code=204)


@router.post("/{invoice_id}/recompute", response_model=InvoiceBalanceOut)
def recompute(invoice_id: int) -> InvoiceBalanceOut:
    """
    Re-derive paid amount and status from the ledger.
    """
    return recompute_invoice(invoice_id)


@router.get("/{invoice_id}/payments", response_model=List[InvoiceCreditItem])
def list_invoice_payments(invoice_id: int) -> List[InvoiceCreditItem]:
    return invoice_service.invoice_payments(invoice_id)


@router.get("/{invoice_id}/layaway-plan", response_model=LayawayPlanOut)
def get_layaway_plan(invoice_id: int) -> LayawayPlanOut:
    return layaway_service.get_plan(invoice_id)


@router.post("/{invoice_id}/layaway-plan", response_model=LayawayPlanOut, status_code=201)
def create_layaway_plan(invoice_id: int, body: LayawayPlanCreate) -> LayawayPlanOut:
    return layaway_service.create_plan(invoice_id, body)


@router.patch("/{invoice_id}/layaway-plan", response_model=LayawayPlanOut)
def update_layaway_plan(invoice_id: int, body: LayawayPlanUpdate) -> LayawayPlanOut:
    """
    Cancel the plan or change its notes. Installment paid flags are untouched.
    """
    return layaway_service.update_plan(
        invoice_id,
        is_cancelled=body.is_cancelled,
        notes=body.notes,
    )


@router.get("/{invoice_id}/layaway-plan/preview", response_model=List[ScheduleEntry])
def preview_layaway_schedule(
    invoice_id: int,
    months: int = Query(..., ge=1, le=60),
    frequency: PaymentFrequency = Query(PaymentFrequency.MONTHLY),
    down_payment: str = Query("0"),
    first_due_date: Optional[date] = Query(default=None),
) -> List[ScheduleEntry]:
    """
    Even-split schedule for the invoice total; nothing is stored.
    """
    invoice = invoice_service.get_invoice(invoice_id)
    return layaway_service.propose_schedule(
        invoice.amount,
        months,
        frequency,
        down_payment=down_payment,
        first_due_date=first_due_date,
    )
