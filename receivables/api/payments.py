# receivables/api/payments.py

from typing import List

from fastapi import APIRouter, Response

from receivables.models.invoices import InvoiceBalanceOut
from receivables.models.payments import (
    AllocationOut,
    BatchAllocationRequest,
    LinkRequest,
    PaymentCreate,
    PaymentOut,
    SuggestionsResponse,
    UnmatchedPaymentsResponse,
)
from receivables.services import ledger
from receivables.services import payments as payment_service
from receivables.services.matching import suggest_matches

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/", response_model=PaymentOut, status_code=201)
def create_payment(body: PaymentCreate) -> PaymentOut:
    """
    Record a payment. With ``invoice_id`` it is bound directly to that
    invoice; without, it waits to be allocated.
    """
    return payment_service.create_payment(body)


@router.get("/unmatched", response_model=UnmatchedPaymentsResponse)
def list_unmatched_payments() -> UnmatchedPaymentsResponse:
    return payment_service.unmatched_payments()


@router.post("/link", response_model=AllocationOut, status_code=201)
def link_payment(body: LinkRequest) -> AllocationOut:
    """
    Credit part or all of one payment to one invoice.
    """
    return ledger.allocate(body.payment_id, body.invoice_id, body.amount)


@router.get("/{payment_id}", response_model=PaymentOut)
def get_payment(payment_id: int) -> PaymentOut:
    return payment_service.get_payment(payment_id)


@router.delete("/{payment_id}", status_code=204)
def delete_payment(payment_id: int) -> Response:
    payment_service.delete_payment(payment_id)
    return Response(status_code=204)


@router.post("/{payment_id}/match", response_model=List[AllocationOut], status_code=201)
def match_payment(payment_id: int, body: BatchAllocationRequest) -> List[AllocationOut]:
    """
    Allocate one payment across several invoices; either every allocation
    is written or none is.
    """
    return ledger.allocate_batch(payment_id, body.matches)


@router.delete("/{payment_id}/match/{match_id}", response_model=InvoiceBalanceOut)
def unmatch_payment(payment_id: int, match_id: int) -> InvoiceBalanceOut:
    return ledger.remove_allocation(payment_id, match_id)


@router.get("/{payment_id}/suggestions", response_model=SuggestionsResponse)
def get_suggestions(payment_id: int) -> SuggestionsResponse:
    """
    Up to five open invoices ranked by how likely they are to be what this
    payment pays for.
    """
    return suggest_matches(payment_id)
