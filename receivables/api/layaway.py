# receivables/api/layaway.py

from fastapi import APIRouter

from receivables.models.layaway import InstallmentOut, InstallmentPaidIn
from receivables.services.layaway import set_installment_paid

router = APIRouter(prefix="/layaway", tags=["layaway"])


@router.patch("/installments/{installment_id}", response_model=InstallmentOut)
def mark_installment(installment_id: int, body: InstallmentPaidIn) -> InstallmentOut:
    """
    Mark an installment paid or unpaid. The invoice's paid amount is not changed.
    """
    return set_installment_paid(
        installment_id,
        body.paid,
        paid_date=body.paid_date,
        paid_amount=body.paid_amount,
    )
