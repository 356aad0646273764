# receivables/api/customers.py

from typing import Optional

from fastapi import APIRouter, Query, Response

from receivables.models.customers import (
    CustomerDetailOut,
    CustomerIn,
    CustomerListResponse,
    CustomerOut,
    CustomerSort,
)
from receivables.services import customers as customer_service

router = APIRouter(prefix="/customers", tags=["customers"])


@router.get("/", response_model=CustomerListResponse)
def list_customers(
    search: Optional[str] = Query(default=None, description="Matches name, email or phone"),
    sort: CustomerSort = Query(CustomerSort.REVENUE),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    top: Optional[int] = Query(default=None, ge=1, description="Return only the first N; no pagination"),
) -> CustomerListResponse:
    """
    Return customers with revenue, outstanding, aging and health score.
    """
    return customer_service.list_customers(
        search=search,
        sort=sort,
        page=page,
        limit=limit,
        top=top,
    )


@router.post("/", response_model=CustomerOut, status_code=201)
def create_customer(body: CustomerIn) -> CustomerOut:
    return customer_service.create_customer(body)


@router.get("/{customer_id}", response_model=CustomerDetailOut)
def get_customer(customer_id: int) -> CustomerDetailOut:
    """
    Return a single customer with its invoices and financial stats.
    """
    return customer_service.customer_detail(customer_id)


@router.put("/{customer_id}", response_model=CustomerOut)
def update_customer(customer_id: int, body: CustomerIn) -> CustomerOut:
    return customer_service.update_customer(customer_id, body)


@router.delete("/{customer_id}", status_code=204)
def delete_customer(customer_id: int) -> Response:
    """
    Delete a customer; its invoices are kept and detached.
    """
    customer_service.delete_customer(customer_id)
    return Response(status_code=204)
