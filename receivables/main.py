import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from receivables.api.customers import router as customers_router
from receivables.api.invoices import router as invoices_router
from receivables.api.layaway import router as layaway_router
from receivables.api.payments import router as payments_router
from receivables.config import settings
from receivables.services.errors import ReconciliationError

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(message)s",
)

app = FastAPI(
    title="Receivables Reconciliation API",
    version="0.1.0",
)


@app.exception_handler(ReconciliationError)
def reconciliation_error_handler(request: Request, exc: ReconciliationError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/health")
def health_check():
    return {"status": "ok"}

app.include_router(customers_router)
app.include_router(invoices_router)
app.include_router(payments_router)
app.include_router(layaway_router)
