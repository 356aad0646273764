import os
import tempfile

os.environ.setdefault(
    "RECEIVABLES_DATABASE_URL",
    "sqlite:///" + os.path.join(tempfile.gettempdir(), "receivables_test.sqlite"),
)
os.environ.setdefault("RECEIVABLES_TIMEZONE", "America/New_York")

from datetime import datetime, timedelta  # noqa: E402
from decimal import Decimal  # noqa: E402

from fastapi.testclient import TestClient  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy import update  # noqa: E402

from receivables.db.engine import get_engine, transaction  # noqa: E402
from receivables.db.schema import invoices, metadata  # noqa: E402
from receivables.main import app  # noqa: E402
from receivables.models.customers import CustomerIn  # noqa: E402
from receivables.models.invoices import InvoiceCreate  # noqa: E402
from receivables.models.payments import PaymentCreate  # noqa: E402
from receivables.services.customers import create_customer  # noqa: E402
from receivables.services.invoices import create_invoice  # noqa: E402
from receivables.services.payments import create_payment  # noqa: E402
from receivables.services.status import business_today  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_db():
    engine = get_engine()
    metadata.drop_all(engine)
    metadata.create_all(engine)
    yield


@pytest.fixture()
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture()
def today():
    return business_today()


@pytest.fixture()
def make_customer():
    def _make(name="Acme Corp", email=None, phone=None):
        return create_customer(CustomerIn(name=name, email=email, phone=phone))

    return _make


@pytest.fixture()
def make_invoice(today):
    def _make(
        amount="1000.00",
        due_in_days=30,
        client_name="Acme Corp",
        customer_id=None,
        is_layaway=False,
        created_days_ago=None,
    ):
        invoice = create_invoice(
            InvoiceCreate(
                client_name=client_name,
                customer_id=customer_id,
                subtotal=Decimal(amount),
                due_date=today + timedelta(days=due_in_days),
                is_layaway=is_layaway,
            )
        )
        if created_days_ago is not None:
            created_at = datetime.combine(today - timedelta(days=created_days_ago), datetime.min.time())
            with transaction() as conn:
                conn.execute(
                    update(invoices)
                    .where(invoices.c.id == invoice.id)
                    .values(created_at=created_at)
                )
        return invoice

    return _make


@pytest.fixture()
def make_payment(today):
    def _make(amount="500.00", invoice_id=None, payment_date=None, method="ach"):
        return create_payment(
            PaymentCreate(
                amount=Decimal(amount),
                payment_date=payment_date or today,
                method=method,
                invoice_id=invoice_id,
            )
        )

    return _make
