# receivables/db/schema.py

from datetime import datetime, timezone

from sqlalchemy import (
    MetaData, Table, Column, Integer, String, Boolean,
    Numeric, Date, DateTime, ForeignKey, CheckConstraint, Text
)


def utcnow() -> datetime:
    # naive UTC, stored as-is by every backend
    return datetime.now(timezone.utc).replace(tzinfo=None)


metadata = MetaData()

customers = Table(
    "customers",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String, nullable=False),
    Column("email", String, nullable=True),
    Column("phone", String, nullable=True),
    Column("address", Text, nullable=True),
    Column("notes", Text, nullable=True),
    Column("created_at", DateTime, nullable=False, default=utcnow),
)

invoices = Table(
    "invoices",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("invoice_number", Text, unique=True, nullable=False),
    # weak back-reference; detached (nulled) when the customer is deleted
    Column("customer_id", Integer, ForeignKey("customers.id"), nullable=True),
    Column("client_name", Text, nullable=False),
    Column("subtotal", Numeric(18, 2), nullable=False),
    Column("tax", Numeric(18, 2), nullable=False),
    Column("discount", Numeric(18, 2), nullable=False),
    Column("amount", Numeric(18, 2), nullable=False),
    Column("paid_amount", Numeric(18, 2), nullable=False),
    Column("due_date", Date, nullable=False),
    Column("status", Text, nullable=False),
    Column("is_layaway", Boolean, nullable=False, default=False),
    Column("notes", Text),
    Column("created_at", DateTime, nullable=False, default=utcnow),
    Column("updated_at", DateTime, nullable=False, default=utcnow, onupdate=utcnow),
    CheckConstraint("amount >= 0", name="ck_invoices_amount_nonneg"),
    CheckConstraint("paid_amount >= 0", name="ck_invoices_paid_amount_nonneg"),
)

# last invoice number handed out per year; deleting an invoice never rewinds it
invoice_sequences = Table(
    "invoice_sequences",
    metadata,
    Column("year", Integer, primary_key=True, autoincrement=False),
    Column("last_seq", Integer, nullable=False),
)

payments = Table(
    "payments",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("amount", Numeric(18, 2), nullable=False),
    Column("payment_date", Date, nullable=False),
    Column("method", Text, nullable=False),
    # direct binding; mutually exclusive with rows in payment_invoice_matches
    Column("invoice_id", Integer, ForeignKey("invoices.id"), nullable=True),
    Column("is_matched", Boolean, nullable=False, default=False),
    Column("source", Text, nullable=False, default="manual"),
    Column("notes", Text),
    Column("created_at", DateTime, nullable=False, default=utcnow),
    CheckConstraint("amount > 0", name="ck_payments_amount_pos"),
)

payment_invoice_matches = Table(
    "payment_invoice_matches",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("payment_id", Integer, ForeignKey("payments.id"), nullable=False, index=True),
    Column("invoice_id", Integer, ForeignKey("invoices.id"), nullable=False, index=True),
    Column("amount", Numeric(18, 2), nullable=False),
    Column("created_at", DateTime, nullable=False, default=utcnow),
    CheckConstraint("amount > 0", name="ck_matches_amount_pos"),
)

layaway_plans = Table(
    "layaway_plans",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("invoice_id", Integer, ForeignKey("invoices.id"), unique=True, nullable=False),
    Column("months", Integer, nullable=False),
    Column("payment_frequency", Text, nullable=False),
    Column("down_payment", Numeric(18, 2), nullable=False),
    Column("is_cancelled", Boolean, nullable=False, default=False),
    Column("notes", Text),
    Column("created_at", DateTime, nullable=False, default=utcnow),
)

layaway_installments = Table(
    "layaway_installments",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("plan_id", Integer, ForeignKey("layaway_plans.id"), nullable=False, index=True),
    Column("due_date", Date, nullable=False),
    Column("amount", Numeric(18, 2), nullable=False),
    Column("label", Text, nullable=False),
    Column("is_paid", Boolean, nullable=False, default=False),
    Column("paid_date", Date),
    Column("paid_amount", Numeric(18, 2)),
)
