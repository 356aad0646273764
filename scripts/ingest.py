# scripts/ingest.py

import csv
import logging
import sys
from datetime import datetime

from receivables.db.engine import transaction
from receivables.models.payments import PaymentCreate, PaymentMethod, PaymentSource
from receivables.services.errors import InvalidAmount
from receivables.services.money import ZERO, parse_money
from receivables.services.payments import insert_payment

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger(__name__)

FILE_PATH = "data/payments.csv"
REQUIRED_COLUMNS = ("amount", "paymentDate", "method")
MAX_NOTES = 1000


# ---- Helpers ----

def parse_payment_date(value: str):
    value = (value or "").strip()
    if not value:
        raise ValueError("paymentDate is required")
    return datetime.strptime(value, "%Y-%m-%d").date()


def parse_method(value: str) -> PaymentMethod:
    value = (value or "").strip().lower()
    try:
        return PaymentMethod(value)
    except ValueError:
        raise ValueError(f"unknown payment method {value!r}")


def validate_row(row: dict, row_number: int) -> tuple:
    """
    Returns (PaymentCreate or None, [errors]). row_number is the CSV line
    number, header being line 1.
    """
    errors = []

    amount = None
    try:
        amount = parse_money(row.get("amount"))
        if amount <= ZERO:
            errors.append({"row": row_number, "field": "amount", "error": "Amount must be a positive number"})
    except InvalidAmount:
        errors.append({"row": row_number, "field": "amount", "error": "Amount must be a positive number"})

    payment_date = None
    try:
        payment_date = parse_payment_date(row.get("paymentDate"))
    except ValueError:
        errors.append({"row": row_number, "field": "paymentDate", "error": "Invalid date format. Use: YYYY-MM-DD"})

    method = None
    try:
        method = parse_method(row.get("method"))
    except ValueError as e:
        errors.append({"row": row_number, "field": "method", "error": str(e)})

    notes = (row.get("notes") or "").strip() or None
    if notes and len(notes) > MAX_NOTES:
        errors.append({"row": row_number, "field": "notes", "error": f"Notes must be at most {MAX_NOTES} characters"})

    if errors:
        return None, errors

    payment = PaymentCreate(
        amount=amount,
        payment_date=payment_date,
        method=method,
        notes=notes,
        source=PaymentSource.CSV_UPLOAD,
    )
    return payment, []


def parse_payments_csv(file_path: str = FILE_PATH):
    payments_list = []
    validation_errors = []
    n_rows = 0

    # duplicate tracking by (amount, date, method)
    seen = {}
    duplicates = []

    with open(file_path, newline="") as f:
        reader = csv.DictReader(f)
        if reader.fieldnames is None:
            raise ValueError(f"{file_path} is empty")
        reader.fieldnames = [name.strip() for name in reader.fieldnames]
        missing = [col for col in REQUIRED_COLUMNS if col not in reader.fieldnames]
        if missing:
            raise ValueError(f"{file_path} is missing column(s): {', '.join(missing)}")

        for row in reader:
            n_rows += 1
            row_number = n_rows + 1

            payment, errors = validate_row(row, row_number)
            if errors:
                validation_errors.extend(errors)
                continue

            key = (payment.amount, payment.payment_date, payment.method)
            if key in seen:
                duplicates.append(
                    f"Rows {seen[key]} and {row_number} are both {payment.amount} "
                    f"on {payment.payment_date} by {payment.method.value}"
                )
            else:
                seen[key] = row_number
            payments_list.append(payment)

    stats = {
        "n_rows": n_rows,
        "n_payments": len(payments_list),
        "n_errors": len(validation_errors),
        "validation_errors": validation_errors,
        "n_duplicates": len(duplicates),
        "duplicates": duplicates,
    }
    return payments_list, stats


def load_into_db(payments_list):
    """
    Write every payment as unmatched in one transaction: all rows or none.
    """
    with transaction() as conn:
        return [insert_payment(conn, payment) for payment in payments_list]


def main(file_path: str = FILE_PATH):
    payments_list, stats = parse_payments_csv(file_path)

    logger.info(f"Total CSV rows read:   {stats['n_rows']}")
    logger.info(f"Valid payments:        {stats['n_payments']}")
    logger.info(f"Rows with errors:      {stats['n_errors']}")
    logger.info("Duplicate payments (amount, date, method): %s", stats["n_duplicates"])
    for example in stats["duplicates"]:
        logger.warning("Duplicate payment: %s", example)

    if stats["validation_errors"] or stats["duplicates"]:
        for err in stats["validation_errors"]:
            logger.warning("Row %s, %s: %s", err["row"], err["field"], err["error"])
        logger.error("Validation failed. All rows must be valid before upload; nothing was loaded.")
        return 1

    payment_ids = load_into_db(payments_list)
    logger.info(
        "Created %s unmatched payment(s). Use payment matching to link them to invoices.",
        len(payment_ids),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1] if len(sys.argv) > 1 else FILE_PATH))
