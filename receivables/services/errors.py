# receivables/services/errors.py
"""
Failures raised by the reconciliation core.

Every error is a caller-visible, synchronous failure. None of them are
retried inside the core; only ``RetryableConflict`` tells the caller that
re-issuing the exact same request may succeed.
"""

from decimal import Decimal
from typing import Any, Dict


class ReconciliationError(Exception):
    code = "reconciliation_error"
    status_code = 400
    retryable = False

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "error": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }
        for key, value in self.details.items():
            body[key] = str(value) if isinstance(value, Decimal) else value
        return body


class NotFound(ReconciliationError):
    code = "not_found"
    status_code = 404


class InvalidAmount(ReconciliationError):
    code = "invalid_amount"
    status_code = 400


class OverAllocation(ReconciliationError):
    code = "over_allocation"
    status_code = 400


class AlreadyDirectlyBound(ReconciliationError):
    code = "already_directly_bound"
    status_code = 409


class NotLayaway(ReconciliationError):
    code = "not_layaway"
    status_code = 400


class Conflict(ReconciliationError):
    code = "conflict"
    status_code = 409


class RetryableConflict(ReconciliationError):
    """Concurrent writers collided; the same request can be sent again."""

    code = "retryable_conflict"
    status_code = 409
    retryable = True
