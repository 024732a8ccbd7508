"""
Enrollment error taxonomy for Classlane Platform.

Every failure of an enrollment request surfaces as one of these, carrying a
machine-readable ``kind`` and a human-readable message.
"""

from __future__ import annotations

from typing import Any


class EnrollmentError(Exception):
    """Base class for enrollment failures."""

    kind = "enrollment_error"
    http_status = 400

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"kind": self.kind, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class Unauthenticated(EnrollmentError):
    """No caller identity."""

    kind = "unauthenticated"
    http_status = 401


class NotFound(EnrollmentError):
    """Student, class or promotion is absent or not owned by the caller."""

    kind = "not_found"
    http_status = 404


class InvalidRequest(EnrollmentError):
    """Empty class list, insufficient credit, ineligible promotion, ..."""

    kind = "invalid_request"
    http_status = 400


class PaymentFailure(EnrollmentError):
    """The payment gateway rejected the charge or could not be reached."""

    kind = "payment_failure"
    http_status = 402


class TransactionAbort(EnrollmentError):
    """The database aborted the enrollment transaction (conflict, deadlock)."""

    kind = "transaction_abort"
    http_status = 409
