"""
Logging infrastructure for Classlane Platform.

- RequestIDFilter: structured logging with request correlation
- Request context helpers backed by thread-local storage

Usage:
    LOGGING = {
        "filters": {"add_request_id": {"()": "apps.common.logging.RequestIDFilter"}},
        ...
    }
"""

from __future__ import annotations

import logging
import threading
from typing import Any

# Thread-local storage for request context
_request_context = threading.local()


# =============================================================================
# REQUEST CONTEXT FUNCTIONS
# =============================================================================


def set_request_id(request_id: str) -> None:
    """Set the current request ID in thread-local storage."""
    _request_context.request_id = request_id


def get_request_id() -> str | None:
    """Get the current request ID from thread-local storage."""
    return getattr(_request_context, "request_id", None)


def clear_request_id() -> None:
    """Clear the request ID from thread-local storage."""
    _request_context.request_id = None


def set_request_context(**kwargs: Any) -> None:
    """Set additional request context (user_id, account_id, ...)."""
    for key, value in kwargs.items():
        setattr(_request_context, key, value)


def clear_request_context() -> None:
    """Drop every attribute stored for the current request."""
    _request_context.__dict__.clear()


# =============================================================================
# LOG FILTERS
# =============================================================================


class RequestIDFilter(logging.Filter):
    """
    Add request ID and context to log records.

    This filter injects the request ID from thread-local storage
    into every log record, enabling request tracing across logs.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        """Add request_id attribute to log record"""
        if not hasattr(record, "request_id"):
            record.request_id = getattr(_request_context, "request_id", None) or "-"

        if not hasattr(record, "user_id"):
            record.user_id = getattr(_request_context, "user_id", None)
        if not hasattr(record, "account_id"):
            record.account_id = getattr(_request_context, "account_id", None)

        return True


class ServiceNameFilter(logging.Filter):
    """Inject a fixed service tag into every log record."""

    def __init__(self, service_name: str = "CLS") -> None:
        super().__init__()
        self.service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:
        setattr(record, "service_name", self.service_name)  # noqa: B010
        return True
