"""
Common middleware for Classlane Platform
Request tracing and marketing attribution capture.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable

from django.http import HttpRequest, HttpResponse

from apps.common.logging import clear_request_context, set_request_context, set_request_id

logger = logging.getLogger(__name__)

# Session keys holding the attribution captured from landing-page links
ATTRIBUTION_SESSION_KEYS = {
    "utm_source": "utm_source",
    "utm_campaign": "utm_campaign",
}
ATTRIBUTION_MAX_LENGTH = 100

# ===============================================================================
# REQUEST ID MIDDLEWARE
# ===============================================================================


class RequestIDMiddleware:
    """Add unique request ID for tracing and audit logs"""

    def __init__(self, get_response: Callable[[HttpRequest], HttpResponse]):
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.META["REQUEST_ID"] = request_id
        set_request_id(request_id)

        user = getattr(request, "user", None)
        if user is not None and user.is_authenticated:
            set_request_context(user_id=user.pk)

        try:
            response = self.get_response(request)
        finally:
            clear_request_context()

        # Add to response headers for debugging
        response["X-Request-ID"] = request_id
        return response


# ===============================================================================
# ATTRIBUTION MIDDLEWARE
# ===============================================================================


class AttributionMiddleware:
    """
    Remember where a visitor came from.

    Stores the ``utm_source`` and ``utm_campaign`` query parameters in the
    session so later enrollments can be attributed to the campaign that
    brought the parent in. Later links overwrite earlier ones.
    """

    def __init__(self, get_response: Callable[[HttpRequest], HttpResponse]):
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        session = getattr(request, "session", None)
        if session is not None:
            for param, session_key in ATTRIBUTION_SESSION_KEYS.items():
                value = request.GET.get(param)
                if value:
                    session[session_key] = value[:ATTRIBUTION_MAX_LENGTH]

        return self.get_response(request)
