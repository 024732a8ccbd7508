"""Enrollment background tasks.

Django-Q2 tasks run after an enrollment transaction committed.
"""

from __future__ import annotations

import logging
from typing import Any

from apps.common.types import EventPayload

from .signals import enrollment_completed

logger = logging.getLogger(__name__)


def publish_enrollment_completed(payload: EventPayload) -> dict[str, Any]:
    """
    Fan the enrollment completed event out to its receivers.

    A failing receiver is logged and does not stop the others.

    Args:
        payload: Event built by build_enrollment_completed_event

    Returns:
        Dictionary with delivery result
    """
    enrollment_ids = [item["id"] for item in payload.get("enrollments", [])]
    logger.info(f"📣 [Enrollment] Publishing {payload.get('event')} for enrollments {enrollment_ids}")

    responses = enrollment_completed.send_robust(sender=publish_enrollment_completed, payload=payload)

    failures = [(receiver, error) for receiver, error in responses if isinstance(error, Exception)]
    for receiver, error in failures:
        logger.error(f"❌ [Enrollment] Receiver {getattr(receiver, '__name__', receiver)} failed: {error}")

    return {
        "success": not failures,
        "enrollment_ids": enrollment_ids,
        "receivers": len(responses),
        "failed_receivers": len(failures),
    }
