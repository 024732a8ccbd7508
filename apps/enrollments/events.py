"""
Outbound "enrollment completed" event.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

from django.utils import timezone

from apps.common.types import EventPayload

if TYPE_CHECKING:
    from .models import Enrollment

ENROLLMENT_COMPLETED = "enrollment.completed"


def serialize_enrollment(enrollment: Enrollment) -> dict[str, object]:
    student = enrollment.student
    course_class = enrollment.course_class
    course = course_class.course
    return {
        "id": enrollment.pk,
        "source": enrollment.source,
        "campaign": enrollment.campaign,
        "student": {"id": student.pk, "name": student.name, "account_id": student.account_id},
        "class": {
            "id": course_class.pk,
            "starts_at": course_class.starts_at.isoformat() if course_class.starts_at else None,
        },
        "course": {"id": course.pk, "name": course.name, "level": course.level},
    }


def build_enrollment_completed_event(enrollments: Iterable[Enrollment]) -> EventPayload:
    """JSON-safe payload so it can travel through the task queue."""
    return {
        "event": ENROLLMENT_COMPLETED,
        "occurred_at": timezone.now().isoformat(),
        "enrollments": [serialize_enrollment(enrollment) for enrollment in enrollments],
    }
