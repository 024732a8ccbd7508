"""
Enrollment signals for Classlane Platform.

``enrollment_completed`` fires from the background worker after an
enrollment transaction committed. Receivers get ``payload`` (the event
dict built by apps.enrollments.events) and must not assume they run in the
request that created the enrollments.
"""

from __future__ import annotations

from django.dispatch import Signal

enrollment_completed = Signal()
