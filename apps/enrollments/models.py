"""
Enrollment models for Classlane Platform.
"""

from __future__ import annotations

from django.db import models
from django.utils.translation import gettext_lazy as _


class Enrollment(models.Model):
    """
    A student's seat in a class.

    Created once by EnrollmentService as the terminal artifact of a
    successful enrollment and never updated.
    """

    student = models.ForeignKey("accounts.Student", on_delete=models.CASCADE, related_name="enrollments")
    course_class = models.ForeignKey("courses.CourseClass", on_delete=models.PROTECT, related_name="enrollments")

    # Marketing attribution captured from the parent's session
    source = models.CharField(max_length=100, blank=True, default="")
    campaign = models.CharField(max_length=100, blank=True, default="")

    # What priced this enrollment
    promotion = models.ForeignKey(
        "promotions.Promotion",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="enrollments",
    )
    credit = models.ForeignKey(
        "billing.Credit",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="enrollments",
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "enrollments"
        verbose_name = _("Enrollment")
        verbose_name_plural = _("Enrollments")
        indexes = (models.Index(fields=["student", "-created_at"], name="enrollments_student_idx"),)

    def __str__(self) -> str:
        return f"{self.student} -> {self.course_class}"
