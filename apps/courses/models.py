"""
Course catalog models for Classlane Platform.
A Course describes what is taught; a CourseClass is one scheduled run of it.
"""

from __future__ import annotations

from django.db import models
from django.utils.translation import gettext_lazy as _


class Course(models.Model):
    """
    A course in a subject track.

    ``level`` orders the courses of the same track: when several classes
    are bought together, the lowest level one is the main purchase.
    """

    name = models.CharField(max_length=200)
    subject = models.CharField(max_length=100, blank=True, db_index=True)
    level = models.PositiveSmallIntegerField(default=0)

    is_trial = models.BooleanField(default=False, help_text=_("Free introductory course"))
    is_regular = models.BooleanField(default=True, help_text=_("Paid course of a subject track"))

    # Nominal price of one class of this course
    price_cents = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "courses"
        verbose_name = _("Course")
        verbose_name_plural = _("Courses")
        ordering = ("subject", "level")

    def __str__(self) -> str:
        return self.name


class CourseClass(models.Model):
    """A scheduled instance of a course that students enroll in."""

    course = models.ForeignKey(Course, on_delete=models.PROTECT, related_name="classes")
    starts_at = models.DateTimeField()
    ends_at = models.DateTimeField(null=True, blank=True)
    details = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "classes"
        verbose_name = _("Class")
        verbose_name_plural = _("Classes")
        indexes = (models.Index(fields=["course", "starts_at"], name="classes_course_starts_idx"),)

    def __str__(self) -> str:
        return f"{self.course} @ {self.starts_at:%Y-%m-%d %H:%M}"
