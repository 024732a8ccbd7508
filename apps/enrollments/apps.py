"""
Enrollments app configuration for Classlane Platform.
"""

from django.apps import AppConfig


class EnrollmentsConfig(AppConfig):
    """Configuration for the Enrollments app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.enrollments"
    verbose_name = "Enrollments"

    def ready(self) -> None:
        """Import signals when app is ready."""
        from . import signals  # noqa: F401
