"""
Courses app configuration for Classlane Platform.
"""

from django.apps import AppConfig


class CoursesConfig(AppConfig):
    """Configuration for the Courses app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.courses"
    verbose_name = "Courses & Classes"
