# ===============================================================================
# CLASSLANE API APP CONFIGURATION 🛠️
# ===============================================================================

from django.apps import AppConfig


class ApiConfig(AppConfig):
    """
    Configuration for Classlane's centralized API app.

    This app provides REST API endpoints for:
    - Class and trial enrollment
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.api"
    label = "platform_api"  # Unique label to avoid conflicts
    verbose_name = "Classlane Platform API"
