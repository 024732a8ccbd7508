"""
URL configuration for Classlane Platform
"""

from django.urls import include, path

# ===============================================================================
# MAIN URL PATTERNS
# ===============================================================================

urlpatterns = [
    # REST API for the web app
    path("api/", include("apps.api.urls")),
]
