# ===============================================================================
# CLASSLANE API MAIN URLS 🚀
# ===============================================================================
#
# Central API routing for all Classlane domains.
#
# URL Structure:
#   /api/enrollments/  → Class and trial enrollment APIs
#

from django.urls import include, path

from .enrollments import urls as enrollment_urls

app_name = "api"

urlpatterns = [
    # Enrollment APIs
    path("enrollments/", include((enrollment_urls, "enrollments"))),
]
