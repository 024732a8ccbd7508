"""
Enrollment API URLs for Classlane Platform
"""

from django.urls import path

from . import views

app_name = "enrollments"

urlpatterns = [
    path("classes/", views.enroll_class, name="enroll_class"),
    path("trial/", views.enroll_trial, name="enroll_trial"),
]
