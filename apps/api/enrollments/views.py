"""
Enrollment API Views for Classlane Platform
DRF views for class and trial enrollment.
"""

import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle

from apps.accounts.services import AccountService
from apps.enrollments.exceptions import EnrollmentError
from apps.enrollments.services import (
    Attribution,
    ClassEnrollmentRequest,
    EnrollmentService,
    TrialEnrollmentRequest,
)

from .serializers import ClassEnrollmentInputSerializer, EnrollmentSerializer, TrialEnrollmentInputSerializer

logger = logging.getLogger(__name__)


# 🔒 SECURITY: Custom throttle class for enrollment endpoints
class EnrollmentThrottle(ScopedRateThrottle):
    """Throttling for enrollment endpoints"""
    scope = "enrollment"


def _error_response(exc: EnrollmentError) -> Response:
    return Response({"error": exc.to_dict()}, status=exc.http_status)


def _invalid_input_response(errors: dict) -> Response:
    return Response(
        {"error": {"kind": "invalid_request", "message": "Invalid input", "details": errors}},
        status=status.HTTP_400_BAD_REQUEST,
    )


def _caller_account_id(request: Request) -> int | None:
    account = AccountService.get_account_for_user(request.user)
    return account.pk if account else None


# Anonymous callers reach the view so the service reports "unauthenticated" itself
@api_view(["POST"])
@permission_classes([AllowAny])
@throttle_classes([EnrollmentThrottle])
def enroll_class(request: Request) -> Response:
    """
    Enroll a student in one or more classes, paying with credit, a
    promotion and/or a payment method.
    """
    input_serializer = ClassEnrollmentInputSerializer(data=request.data)
    if not input_serializer.is_valid():
        return _invalid_input_response(input_serializer.errors)

    data = input_serializer.validated_data
    enrollment_request = ClassEnrollmentRequest(
        account_id=_caller_account_id(request),
        class_ids=data["class_ids"],
        student_id=data["student_id"],
        credit_cents=data["credit"],
        promotion_id=data.get("promotion_id"),
        payment_method_nonce=data.get("payment_method_nonce") or None,
        whole_series=data["whole_series"],
        attribution=Attribution.from_session(request.session),
    )

    try:
        enrollments = EnrollmentService().enroll_class(enrollment_request)
    except EnrollmentError as exc:
        logger.warning(f"⚠️ [API] Class enrollment failed ({exc.kind}): {exc.message}")
        return _error_response(exc)

    return Response(
        {"success": True, "enrollments": EnrollmentSerializer(enrollments, many=True).data},
        status=status.HTTP_201_CREATED,
    )


@api_view(["POST"])
@permission_classes([AllowAny])
@throttle_classes([EnrollmentThrottle])
def enroll_trial(request: Request) -> Response:
    """Enroll a student in a free introductory class."""
    input_serializer = TrialEnrollmentInputSerializer(data=request.data)
    if not input_serializer.is_valid():
        return _invalid_input_response(input_serializer.errors)

    data = input_serializer.validated_data
    trial_request = TrialEnrollmentRequest(
        account_id=_caller_account_id(request),
        class_id=data["class_id"],
        student_id=data["student_id"],
        attribution=Attribution.from_session(request.session),
    )

    try:
        enrollment = EnrollmentService().enroll_trial(trial_request)
    except EnrollmentError as exc:
        logger.warning(f"⚠️ [API] Trial enrollment failed ({exc.kind}): {exc.message}")
        return _error_response(exc)

    return Response(
        {"success": True, "enrollment": EnrollmentSerializer(enrollment).data},
        status=status.HTTP_201_CREATED,
    )
