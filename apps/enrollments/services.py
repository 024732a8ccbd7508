"""
Enrollment Service for Classlane Platform
Turns a parent's enrollment request into one atomic outcome: pricing,
promotion, credit, referral bonus, payment capture and enrollment rows
commit together or not at all.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any

from django.db import DatabaseError, transaction

from apps.accounts.services import AccountService
from apps.billing.config import get_currency
from apps.billing.credit_service import CreditConsumption, CreditLedgerService
from apps.billing.gateways import BasePaymentGateway, ChargeResult, PaymentGatewayFactory
from apps.billing.models import ChargeReconciliation, PaymentTransaction
from apps.billing.pricing import PriceQuote, PricingCalculator
from apps.billing.reconciliation_service import ChargeReconciliationService
from apps.billing.tasks import retry_charge_reversal_async
from apps.common.queue import queue_by_name
from apps.common.types import IdempotencyKey
from apps.courses.models import CourseClass
from apps.promotions.services import PromotionRedemption, PromotionService, ReferralOutcome, ReferralService

from .events import build_enrollment_completed_event
from .exceptions import EnrollmentError, InvalidRequest, NotFound, PaymentFailure, TransactionAbort, Unauthenticated
from .models import Enrollment

if TYPE_CHECKING:
    from apps.accounts.models import Student

logger = logging.getLogger(__name__)

ATTRIBUTION_MAX_LENGTH = 100


# ===============================================================================
# REQUESTS
# ===============================================================================


@dataclass(frozen=True)
class Attribution:
    """Marketing source and campaign the parent arrived with."""

    source: str = ""
    campaign: str = ""

    @classmethod
    def from_session(cls, session: Any) -> Attribution:
        return cls(
            source=str(session.get("utm_source", "") or "")[:ATTRIBUTION_MAX_LENGTH],
            campaign=str(session.get("utm_campaign", "") or "")[:ATTRIBUTION_MAX_LENGTH],
        )


@dataclass(frozen=True)
class ClassEnrollmentRequest:
    """
    A parent's request to enroll a student in one or more classes.

    Attributes:
        account_id: Authenticated caller, None when anonymous.
        class_ids: Requested classes, in the order the parent picked them.
        student_id: Student to enroll; must belong to the caller.
        credit_cents: Account credit to spend.
        promotion_id: Promotion to apply, if any.
        payment_method_nonce: Single-use payment token, required when a price remains.
        whole_series: The parent is buying the whole course series.
        attribution: Marketing attribution copied onto every enrollment.
    """

    account_id: int | None
    class_ids: Sequence[int]
    student_id: int
    credit_cents: int = 0
    promotion_id: int | None = None
    payment_method_nonce: str | None = None
    whole_series: bool = False
    attribution: Attribution = field(default_factory=Attribution)


@dataclass(frozen=True)
class TrialEnrollmentRequest:
    """Request for the free introductory class."""

    account_id: int | None
    class_id: int
    student_id: int
    attribution: Attribution = field(default_factory=Attribution)


# ===============================================================================
# ATTEMPT STATE
# ===============================================================================


class EnrollmentState(str, Enum):
    VALIDATING = "validating"
    PRICING = "pricing"
    APPLYING_PROMOTION = "applying_promotion"
    APPLYING_CREDIT = "applying_credit"
    APPLYING_REFERRAL = "applying_referral"
    PERSISTING_ENROLLMENTS = "persisting_enrollments"
    CHARGING = "charging"
    PERSISTING_TRANSACTION = "persisting_transaction"
    COMMITTING = "committing"
    EMITTING_EVENT = "emitting_event"
    COMPLETED = "completed"
    CHARGED_NOT_COMMITTED = "charged_not_committed"
    ROLLED_BACK = "rolled_back"


@dataclass
class EnrollmentAttempt:
    """Everything one enroll_class/enroll_trial call went through."""

    state: EnrollmentState = EnrollmentState.VALIDATING
    history: list[EnrollmentState] = field(default_factory=lambda: [EnrollmentState.VALIDATING])
    quote: PriceQuote | None = None
    promotion: PromotionRedemption | None = None
    credit: CreditConsumption | None = None
    referral: ReferralOutcome | None = None
    price_cents: int | None = None
    idempotency_key: IdempotencyKey = ""
    charge: ChargeResult | None = None
    payment_transaction: PaymentTransaction | None = None
    reconciliation: ChargeReconciliation | None = None
    enrollments: list[Enrollment] = field(default_factory=list)
    failed_state: EnrollmentState | None = None
    error: Exception | None = None
    event_error: Exception | None = None

    def advance(self, state: EnrollmentState) -> None:
        self.state = state
        self.history.append(state)

    @property
    def charge_captured(self) -> bool:
        return self.charge is not None and self.charge["success"]

    @property
    def is_completed(self) -> bool:
        return self.state == EnrollmentState.COMPLETED


def build_idempotency_key(class_id: int, student_id: int) -> IdempotencyKey:
    """Natural key of an enrollment purchase: the main class and the student."""
    return f"enroll:{class_id}:{student_id}"


# ===============================================================================
# ENROLLMENT SERVICE
# ===============================================================================


class EnrollmentService:
    """
    🎓 Enrollment transaction coordinator

    Provides:
    - Paid (or credit/promotion covered) enrollment in one or more classes
    - Free trial enrollment
    - Compensation of charges captured for a transaction that did not commit
    """

    def __init__(self, gateway: BasePaymentGateway | None = None) -> None:
        self._gateway = gateway
        self.last_attempt: EnrollmentAttempt | None = None

    @property
    def gateway(self) -> BasePaymentGateway:
        if self._gateway is None:
            self._gateway = PaymentGatewayFactory.get_default_gateway()
        return self._gateway

    # ---------------------------------------------------------------------
    # Class enrollment
    # ---------------------------------------------------------------------

    def enroll_class(self, request: ClassEnrollmentRequest) -> list[Enrollment]:
        """
        Enroll a student in the requested classes.

        Args:
            request: What the parent asked for

        Returns:
            The created enrollments, in request order

        Raises:
            Unauthenticated: no caller
            NotFound: student, promotion not found or not owned by the caller
            InvalidRequest: no classes, not enough credit, ineligible promotion,
                missing payment method
            PaymentFailure: the gateway did not capture the charge
            TransactionAbort: the database aborted the transaction
        """
        attempt = EnrollmentAttempt()
        self.last_attempt = attempt

        try:
            student, classes = self._validate_class_request(request)
        except EnrollmentError as exc:
            attempt.error = exc
            attempt.advance(EnrollmentState.ROLLED_BACK)
            logger.warning(f"⚠️ [Enrollment] Rejected request for account {request.account_id}: {exc.message}")
            raise

        try:
            with transaction.atomic(durable=True):
                enrollments = self._run_class_transaction(attempt, request, student, classes)
                attempt.advance(EnrollmentState.COMMITTING)
        except Exception as exc:
            self._roll_back(attempt, request, exc)
            if isinstance(exc, DatabaseError):
                raise TransactionAbort(
                    "the enrollment could not be saved, please try again",
                    {"state": attempt.failed_state.value if attempt.failed_state else ""},
                ) from exc
            raise

        logger.info(
            f"✅ [Enrollment] Student {student.pk} enrolled in {len(enrollments)} class(es), "
            f"charged {attempt.price_cents or 0} cents"
        )

        self._emit_completed(attempt, enrollments)
        attempt.advance(EnrollmentState.COMPLETED)
        return enrollments

    def _validate_class_request(self, request: ClassEnrollmentRequest) -> tuple[Student, list[CourseClass]]:
        """Checks that need no lock and no write; runs before the transaction opens."""
        if request.account_id is None:
            raise Unauthenticated("You must login first")

        if not request.class_ids:
            raise InvalidRequest("class_ids must not be empty")

        student = AccountService.get_student_for_account(request.student_id, request.account_id)
        if student is None:
            raise NotFound("student not found", {"student_id": request.student_id})

        classes = self._resolve_classes(request.class_ids)
        if not classes:
            raise InvalidRequest("invalid class_ids", {"class_ids": list(request.class_ids)})

        CreditLedgerService.ensure_sufficient_balance(student.account, request.credit_cents)
        return student, classes

    @staticmethod
    def _resolve_classes(class_ids: Sequence[int]) -> list[CourseClass]:
        """Existing classes in request order; unknown and repeated ids are dropped."""
        by_id = {c.pk: c for c in CourseClass.objects.select_related("course").filter(pk__in=class_ids)}
        classes: list[CourseClass] = []
        for class_id in dict.fromkeys(class_ids):
            course_class = by_id.get(class_id)
            if course_class is not None:
                classes.append(course_class)
        return classes

    def _run_class_transaction(
        self,
        attempt: EnrollmentAttempt,
        request: ClassEnrollmentRequest,
        student: Student,
        classes: list[CourseClass],
    ) -> list[Enrollment]:
        """Every step whose writes must commit or roll back together."""
        account = AccountService.lock_account(student.account_id)

        attempt.advance(EnrollmentState.PRICING)
        quote = PricingCalculator.quote(classes, whole_series=request.whole_series)
        attempt.quote = quote
        price_cents = quote.total_cents

        promotion = None
        if request.promotion_id is not None and price_cents > 0:
            attempt.advance(EnrollmentState.APPLYING_PROMOTION)
            attempt.promotion = PromotionService.redeem(request.promotion_id, account, quote, price_cents)
            promotion = attempt.promotion.promotion
            price_cents = attempt.promotion.result_cents

        credit = None
        if request.credit_cents > 0 and price_cents > 0:
            attempt.advance(EnrollmentState.APPLYING_CREDIT)
            attempt.credit = CreditLedgerService.consume(account, price_cents, request.credit_cents, quote.main_class)
            credit = attempt.credit.credit
            price_cents = attempt.credit.result_cents

        attempt.advance(EnrollmentState.APPLYING_REFERRAL)
        attempt.referral = ReferralService.record_first_purchase(account, quote.main_class.course, price_cents)
        attempt.price_cents = price_cents

        attempt.advance(EnrollmentState.PERSISTING_ENROLLMENTS)
        enrollments = [
            Enrollment.objects.create(
                student=student,
                course_class=course_class,
                source=request.attribution.source,
                campaign=request.attribution.campaign,
                promotion=promotion,
                credit=credit,
            )
            for course_class in classes
        ]
        attempt.enrollments = enrollments

        if price_cents > 0:
            attempt.advance(EnrollmentState.CHARGING)
            charge = self._charge(attempt, request, student, quote, price_cents)

            attempt.advance(EnrollmentState.PERSISTING_TRANSACTION)
            payment_transaction = PaymentTransaction.objects.create(
                gateway=self.gateway.gateway_name,
                gateway_txn_id=charge["transaction_id"],
                idempotency_key=attempt.idempotency_key,
                amount_cents=price_cents,
                currency=get_currency(),
                status=charge["status"],
                details=charge["details"],
            )
            payment_transaction.enrollments.add(*enrollments)
            attempt.payment_transaction = payment_transaction

        return enrollments

    def _charge(
        self,
        attempt: EnrollmentAttempt,
        request: ClassEnrollmentRequest,
        student: Student,
        quote: PriceQuote,
        price_cents: int,
    ) -> ChargeResult:
        """Capture the remaining price exactly once; never retried."""
        if not request.payment_method_nonce:
            raise InvalidRequest("a payment method is required", {"amount_cents": price_cents})

        gateway = self.gateway
        amount = (Decimal(price_cents) / 100).quantize(Decimal("0.01"))
        attempt.idempotency_key = build_idempotency_key(quote.main_class.pk, student.pk)

        logger.info(f"💳 [Enrollment] Charging {amount} {get_currency()} via {gateway.gateway_name}")
        try:
            charge = gateway.charge(
                amount,
                request.payment_method_nonce,
                attempt.idempotency_key,
                metadata={
                    "account_id": str(student.account_id),
                    "student_id": str(student.pk),
                    "class_ids": ",".join(str(e.course_class_id) for e in attempt.enrollments),
                },
            )
        except Exception as exc:
            raise PaymentFailure("payment could not be processed", {"gateway": gateway.gateway_name}) from exc

        attempt.charge = charge
        if not charge["success"]:
            raise PaymentFailure(
                charge["error"] or "payment was declined",
                {"gateway": gateway.gateway_name, "status": charge["status"]},
            )
        return charge

    def _roll_back(self, attempt: EnrollmentAttempt, request: ClassEnrollmentRequest, exc: Exception) -> None:
        """Record a failed transaction and compensate a charge it already captured."""
        attempt.failed_state = attempt.state
        attempt.error = exc

        if attempt.charge_captured:
            attempt.advance(EnrollmentState.CHARGED_NOT_COMMITTED)
            self._compensate_charge(attempt, request, exc)

        attempt.advance(EnrollmentState.ROLLED_BACK)
        logger.error(
            f"🔥 [Enrollment] Rolled back at {attempt.failed_state.value} for account {request.account_id}, "
            f"student {request.student_id}: {exc}"
        )

    def _compensate_charge(self, attempt: EnrollmentAttempt, request: ClassEnrollmentRequest, exc: Exception) -> None:
        """Refund a charge captured for enrollments that were never persisted."""
        charge = attempt.charge
        if charge is None:
            return
        gateway = self.gateway

        try:
            reconciliation = ChargeReconciliationService.open(
                gateway_name=gateway.gateway_name,
                gateway_txn_id=charge["transaction_id"],
                idempotency_key=attempt.idempotency_key,
                amount_cents=attempt.price_cents or 0,
                account_id=request.account_id,
                student_id=request.student_id,
                class_ids=[e.course_class_id for e in attempt.enrollments],
                failure_reason=f"{type(exc).__name__}: {exc}",
            )
        except DatabaseError:
            logger.exception(
                f"🚨 [Enrollment] Could not record charge {charge['transaction_id']}; refunding without a record"
            )
            refund = gateway.refund(charge["transaction_id"], f"{attempt.idempotency_key}:reversal")
            if not refund["success"]:
                logger.critical(f"🚨 [Enrollment] Manual refund required for {charge['transaction_id']}")
            return

        attempt.reconciliation = reconciliation

        try:
            reversed_ok = ChargeReconciliationService.attempt_reversal(reconciliation, gateway)
        except DatabaseError:
            logger.exception(f"🚨 [Enrollment] Reversal bookkeeping failed for {reconciliation.id}")
            reversed_ok = False

        if not reversed_ok and ChargeReconciliationService.can_retry(reconciliation):
            try:
                retry_charge_reversal_async(str(reconciliation.id))
            except Exception:
                # The caller must still see the error that rolled the enrollment back
                logger.critical(
                    f"🚨 [Enrollment] Manual refund required for reconciliation {reconciliation.id} "
                    f"({charge['transaction_id']}): reversal retry could not be queued",
                    exc_info=True,
                )

    # ---------------------------------------------------------------------
    # Trial enrollment
    # ---------------------------------------------------------------------

    def enroll_trial(self, request: TrialEnrollmentRequest) -> Enrollment:
        """
        Enroll a student in a free introductory class.

        Raises:
            Unauthenticated: no caller
            NotFound: student or class not found
            InvalidRequest: the class is not an introductory class
        """
        attempt = EnrollmentAttempt()
        self.last_attempt = attempt

        try:
            student, course_class = self._validate_trial_request(request)
            attempt.advance(EnrollmentState.PERSISTING_ENROLLMENTS)
            with transaction.atomic():
                enrollment = Enrollment.objects.create(
                    student=student,
                    course_class=course_class,
                    source=request.attribution.source,
                    campaign=request.attribution.campaign,
                )
                attempt.advance(EnrollmentState.COMMITTING)
        except EnrollmentError as exc:
            attempt.error = exc
            attempt.advance(EnrollmentState.ROLLED_BACK)
            logger.warning(f"⚠️ [Enrollment] Trial rejected for account {request.account_id}: {exc.message}")
            raise
        except DatabaseError as exc:
            attempt.error = exc
            attempt.advance(EnrollmentState.ROLLED_BACK)
            logger.error(f"🔥 [Enrollment] Trial enrollment for student {request.student_id} rolled back: {exc}")
            raise TransactionAbort("the enrollment could not be saved, please try again") from exc

        attempt.enrollments = [enrollment]
        logger.info(f"✅ [Enrollment] Student {student.pk} enrolled in trial class {course_class.pk}")

        self._emit_completed(attempt, [enrollment])
        attempt.advance(EnrollmentState.COMPLETED)
        return enrollment

    @staticmethod
    def _validate_trial_request(request: TrialEnrollmentRequest) -> tuple[Student, CourseClass]:
        if request.account_id is None:
            raise Unauthenticated("You must login first")

        student = AccountService.get_student_for_account(request.student_id, request.account_id)
        if student is None:
            raise NotFound("student not found", {"student_id": request.student_id})

        course_class = CourseClass.objects.select_related("course").filter(pk=request.class_id).first()
        if course_class is None:
            raise NotFound("class not found", {"class_id": request.class_id})

        if not course_class.course.is_trial:
            raise InvalidRequest(
                "Only introductory class is available for express checkout",
                {"class_id": request.class_id},
            )
        return student, course_class

    # ---------------------------------------------------------------------
    # Event
    # ---------------------------------------------------------------------

    @staticmethod
    def _emit_completed(attempt: EnrollmentAttempt, enrollments: list[Enrollment]) -> None:
        """Queue the completed event; the enrollment is already committed whatever happens here."""
        attempt.advance(EnrollmentState.EMITTING_EVENT)
        try:
            payload = build_enrollment_completed_event(enrollments)
            queue_by_name("apps.enrollments.tasks.publish_enrollment_completed", payload)
        except Exception as exc:
            attempt.event_error = exc
            logger.exception(
                f"📣 [Enrollment] Could not publish completed event for enrollments "
                f"{[e.pk for e in enrollments]}: {exc}"
            )

