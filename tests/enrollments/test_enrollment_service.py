"""
Tests for apps.enrollments.services.EnrollmentService

Covers the class enrollment transaction end to end with a mocked payment
gateway: validation, pricing, promotion, credit, referral, payment,
rollback, compensation and the completed event.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any
from unittest.mock import ANY, MagicMock, patch

from django.db import DatabaseError, transaction
from django.test import TestCase

from apps.billing.credit_service import CreditLedgerService
from apps.billing.gateways import ChargeResult, RefundResult
from apps.billing.models import ChargeReconciliation, Credit, PaymentTransaction
from apps.enrollments.exceptions import (
    InvalidRequest,
    NotFound,
    PaymentFailure,
    TransactionAbort,
    Unauthenticated,
)
from apps.enrollments.models import Enrollment
from apps.enrollments.services import (
    Attribution,
    ClassEnrollmentRequest,
    EnrollmentService,
    EnrollmentState,
    TrialEnrollmentRequest,
)
from apps.promotions.models import Promotion
from tests.factories.core_factories import (
    PromotionCreationRequest,
    create_account,
    create_course,
    create_course_class,
    create_promotion,
    create_student,
    create_trial_course,
    grant_credit,
)

NONCE = "fake-valid-nonce"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _charge_result(success: bool = True, txn_id: str = "pi_test_1", amount: str = "70.00") -> ChargeResult:
    return ChargeResult(
        success=success,
        transaction_id=txn_id if success else "",
        amount=Decimal(amount),
        status="succeeded" if success else "failed",
        details={"payment_intent_id": txn_id} if success else {},
        error=None if success else "Your card was declined.",
    )


def _refund_result(success: bool = True) -> RefundResult:
    return RefundResult(
        success=success,
        refund_id="re_test_1" if success else "",
        status="succeeded" if success else "error",
        error=None if success else "gateway down",
    )


def _make_mock_gateway(
    charge_result: ChargeResult | None = None,
    refund_result: RefundResult | None = None,
) -> MagicMock:
    gw = MagicMock()
    gw.gateway_name = "stripe"
    gw.charge.return_value = charge_result if charge_result is not None else _charge_result()
    gw.refund.return_value = refund_result if refund_result is not None else _refund_result()
    return gw


class EnrollmentServiceTestCase(TestCase):
    def setUp(self) -> None:
        self.account = create_account()
        self.student = create_student(self.account)
        self.course = create_course(name="Python Level 1", level=1, price_cents=10000)
        self.course_class = create_course_class(self.course)
        self.gateway = _make_mock_gateway()
        self.service = EnrollmentService(gateway=self.gateway)

        queue_patcher = patch("apps.enrollments.services.queue_by_name")
        self.mock_queue = queue_patcher.start()
        self.addCleanup(queue_patcher.stop)

    def _request(self, **overrides: Any) -> ClassEnrollmentRequest:
        params: dict[str, Any] = {
            "account_id": self.account.pk,
            "class_ids": [self.course_class.pk],
            "student_id": self.student.pk,
            "credit_cents": 0,
            "promotion_id": None,
            "payment_method_nonce": NONCE,
            "whole_series": False,
            "attribution": Attribution(source="newsletter", campaign="spring"),
        }
        params.update(overrides)
        return ClassEnrollmentRequest(**params)

    def assertNothingPersisted(self) -> None:  # noqa: N802
        self.assertFalse(Enrollment.objects.exists())
        self.assertFalse(PaymentTransaction.objects.exists())
        self.assertFalse(Credit.objects.filter(type=Credit.TYPE_PURCHASE).exists())
        self.account.refresh_from_db()
        self.assertFalse(self.account.paid)


# ---------------------------------------------------------------------------
# Successful enrollments
# ---------------------------------------------------------------------------


class ClassEnrollmentSuccessTests(EnrollmentServiceTestCase):
    def test_credit_and_card_scenario(self) -> None:
        grant_credit(self.account, 5000)

        enrollments = self.service.enroll_class(self._request(credit_cents=3000))

        self.assertEqual(len(enrollments), 1)
        self.gateway.charge.assert_called_once_with(
            Decimal("70.00"),
            NONCE,
            f"enroll:{self.course_class.pk}:{self.student.pk}",
            metadata=ANY,
        )

        enrollment = Enrollment.objects.get()
        self.assertEqual(enrollment.student, self.student)
        self.assertEqual(enrollment.course_class, self.course_class)
        self.assertEqual(enrollment.source, "newsletter")
        self.assertEqual(enrollment.campaign, "spring")

        credit = Credit.objects.get(type=Credit.TYPE_PURCHASE)
        self.assertEqual(credit.cents, -3000)
        self.assertEqual(enrollment.credit, credit)
        self.assertEqual(CreditLedgerService.get_balance_cents(self.account), 2000)

        payment = PaymentTransaction.objects.get()
        self.assertEqual(payment.amount_cents, 7000)
        self.assertEqual(payment.gateway, "stripe")
        self.assertEqual(payment.gateway_txn_id, "pi_test_1")
        self.assertEqual(list(payment.enrollments.all()), [enrollment])

        attempt = self.service.last_attempt
        self.assertTrue(attempt.is_completed)
        self.assertEqual(attempt.price_cents, 7000)
        self.assertEqual(
            attempt.history,
            [
                EnrollmentState.VALIDATING,
                EnrollmentState.PRICING,
                EnrollmentState.APPLYING_CREDIT,
                EnrollmentState.APPLYING_REFERRAL,
                EnrollmentState.PERSISTING_ENROLLMENTS,
                EnrollmentState.CHARGING,
                EnrollmentState.PERSISTING_TRANSACTION,
                EnrollmentState.COMMITTING,
                EnrollmentState.EMITTING_EVENT,
                EnrollmentState.COMPLETED,
            ],
        )

    def test_trial_class_through_class_enrollment_skips_payment(self) -> None:
        trial_class = create_course_class(create_trial_course())

        enrollments = self.service.enroll_class(
            self._request(class_ids=[trial_class.pk], payment_method_nonce=None)
        )

        self.assertEqual(len(enrollments), 1)
        self.gateway.charge.assert_not_called()
        self.assertFalse(PaymentTransaction.objects.exists())
        self.assertNotIn(EnrollmentState.CHARGING, self.service.last_attempt.history)
        self.account.refresh_from_db()
        self.assertFalse(self.account.paid)

    def test_credit_covering_the_whole_price_needs_no_card(self) -> None:
        grant_credit(self.account, 20000)

        self.service.enroll_class(self._request(credit_cents=15000, payment_method_nonce=None))

        self.gateway.charge.assert_not_called()
        self.assertFalse(PaymentTransaction.objects.exists())
        self.assertEqual(Credit.objects.get(type=Credit.TYPE_PURCHASE).cents, -10000)
        self.assertEqual(CreditLedgerService.get_balance_cents(self.account), 10000)

    def test_whole_series_purchase(self) -> None:
        level_2 = create_course_class(create_course(name="Python Level 2", level=2, price_cents=8000))

        enrollments = self.service.enroll_class(
            self._request(class_ids=[level_2.pk, self.course_class.pk], whole_series=True)
        )

        # 18000 less the 20% whole-series discount
        self.assertEqual([e.course_class for e in enrollments], [level_2, self.course_class])
        self.gateway.charge.assert_called_once_with(
            Decimal("144.00"),
            NONCE,
            f"enroll:{self.course_class.pk}:{self.student.pk}",
            metadata=ANY,
        )
        self.assertEqual(self.service.last_attempt.quote.main_class, self.course_class)

    def test_promotion_is_counted_and_referenced(self) -> None:
        promotion = create_promotion()

        enrollments = self.service.enroll_class(self._request(promotion_id=promotion.pk))

        self.gateway.charge.assert_called_once_with(Decimal("75.00"), NONCE, ANY, metadata=ANY)
        promotion.refresh_from_db()
        self.assertEqual(promotion.counts, 1)
        self.assertEqual(enrollments[0].promotion, promotion)

    def test_unknown_class_ids_are_ignored_when_one_exists(self) -> None:
        enrollments = self.service.enroll_class(self._request(class_ids=[self.course_class.pk, 999999]))

        self.assertEqual(len(enrollments), 1)

    def test_first_purchase_rewards_referer_once(self) -> None:
        referer = create_account(username="referer")
        self.account.referer = referer
        self.account.save(update_fields=["referer"])
        second_class = create_course_class(self.course, days_ahead=14)

        self.service.enroll_class(self._request())
        self.service.enroll_class(self._request(class_ids=[second_class.pk]))

        self.account.refresh_from_db()
        self.assertTrue(self.account.paid)
        referral_credits = Credit.objects.filter(account=referer, type=Credit.TYPE_REFERRAL)
        self.assertEqual(referral_credits.count(), 1)
        self.assertEqual(referral_credits.get().cents, 2000)

    def test_completed_event_is_queued_with_every_enrollment(self) -> None:
        level_2 = create_course_class(create_course(name="Python Level 2", level=2, price_cents=8000))

        enrollments = self.service.enroll_class(self._request(class_ids=[self.course_class.pk, level_2.pk]))

        self.mock_queue.assert_called_once()
        task_path, payload = self.mock_queue.call_args.args
        self.assertEqual(task_path, "apps.enrollments.tasks.publish_enrollment_completed")
        self.assertEqual(payload["event"], "enrollment.completed")
        self.assertEqual([item["id"] for item in payload["enrollments"]], [e.pk for e in enrollments])
        self.assertEqual(payload["enrollments"][0]["student"]["id"], self.student.pk)
        self.assertEqual(payload["enrollments"][1]["course"]["name"], "Python Level 2")

    def test_event_failure_does_not_undo_enrollment(self) -> None:
        self.mock_queue.side_effect = RuntimeError("broker unavailable")

        enrollments = self.service.enroll_class(self._request())

        self.assertEqual(len(enrollments), 1)
        self.assertTrue(Enrollment.objects.filter(pk=enrollments[0].pk).exists())
        self.assertTrue(PaymentTransaction.objects.exists())
        attempt = self.service.last_attempt
        self.assertIsInstance(attempt.event_error, RuntimeError)
        self.assertEqual(attempt.state, EnrollmentState.COMPLETED)


# ---------------------------------------------------------------------------
# Validation before the transaction
# ---------------------------------------------------------------------------


class ClassEnrollmentValidationTests(EnrollmentServiceTestCase):
    def assertRejectedBeforeTransaction(self) -> None:  # noqa: N802
        self.assertEqual(
            self.service.last_attempt.history,
            [EnrollmentState.VALIDATING, EnrollmentState.ROLLED_BACK],
        )
        self.gateway.charge.assert_not_called()
        self.assertNothingPersisted()

    def test_anonymous_caller(self) -> None:
        with self.assertRaises(Unauthenticated):
            self.service.enroll_class(self._request(account_id=None))
        self.assertRejectedBeforeTransaction()

    def test_empty_class_list(self) -> None:
        with self.assertRaises(InvalidRequest):
            self.service.enroll_class(self._request(class_ids=[]))
        self.assertRejectedBeforeTransaction()

    def test_no_existing_class(self) -> None:
        with self.assertRaises(InvalidRequest) as ctx:
            self.service.enroll_class(self._request(class_ids=[999999]))
        self.assertEqual(ctx.exception.message, "invalid class_ids")
        self.assertRejectedBeforeTransaction()

    def test_student_of_another_account(self) -> None:
        other_student = create_student(create_account(username="other"), name="Grace")

        with self.assertRaises(NotFound):
            self.service.enroll_class(self._request(student_id=other_student.pk))
        self.assertRejectedBeforeTransaction()

    def test_credit_above_balance(self) -> None:
        grant_credit(self.account, 1000)

        with self.assertRaises(InvalidRequest) as ctx:
            self.service.enroll_class(self._request(credit_cents=3000))
        self.assertEqual(ctx.exception.message, "you do not have enough credit")
        self.assertRejectedBeforeTransaction()


# ---------------------------------------------------------------------------
# Failures inside the transaction
# ---------------------------------------------------------------------------


class ClassEnrollmentRollbackTests(EnrollmentServiceTestCase):
    def test_declined_payment_leaves_no_trace(self) -> None:
        grant_credit(self.account, 5000)
        referer = create_account(username="referer")
        self.account.referer = referer
        self.account.save(update_fields=["referer"])
        promotion = create_promotion()
        self.gateway.charge.return_value = _charge_result(success=False)

        with self.assertRaises(PaymentFailure) as ctx:
            self.service.enroll_class(self._request(credit_cents=3000, promotion_id=promotion.pk))

        self.assertEqual(ctx.exception.message, "Your card was declined.")
        self.gateway.charge.assert_called_once()
        self.assertNothingPersisted()
        promotion.refresh_from_db()
        self.assertEqual(promotion.counts, 0)
        self.assertFalse(Credit.objects.filter(account=referer).exists())
        self.assertEqual(CreditLedgerService.get_balance_cents(self.account), 5000)
        self.assertFalse(ChargeReconciliation.objects.exists())
        self.mock_queue.assert_not_called()

        attempt = self.service.last_attempt
        self.assertEqual(attempt.failed_state, EnrollmentState.CHARGING)
        self.assertEqual(attempt.state, EnrollmentState.ROLLED_BACK)

    def test_gateway_exception_becomes_payment_failure(self) -> None:
        self.gateway.charge.side_effect = ConnectionError("reset by peer")

        with self.assertRaises(PaymentFailure) as ctx:
            self.service.enroll_class(self._request())

        self.assertIsInstance(ctx.exception.__cause__, ConnectionError)
        self.assertNothingPersisted()

    def test_ineligible_promotion_fails_whole_enrollment(self) -> None:
        promotion = create_promotion(PromotionCreationRequest(assigned_account=create_account(username="other")))

        with self.assertRaises(InvalidRequest):
            self.service.enroll_class(self._request(promotion_id=promotion.pk))

        self.gateway.charge.assert_not_called()
        self.assertNothingPersisted()
        self.assertEqual(self.service.last_attempt.failed_state, EnrollmentState.APPLYING_PROMOTION)

    def test_missing_promotion(self) -> None:
        with self.assertRaises(NotFound):
            self.service.enroll_class(self._request(promotion_id=999999))
        self.assertNothingPersisted()

    def test_missing_payment_method(self) -> None:
        with self.assertRaises(InvalidRequest) as ctx:
            self.service.enroll_class(self._request(payment_method_nonce=None))

        self.assertEqual(ctx.exception.message, "a payment method is required")
        self.gateway.charge.assert_not_called()
        self.assertNothingPersisted()

    def test_promotion_cap_across_enrollments(self) -> None:
        promotion = create_promotion(PromotionCreationRequest(max_uses=1))
        other_account = create_account(username="other")
        other_student = create_student(other_account, name="Grace")

        self.service.enroll_class(self._request(promotion_id=promotion.pk))
        with self.assertRaises(InvalidRequest):
            self.service.enroll_class(
                self._request(account_id=other_account.pk, student_id=other_student.pk, promotion_id=promotion.pk)
            )

        promotion.refresh_from_db()
        self.assertEqual(promotion.counts, 1)
        self.assertEqual(Enrollment.objects.count(), 1)
        self.assertEqual(Promotion.objects.get(pk=promotion.pk).enrollments.count(), 1)


# ---------------------------------------------------------------------------
# Charged but not committed
# ---------------------------------------------------------------------------


class ChargeCompensationTests(EnrollmentServiceTestCase):
    def test_charge_is_refunded_when_transaction_record_fails(self) -> None:
        with patch.object(PaymentTransaction.objects, "create", side_effect=DatabaseError("deadlock detected")):
            with self.assertRaises(TransactionAbort) as ctx:
                self.service.enroll_class(self._request())

        self.assertIsInstance(ctx.exception.__cause__, DatabaseError)
        self.assertFalse(Enrollment.objects.exists())

        key = f"enroll:{self.course_class.pk}:{self.student.pk}"
        self.gateway.refund.assert_called_once_with("pi_test_1", f"{key}:reversal")

        reconciliation = ChargeReconciliation.objects.get()
        self.assertEqual(reconciliation.status, ChargeReconciliation.STATUS_REVERSED)
        self.assertEqual(reconciliation.gateway_txn_id, "pi_test_1")
        self.assertEqual(reconciliation.amount_cents, 10000)
        self.assertEqual(reconciliation.idempotency_key, key)
        self.assertEqual(reconciliation.class_ids, [self.course_class.pk])
        self.assertIn("deadlock detected", reconciliation.failure_reason)

        attempt = self.service.last_attempt
        self.assertEqual(attempt.reconciliation, reconciliation)
        self.assertEqual(attempt.failed_state, EnrollmentState.PERSISTING_TRANSACTION)
        self.assertEqual(attempt.history[-2:], [EnrollmentState.CHARGED_NOT_COMMITTED, EnrollmentState.ROLLED_BACK])

    @patch("apps.enrollments.services.retry_charge_reversal_async")
    def test_failed_refund_is_retried_in_background(self, mock_retry: MagicMock) -> None:
        self.gateway.refund.return_value = _refund_result(success=False)

        with patch.object(PaymentTransaction.objects, "create", side_effect=DatabaseError("connection lost")):
            with self.assertRaises(TransactionAbort):
                self.service.enroll_class(self._request())

        reconciliation = ChargeReconciliation.objects.get()
        self.assertEqual(reconciliation.status, ChargeReconciliation.STATUS_REVERSAL_FAILED)
        self.assertEqual(reconciliation.reversal_attempts, 1)
        mock_retry.assert_called_once_with(str(reconciliation.id))

    @patch("apps.enrollments.services.retry_charge_reversal_async", side_effect=ConnectionError("broker down"))
    def test_unqueueable_retry_keeps_original_error(self, mock_retry: MagicMock) -> None:
        self.gateway.refund.return_value = _refund_result(success=False)

        with patch.object(PaymentTransaction.objects, "create", side_effect=DatabaseError("connection lost")):
            with self.assertLogs("apps.enrollments.services", level="CRITICAL") as logs:
                with self.assertRaises(TransactionAbort) as ctx:
                    self.service.enroll_class(self._request())

        self.assertIsInstance(ctx.exception.__cause__, DatabaseError)
        mock_retry.assert_called_once()
        reconciliation = ChargeReconciliation.objects.get()
        self.assertEqual(reconciliation.status, ChargeReconciliation.STATUS_REVERSAL_FAILED)
        self.assertTrue(any(str(reconciliation.id) in line for line in logs.output))

        attempt = self.service.last_attempt
        self.assertEqual(attempt.state, EnrollmentState.ROLLED_BACK)
        self.assertEqual(attempt.history[-2:], [EnrollmentState.CHARGED_NOT_COMMITTED, EnrollmentState.ROLLED_BACK])

    def test_charge_is_refunded_when_commit_fails(self) -> None:
        releases: list[str] = []

        def fail_first_release(sid: str) -> None:
            releases.append(sid)
            if len(releases) == 1:
                raise DatabaseError("could not serialize access due to concurrent update")

        with patch.object(transaction.get_connection(), "savepoint_commit", side_effect=fail_first_release):
            with self.assertRaises(TransactionAbort) as ctx:
                self.service.enroll_class(self._request())

        self.assertIsInstance(ctx.exception.__cause__, DatabaseError)
        self.assertEqual(ctx.exception.details, {"state": EnrollmentState.COMMITTING.value})
        self.assertFalse(Enrollment.objects.exists())
        self.assertFalse(PaymentTransaction.objects.exists())

        key = f"enroll:{self.course_class.pk}:{self.student.pk}"
        self.gateway.refund.assert_called_once_with("pi_test_1", f"{key}:reversal")
        reconciliation = ChargeReconciliation.objects.get()
        self.assertEqual(reconciliation.status, ChargeReconciliation.STATUS_REVERSED)

        attempt = self.service.last_attempt
        self.assertEqual(attempt.failed_state, EnrollmentState.COMMITTING)
        self.assertEqual(attempt.history[-2:], [EnrollmentState.CHARGED_NOT_COMMITTED, EnrollmentState.ROLLED_BACK])

    def test_declined_charge_needs_no_compensation(self) -> None:
        self.gateway.charge.return_value = _charge_result(success=False)

        with self.assertRaises(PaymentFailure):
            self.service.enroll_class(self._request())

        self.gateway.refund.assert_not_called()
        self.assertNotIn(EnrollmentState.CHARGED_NOT_COMMITTED, self.service.last_attempt.history)


# ---------------------------------------------------------------------------
# Trial enrollment
# ---------------------------------------------------------------------------


class TrialEnrollmentTests(EnrollmentServiceTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.trial_class = create_course_class(create_trial_course())

    def _trial_request(self, **overrides: Any) -> TrialEnrollmentRequest:
        params: dict[str, Any] = {
            "account_id": self.account.pk,
            "class_id": self.trial_class.pk,
            "student_id": self.student.pk,
            "attribution": Attribution(source="facebook"),
        }
        params.update(overrides)
        return TrialEnrollmentRequest(**params)

    def test_trial_enrollment(self) -> None:
        enrollment = self.service.enroll_trial(self._trial_request())

        self.assertEqual(enrollment.course_class, self.trial_class)
        self.assertEqual(enrollment.source, "facebook")
        self.gateway.charge.assert_not_called()
        self.mock_queue.assert_called_once()
        self.assertTrue(self.service.last_attempt.is_completed)

    def test_regular_class_is_rejected(self) -> None:
        with self.assertRaises(InvalidRequest) as ctx:
            self.service.enroll_trial(self._trial_request(class_id=self.course_class.pk))

        self.assertEqual(ctx.exception.message, "Only introductory class is available for express checkout")
        self.assertFalse(Enrollment.objects.exists())

    def test_missing_class(self) -> None:
        with self.assertRaises(NotFound):
            self.service.enroll_trial(self._trial_request(class_id=999999))

    def test_anonymous_caller(self) -> None:
        with self.assertRaises(Unauthenticated):
            self.service.enroll_trial(self._trial_request(account_id=None))

    def test_student_of_another_account(self) -> None:
        other_student = create_student(create_account(username="other"), name="Grace")

        with self.assertRaises(NotFound):
            self.service.enroll_trial(self._trial_request(student_id=other_student.pk))
