"""
Billing models for Classlane Platform.
Immutable credit ledger, captured payment transactions and the
reconciliation record for charges whose enrollment never committed.
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Any, ClassVar

from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

# ===============================================================================
# CREDIT LEDGER
# ===============================================================================


class Credit(models.Model):
    """
    Account credit ledger entry.

    Entries are append-only: a purchase paid with credit writes a negative
    entry, a referral bonus a positive one. The account balance is the sum
    of its entries.
    """

    TYPE_PURCHASE = "purchase"
    TYPE_REFERRAL = "referral"

    TYPE_CHOICES: ClassVar[tuple[tuple[str, Any], ...]] = (
        (TYPE_PURCHASE, _("Purchase")),
        (TYPE_REFERRAL, _("Referral")),
    )

    account = models.ForeignKey("accounts.Account", on_delete=models.CASCADE, related_name="credits")

    # Credit change (positive = credit added, negative = credit used)
    cents = models.BigIntegerField()
    type = models.CharField(max_length=20, choices=TYPE_CHOICES)

    # reason / created_by / attribution
    details = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "credits"
        verbose_name = _("Credit Entry")
        verbose_name_plural = _("Credit Entries")
        indexes = (models.Index(fields=["account", "-created_at"], name="credits_account_created_idx"),)

    def __str__(self) -> str:
        return f"{self.account_id} {self.amount:+.2f} ({self.type})"

    @property
    def amount(self) -> Decimal:
        return Decimal(self.cents) / 100

    @property
    def reason(self) -> str:
        return str(self.details.get("reason", ""))


# ===============================================================================
# PAYMENT TRANSACTIONS
# ===============================================================================


class PaymentTransaction(models.Model):
    """
    A charge captured by the payment gateway for a set of enrollments.

    Created once inside the enrollment transaction, right after the gateway
    confirmed the charge; never updated afterwards.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    gateway = models.CharField(max_length=30)
    gateway_txn_id = models.CharField(max_length=255)
    idempotency_key = models.CharField(max_length=255)

    amount_cents = models.BigIntegerField()
    currency = models.CharField(max_length=3, default="USD")
    status = models.CharField(max_length=30, default="succeeded")

    # Gateway response summary
    details = models.JSONField(default=dict, blank=True)

    enrollments = models.ManyToManyField(
        "enrollments.Enrollment",
        related_name="payment_transactions",
        db_table="payment_transaction_enrollments",
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "payment_transactions"
        verbose_name = _("Payment Transaction")
        verbose_name_plural = _("Payment Transactions")
        indexes = (models.Index(fields=["gateway_txn_id"], name="payment_txn_gateway_txn_idx"),)

    def __str__(self) -> str:
        return f"{self.gateway}:{self.gateway_txn_id} {self.amount:.2f} {self.currency}"

    @property
    def amount(self) -> Decimal:
        return Decimal(self.amount_cents) / 100


# ===============================================================================
# CHARGE RECONCILIATION
# ===============================================================================


class ChargeReconciliation(models.Model):
    """
    A captured charge whose enrollment transaction did not commit.

    Written outside the rolled-back transaction so the money trail survives,
    then driven to ``reversed`` by refunding the charge at the gateway.
    """

    STATUS_PENDING_REVERSAL = "pending_reversal"
    STATUS_REVERSED = "reversed"
    STATUS_REVERSAL_FAILED = "reversal_failed"

    STATUS_CHOICES: ClassVar[tuple[tuple[str, Any], ...]] = (
        (STATUS_PENDING_REVERSAL, _("Pending Reversal")),
        (STATUS_REVERSED, _("Reversed")),
        (STATUS_REVERSAL_FAILED, _("Reversal Failed")),
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    gateway = models.CharField(max_length=30)
    gateway_txn_id = models.CharField(max_length=255)
    idempotency_key = models.CharField(max_length=255)
    amount_cents = models.BigIntegerField()
    currency = models.CharField(max_length=3, default="USD")

    # Who was being enrolled when the transaction failed
    account_id = models.BigIntegerField(null=True, blank=True)
    student_id = models.BigIntegerField(null=True, blank=True)
    class_ids = models.JSONField(default=list, blank=True)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING_REVERSAL)
    failure_reason = models.TextField(blank=True)
    reversal_attempts = models.PositiveSmallIntegerField(default=0)
    reversal_txn_id = models.CharField(max_length=255, blank=True)
    last_error = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    reversed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "charge_reconciliations"
        verbose_name = _("Charge Reconciliation")
        verbose_name_plural = _("Charge Reconciliations")
        indexes = (models.Index(fields=["status", "created_at"], name="charge_recon_status_idx"),)

    def __str__(self) -> str:
        return f"{self.gateway}:{self.gateway_txn_id} ({self.status})"

    @property
    def reversal_idempotency_key(self) -> str:
        return f"{self.idempotency_key}:reversal"

    def mark_reversed(self, reversal_txn_id: str) -> None:
        self.status = self.STATUS_REVERSED
        self.reversal_txn_id = reversal_txn_id
        self.reversed_at = timezone.now()
        self.last_error = ""
        self.save(update_fields=["status", "reversal_txn_id", "reversed_at", "last_error"])

    def mark_reversal_failed(self, error: str) -> None:
        self.status = self.STATUS_REVERSAL_FAILED
        self.last_error = error
        self.save(update_fields=["status", "last_error"])
