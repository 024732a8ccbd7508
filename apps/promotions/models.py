"""
Promotion models for Classlane Platform.
Promotion codes with usage limits, validity windows and eligibility rules.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any, ClassVar

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

if TYPE_CHECKING:
    from apps.accounts.models import Account
    from apps.courses.models import Course


class Promotion(models.Model):
    """
    Promotion code that discounts a class purchase.

    ``counts`` is the number of committed enrollments that used the code.
    It is only ever changed by PromotionService.redeem, under a row lock.
    """

    DISCOUNT_PERCENT = "percent"
    DISCOUNT_FIXED = "fixed"

    DISCOUNT_TYPE_CHOICES: ClassVar[tuple[tuple[str, Any], ...]] = (
        (DISCOUNT_PERCENT, _("Percentage")),
        (DISCOUNT_FIXED, _("Fixed Amount")),
    )

    code = models.CharField(max_length=50, unique=True, db_index=True)
    name = models.CharField(max_length=200, blank=True)

    # Discount rule
    discount_type = models.CharField(max_length=20, choices=DISCOUNT_TYPE_CHOICES, default=DISCOUNT_PERCENT)
    percent_off = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal("0")), MaxValueValidator(Decimal("100"))],
    )
    amount_off_cents = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text=_("Fixed discount; applied per class for bundles"),
    )
    max_discount_cents = models.PositiveIntegerField(null=True, blank=True)

    # Usage
    counts = models.PositiveIntegerField(default=0)
    max_uses = models.PositiveIntegerField(null=True, blank=True, help_text=_("Empty for unlimited"))

    # Validity
    is_active = models.BooleanField(default=True)
    valid_from = models.DateTimeField(default=timezone.now)
    valid_until = models.DateTimeField(null=True, blank=True)

    # Eligibility
    assigned_account = models.ForeignKey(
        "accounts.Account",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="assigned_promotions",
    )
    courses = models.ManyToManyField(
        "courses.Course",
        blank=True,
        related_name="promotions",
        help_text=_("Restrict to these courses; empty for every course"),
    )
    first_purchase_only = models.BooleanField(default=False)
    once_per_account = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "promotions"
        verbose_name = _("Promotion")
        verbose_name_plural = _("Promotions")

    def __str__(self) -> str:
        return self.code

    # ---------------------------------------------------------------------
    # Validity
    # ---------------------------------------------------------------------

    @property
    def is_expired(self) -> bool:
        return self.valid_until is not None and timezone.now() > self.valid_until

    @property
    def is_not_yet_valid(self) -> bool:
        return timezone.now() < self.valid_from

    @property
    def is_exhausted(self) -> bool:
        return self.max_uses is not None and self.counts >= self.max_uses

    def can_be_used(self) -> tuple[bool, str]:
        """
        Check if promotion can be used (basic validity check).
        Returns (is_valid, reason_if_invalid).
        """
        if not self.is_active:
            return False, "Promotion is inactive"
        if self.is_expired:
            return False, "Promotion has expired"
        if self.is_not_yet_valid:
            return False, "Promotion is not yet valid"
        if self.is_exhausted:
            return False, "Promotion usage limit reached"
        return True, ""

    def can_account_use(self, account: Account, course: Course) -> tuple[bool, str]:
        """
        Check if an account may use this promotion on a course.
        Returns (is_valid, reason_if_invalid).
        """
        can_use, reason = self.can_be_used()
        if not can_use:
            return False, reason

        if self.assigned_account_id and self.assigned_account_id != account.pk:
            return False, "This promotion is assigned to a different account"

        if self.first_purchase_only and account.paid:
            return False, "Promotion only valid for a first purchase"

        if self.courses.exists() and not self.courses.filter(pk=course.pk).exists():
            return False, f"Promotion is not valid for {course.name}"

        if self.once_per_account and self.enrollments.filter(student__account=account).exists():
            return False, "Promotion was already used by this account"

        return True, ""
