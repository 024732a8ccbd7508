"""
Account models for Classlane Platform.
Parents own accounts; students always belong to exactly one parent account.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils.translation import gettext_lazy as _


class Account(models.Model):
    """
    Parent account that purchases classes for its students.

    The credit balance is never stored here: it is derived from the
    billing Credit ledger (see CreditLedgerService.get_balance_cents).
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="account",
    )
    first_name = models.CharField(max_length=100, blank=True)
    last_name = models.CharField(max_length=100, blank=True)

    # Flips to True once, on the first completed purchase of a regular course
    paid = models.BooleanField(
        default=False,
        help_text=_("Whether this account completed a paid purchase of a regular course"),
    )
    referer = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="referrals",
        help_text=_("Account that referred this parent"),
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "accounts"
        verbose_name = _("Account")
        verbose_name_plural = _("Accounts")

    def __str__(self) -> str:
        return self.full_name or f"Account #{self.pk}"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Student(models.Model):
    """A child enrolled through a parent account."""

    account = models.ForeignKey(Account, on_delete=models.CASCADE, related_name="students")
    name = models.CharField(max_length=100)
    birth_year = models.PositiveSmallIntegerField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "students"
        verbose_name = _("Student")
        verbose_name_plural = _("Students")

    def __str__(self) -> str:
        return self.name
