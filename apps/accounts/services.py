"""
Account lookups for Classlane Platform.
Every student access is scoped to the account making the request.
"""

from __future__ import annotations

import logging
from typing import Any

from .models import Account, Student

logger = logging.getLogger(__name__)


class AccountService:
    """Ownership-checked access to accounts and their students."""

    @staticmethod
    def get_student_for_account(student_id: int, account_id: int) -> Student | None:
        """
        Get a student only if it belongs to the given account.

        Returns None both for unknown students and for students owned by
        another account so callers cannot probe foreign ids.
        """
        student = (
            Student.objects.select_related("account", "account__referer")
            .filter(id=student_id, account_id=account_id)
            .first()
        )
        if student is None:
            logger.warning(f"⚠️ [Accounts] Student {student_id} not found for account {account_id}")
        return student

    @staticmethod
    def lock_account(account_id: int) -> Account:
        """
        Lock the account row for the rest of the current transaction.

        Serializes concurrent purchases of the same parent so credit
        consumption and the paid flag see a consistent row.
        """
        return Account.objects.select_for_update().get(pk=account_id)

    @staticmethod
    def get_account_for_user(user: Any) -> Account | None:
        """The parent account behind an authenticated user, if any."""
        if not getattr(user, "is_authenticated", False):
            return None
        return Account.objects.filter(user_id=user.pk).first()
