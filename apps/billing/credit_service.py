"""
Account Credit Ledger Service for Classlane Platform
Derives account balances and records credit consumption.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.db.models import Sum

from apps.enrollments.exceptions import InvalidRequest

from .models import Credit
from .pricing import PricingCalculator

if TYPE_CHECKING:
    from apps.accounts.models import Account
    from apps.courses.models import CourseClass

logger = logging.getLogger(__name__)

CREATED_BY_WEBPORTAL = "webportal"


@dataclass(frozen=True)
class CreditConsumption:
    """
    Result of paying part of a price with account credit.

    Attributes:
        credit: The negative ledger entry, or None when nothing was used.
        used_cents: Credit actually consumed.
        result_cents: Price left to pay.
    """

    credit: Credit | None
    used_cents: int
    result_cents: int


class CreditLedgerService:
    """
    Service for the append-only account credit ledger.

    Balances are always derived from the entries; nothing here updates an
    existing entry.
    """

    @staticmethod
    def get_balance_cents(account: Account) -> int:
        """Current balance: sum of every ledger entry of the account."""
        total = Credit.objects.filter(account=account).aggregate(total=Sum("cents"))["total"]
        return int(total or 0)

    @classmethod
    def ensure_sufficient_balance(cls, account: Account, requested_cents: int) -> int:
        """
        Check a credit request against the balance before anything is written.

        Returns:
            The balance the request was checked against

        Raises:
            InvalidRequest: requested credit is negative or above the balance
        """
        if requested_cents < 0:
            raise InvalidRequest("credit must not be negative", {"credit": requested_cents})

        balance_cents = cls.get_balance_cents(account)
        if requested_cents > balance_cents:
            logger.warning(
                f"⚠️ [Credit] Account {account.pk} requested {requested_cents} with balance {balance_cents}"
            )
            raise InvalidRequest(
                "you do not have enough credit",
                {"credit": requested_cents, "balance": balance_cents},
            )
        return balance_cents

    @classmethod
    def consume(
        cls,
        account: Account,
        price_cents: int,
        requested_cents: int,
        main_class: CourseClass,
        created_by: str = CREATED_BY_WEBPORTAL,
    ) -> CreditConsumption:
        """
        Offset a price with account credit.

        Must run inside the enrollment transaction with the account row
        locked: the balance is checked again here so two concurrent
        purchases cannot spend the same credit.

        Args:
            account: Locked account paying with credit
            price_cents: Price still to pay
            requested_cents: Credit the parent asked to use
            main_class: Class the purchase is attributed to
            created_by: Channel recorded on the ledger entry

        Returns:
            CreditConsumption with the ledger entry and remaining price
        """
        cls.ensure_sufficient_balance(account, requested_cents)

        applied = PricingCalculator.apply_credit(price_cents, requested_cents)
        if applied.used_cents == 0:
            return CreditConsumption(credit=None, used_cents=0, result_cents=applied.result_cents)

        credit = Credit.objects.create(
            account=account,
            cents=-applied.used_cents,
            type=Credit.TYPE_PURCHASE,
            details={
                "reason": f"Purchase {main_class.course.name}",
                "created_by": created_by,
                "attribution": {
                    "account_id": account.pk,
                    "class_id": main_class.pk,
                },
            },
        )

        logger.info(f"💰 [Credit] Account {account.pk} used ${applied.used_cents / 100:.2f} credit")

        return CreditConsumption(
            credit=credit,
            used_cents=applied.used_cents,
            result_cents=applied.result_cents,
        )
