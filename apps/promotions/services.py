"""
Promotion services for Classlane Platform.
Business logic for promotion validation, redemption, discount calculation
and the one-time referral bonus.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import ROUND_DOWN, Decimal
from typing import TYPE_CHECKING, Any

from django.db.models import F, Q

from apps.billing.config import get_referral_purchase_credit_cents
from apps.billing.models import Credit
from apps.common.types import Err, Ok, Result
from apps.enrollments.exceptions import InvalidRequest, NotFound

from .models import Promotion

if TYPE_CHECKING:
    from apps.accounts.models import Account
    from apps.billing.pricing import PriceQuote
    from apps.courses.models import Course

logger = logging.getLogger(__name__)


# ===============================================================================
# Data Classes for Results
# ===============================================================================


@dataclass
class DiscountResult:
    """
    Result of discount calculation.

    Attributes:
        discount_cents: Calculated discount amount in cents.
        discount_type: Rule that produced it (percent or fixed).
        discount_description: Human-readable description (e.g., "20% off").
        breakdown: Detailed breakdown of how discount was calculated.
    """

    discount_cents: int = 0
    discount_type: str = ""
    discount_description: str = ""
    breakdown: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PromotionRedemption:
    """A promotion counted against its usage cap inside the enrollment transaction."""

    promotion: Promotion
    discount: DiscountResult
    result_cents: int


@dataclass(frozen=True)
class ReferralOutcome:
    """
    Explicit result of the first-purchase transition.

    Attributes:
        paid_transitioned: This request flipped the account to paid.
        referral_credit: Bonus entry created for the referer, if any.
    """

    paid_transitioned: bool
    referral_credit: Credit | None = None


# ===============================================================================
# Promotion Service
# ===============================================================================


class PromotionService:
    """Service for validating and redeeming promotion codes."""

    @staticmethod
    def get_promotion(promotion_id: int, for_update: bool = False) -> Promotion:
        """
        Load a promotion by id.

        Raises:
            NotFound: no such promotion
        """
        queryset = Promotion.objects.select_for_update() if for_update else Promotion.objects.all()
        promotion = queryset.filter(pk=promotion_id).first()
        if promotion is None:
            logger.warning(f"⚠️ [Promotion] Promotion {promotion_id} not found")
            raise NotFound("promotion not found", {"promotion_id": promotion_id})
        return promotion

    @staticmethod
    def check_eligibility(promotion: Promotion, account: Account, course: Course) -> Result[Promotion, str]:
        """Validity window, usage cap and account/course eligibility in one check."""
        is_valid, reason = promotion.can_account_use(account, course)
        if not is_valid:
            return Err(reason)
        return Ok(promotion)

    @classmethod
    def get_promotion_if_qualified(
        cls, promotion_id: int, account: Account, course: Course
    ) -> Result[Promotion, str]:
        """
        Get a promotion the account may use on the main course.

        Returns:
            Ok(promotion) when eligible, Err(reason) otherwise

        Raises:
            NotFound: no such promotion
        """
        promotion = cls.get_promotion(promotion_id)
        return cls.check_eligibility(promotion, account, course)

    @staticmethod
    def calculate_discount(price_cents: int, promotion: Promotion, quote: PriceQuote) -> DiscountResult:
        """
        Calculate the discount a promotion gives on the current price.

        Percentage rules apply to the price whatever the purchase shape.
        Fixed rules apply once per class for a bundle and once for a single
        class or a whole series. The result never exceeds the price.
        """
        if price_cents <= 0:
            return DiscountResult(discount_type=promotion.discount_type)

        breakdown: dict[str, Any] = {"price_cents": price_cents, "shape": quote.shape.value}

        if promotion.discount_type == Promotion.DISCOUNT_PERCENT:
            percent = promotion.percent_off or Decimal("0")
            discount_cents = int(
                (Decimal(price_cents) * percent / 100).quantize(Decimal("1"), rounding=ROUND_DOWN)
            )
            shown = int(percent) if percent == percent.to_integral_value() else percent.normalize()
            description = f"{shown}% off"
            breakdown["percent_off"] = str(percent)
        else:
            per_unit = promotion.amount_off_cents or 0
            units = quote.class_count if quote.is_bundle else 1
            discount_cents = per_unit * units
            description = f"${per_unit / 100:.2f} off" + (f" per class (x{units})" if units > 1 else "")
            breakdown["amount_off_cents"] = per_unit
            breakdown["units"] = units

        if promotion.max_discount_cents is not None and discount_cents > promotion.max_discount_cents:
            breakdown["capped_from"] = discount_cents
            discount_cents = promotion.max_discount_cents

        discount_cents = max(0, min(discount_cents, price_cents))

        return DiscountResult(
            discount_cents=discount_cents,
            discount_type=promotion.discount_type,
            discount_description=description,
            breakdown=breakdown,
        )

    @classmethod
    def redeem(
        cls,
        promotion_id: int,
        account: Account,
        quote: PriceQuote,
        price_cents: int | None = None,
    ) -> PromotionRedemption:
        """
        Apply a promotion and count one use against its cap.

        Must run inside the enrollment transaction. The promotion row is
        locked before re-validation and the counter moves with a conditional
        update, so concurrent redemptions never pass ``max_uses``. The
        increment rolls back with the enrollment.

        Raises:
            NotFound: no such promotion
            InvalidRequest: the account or course is not eligible, or the
                cap was reached
        """
        if price_cents is None:
            price_cents = quote.total_cents

        promotion = cls.get_promotion(promotion_id, for_update=True)

        eligibility = cls.check_eligibility(promotion, account, quote.main_class.course)
        if eligibility.is_err():
            logger.warning(f"⚠️ [Promotion] {promotion.code} rejected for account {account.pk}: {eligibility.error}")
            raise InvalidRequest(eligibility.error, {"promotion_id": promotion_id})

        discount = cls.calculate_discount(price_cents, promotion, quote)

        updated = (
            Promotion.objects.filter(pk=promotion.pk)
            .filter(Q(max_uses__isnull=True) | Q(counts__lt=F("max_uses")))
            .update(counts=F("counts") + 1)
        )
        if not updated:
            logger.warning(f"⚠️ [Promotion] {promotion.code} usage limit reached")
            raise InvalidRequest("Promotion usage limit reached", {"promotion_id": promotion_id})

        promotion.refresh_from_db(fields=["counts"])

        logger.info(
            f"🎟️ [Promotion] {promotion.code} redeemed by account {account.pk}: "
            f"-{discount.discount_cents} cents ({promotion.counts}/{promotion.max_uses or '∞'})"
        )

        return PromotionRedemption(
            promotion=promotion,
            discount=discount,
            result_cents=price_cents - discount.discount_cents,
        )


# ===============================================================================
# Referral Service
# ===============================================================================


class ReferralService:
    """Service for the first-purchase transition and its referral bonus."""

    @staticmethod
    def record_first_purchase(account: Account, main_course: Course, price_cents: int) -> ReferralOutcome:
        """
        Mark the account as paid on its first regular purchase and reward the referer.

        The flag moves with a compare-and-set update, so only one request
        ever observes the transition and the bonus is granted at most once
        per referred account.

        Args:
            account: Locked purchasing account
            main_course: Course of the main class
            price_cents: Price left after promotion and credit

        Returns:
            ReferralOutcome describing what changed
        """
        if not main_course.is_regular or main_course.is_trial or account.paid:
            return ReferralOutcome(paid_transitioned=False)

        transitioned = type(account).objects.filter(pk=account.pk, paid=False).update(paid=True) == 1
        if not transitioned:
            return ReferralOutcome(paid_transitioned=False)

        account.paid = True
        logger.info(f"🏁 [Referral] Account {account.pk} completed its first purchase")

        if price_cents <= 0 or account.referer_id is None:
            return ReferralOutcome(paid_transitioned=True)

        bonus_cents = get_referral_purchase_credit_cents()
        referral_credit = Credit.objects.create(
            account_id=account.referer_id,
            cents=bonus_cents,
            type=Credit.TYPE_REFERRAL,
            details={
                "reason": f"Referral purchase by {account.full_name or f'account {account.pk}'}",
                "created_by": "system",
                "attribution": {"account_id": account.pk},
            },
        )

        logger.info(f"🤝 [Referral] Granted {bonus_cents} cents to referer {account.referer_id}")
        return ReferralOutcome(paid_transitioned=True, referral_credit=referral_credit)
