# ===============================================================================
# CORE TEST FACTORIES FOR CLASSLANE PLATFORM
# ===============================================================================
"""
Test factories for the models the enrollment workflow touches.

Plain functions with sensible defaults; every factory saves what it
creates.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.utils import timezone

from apps.accounts.models import Account, Student
from apps.billing.models import Credit
from apps.courses.models import Course, CourseClass
from apps.promotions.models import Promotion

User = get_user_model()


# ===============================================================================
# ACCOUNT FACTORIES
# ===============================================================================


def create_user(username: str = "parent", password: str = "SecureTestPass123!") -> User:
    """Create a user with a unique username."""
    return User.objects.create_user(username=username, email=f"{username}@example.com", password=password)


def create_account(
    username: str = "parent",
    paid: bool = False,
    referer: Account | None = None,
    first_name: str = "Test",
    last_name: str = "Parent",
) -> Account:
    """Create a parent account together with its login."""
    return Account.objects.create(
        user=create_user(username),
        first_name=first_name,
        last_name=last_name,
        paid=paid,
        referer=referer,
    )


def create_student(account: Account, name: str = "Ada") -> Student:
    return Student.objects.create(account=account, name=name, birth_year=2014)


def grant_credit(account: Account, cents: int, credit_type: str = Credit.TYPE_REFERRAL) -> Credit:
    """Add a ledger entry to an account."""
    return Credit.objects.create(
        account=account,
        cents=cents,
        type=credit_type,
        details={"reason": "Test credit", "created_by": "tests"},
    )


# ===============================================================================
# CATALOG FACTORIES
# ===============================================================================


def create_course(  # noqa: PLR0913
    name: str = "Python Level 1",
    level: int = 1,
    price_cents: int = 10000,
    is_trial: bool = False,
    is_regular: bool = True,
    subject: str = "python",
) -> Course:
    return Course.objects.create(
        name=name,
        subject=subject,
        level=level,
        price_cents=price_cents,
        is_trial=is_trial,
        is_regular=is_regular,
    )


def create_trial_course(name: str = "Intro to Coding") -> Course:
    return create_course(name=name, level=0, price_cents=0, is_trial=True, is_regular=False)


def create_course_class(course: Course, days_ahead: int = 7) -> CourseClass:
    starts_at = timezone.now() + timedelta(days=days_ahead)
    return CourseClass.objects.create(course=course, starts_at=starts_at, ends_at=starts_at + timedelta(hours=1))


# ===============================================================================
# PROMOTION FACTORIES
# ===============================================================================


@dataclass
class PromotionCreationRequest:
    """Parameter object for promotion creation"""
    code: str = "WELCOME25"
    discount_type: str = Promotion.DISCOUNT_PERCENT
    percent_off: Decimal | None = Decimal("25.00")
    amount_off_cents: int | None = None
    max_discount_cents: int | None = None
    max_uses: int | None = None
    counts: int = 0
    is_active: bool = True
    valid_days: int | None = 30
    assigned_account: Account | None = None
    first_purchase_only: bool = False
    once_per_account: bool = True
    courses: list[Course] = field(default_factory=list)


def create_promotion(request: PromotionCreationRequest | None = None) -> Promotion:
    """Create a promotion valid from now on."""
    if request is None:
        request = PromotionCreationRequest()

    now = timezone.now()
    promotion = Promotion.objects.create(
        code=request.code,
        name=request.code.title(),
        discount_type=request.discount_type,
        percent_off=request.percent_off,
        amount_off_cents=request.amount_off_cents,
        max_discount_cents=request.max_discount_cents,
        max_uses=request.max_uses,
        counts=request.counts,
        is_active=request.is_active,
        valid_from=now - timedelta(days=1),
        valid_until=now + timedelta(days=request.valid_days) if request.valid_days is not None else None,
        assigned_account=request.assigned_account,
        first_purchase_only=request.first_purchase_only,
        once_per_account=request.once_per_account,
    )
    if request.courses:
        promotion.courses.set(request.courses)
    return promotion
