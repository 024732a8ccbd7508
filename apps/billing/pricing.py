"""
Class pricing for Classlane Platform.

Pure functions: the same classes and flags always produce the same price,
which keeps enrollment retries and tests deterministic.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from .config import get_bundle_discount_percent, get_whole_series_discount_percent

if TYPE_CHECKING:
    from apps.courses.models import CourseClass

logger = logging.getLogger(__name__)


class PurchaseShape(str, Enum):
    SINGLE = "single"
    BUNDLE = "bundle"
    WHOLE_SERIES = "whole_series"


@dataclass(frozen=True)
class PriceQuote:
    """
    Price of a class selection before promotions and credit.

    Attributes:
        total_cents: Price to pay after the bundle/series rule.
        list_price_cents: Sum of the individual class prices.
        shape: Single class, bundle or whole series.
        main_class: Lowest-level class of the selection.
        class_count: Number of classes priced.
    """

    total_cents: int
    list_price_cents: int
    shape: PurchaseShape
    main_class: CourseClass
    class_count: int

    @property
    def is_bundle(self) -> bool:
        return self.shape == PurchaseShape.BUNDLE

    @property
    def is_whole_series(self) -> bool:
        return self.shape == PurchaseShape.WHOLE_SERIES

    @property
    def package_discount_cents(self) -> int:
        return self.list_price_cents - self.total_cents


@dataclass(frozen=True)
class CreditApplication:
    """Outcome of offsetting a price with account credit."""

    used_cents: int
    result_cents: int


class PricingCalculator:
    """Computes what a selection of classes costs."""

    @staticmethod
    def find_main_class(classes: Sequence[CourseClass]) -> CourseClass:
        """
        Lowest course level wins; higher levels are add-ons.
        Ties keep the earliest class in the selection.
        """
        if not classes:
            raise ValueError("Cannot pick a main class from an empty selection")

        main_class = classes[0]
        for course_class in classes[1:]:
            if course_class.course.level < main_class.course.level:
                main_class = course_class
        return main_class

    @staticmethod
    def class_price_cents(course_class: CourseClass) -> int:
        """Individual price of one class; trial classes are free."""
        course = course_class.course
        if course.is_trial:
            return 0
        return max(0, int(course.price_cents))

    @classmethod
    def quote(cls, classes: Sequence[CourseClass], whole_series: bool = False) -> PriceQuote:
        """
        Price a selection of classes.

        Args:
            classes: Resolved classes with their courses loaded.
            whole_series: The parent is buying the whole course series.

        Returns:
            PriceQuote with a non-negative total in cents
        """
        main_class = cls.find_main_class(classes)
        list_price_cents = sum(cls.class_price_cents(course_class) for course_class in classes)

        if whole_series:
            shape = PurchaseShape.WHOLE_SERIES
            discount_percent = get_whole_series_discount_percent()
        elif len(classes) > 1:
            shape = PurchaseShape.BUNDLE
            discount_percent = get_bundle_discount_percent()
        else:
            shape = PurchaseShape.SINGLE
            discount_percent = 0

        discount_cents = list_price_cents * discount_percent // 100
        total_cents = max(0, list_price_cents - discount_cents)

        logger.debug(
            f"💲 [Pricing] {len(classes)} class(es), shape={shape.value}, "
            f"list={list_price_cents}, total={total_cents}"
        )

        return PriceQuote(
            total_cents=total_cents,
            list_price_cents=list_price_cents,
            shape=shape,
            main_class=main_class,
            class_count=len(classes),
        )

    @staticmethod
    def apply_credit(price_cents: int, credit_cents: int) -> CreditApplication:
        """Use as much of the requested credit as the price allows."""
        used_cents = max(0, min(credit_cents, price_cents))
        return CreditApplication(used_cents=used_cents, result_cents=price_cents - used_cents)
