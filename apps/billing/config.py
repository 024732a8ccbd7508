"""
Centralized billing configuration for Classlane Platform.

All pricing, credit and payment constants are read from Django settings
here, at call time, so tests can override them with ``override_settings``.
"""

import logging

from django.conf import settings

logger = logging.getLogger(__name__)

# ===============================================================================
# HELPER: SAFE VALUE PARSING
# ===============================================================================


def _get_int(setting_name: str, default: int, minimum: int = 0, maximum: int | None = None) -> int:
    """Get an integer from settings, falling back to the default when malformed."""
    value = getattr(settings, setting_name, default)
    try:
        result = int(value)
    except (TypeError, ValueError):
        logger.warning(f"⚠️ [Billing] Invalid {setting_name}={value!r}, using {default}")
        result = default
    result = max(minimum, result)
    if maximum is not None:
        result = min(maximum, result)
    return result


# ===============================================================================
# CURRENCY
# ===============================================================================


def get_currency() -> str:
    """ISO currency code every class is priced in."""
    return str(getattr(settings, "BILLING_CURRENCY", "USD") or "USD").upper()


# ===============================================================================
# PRICING RULES
# ===============================================================================


def get_bundle_discount_percent() -> int:
    """Discount applied to several classes bought together."""
    return _get_int("BILLING_BUNDLE_DISCOUNT_PERCENT", 10, maximum=100)


def get_whole_series_discount_percent() -> int:
    """Discount applied when a whole course series is bought at once."""
    return _get_int("BILLING_WHOLE_SERIES_DISCOUNT_PERCENT", 20, maximum=100)


# ===============================================================================
# CREDITS & PAYMENTS
# ===============================================================================


def get_referral_purchase_credit_cents() -> int:
    """Bonus granted to the referer on a referred account's first paid purchase."""
    return _get_int("BILLING_REFERRAL_PURCHASE_CREDIT_CENTS", 2000)


def get_charge_reversal_max_attempts() -> int:
    """How many times an orphaned charge refund is retried before giving up."""
    return _get_int("BILLING_CHARGE_REVERSAL_MAX_ATTEMPTS", 5, minimum=1)
