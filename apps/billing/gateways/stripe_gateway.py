"""
Stripe Payment Gateway for Classlane Platform
Captures class purchases with single-use payment method tokens.
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import stripe
from django.conf import settings

from ..config import get_currency
from .base import BasePaymentGateway, ChargeResult, PaymentGatewayFactory, RefundResult

logger = logging.getLogger(__name__)

STRIPE_API_VERSION = "2024-06-20"
STATEMENT_DESCRIPTOR_SUFFIX = "CLASSLANE"


# ===============================================================================
# STRIPE GATEWAY IMPLEMENTATION
# ===============================================================================


class StripeGateway(BasePaymentGateway):
    """
    💳 Stripe payment gateway implementation

    Features:
    - Immediate capture through confirmed PaymentIntents
    - Idempotent requests keyed on the enrollment
    - Full refunds for charges whose enrollment did not persist
    """

    def __init__(self) -> None:
        super().__init__()
        self._stripe = stripe
        self._initialize_stripe()

    def _initialize_stripe(self) -> None:
        """Initialize Stripe SDK with API keys from settings"""
        api_key = getattr(settings, "STRIPE_SECRET_KEY", None)
        if api_key:
            self._stripe.api_key = api_key
        # Set API version for consistency
        self._stripe.api_version = STRIPE_API_VERSION

    @property
    def gateway_name(self) -> str:
        return "stripe"

    def validate_configuration(self) -> bool:
        """Validate Stripe configuration from settings"""
        if not getattr(settings, "STRIPE_SECRET_KEY", None):
            self.logger.error("❌ Stripe secret key not configured")
            return False
        return True

    @staticmethod
    def to_minor_units(amount: Decimal) -> int:
        """Convert a major-unit amount (70.00) to Stripe's integer minor units (7000)."""
        return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    def charge(
        self,
        amount: Decimal,
        payment_token: str,
        idempotency_key: str,
        metadata: dict[str, Any] | None = None,
    ) -> ChargeResult:
        """
        Create and confirm a Stripe PaymentIntent in one call

        Args:
            amount: Amount in major units (e.g., Decimal('70.00'))
            payment_token: Stripe PaymentMethod id collected by the client
            idempotency_key: Enrollment natural key
            metadata: Additional metadata

        Returns:
            ChargeResult; success only when the intent reached 'succeeded'
        """
        amount_cents = self.to_minor_units(amount)
        try:
            payment_intent = self._stripe.PaymentIntent.create(
                amount=amount_cents,
                currency=get_currency().lower(),
                payment_method=payment_token,
                confirm=True,
                # Card only: the outcome must be final before the transaction commits
                payment_method_types=["card"],
                statement_descriptor_suffix=STATEMENT_DESCRIPTOR_SUFFIX,
                metadata={"platform": "classlane", **(metadata or {})},
                idempotency_key=idempotency_key,
            )
        except self._stripe.CardError as e:
            self.logger.warning(f"❌ Stripe declined charge {idempotency_key}: {e.user_message or e}")
            return ChargeResult(
                success=False,
                transaction_id="",
                amount=amount,
                status="failed",
                details={"decline_code": getattr(e, "code", None)},
                error=e.user_message or str(e),
            )
        except self._stripe.StripeError as e:
            self.logger.error(f"🔥 Stripe charge {idempotency_key} failed: {e}")
            return ChargeResult(
                success=False,
                transaction_id="",
                amount=amount,
                status="error",
                details={},
                error=str(e),
            )

        details = {
            "payment_intent_id": payment_intent.id,
            "status": payment_intent.status,
            "amount_received": getattr(payment_intent, "amount_received", None),
            "currency": getattr(payment_intent, "currency", get_currency().lower()),
            "latest_charge": getattr(payment_intent, "latest_charge", None),
        }

        if payment_intent.status != "succeeded":
            self.logger.warning(
                f"⚠️ Stripe PaymentIntent {payment_intent.id} not captured: {payment_intent.status}"
            )
            return ChargeResult(
                success=False,
                transaction_id=payment_intent.id,
                amount=amount,
                status=payment_intent.status,
                details=details,
                error=f"Payment not completed ({payment_intent.status})",
            )

        self.logger.info(f"✅ Captured Stripe PaymentIntent {payment_intent.id} for {amount} {get_currency()}")
        return ChargeResult(
            success=True,
            transaction_id=payment_intent.id,
            amount=amount,
            status=payment_intent.status,
            details=details,
            error=None,
        )

    def refund(self, transaction_id: str, idempotency_key: str) -> RefundResult:
        """
        Refund a captured PaymentIntent in full

        Args:
            transaction_id: Stripe PaymentIntent id
            idempotency_key: Reversal key derived from the charge key

        Returns:
            RefundResult with the Stripe refund id
        """
        try:
            refund = self._stripe.Refund.create(
                payment_intent=transaction_id,
                reason="requested_by_customer",
                idempotency_key=idempotency_key,
            )
        except self._stripe.StripeError as e:
            self.logger.error(f"🔥 Stripe refund of {transaction_id} failed: {e}")
            return RefundResult(success=False, refund_id="", status="error", error=str(e))

        if refund.status in ("failed", "canceled"):
            return RefundResult(
                success=False,
                refund_id=refund.id,
                status=refund.status,
                error=f"Refund {refund.status}",
            )

        self.logger.info(f"↩️ Refunded Stripe PaymentIntent {transaction_id} ({refund.id})")
        return RefundResult(success=True, refund_id=refund.id, status=refund.status, error=None)


# ===============================================================================
# GATEWAY REGISTRATION
# ===============================================================================

# Register Stripe gateway with factory
PaymentGatewayFactory.register_gateway("stripe", StripeGateway)
