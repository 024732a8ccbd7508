"""
Payment Gateway Implementations for Classlane Platform
Supports multiple payment providers with unified interface.
"""

from .base import BasePaymentGateway, ChargeResult, PaymentGatewayFactory, RefundResult
from .stripe_gateway import StripeGateway

__all__ = ["BasePaymentGateway", "ChargeResult", "PaymentGatewayFactory", "RefundResult", "StripeGateway"]
