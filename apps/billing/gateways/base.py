"""
Base Payment Gateway for Classlane Platform
Abstract interface for all payment gateway implementations.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, ClassVar, TypedDict

from django.conf import settings

logger = logging.getLogger(__name__)


# ===============================================================================
# TYPE DEFINITIONS
# ===============================================================================


class ChargeResult(TypedDict):
    """Result from capturing a charge"""
    success: bool
    transaction_id: str
    amount: Decimal
    status: str  # succeeded, requires_action, failed, error
    details: dict[str, Any]
    error: str | None


class RefundResult(TypedDict):
    """Result from reversing a captured charge"""
    success: bool
    refund_id: str
    status: str
    error: str | None


# ===============================================================================
# ABSTRACT BASE GATEWAY
# ===============================================================================


class BasePaymentGateway(ABC):
    """
    🏛️ Abstract base class for all payment gateways

    Provides unified interface for:
    - One-shot charge capture with a single-use payment token
    - Reversal of a captured charge
    """

    def __init__(self) -> None:
        self.logger = logging.getLogger(f"apps.billing.gateways.{self.__class__.__name__.lower()}")

    @property
    @abstractmethod
    def gateway_name(self) -> str:
        """Gateway identifier (e.g., 'stripe')"""

    @abstractmethod
    def charge(
        self,
        amount: Decimal,
        payment_token: str,
        idempotency_key: str,
        metadata: dict[str, Any] | None = None,
    ) -> ChargeResult:
        """
        Capture a charge immediately

        Args:
            amount: Amount in major currency units (e.g., Decimal('70.00'))
            payment_token: Single-use payment method token from the client
            idempotency_key: Key that makes a replayed request return the first result
            metadata: Additional metadata

        Returns:
            ChargeResult with success status and gateway transaction id
        """

    @abstractmethod
    def refund(self, transaction_id: str, idempotency_key: str) -> RefundResult:
        """
        Reverse a captured charge in full

        Args:
            transaction_id: Gateway transaction id returned by charge()
            idempotency_key: Key that makes a replayed refund a no-op

        Returns:
            RefundResult with success status
        """

    def validate_configuration(self) -> bool:
        """
        Validate gateway configuration (API keys, etc.)
        Override in subclasses for specific validation.

        Returns:
            True if configuration is valid
        """
        return True


# ===============================================================================
# GATEWAY FACTORY
# ===============================================================================


class PaymentGatewayFactory:
    """
    🏭 Factory for creating payment gateway instances

    Supports dynamic gateway selection based on configuration.
    """

    _gateways: ClassVar[dict[str, type[BasePaymentGateway]]] = {}

    @classmethod
    def register_gateway(cls, gateway_name: str, gateway_class: type[BasePaymentGateway]) -> None:
        """Register a payment gateway class"""
        cls._gateways[gateway_name] = gateway_class

    @classmethod
    def create_gateway(cls, gateway_name: str) -> BasePaymentGateway:
        """
        Create payment gateway instance

        Args:
            gateway_name: Gateway identifier ('stripe', ...)

        Returns:
            Configured gateway instance

        Raises:
            ValueError: If gateway not found or not configured
        """
        if gateway_name not in cls._gateways:
            raise ValueError(f"Payment gateway '{gateway_name}' not registered")

        gateway_class = cls._gateways[gateway_name]
        gateway = gateway_class()

        # Validate configuration
        if not gateway.validate_configuration():
            raise ValueError(f"Payment gateway '{gateway_name}' not properly configured")

        logger.info(f"✅ Created {gateway_name} payment gateway")
        return gateway

    @classmethod
    def get_default_gateway(cls) -> BasePaymentGateway:
        """
        Get default payment gateway from settings

        Returns:
            Default configured gateway instance
        """
        default_gateway = getattr(settings, "DEFAULT_PAYMENT_GATEWAY", "stripe")
        return cls.create_gateway(default_gateway)
