"""
Charge Reconciliation Service for Classlane Platform
Compensates gateway charges whose enrollment transaction never committed.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from django.db.models import F

from .config import get_charge_reversal_max_attempts, get_currency
from .gateways import PaymentGatewayFactory
from .models import ChargeReconciliation

if TYPE_CHECKING:
    from .gateways import BasePaymentGateway

logger = logging.getLogger(__name__)


class ChargeReconciliationService:
    """
    Opens and drives ChargeReconciliation records.

    Callers must run outside the failed enrollment transaction: the record
    has to survive its rollback.
    """

    @staticmethod
    def open(  # noqa: PLR0913
        gateway_name: str,
        gateway_txn_id: str,
        idempotency_key: str,
        amount_cents: int,
        account_id: int | None,
        student_id: int | None,
        class_ids: Sequence[int],
        failure_reason: str,
    ) -> ChargeReconciliation:
        """Record a captured charge that has no enrollment behind it."""
        reconciliation = ChargeReconciliation.objects.create(
            gateway=gateway_name,
            gateway_txn_id=gateway_txn_id,
            idempotency_key=idempotency_key,
            amount_cents=amount_cents,
            currency=get_currency(),
            account_id=account_id,
            student_id=student_id,
            class_ids=list(class_ids),
            failure_reason=failure_reason,
        )
        logger.critical(
            f"🚨 [Reconciliation] Charge {gateway_name}:{gateway_txn_id} ({amount_cents} cents) "
            f"captured without enrollment: {failure_reason}"
        )
        return reconciliation

    @staticmethod
    def attempt_reversal(
        reconciliation: ChargeReconciliation,
        gateway: BasePaymentGateway | None = None,
    ) -> bool:
        """
        Refund the charge once.

        Returns:
            True when the charge is (now) reversed
        """
        if reconciliation.status == ChargeReconciliation.STATUS_REVERSED:
            return True

        if gateway is None:
            gateway = PaymentGatewayFactory.create_gateway(reconciliation.gateway)

        ChargeReconciliation.objects.filter(pk=reconciliation.pk).update(
            reversal_attempts=F("reversal_attempts") + 1
        )
        reconciliation.refresh_from_db(fields=["reversal_attempts"])

        result = gateway.refund(reconciliation.gateway_txn_id, reconciliation.reversal_idempotency_key)
        if result["success"]:
            reconciliation.mark_reversed(result["refund_id"])
            logger.info(
                f"↩️ [Reconciliation] Reversed {reconciliation.gateway}:{reconciliation.gateway_txn_id} "
                f"(attempt {reconciliation.reversal_attempts})"
            )
            return True

        reconciliation.mark_reversal_failed(result["error"] or result["status"])
        logger.error(
            f"❌ [Reconciliation] Reversal of {reconciliation.gateway_txn_id} failed "
            f"(attempt {reconciliation.reversal_attempts}): {reconciliation.last_error}"
        )
        return False

    @staticmethod
    def can_retry(reconciliation: ChargeReconciliation) -> bool:
        return (
            reconciliation.status != ChargeReconciliation.STATUS_REVERSED
            and reconciliation.reversal_attempts < get_charge_reversal_max_attempts()
        )
