"""Billing background tasks.

Django-Q2 tasks that finish compensation work the enrollment request
could not complete synchronously.
"""

from __future__ import annotations

import logging
from typing import Any

from apps.billing.models import ChargeReconciliation
from apps.billing.reconciliation_service import ChargeReconciliationService
from apps.common.queue import queue_by_name

logger = logging.getLogger(__name__)

# Task configuration
TASK_TIME_LIMIT = 120  # 2 minutes


def retry_charge_reversal(reconciliation_id: str) -> dict[str, Any]:
    """
    Retry refunding a charge whose enrollment did not commit.

    Re-queues itself until the refund succeeds or the configured number of
    attempts is used up.

    Args:
        reconciliation_id: ChargeReconciliation UUID

    Returns:
        Dictionary with reversal result
    """
    logger.info(f"↩️ [Reversal] Retrying reversal {reconciliation_id}")

    try:
        reconciliation = ChargeReconciliation.objects.get(id=reconciliation_id)
    except ChargeReconciliation.DoesNotExist:
        error_msg = f"Reconciliation {reconciliation_id} not found"
        logger.error(f"❌ [Reversal] {error_msg}")
        return {"success": False, "error": error_msg}

    if reconciliation.status == ChargeReconciliation.STATUS_REVERSED:
        return {"success": True, "reconciliation_id": str(reconciliation.id), "message": "Already reversed"}

    if not ChargeReconciliationService.can_retry(reconciliation):
        logger.critical(
            f"🚨 [Reversal] Giving up on {reconciliation.gateway_txn_id} after "
            f"{reconciliation.reversal_attempts} attempts; manual refund required"
        )
        return {"success": False, "reconciliation_id": str(reconciliation.id), "error": "Max attempts reached"}

    try:
        reversed_ok = ChargeReconciliationService.attempt_reversal(reconciliation)
    except ValueError as e:
        # Gateway no longer registered or configured
        logger.exception(f"💥 [Reversal] Cannot reach gateway for {reconciliation_id}: {e}")
        return {"success": False, "reconciliation_id": str(reconciliation.id), "error": str(e)}

    if reversed_ok:
        return {
            "success": True,
            "reconciliation_id": str(reconciliation.id),
            "reversal_txn_id": reconciliation.reversal_txn_id,
        }

    if ChargeReconciliationService.can_retry(reconciliation):
        retry_charge_reversal_async(str(reconciliation.id))

    return {
        "success": False,
        "reconciliation_id": str(reconciliation.id),
        "attempts": reconciliation.reversal_attempts,
        "error": reconciliation.last_error,
    }


# ===============================================================================
# ASYNC WRAPPER FUNCTIONS
# ===============================================================================


def retry_charge_reversal_async(reconciliation_id: str) -> str:
    """Queue charge reversal retry (async wrapper)"""
    return queue_by_name("apps.billing.tasks.retry_charge_reversal", reconciliation_id, timeout=TASK_TIME_LIMIT)
