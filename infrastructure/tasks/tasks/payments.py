"""
Celery tasks for payment compensation: poll the legacy gateway for a
transaction's status when a callback never arrived.
"""
from __future__ import annotations

from celery import shared_task

from ..utils.base_task import BaseTask, run_with_container
from core.logging_config import get_logger
from infrastructure.external.payments.exceptions import PaymentRecoverableError


logger = get_logger(__name__)


@shared_task(
    name="payments.legacy_query_status",
    bind=True,
    base=BaseTask,
    autoretry_for=(PaymentRecoverableError,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    retry_kwargs={"max_retries": 3},
)
def legacy_query_status(self, order_id: str) -> dict:
    """Run IPCGetTxnStatus for ``order_id``; read-only, the order is not mutated."""
    result = run_with_container(lambda c: c.admin_service.query_gateway_status(order_id))
    logger.info(
        "legacy_status_polled",
        order_id=order_id,
        success=result.success,
        status_code=result.status_code,
    )
    return result.model_dump(mode="json")
