"""Retention jobs: stale order cleanup and webhook ledger purge."""
from __future__ import annotations

from celery import shared_task

from ..utils.base_task import BaseTask, run_with_container
from core.logging_config import get_logger

logger = get_logger(__name__)


@shared_task(name="orders.cleanup_stale", bind=True, base=BaseTask)
def cleanup_stale_orders(self) -> dict:
    """Delete pending/cancelled orders whose expiry has passed."""
    deleted = run_with_container(lambda c: c.retention_service.cleanup_stale_orders())
    return {"deleted": deleted}


@shared_task(name="webhook_events.purge_expired", bind=True, base=BaseTask)
def purge_expired_webhook_events(self) -> dict:
    purged = run_with_container(lambda c: c.retention_service.purge_webhook_events())
    return {"purged": purged}
