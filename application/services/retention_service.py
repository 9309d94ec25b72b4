"""
数据保留任务 - 清理过期订单与过期的 webhook 账本条目
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

from core.logging_config import get_logger
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import OrderStatus
from domain.webhook_event.repository import WebhookEventLedger


logger = get_logger(__name__)

STALE_ORDER_STATUSES = (OrderStatus.PENDING, OrderStatus.CANCELLED)


class RetentionService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        ledger: Optional[WebhookEventLedger] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._ledger = ledger

    async def cleanup_stale_orders(self, now: Optional[datetime] = None) -> int:
        """删除已过期且仍为 pending / cancelled 的普通订单"""
        now = now or datetime.now(timezone.utc)
        async with self._uow_factory() as uow:
            deleted = await uow.order_repository.delete_stale(STALE_ORDER_STATUSES, now)
        logger.info("stale_order_cleanup_finished", deleted=deleted, before=now.isoformat())
        return deleted

    async def purge_webhook_events(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        if self._ledger is not None:
            purged = await self._ledger.purge_expired(now)
        else:
            async with self._uow_factory() as uow:
                purged = await uow.webhook_event_ledger.purge_expired(now)
        logger.info("webhook_event_purge_finished", purged=purged)
        return purged
