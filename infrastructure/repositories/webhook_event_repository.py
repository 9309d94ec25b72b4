"""
Webhook 幂等账本 - SQL 实现

依赖 webhook_events.event_id 唯一索引：插入成功即占位，唯一约束冲突即重复事件。
"""
from datetime import datetime

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.webhook_event.entity import WebhookEvent
from domain.webhook_event.repository import WebhookEventLedger
from infrastructure.models.webhook_event import WebhookEventModel


logger = get_logger(__name__)


class SQLAlchemyWebhookEventLedger(WebhookEventLedger):
    def __init__(self, session: AsyncSession, *, retention_days: int = 60):
        self.session = session
        self.retention_days = retention_days

    async def try_insert(self, event_id: str, event_type: str, provider: str = "stripe") -> bool:
        entry = WebhookEvent.new(event_id, event_type, provider, retention_days=self.retention_days)
        self.session.add(
            WebhookEventModel(
                event_id=entry.event_id,
                type=entry.type,
                provider=entry.provider,
                created_at=entry.created_at,
                expires_at=entry.expires_at,
            )
        )
        try:
            await self.session.flush()
        except IntegrityError:
            # 唯一约束冲突 = 已处理过的事件；其他数据库错误继续上抛
            await self.session.rollback()
            logger.info("webhook_event_duplicate", event_id=event_id, event_type=event_type, provider=provider)
            return False
        logger.info("webhook_event_recorded", event_id=event_id, event_type=event_type, provider=provider)
        return True

    async def purge_expired(self, now: datetime) -> int:
        result = await self.session.execute(
            delete(WebhookEventModel).where(WebhookEventModel.expires_at < now)
        )
        purged = result.rowcount or 0
        logger.info("webhook_events_purged", count=purged)
        return purged
