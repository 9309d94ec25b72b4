"""
Webhook 幂等账本 - Redis 实现

SET NX EX 原子占位；键的 TTL 即保留期，过期由 Redis 自行清理。
"""
from datetime import datetime

from core.logging_config import get_logger
from domain.webhook_event.repository import WebhookEventLedger
from infrastructure.external.cache.redis_client import RedisClient


logger = get_logger(__name__)


class RedisWebhookEventLedger(WebhookEventLedger):
    def __init__(self, client: RedisClient, *, retention_days: int = 60):
        self._client = client
        self._ttl = retention_days * 24 * 3600

    async def try_insert(self, event_id: str, event_type: str, provider: str = "stripe") -> bool:
        # RedisError 直接上抛，webhook 返回 5xx
        inserted = await self._client.set_if_absent(f"webhook:{provider}:{event_id}", event_type, ttl=self._ttl)
        if inserted:
            logger.info("webhook_event_recorded", event_id=event_id, event_type=event_type, provider=provider)
        else:
            logger.info("webhook_event_duplicate", event_id=event_id, event_type=event_type, provider=provider)
        return inserted

    async def purge_expired(self, now: datetime) -> int:
        return 0
