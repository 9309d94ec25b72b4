"""
Webhook 幂等账本条目

每个网关事件 ID 只能被处理一次；条目在保留期后过期清理。
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional


@dataclass
class WebhookEvent:
    id: Optional[int]
    event_id: str
    type: str
    provider: str
    created_at: datetime
    expires_at: datetime

    @classmethod
    def new(cls, event_id: str, event_type: str, provider: str, *, retention_days: int = 60) -> "WebhookEvent":
        now = datetime.now(timezone.utc)
        return cls(
            id=None,
            event_id=event_id,
            type=event_type,
            provider=provider,
            created_at=now,
            expires_at=now + timedelta(days=retention_days),
        )
