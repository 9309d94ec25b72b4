"""
Webhook 幂等账本模型

event_id 唯一索引是去重的唯一依据。
"""
from sqlalchemy import Column, Integer, String, DateTime
from datetime import datetime, timezone

from .base import Base


class WebhookEventModel(Base):
    __tablename__ = "webhook_events"

    id = Column(Integer, primary_key=True)
    event_id = Column(String(255), unique=True, nullable=False, comment="网关事件ID")
    type = Column(String(100), nullable=False, comment="事件类型")
    provider = Column(String(32), nullable=False, default="stripe", comment="支付网关")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="接收时间"
    )
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True, comment="过期时间（保留期后清理）")

    def __repr__(self):
        return f"<WebhookEventModel(event_id='{self.event_id}', type='{self.type}')>"
