"""
Webhook 幂等账本接口
"""
from abc import ABC, abstractmethod
from datetime import datetime


class WebhookEventLedger(ABC):
    """基于唯一约束的原子“插入即占位”去重存储"""

    @abstractmethod
    async def try_insert(self, event_id: str, event_type: str, provider: str = "stripe") -> bool:
        """
        首次插入返回 True；事件 ID 已存在返回 False

        除“重复”以外的存储错误必须向上抛出，由调用方返回 5xx 让网关重投。
        """
        pass

    @abstractmethod
    async def purge_expired(self, now: datetime) -> int:
        """删除已过保留期的条目，返回删除数量"""
        pass
