"""
订单仓储接口 - 定义订单数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Iterable, Optional

from .entity import Order, OrderStatus, TrademarkOrder, TrademarkStatus


class OrderRepository(ABC):
    """普通订单仓储抽象接口"""

    @abstractmethod
    async def create(self, order: Order) -> Order:
        """创建订单；order_id 重复时抛出 DuplicateOrderException"""
        pass

    @abstractmethod
    async def get_by_id(self, id: int) -> Optional[Order]:
        """根据主键获取订单"""
        pass

    @abstractmethod
    async def get_by_order_id(self, order_id: str) -> Optional[Order]:
        """根据业务订单号获取订单"""
        pass

    @abstractmethod
    async def update(self, order: Order) -> Order:
        """整体更新订单（单行）"""
        pass

    @abstractmethod
    async def update_by_order_id(self, order_id: str, **fields: Any) -> Optional[Order]:
        """按业务订单号更新指定字段，返回更新后的订单；不存在返回 None"""
        pass

    @abstractmethod
    async def delete_stale(self, statuses: Iterable[OrderStatus], before: datetime) -> int:
        """删除 expires_at 早于 before 且处于给定状态的订单，返回删除数量"""
        pass


class TrademarkOrderRepository(ABC):
    """商标订单仓储抽象接口"""

    @abstractmethod
    async def create(self, order: TrademarkOrder) -> TrademarkOrder:
        pass

    @abstractmethod
    async def get_by_id(self, id: int) -> Optional[TrademarkOrder]:
        pass

    @abstractmethod
    async def get_by_order_id(self, order_id: str) -> Optional[TrademarkOrder]:
        pass

    @abstractmethod
    async def update(self, order: TrademarkOrder) -> TrademarkOrder:
        pass

    @abstractmethod
    async def update_by_order_id(self, order_id: str, **fields: Any) -> Optional[TrademarkOrder]:
        pass

    @abstractmethod
    async def delete_stale(self, statuses: Iterable[TrademarkStatus], before: datetime) -> int:
        pass
