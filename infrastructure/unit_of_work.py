"""SQLAlchemy Unit of Work 实现"""
from __future__ import annotations

from typing import Optional, Callable
import inspect

from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.repositories.order_repository import (
    SQLAlchemyOrderRepository,
    SQLAlchemyTrademarkOrderRepository,
)
from infrastructure.repositories.webhook_event_repository import SQLAlchemyWebhookEventLedger


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):
    """基于SQLAlchemy的Unit of Work"""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        session: Optional[AsyncSession] = None,
        *,
        readonly: bool = False,
        event_retention_days: int = 60,
    ) -> None:
        super().__init__(readonly=readonly)
        self._session_factory = session_factory
        self._external_session = session
        self._event_retention_days = event_retention_days
        self.session: Optional[AsyncSession] = session

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        if self.session is None:
            self.session = self._session_factory()
        self.order_repository = SQLAlchemyOrderRepository(self.session)
        self.trademark_order_repository = SQLAlchemyTrademarkOrderRepository(self.session)
        self.webhook_event_ledger = SQLAlchemyWebhookEventLedger(
            self.session, retention_days=self._event_retention_days
        )
        # 仅在非只读模式下显式开启事务
        if not self._readonly:
            self._transaction = await self.session.begin()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            # 事务在 commit/rollback 后通常会结束，这里仅在仍然活动时做安全关闭
            tx = getattr(self, "_transaction", None)
            if tx is not None and getattr(tx, "is_active", False):
                close = getattr(tx, "close", None)
                if callable(close):
                    res = close()
                    if inspect.isawaitable(res):
                        await res
            if self._external_session is None and self.session is not None:
                await self.session.close()
                self.session = None
            self.order_repository = None
            self.trademark_order_repository = None
            self.webhook_event_ledger = None

    async def commit(self) -> None:
        if self._readonly:
            # 只读情况下不提交
            self._committed = True
            return
        if self.session and self.session.in_transaction():
            await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        if self.session and self.session.in_transaction():
            await self.session.rollback()
        self._committed = False


def sqlalchemy_uow_factory(
    session_factory: Callable[[], AsyncSession], *, event_retention_days: int = 60
) -> Callable[..., SQLAlchemyUnitOfWork]:
    def _factory(*, readonly: bool = False) -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(
            session_factory, readonly=readonly, event_retention_days=event_retention_days
        )
    return _factory
