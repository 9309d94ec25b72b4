"""Common base task for Celery jobs"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

from celery import Task
from core.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class BaseTask(Task):
    """Provides unified failure/success logging for every task."""

    def on_failure(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        """Emit a structured error message before the default Celery handling."""
        logger.error(
            "celery_task_failure",
            task_id=task_id,
            task_name=self.name,
            args=args,
            kwargs=kwargs,
            exc=str(exc),
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_success(self, retval, task_id, args, kwargs):  # type: ignore[override]
        logger.info(
            "celery_task_success",
            task_id=task_id,
            task_name=self.name,
        )
        super().on_success(retval, task_id, args, kwargs)


def run_with_container(fn: Callable[[Any], Awaitable[T]]) -> T:
    """Build the service container inside a fresh event loop, run ``fn`` and dispose it.

    Each task gets its own ``asyncio.run`` loop, so engines and HTTP clients
    are never shared across loops.
    """
    from infrastructure.container import build_container

    async def _run() -> T:
        container = await build_container()
        try:
            return await fn(container)
        finally:
            await container.aclose()

    return asyncio.run(_run())
