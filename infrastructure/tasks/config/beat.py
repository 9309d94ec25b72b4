"""Celery beat schedule configuration.

Retention jobs run on fixed UTC crontabs; the task names match the
``name=`` given to each ``shared_task``.
"""
from __future__ import annotations

from celery.schedules import crontab

CELERY_BEAT_SCHEDULE = {
    # 每周日 03:00 清理过期未支付 / 已取消订单
    "orders-cleanup-stale": {
        "task": "orders.cleanup_stale",
        "schedule": crontab(minute=0, hour=3, day_of_week="sun"),
    },
    "webhook-events-purge-expired": {
        "task": "webhook_events.purge_expired",
        "schedule": crontab(minute=30, hour=4),
    },
}
