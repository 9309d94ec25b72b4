"""
Redis 客户端（精简版）

只保留支付账本需要的操作：命名空间隔离、SET NX EX、健康检查。
与读缓存不同，这里的 RedisError 不会被吞掉，由调用方决定如何处理。
"""
from __future__ import annotations

from typing import Optional

from redis import asyncio as aioredis

from core.logging_config import get_logger


logger = get_logger(__name__)


class RedisClient:
    def __init__(self, client: aioredis.Redis, namespace: str = ""):
        self._client = client
        self._namespace = namespace.strip(":")

    def _format_key(self, key: str) -> str:
        """格式化键名，添加命名空间前缀"""
        if not self._namespace:
            return key
        return f"{self._namespace}:{key}"

    async def set_if_absent(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        """原子占位：键不存在时写入并返回 True，已存在返回 False"""
        result = await self._client.set(
            self._format_key(key),
            value,
            ex=ttl if ttl and ttl > 0 else None,
            nx=True,
        )
        return bool(result)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self._client.delete(*(self._format_key(k) for k in keys)))

    async def health_check(self) -> bool:
        return bool(await self._client.ping())

    async def close(self) -> None:
        await self._client.aclose()


async def create_redis_client(url: str, *, namespace: str, max_connections: int = 10) -> RedisClient:
    """创建独立的 Redis 客户端实例（在应用启动时调用一次）"""
    if not url:
        raise RuntimeError("REDIS__URL 未配置")
    client = aioredis.from_url(
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=max_connections,
    )
    await client.ping()
    logger.info("redis_connected", namespace=namespace)
    return RedisClient(client=client, namespace=namespace)
