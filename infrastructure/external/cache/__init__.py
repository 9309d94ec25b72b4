"""缓存层对外暴露的接口"""
from .redis_client import RedisClient, create_redis_client


__all__ = ["RedisClient", "create_redis_client"]
