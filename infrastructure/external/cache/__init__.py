"""Cache layer exports"""
from .redis_client import (
    RedisClient,
    init_redis_client,
    shutdown_redis_client,
)

__all__ = [
    "RedisClient",
    "init_redis_client",
    "shutdown_redis_client",
]
