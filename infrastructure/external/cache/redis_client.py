"""
Shared Redis client: namespaced JSON pub/sub and distributed locks.
"""
from __future__ import annotations

import asyncio
import json
import socket
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, AsyncIterator, Dict, Optional

from redis import asyncio as aioredis
from redis.exceptions import LockError, RedisError

from core.config import settings
from core.logging_config import get_logger

logger = get_logger(__name__)


class RedisClient:
    """Thin wrapper over ``redis.asyncio.Redis`` with a key namespace"""

    def __init__(self, client: aioredis.Redis, namespace: str = ""):
        self._client = client
        self._namespace = namespace.strip(":")

    def _format_key(self, key: str) -> str:
        if not self._namespace:
            return key
        return f"{self._namespace}:{key}"

    @staticmethod
    def _serialize(value: Any) -> str:
        if isinstance(value, str):
            return value
        return json.dumps(value, default=str, ensure_ascii=False)

    @staticmethod
    def _deserialize(value: Optional[str]) -> Any:
        if value is None:
            return None
        try:
            return json.loads(value)
        except (TypeError, ValueError):
            return value

    async def publish(self, channel: str, message: Any) -> int:
        """Publish to a channel; returns the number of subscribers reached"""
        try:
            return await self._client.publish(self._format_key(channel), self._serialize(message))
        except RedisError as exc:
            logger.error("redis_publish_failed", channel=channel, error=str(exc))
            raise

    async def subscribe(self, *channels: str) -> AsyncGenerator[Dict[str, Any], None]:
        """Yield ``{"channel", "data"}`` dicts for every message on the channels"""
        formatted = [self._format_key(c) for c in channels]
        pubsub = self._client.pubsub()
        try:
            await pubsub.subscribe(*formatted)
            async for message in pubsub.listen():
                if message["type"] != "message":
                    continue
                channel = message["channel"]
                if self._namespace and channel.startswith(f"{self._namespace}:"):
                    channel = channel[len(self._namespace) + 1 :]
                yield {"channel": channel, "data": self._deserialize(message["data"])}
        finally:
            await pubsub.unsubscribe(*formatted)
            await pubsub.aclose()

    @asynccontextmanager
    async def lock(self, key: str, *, timeout: float = 30, blocking_timeout: float = 10) -> AsyncIterator[bool]:
        """
        Distributed lock. Yields False when it could not be taken within
        ``blocking_timeout``; the caller decides how to report that.
        """
        lock = self._client.lock(f"lock:{self._format_key(key)}", timeout=timeout, blocking_timeout=blocking_timeout)
        acquired = await lock.acquire()
        try:
            yield bool(acquired)
        finally:
            if acquired:
                try:
                    await lock.release()
                except LockError:
                    # expired while held; the next holder already owns it
                    logger.warning("redis_lock_expired", key=key)

    async def close(self) -> None:
        await self._client.aclose()


_cache_instance: Optional[RedisClient] = None
_lock = asyncio.Lock()


async def init_redis_client(url: Optional[str] = None, namespace: Optional[str] = None) -> RedisClient:
    global _cache_instance

    if _cache_instance is not None:
        return _cache_instance

    async with _lock:
        if _cache_instance is not None:
            return _cache_instance

        url = url or settings.redis.url
        if not url:
            raise RuntimeError("REDIS__URL is not configured")

        keepalive_opts = {}
        if hasattr(socket, "TCP_KEEPIDLE") and hasattr(socket, "TCP_KEEPINTVL") and hasattr(socket, "TCP_KEEPCNT"):
            keepalive_opts = {socket.TCP_KEEPIDLE: 1, socket.TCP_KEEPINTVL: 1, socket.TCP_KEEPCNT: 3}

        client = aioredis.from_url(
            url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.redis.max_connections,
            socket_keepalive=True,
            socket_keepalive_options=keepalive_opts,
        )
        await client.ping()
        _cache_instance = RedisClient(client, namespace=namespace or settings.redis.namespace)
        logger.info("redis_client_initialized", url=url)
        return _cache_instance


async def shutdown_redis_client() -> None:
    global _cache_instance
    if _cache_instance is not None:
        try:
            await _cache_instance.close()
            logger.info("redis_client_closed")
        finally:
            _cache_instance = None


__all__ = [
    "RedisClient",
    "init_redis_client",
    "shutdown_redis_client",
]
