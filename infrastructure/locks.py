"""
Keyed lock providers.

InProcessLockProvider guards one process (dev, tests, single worker);
RedisLockProvider serialises across processes and hosts.
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

from core.logging_config import get_logger
from domain.common.exceptions import ResourceBusyException
from infrastructure.external.cache.redis_client import RedisClient


logger = get_logger(__name__)


class InProcessLockProvider:

    def __init__(self, *, default_timeout: float = 30.0, default_wait: float = 10.0) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}
        self._default_wait = default_wait
        # kept for interface parity; an in-process holder cannot outlive its task
        self._default_timeout = default_timeout

    @asynccontextmanager
    async def hold(self, key: str, *, timeout: Optional[float] = None, wait: Optional[float] = None) -> AsyncIterator[None]:
        wait = self._default_wait if wait is None else wait
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            if wait <= 0:
                if lock.locked():
                    raise ResourceBusyException(key)
                await lock.acquire()
            else:
                try:
                    await asyncio.wait_for(lock.acquire(), timeout=wait)
                except asyncio.TimeoutError:
                    logger.warning("lock_wait_timeout", key=key, wait=wait)
                    raise ResourceBusyException(key) from None
            try:
                yield
            finally:
                lock.release()
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                self._locks.pop(key, None)


class RedisLockProvider:

    def __init__(self, client: RedisClient, *, default_timeout: float = 30.0, default_wait: float = 10.0) -> None:
        self._client = client
        self._default_timeout = default_timeout
        self._default_wait = default_wait

    @asynccontextmanager
    async def hold(self, key: str, *, timeout: Optional[float] = None, wait: Optional[float] = None) -> AsyncIterator[None]:
        timeout = self._default_timeout if timeout is None else timeout
        wait = self._default_wait if wait is None else wait
        async with self._client.lock(key, timeout=timeout, blocking_timeout=max(wait, 0)) as acquired:
            if not acquired:
                logger.warning("lock_busy", key=key, wait=wait)
                raise ResourceBusyException(key)
            yield


__all__ = ["InProcessLockProvider", "RedisLockProvider"]
