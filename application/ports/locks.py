"""
Keyed lock port.

Every state transition on one aggregate runs under the lock for its key
(``payment:{id}``, ``wallet:{user_id}``, ``job:payouts``). Take the lock
before opening the unit of work; nest in the order payment -> wallet.
"""
from __future__ import annotations

from typing import AsyncContextManager, Optional, Protocol


class LockProvider(Protocol):

    def hold(self, key: str, *, timeout: Optional[float] = None, wait: Optional[float] = None) -> AsyncContextManager[None]:
        """Hold the lock on ``key``; raise ResourceBusyException when it cannot be taken within ``wait``."""
        ...


__all__ = ["LockProvider"]
