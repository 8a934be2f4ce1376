"""In-memory implementation of RealtimeBrokerPort.

Single-process only. Useful for local dev and tests.
"""
from __future__ import annotations

import asyncio
from typing import List

from application.ports.realtime import Envelope, Handler, RealtimeBrokerPort


class InMemoryRealtimeBroker(RealtimeBrokerPort):
    def __init__(self) -> None:
        self._handlers: List[Handler] = []
        self._lock = asyncio.Lock()

    async def publish(self, room: str, envelope: Envelope) -> None:  # type: ignore[override]
        if envelope.room != room:
            envelope = envelope.model_copy(update={"room": room})
        async with self._lock:
            handlers = list(self._handlers)
        for h in handlers:
            await h(envelope)

    async def subscribe(self, handler: Handler) -> None:  # type: ignore[override]
        async with self._lock:
            self._handlers.append(handler)

    async def aclose(self) -> None:  # type: ignore[override]
        async with self._lock:
            self._handlers.clear()
