"""Redis Pub/Sub based RealtimeBrokerPort implementation.

Every envelope goes to one channel; the envelope carries its room so each
process routes it to its own connections.
"""
from __future__ import annotations

import asyncio
from typing import Optional

from pydantic import ValidationError

from application.ports.realtime import Envelope, Handler, RealtimeBrokerPort
from core.logging_config import get_logger
from infrastructure.external.cache import RedisClient


logger = get_logger(__name__)


class RedisRealtimeBroker(RealtimeBrokerPort):
    CHANNEL = "rt:events"

    def __init__(self, client: RedisClient) -> None:
        self._client = client
        self._task: Optional[asyncio.Task] = None
        self._handler: Optional[Handler] = None

    async def publish(self, room: str, envelope: Envelope) -> None:  # type: ignore[override]
        payload = envelope.model_copy(update={"room": room}).model_dump(mode="json")
        await self._client.publish(self.CHANNEL, payload)

    async def _listen(self) -> None:
        assert self._handler is not None
        logger.info("redis_pubsub_subscribed", channel=self.CHANNEL)
        stream = self._client.subscribe(self.CHANNEL)
        async for message in stream:
            data = message.get("data")
            if not isinstance(data, dict):
                continue
            try:
                env = Envelope.model_validate(data)
            except ValidationError as exc:
                logger.warning("redis_pubsub_parse_failed", error=str(exc))
                continue
            try:
                await self._handler(env)
            except Exception:
                # one bad delivery must not stop the listener
                logger.exception("realtime_handler_failed", type=env.type, room=env.room)

    async def subscribe(self, handler: Handler) -> None:  # type: ignore[override]
        self._handler = handler
        self._task = asyncio.create_task(self._listen(), name="redis-realtime-listener")

    async def aclose(self) -> None:  # type: ignore[override]
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        self._handler = None
