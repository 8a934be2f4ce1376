"""
Realtime port and message envelope (contracts-first).

Defines the boundary DTO and the broker/push protocols so the application
layer stays decoupled from the concrete connection and broadcast transport.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Protocol
from pydantic import BaseModel, Field
from datetime import datetime, timezone


USER_ROOM_PREFIX = "user:"
PRESENCE_ROOM = "presence"
ADMIN_ROOM = "admin"


def _utc_now_z() -> str:
    ts = datetime.now(timezone.utc)
    return ts.isoformat().replace("+00:00", "Z")


def user_room(user_id: int) -> str:
    return f"{USER_ROOM_PREFIX}{user_id}"


class Envelope(BaseModel):
    """Unified WS message envelope.

    Fields:
      - type: event name (newMessage, userOnline, notification, ...)
      - room: optional room channel; ``user:{id}`` targets one user
      - data: JSON-serializable payload
      - ts: server-generated UTC timestamp (ISO8601 with Z)
      - sender_id: optional user id set by the server
      - skip_room: user deliveries skip connections already in this room;
        routing only, never sent to clients
    """

    type: str
    room: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    ts: str = Field(default_factory=_utc_now_z)
    sender_id: int | None = None
    skip_room: str | None = None


Handler = Callable[[Envelope], Awaitable[None]]


class RealtimeBrokerPort(Protocol):
    """Cross-process broadcast (in-memory for one process, Redis pub/sub otherwise)."""

    async def publish(self, room: str, envelope: Envelope) -> None: ...

    async def subscribe(self, handler: Handler) -> None: ...

    async def aclose(self) -> None: ...


class RealtimePush(Protocol):
    """What domain services need from the session registry."""

    def is_online(self, user_id: int) -> bool: ...

    async def send_to_user(
        self, user_id: int, event: str, data: dict[str, Any], *, skip_room: str | None = None
    ) -> bool:
        """``skip_room`` connections already get the event through that room."""
        ...

    async def broadcast_to_room(self, room: str, event: str, data: dict[str, Any], *, sender_id: int | None = None) -> None:
        """``sender_id`` is excluded from the room delivery."""
        ...


__all__ = [
    "Envelope",
    "RealtimeBrokerPort",
    "RealtimePush",
    "Handler",
    "user_room",
    "USER_ROOM_PREFIX",
    "PRESENCE_ROOM",
    "ADMIN_ROOM",
]
