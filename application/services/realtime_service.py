"""Application service for realtime WebSocket workflows.

Keeps application logic (authorization, presence, orchestration) separate
from the concrete connection management and broadcast transport. Every
delivery goes through the broker so users connected to another process
receive it too; ``on_broker_event`` fans broker traffic out to the local
connections.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from application.ports.realtime import (
    ADMIN_ROOM,
    PRESENCE_ROOM,
    USER_ROOM_PREFIX,
    Envelope,
    RealtimeBrokerPort,
    user_room,
)
from application.services.token_service import TokenClaims, TokenService
from core.logging_config import get_logger
from domain.common.exceptions import AuthenticationException, NotAuthorizedException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.user.entity import UserRole
from infrastructure.realtime.connection_manager import Connection, ConnectionManager


logger = get_logger(__name__)

# broker-internal presence signal; clients see userOnline / userOffline
PRESENCE_SIGNAL = "presence"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class RoomAuthorizer:
    """Who may join which room.

    ``chat:{id}`` chat participants, ``booking:{id}`` booking parties,
    ``user:{id}`` that user, ``admin`` admins, ``presence`` everyone.
    """

    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]) -> None:
        self._uow_factory = uow_factory

    async def can_join(self, user_id: int, role: UserRole, room: str) -> bool:
        if room == PRESENCE_ROOM:
            return True
        if room == ADMIN_ROOM:
            return role == UserRole.ADMIN
        kind, _, raw_id = room.partition(":")
        try:
            target = int(raw_id)
        except ValueError:
            return False
        if kind + ":" == USER_ROOM_PREFIX:
            return target == user_id
        if role == UserRole.ADMIN:
            return kind in ("chat", "booking")
        async with self._uow_factory(readonly=True) as uow:
            if kind == "chat":
                chat = await uow.chats.get_by_id(target)
                return bool(chat and chat.is_participant(user_id))
            if kind == "booking":
                order = await uow.orders.get_by_id(target)
                return bool(order and order.is_party(user_id))
        return False


class RealtimeService:
    def __init__(
        self,
        *,
        broker: RealtimeBrokerPort,
        connections: ConnectionManager,
        tokens: TokenService,
        authorizer: RoomAuthorizer,
        uow_factory: Callable[..., AbstractUnitOfWork],
    ) -> None:
        self._broker = broker
        self._conn = connections
        self._tokens = tokens
        self._authorizer = authorizer
        self._uow_factory = uow_factory
        # user_id -> number of processes holding at least one connection
        self._presence: Dict[int, int] = {}

    async def start(self) -> None:
        await self._broker.subscribe(self.on_broker_event)

    async def aclose(self) -> None:
        await self._broker.aclose()
        await self._conn.aclose()

    # -------------------- authentication --------------------

    async def authenticate(self, token: Optional[str]) -> TokenClaims:
        claims = self._tokens.verify_access_token(token)
        async with self._uow_factory(readonly=True) as uow:
            user = await uow.users.get_by_id(claims.user_id)
        if user is None or not user.is_active:
            raise AuthenticationException("User is not active")
        return TokenClaims(user_id=user.id, role=user.role, jti=claims.jti)

    # -------------------- connection lifecycle --------------------

    async def connect(self, user_id: int, ws: Connection) -> None:
        count = await self._conn.add(user_id, ws)
        await self._conn.join(PRESENCE_ROOM, user_id, ws)
        await self._conn.send(
            ws,
            Envelope(
                type="welcome",
                data={
                    "user_id": user_id,
                    "server_time": _now_iso(),
                    "capabilities": ["chat", "rooms", "presence", "notifications"],
                },
            ),
        )
        if count == 1:
            await self._broker.publish(
                PRESENCE_ROOM,
                Envelope(type=PRESENCE_SIGNAL, room=PRESENCE_ROOM, data={"user_id": user_id, "online": True}),
            )
        logger.info("user_connected", user_id=user_id, connections=count)

    async def disconnect(self, user_id: int, ws: Connection) -> None:
        remaining = await self._conn.remove(user_id, ws)
        if remaining == 0:
            await self._broker.publish(
                PRESENCE_ROOM,
                Envelope(type=PRESENCE_SIGNAL, room=PRESENCE_ROOM, data={"user_id": user_id, "online": False}),
            )
        logger.info("user_disconnected", user_id=user_id, connections=remaining)

    # -------------------- presence --------------------

    def is_online(self, user_id: int) -> bool:
        return self._presence.get(user_id, 0) > 0 or self._conn.connection_count(user_id) > 0

    def online_users(self) -> list[int]:
        online = {uid for uid, count in self._presence.items() if count > 0}
        online.update(self._conn.local_users())
        return sorted(online)

    # -------------------- delivery --------------------

    async def send_to_user(
        self,
        user_id: int,
        event: str,
        data: dict[str, Any],
        *,
        skip_room: Optional[str] = None,
    ) -> bool:
        """Deliver to every connection of one user; no-op when offline."""
        if not self.is_online(user_id):
            return False
        room = user_room(user_id)
        await self._broker.publish(room, Envelope(type=event, room=room, data=data, skip_room=skip_room))
        return True

    async def broadcast_to_room(
        self,
        room: str,
        event: str,
        data: dict[str, Any],
        *,
        sender_id: Optional[int] = None,
    ) -> None:
        await self._broker.publish(room, Envelope(type=event, room=room, data=data, sender_id=sender_id))

    # -------------------- rooms --------------------

    async def join_room(self, user_id: int, role: UserRole, room: str, ws: Connection) -> None:
        if not await self._authorizer.can_join(user_id, role, room):
            raise NotAuthorizedException("Cannot join this room", details={"room": room})
        await self._conn.join(room, user_id, ws)

    async def leave_room(self, user_id: int, room: str, ws: Connection) -> None:
        await self._conn.leave(room, user_id, ws)

    # -------------------- broker callback --------------------

    async def on_broker_event(self, envelope: Envelope) -> None:
        if envelope.type == PRESENCE_SIGNAL:
            await self._apply_presence(envelope)
            return
        room = envelope.room or ""
        if room.startswith(USER_ROOM_PREFIX):
            try:
                target = int(room[len(USER_ROOM_PREFIX):])
            except ValueError:
                logger.warning("realtime_bad_user_room", room=room)
                return
            await self._conn.broadcast_user(target, envelope)
        elif room:
            await self._conn.broadcast_room(room, envelope, exclude_user=envelope.sender_id)
        logger.debug("realtime_event_dispatched", type=envelope.type, room=room)

    async def _apply_presence(self, envelope: Envelope) -> None:
        user_id = int(envelope.data.get("user_id", 0))
        online = bool(envelope.data.get("online"))
        before = self._presence.get(user_id, 0)
        after = before + 1 if online else max(0, before - 1)
        if after:
            self._presence[user_id] = after
        else:
            self._presence.pop(user_id, None)
        if (before == 0) != (after == 0):
            event = "userOnline" if online else "userOffline"
            await self._conn.broadcast_room(
                PRESENCE_ROOM,
                Envelope(type=event, room=PRESENCE_ROOM, data={"user_id": user_id, "timestamp": _now_iso()}),
                exclude_user=user_id,
            )

    # Expose for API convenience
    @property
    def connections(self) -> ConnectionManager:
        return self._conn
