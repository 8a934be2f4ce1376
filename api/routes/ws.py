"""WebSocket routes for realtime features.

- token auth on connect (``?token=`` or ``Authorization: Bearer``)
- server sends a JSON ping when idle and closes after missed pongs
- client events: join, leave, sendMessage, typing, messageDelivered,
  messageRead, checkOnline, ping
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from application.ports.realtime import Envelope
from application.services.chat_service import ChatService
from application.services.realtime_service import RealtimeService
from application.services.token_service import TokenClaims
from core.config import settings
from core.logging_config import get_logger
from domain.chat.entity import MessageType
from domain.common.exceptions import BusinessException, DomainValidationException
from infrastructure.container import Container


logger = get_logger(__name__)


router = APIRouter(tags=["WebSocket"])

MISSED_PING_LIMIT = 2
PONG_GRACE_SECONDS = 10.0
CLIENT_MESSAGE_TYPES = {MessageType.TEXT.value, MessageType.FILE.value, MessageType.QUICK_REPLY.value}


def _extract_token(ws: WebSocket) -> str | None:
    token = ws.query_params.get("token")
    if token:
        return token
    auth = ws.headers.get("authorization") or ""
    if auth.lower().startswith("bearer "):
        return auth[7:].strip()
    return None


def _container(ws: WebSocket) -> Container:
    container = getattr(ws.app.state, "container", None)
    if container is None:
        raise RuntimeError("Container not initialized. Ensure lifespan sets app.state.container.")
    return container


def _int_field(data: dict[str, Any], name: str) -> int:
    value = data.get(name)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise DomainValidationException(f"{name} must be an integer", field=name) from None


class ClientSession:
    """Handles the events of one authenticated socket."""

    def __init__(self, ws: WebSocket, claims: TokenClaims, rt: RealtimeService, chats: ChatService) -> None:
        self.ws = ws
        self.user_id = claims.user_id
        self.role = claims.role
        self.rt = rt
        self.chats = chats
        self._handlers: dict[str, Callable[[dict[str, Any]], Awaitable[None]]] = {
            "join": self.on_join,
            "leave": self.on_leave,
            "sendMessage": self.on_send_message,
            "typing": self.on_typing,
            "messageDelivered": self.on_delivered,
            "messageRead": self.on_read,
            "checkOnline": self.on_check_online,
            "ping": self.on_ping,
        }

    async def reply(self, event: str, data: dict[str, Any] | None = None) -> None:
        await self.rt.connections.send(self.ws, Envelope(type=event, data=data or {}))

    async def handle(self, msg: Any) -> None:
        if not isinstance(msg, dict):
            await self.reply("error", {"message": "Malformed event", "code": "bad_request"})
            return
        event = str(msg.get("type") or "")
        if event == "pong":
            return
        handler = self._handlers.get(event)
        if handler is None:
            await self.reply("error", {"message": f"Unknown event type: {event}", "code": "unknown_type"})
            return
        data = msg.get("data") if isinstance(msg.get("data"), dict) else {k: v for k, v in msg.items() if k != "type"}
        try:
            await handler(data)
        except BusinessException as exc:
            await self.reply(
                "error",
                {"event": event, "message": exc.message, "code": exc.code, "error_type": exc.error_type},
            )

    def _room(self, data: dict[str, Any]) -> str:
        room = str(data.get("room") or "").strip()
        if not room:
            raise DomainValidationException("room is required", field="room")
        return room

    async def on_join(self, data: dict[str, Any]) -> None:
        room = self._room(data)
        await self.rt.join_room(self.user_id, self.role, room, self.ws)
        await self.reply("joined", {"room": room})

    async def on_leave(self, data: dict[str, Any]) -> None:
        await self.rt.leave_room(self.user_id, self._room(data), self.ws)

    async def on_send_message(self, data: dict[str, Any]) -> None:
        kind = str(data.get("message_type") or MessageType.TEXT.value)
        if kind not in CLIENT_MESSAGE_TYPES:
            raise DomainValidationException(f"Unsupported message_type: {kind}", field="message_type")
        attachments = data.get("attachments") or None
        if attachments is not None and not isinstance(attachments, list):
            raise DomainValidationException("attachments must be a list", field="attachments")
        await self.chats.send_message(
            _int_field(data, "chat_id"),
            self.user_id,
            str(data.get("content") or ""),
            type=kind,
            attachments=attachments,
            reply_to_id=_int_field(data, "reply_to_id") if data.get("reply_to_id") is not None else None,
        )

    async def on_typing(self, data: dict[str, Any]) -> None:
        await self.chats.typing(_int_field(data, "chat_id"), self.user_id, bool(data.get("is_typing", True)))

    async def on_delivered(self, data: dict[str, Any]) -> None:
        await self.chats.mark_delivered(_int_field(data, "chat_id"), _int_field(data, "message_id"), self.user_id)

    async def on_read(self, data: dict[str, Any]) -> None:
        await self.chats.mark_read(_int_field(data, "chat_id"), _int_field(data, "message_id"), self.user_id)

    async def on_check_online(self, data: dict[str, Any]) -> None:
        raw = data.get("user_ids") or []
        if not raw:
            await self.reply("onlineStatus", {"online": self.rt.online_users()})
            return
        if not isinstance(raw, list):
            raise DomainValidationException("user_ids must be a list", field="user_ids")
        statuses = {str(uid): self.rt.is_online(int(uid)) for uid in raw if str(uid).isdigit()}
        await self.reply("onlineStatus", {"statuses": statuses})

    async def on_ping(self, data: dict[str, Any]) -> None:
        await self.reply("pong")


@router.websocket("/ws")
async def websocket_endpoint(ws: WebSocket) -> None:
    await ws.accept()
    container = _container(ws)
    rt = container.realtime
    try:
        claims = await rt.authenticate(_extract_token(ws))
    except BusinessException as exc:
        logger.info("ws_auth_rejected", reason=exc.message)
        await ws.close(code=1008)
        return

    session = ClientSession(ws, claims, rt, container.chats)
    user_id = claims.user_id
    await rt.connect(user_id, ws)
    try:
        idle_ping_interval = float(settings.REALTIME_WS_HEARTBEAT_SECONDS)
        missed = 0
        while True:
            if idle_ping_interval > 0:
                try:
                    msg = await asyncio.wait_for(ws.receive_json(), timeout=idle_ping_interval)
                    missed = 0
                except asyncio.TimeoutError:
                    missed += 1
                    await ws.send_json(Envelope(type="ping").model_dump(mode="json"))
                    try:
                        msg = await asyncio.wait_for(ws.receive_json(), timeout=PONG_GRACE_SECONDS)
                        missed = 0
                    except asyncio.TimeoutError:
                        if missed > MISSED_PING_LIMIT:
                            logger.info("ws_heartbeat_timeout", user_id=user_id)
                            await ws.close(code=1001)
                            break
                        continue
            else:
                msg = await ws.receive_json()
            await session.handle(msg)
    except WebSocketDisconnect:
        logger.info("ws_disconnected", user_id=user_id)
    except Exception as exc:
        logger.error("ws_error", user_id=user_id, error=str(exc), exc_info=True)
    finally:
        await rt.disconnect(user_id, ws)
