"""In-process WebSocket connection manager.

Keeps track of user connections and room memberships, and provides
broadcast helpers for this process. Cross-process broadcast is handled
by a RealtimeBrokerPort implementation.
"""
from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional, Protocol, Set, Tuple

from application.ports.realtime import Envelope
from core.logging_config import get_logger


logger = get_logger(__name__)

OVERFLOW_POLICIES = {"drop_oldest", "drop_new", "disconnect"}


def _wire(envelope: Envelope) -> dict:
    return envelope.model_dump(mode="json", exclude={"skip_room"})


class Connection(Protocol):
    """The slice of ``fastapi.WebSocket`` the manager uses."""

    async def send_json(self, data: Any) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


class ConnectionManager:
    """Manage per-process WebSocket connections and room memberships."""

    def __init__(self, *, queue_max: int = 100, overflow_policy: str = "drop_oldest") -> None:
        # user_id -> set[Connection]
        self._by_user: Dict[int, Set[Connection]] = {}
        # room -> set[(user_id, Connection)]
        self._by_room: Dict[str, Set[Tuple[int, Connection]]] = {}
        self._lock = asyncio.Lock()
        self._queue_max = max(1, int(queue_max))
        policy = (overflow_policy or "drop_oldest").lower()
        if policy not in OVERFLOW_POLICIES:
            logger.warning("ws_send_queue_policy_invalid", policy=policy, fallback="drop_oldest")
            policy = "drop_oldest"
        self._policy = policy
        # per-connection send queues and sender tasks
        self._send_queues: Dict[Connection, asyncio.Queue] = {}
        self._sender_tasks: Dict[Connection, asyncio.Task] = {}

    async def add(self, user_id: int, ws: Connection) -> int:
        """Register a connection; returns the user's local connection count."""
        async with self._lock:
            conns = self._by_user.setdefault(user_id, set())
            conns.add(ws)
            if ws not in self._send_queues:
                q: asyncio.Queue = asyncio.Queue(maxsize=self._queue_max)
                self._send_queues[ws] = q
                self._sender_tasks[ws] = asyncio.create_task(self._sender_loop(ws, q))
            count = len(conns)
        logger.info("ws_connected", user_id=user_id, connections=count)
        return count

    async def remove(self, user_id: int, ws: Connection) -> int:
        """Unregister a connection; returns the user's remaining local connection count."""
        async with self._lock:
            conns = self._by_user.get(user_id, set())
            conns.discard(ws)
            count = len(conns)
            if not conns:
                self._by_user.pop(user_id, None)
            for room in list(self._by_room):
                self._by_room[room].discard((user_id, ws))
                if not self._by_room[room]:
                    del self._by_room[room]
            task = self._sender_tasks.pop(ws, None)
            if task is not None:
                task.cancel()
            self._send_queues.pop(ws, None)
        logger.info("ws_disconnected", user_id=user_id, connections=count)
        return count

    async def join(self, room: str, user_id: int, ws: Connection) -> None:
        async with self._lock:
            self._by_room.setdefault(room, set()).add((user_id, ws))
        logger.info("ws_join_room", room=room, user_id=user_id)

    async def leave(self, room: str, user_id: int, ws: Connection) -> None:
        async with self._lock:
            members = self._by_room.get(room)
            if members is not None:
                members.discard((user_id, ws))
                if not members:
                    del self._by_room[room]
        logger.info("ws_leave_room", room=room, user_id=user_id)

    def connection_count(self, user_id: int) -> int:
        return len(self._by_user.get(user_id, ()))

    def local_users(self) -> list[int]:
        return sorted(self._by_user)

    async def send(self, ws: Connection, envelope: Envelope) -> None:
        await self._enqueue(ws, _wire(envelope), context={})

    async def broadcast_room(self, room: str, envelope: Envelope, *, exclude_user: Optional[int] = None) -> int:
        async with self._lock:
            targets = [(uid, ws) for uid, ws in self._by_room.get(room, set()) if uid != exclude_user]
        if not targets:
            return 0
        payload = _wire(envelope)
        for _uid, ws in targets:
            await self._enqueue(ws, payload, context={"room": room})
        return len(targets)

    async def broadcast_user(self, user_id: int, envelope: Envelope) -> int:
        async with self._lock:
            conns = list(self._by_user.get(user_id, set()))
            if envelope.skip_room:
                in_room = self._by_room.get(envelope.skip_room, set())
                conns = [ws for ws in conns if (user_id, ws) not in in_room]
        if not conns:
            return 0
        payload = _wire(envelope)
        for ws in conns:
            await self._enqueue(ws, payload, context={"user_id": user_id})
        return len(conns)

    async def _enqueue(self, ws: Connection, payload: dict, context: dict) -> None:
        q = self._send_queues.get(ws)
        if q is None:
            return
        try:
            q.put_nowait(payload)
            return
        except asyncio.QueueFull:
            pass
        if self._policy == "drop_new":
            logger.warning("ws_send_queue_drop_new", **context)
            return
        if self._policy == "disconnect":
            logger.warning("ws_send_queue_disconnect", **context)
            try:
                await ws.close(code=1013)
            except RuntimeError as exc:
                logger.warning("ws_close_failed", error=str(exc), **context)
            return
        # drop_oldest
        try:
            q.get_nowait()
        except asyncio.QueueEmpty:
            pass
        try:
            q.put_nowait(payload)
        except asyncio.QueueFull:
            logger.warning("ws_send_queue_drop_after_trim", **context)

    async def _sender_loop(self, ws: Connection, q: asyncio.Queue) -> None:
        try:
            while True:
                payload = await q.get()
                try:
                    await ws.send_json(payload)
                except Exception as exc:  # pragma: no cover
                    logger.warning("ws_send_failed", error=str(exc))
        except asyncio.CancelledError:
            return

    async def aclose(self) -> None:
        async with self._lock:
            tasks = list(self._sender_tasks.values())
            self._sender_tasks.clear()
            self._send_queues.clear()
            self._by_user.clear()
            self._by_room.clear()
        for task in tasks:
            task.cancel()
