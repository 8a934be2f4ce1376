"""
Chat engine - messages, receipts, edits, reactions and expiry.

Content is encrypted at rest when the chat's encryption setting is on; every
message leaving this service carries plaintext. Receipt and edit updates on
one chat run under the ``chat:{id}`` lock so per-recipient status only moves
forward.
"""
from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Optional, Sequence

from application.ports.cipher import MessageCipher
from application.ports.locks import LockProvider
from application.ports.realtime import RealtimePush
from application.services.notification_service import NotificationService
from core.logging_config import get_logger
from domain.chat.entity import (
    Chat,
    ChatSettings,
    EditRecord,
    ExpirationSettings,
    Message,
    MessageType,
)
from domain.chat.templates import quick_reply, render_system_message
from domain.common.clock import utc_now
from domain.common.exceptions import (
    ChatNotFoundException,
    DomainValidationException,
    MessageNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork


logger = get_logger(__name__)

SYSTEM_SENDER_ID = 0


def chat_lock_key(chat_id: int) -> str:
    return f"chat:{chat_id}"


class ChatService:

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        locks: LockProvider,
        notifier: NotificationService,
        *,
        realtime: Optional[RealtimePush] = None,
        cipher: Optional[MessageCipher] = None,
        edit_window_minutes: int = 15,
        encrypt_by_default: bool = True,
        default_expiration_hours: int = 24,
        preview_length: int = 100,
    ) -> None:
        self._uow_factory = uow_factory
        self._locks = locks
        self._notifier = notifier
        self._realtime = realtime
        self._cipher = cipher
        self._edit_window = edit_window_minutes
        self._encrypt_by_default = encrypt_by_default
        self._default_expiration_hours = default_expiration_hours
        self._preview_length = preview_length

    def bind_realtime(self, realtime: RealtimePush) -> None:
        self._realtime = realtime

    # -------------------- helpers --------------------

    @staticmethod
    async def _load_chat(uow: AbstractUnitOfWork, chat_id: int) -> Chat:
        chat = await uow.chats.get_by_id(chat_id)
        if chat is None:
            raise ChatNotFoundException(chat_id)
        return chat

    @staticmethod
    async def _load_message(uow: AbstractUnitOfWork, chat: Chat, message_id: int) -> Message:
        message = await uow.messages.get_by_id(message_id, for_update=True)
        if message is None or message.chat_id != chat.id:
            raise MessageNotFoundException(message_id)
        return message

    def _seal(self, chat: Chat, content: str) -> tuple[str, bool]:
        if chat.settings.encryption and self._cipher is not None:
            return self._cipher.encrypt(content), True
        return content, False

    def _open(self, message: Message) -> Message:
        """Plaintext copy of a stored message."""
        if not message.encrypted or self._cipher is None:
            return message
        return replace(
            message,
            content=self._cipher.decrypt(message.content),
            encrypted=False,
            edit_history=[EditRecord(self._cipher.decrypt(e.content), e.edited_at) for e in message.edit_history],
        )

    def preview(self, text: str) -> str:
        if len(text) <= self._preview_length:
            return text
        return text[: self._preview_length] + "..."

    async def _emit_room(
        self, chat: Chat, event: str, data: dict[str, Any], *, sender_id: Optional[int] = None
    ) -> None:
        if self._realtime is None:
            return
        try:
            await self._realtime.broadcast_to_room(chat.room, event, data, sender_id=sender_id)
        except Exception as exc:
            logger.warning("chat_emit_failed", chat_id=chat.id, realtime_event=event, error=str(exc))

    async def _emit_user(
        self, user_id: int, event: str, data: dict[str, Any], *, skip_room: Optional[str] = None
    ) -> bool:
        if self._realtime is None:
            return False
        try:
            return await self._realtime.send_to_user(user_id, event, data, skip_room=skip_room)
        except Exception as exc:
            logger.warning("chat_emit_failed", user_id=user_id, realtime_event=event, error=str(exc))
            return False

    # -------------------- chats --------------------

    async def start_chat(self, user_id: int, artisan_id: int, booking_id: Optional[int] = None) -> Chat:
        """Get or create the chat between a customer and an artisan for a booking."""
        async with self._locks.hold(f"chat-pair:{user_id}:{artisan_id}:{booking_id}"):
            async with self._uow_factory() as uow:
                chat = await uow.chats.find(user_id, artisan_id, booking_id)
                if chat is not None:
                    return chat
                chat = await uow.chats.create(
                    Chat(
                        id=None,
                        user_id=user_id,
                        artisan_id=artisan_id,
                        booking_id=booking_id,
                        settings=ChatSettings(
                            encryption=self._encrypt_by_default,
                            message_expiration=ExpirationSettings(
                                enabled=False, duration_hours=self._default_expiration_hours
                            ),
                        ),
                        created_at=utc_now(),
                    )
                )
        logger.info("chat_started", chat_id=chat.id, user_id=user_id, artisan_id=artisan_id, booking_id=booking_id)
        return chat

    async def get_chat(self, chat_id: int, user_id: int) -> Chat:
        async with self._uow_factory(readonly=True) as uow:
            chat = await self._load_chat(uow, chat_id)
        chat.ensure_participant(user_id)
        return chat

    async def list_chats(self, user_id: int, skip: int = 0, limit: int = 50) -> list[Chat]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.chats.list_for_user(user_id, skip=skip, limit=limit)

    # -------------------- sending --------------------

    async def send_message(
        self,
        chat_id: int,
        sender_id: int,
        content: str,
        *,
        type: MessageType | str = MessageType.TEXT,
        attachments: Optional[Sequence[dict[str, Any]]] = None,
        reply_to_id: Optional[int] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Message:
        if not (content or "").strip():
            raise DomainValidationException("Message content is required", field="content")
        async with self._locks.hold(chat_lock_key(chat_id)):
            async with self._uow_factory() as uow:
                chat = await self._load_chat(uow, chat_id)
                if sender_id != SYSTEM_SENDER_ID:
                    chat.ensure_participant(sender_id)
                chat.ensure_active()
                if reply_to_id is not None:
                    await self._load_message(uow, chat, reply_to_id)
                now = utc_now()
                stored, encrypted = self._seal(chat, content)
                message = await uow.messages.create(
                    Message(
                        id=None,
                        chat_id=chat.id,
                        sender_id=sender_id,
                        content=stored,
                        type=type,
                        encrypted=encrypted,
                        attachments=list(attachments or []),
                        reply_to_id=reply_to_id,
                        metadata=dict(metadata or {}),
                        expires_at=chat.expiry_for(now),
                        created_at=now,
                    )
                )
                chat.touch(message)
                await uow.chats.update(chat)

        plain = self._open(message)
        logger.info("chat_message_sent", chat_id=chat.id, message_id=message.id, sender_id=sender_id, type=plain.type.value)
        payload = message_payload(plain)
        author = None if sender_id == SYSTEM_SENDER_ID else sender_id
        await self._emit_room(chat, "newMessage", payload, sender_id=author)
        recipients = chat.participants if sender_id == SYSTEM_SENDER_ID else (chat.other_participant(sender_id),)
        for recipient in recipients:
            # sockets in the chat room already got the room copy
            online = await self._emit_user(recipient, "newMessage", payload, skip_room=chat.room)
            if not online and chat.settings.notifications and sender_id != SYSTEM_SENDER_ID:
                await self._notifier.notify_event(
                    recipient,
                    "new_message",
                    chat_id=chat.id,
                    sender_id=sender_id,
                    preview=self.preview(content),
                )
        return plain

    async def send_system_message(self, chat_id: int, template: str, **context: Any) -> Message:
        content, metadata = render_system_message(template, **context)
        return await self.send_message(
            chat_id,
            SYSTEM_SENDER_ID,
            content,
            type=MessageType.SYSTEM,
            metadata=metadata,
        )

    async def send_quick_reply(self, chat_id: int, sender_id: int, index: int) -> Message:
        async with self._uow_factory(readonly=True) as uow:
            sender = await uow.users.get_by_id(sender_id)
        role = "artisan" if sender is not None and sender.is_artisan else "user"
        return await self.send_message(
            chat_id,
            sender_id,
            quick_reply(role, index),
            type=MessageType.QUICK_REPLY,
            metadata={"quick_reply_index": index},
        )

    # -------------------- receipts --------------------

    async def mark_delivered(self, chat_id: int, message_id: int, user_id: int) -> Message:
        return await self._receipt(chat_id, message_id, user_id, read=False)

    async def mark_read(self, chat_id: int, message_id: int, user_id: int) -> Message:
        return await self._receipt(chat_id, message_id, user_id, read=True)

    async def _receipt(self, chat_id: int, message_id: int, user_id: int, *, read: bool) -> Message:
        async with self._locks.hold(chat_lock_key(chat_id)):
            async with self._uow_factory() as uow:
                chat = await self._load_chat(uow, chat_id)
                chat.ensure_participant(user_id)
                message = await self._load_message(uow, chat, message_id)
                changed = message.mark_read(user_id) if read else message.mark_delivered(user_id)
                if changed:
                    await uow.messages.update(message)

        if changed:
            await self._emit_user(
                message.sender_id,
                "messageStatus",
                {"chat_id": chat_id, "message_ids": [message.id], "status": message.status.value, "user_id": user_id},
            )
        return self._open(message)

    async def mark_all_read(self, chat_id: int, user_id: int) -> int:
        async with self._locks.hold(chat_lock_key(chat_id)):
            async with self._uow_factory() as uow:
                chat = await self._load_chat(uow, chat_id)
                chat.ensure_participant(user_id)
                changed: list[Message] = []
                for message in await uow.messages.list_unread(chat_id, user_id):
                    if message.mark_read(user_id):
                        await uow.messages.update(message)
                        changed.append(message)

        by_sender: dict[int, list[int]] = {}
        for message in changed:
            by_sender.setdefault(message.sender_id, []).append(message.id)
        for sender_id, ids in by_sender.items():
            await self._emit_user(sender_id, "messageStatus", {"chat_id": chat_id, "message_ids": ids, "status": "read", "user_id": user_id})
        logger.info("chat_marked_read", chat_id=chat_id, user_id=user_id, count=len(changed))
        return len(changed)

    async def unread_count(self, chat_id: int, user_id: int) -> int:
        async with self._uow_factory(readonly=True) as uow:
            chat = await self._load_chat(uow, chat_id)
            chat.ensure_participant(user_id)
            return len(await uow.messages.list_unread(chat_id, user_id))

    async def list_messages(
        self,
        chat_id: int,
        user_id: int,
        *,
        before_id: Optional[int] = None,
        limit: int = 50,
    ) -> list[Message]:
        now = utc_now()
        async with self._uow_factory(readonly=True) as uow:
            chat = await self._load_chat(uow, chat_id)
            chat.ensure_participant(user_id)
            messages = await uow.messages.list_for_chat(chat_id, before_id=before_id, limit=limit)
        return [self._open(m) for m in messages if m.expires_at is None or m.expires_at > now]

    # -------------------- edits / reactions --------------------

    async def edit_message(self, chat_id: int, message_id: int, editor_id: int, new_content: str) -> Message:
        async with self._locks.hold(chat_lock_key(chat_id)):
            async with self._uow_factory() as uow:
                chat = await self._load_chat(uow, chat_id)
                message = await self._load_message(uow, chat, message_id)
                sealed = self._cipher.encrypt(new_content) if message.encrypted and self._cipher is not None else new_content
                message.edit(editor_id, sealed, window_minutes=self._edit_window)
                await uow.messages.update(message)

        plain = self._open(message)
        await self._emit_room(chat, "messageEdited", message_payload(plain))
        logger.info("chat_message_edited", chat_id=chat_id, message_id=message_id)
        return plain

    async def react_to_message(self, chat_id: int, message_id: int, user_id: int, emoji: str) -> Message:
        async with self._locks.hold(chat_lock_key(chat_id)):
            async with self._uow_factory() as uow:
                chat = await self._load_chat(uow, chat_id)
                chat.ensure_participant(user_id)
                message = await self._load_message(uow, chat, message_id)
                message.set_reaction(user_id, emoji)
                await uow.messages.update(message)
        await self._emit_room(chat, "messageReaction", {"chat_id": chat_id, "message_id": message_id, "user_id": user_id, "emoji": emoji})
        return self._open(message)

    async def remove_reaction(self, chat_id: int, message_id: int, user_id: int) -> Message:
        async with self._locks.hold(chat_lock_key(chat_id)):
            async with self._uow_factory() as uow:
                chat = await self._load_chat(uow, chat_id)
                chat.ensure_participant(user_id)
                message = await self._load_message(uow, chat, message_id)
                if message.remove_reaction(user_id):
                    await uow.messages.update(message)
        await self._emit_room(chat, "messageReaction", {"chat_id": chat_id, "message_id": message_id, "user_id": user_id, "emoji": None})
        return self._open(message)

    # -------------------- presence / sweep --------------------

    async def typing(self, chat_id: int, user_id: int, is_typing: bool) -> None:
        chat = await self.get_chat(chat_id, user_id)
        if self._realtime is None:
            return
        await self._realtime.broadcast_to_room(
            chat.room,
            "userTyping",
            {"chat_id": chat_id, "user_id": user_id, "is_typing": bool(is_typing)},
            sender_id=user_id,
        )

    async def purge_expired_messages(self, now: Optional[datetime] = None) -> int:
        now = now or utc_now()
        async with self._uow_factory() as uow:
            count = await uow.messages.delete_expired(now)
        logger.info("chat_messages_purged", count=count)
        return count


def message_payload(message: Message) -> dict[str, Any]:
    return {
        "id": message.id,
        "chat_id": message.chat_id,
        "sender_id": message.sender_id,
        "content": message.content,
        "type": message.type.value,
        "status": message.status.value,
        "attachments": message.attachments,
        "reply_to_id": message.reply_to_id,
        "edited": message.edited,
        "metadata": message.metadata,
        "created_at": message.created_at.isoformat() if message.created_at else None,
        "expires_at": message.expires_at.isoformat() if message.expires_at else None,
    }
