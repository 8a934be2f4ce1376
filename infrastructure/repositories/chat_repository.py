"""
Chat and message repositories - SQLAlchemy implementation
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.chat.entity import (
    Chat,
    ChatSettings,
    EditRecord,
    ExpirationSettings,
    Message,
    Reaction,
    Receipt,
)
from domain.chat.repository import ChatRepository, MessageRepository
from domain.common.exceptions import ChatNotFoundException, MessageNotFoundException
from infrastructure.models.chat import ChatModel, MessageModel
from infrastructure.repositories.codec import to_json, with_dates


def _settings(data: Optional[dict]) -> ChatSettings:
    if not data:
        return ChatSettings()
    expiration = ExpirationSettings(**(data.get("message_expiration") or {}))
    return ChatSettings(
        encryption=data.get("encryption", True),
        message_expiration=expiration,
        notifications=data.get("notifications", True),
    )


class SQLAlchemyChatRepository(ChatRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: ChatModel) -> Chat:
        return Chat(
            id=model.id,
            user_id=model.user_id,
            artisan_id=model.artisan_id,
            booking_id=model.booking_id,
            status=model.status,
            settings=_settings(model.settings),
            last_message_id=model.last_message_id,
            last_message_at=model.last_message_at,
            created_at=model.created_at,
        )

    @staticmethod
    def _apply(model: ChatModel, entity: Chat) -> ChatModel:
        model.user_id = entity.user_id
        model.artisan_id = entity.artisan_id
        model.booking_id = entity.booking_id
        model.status = entity.status.value
        model.settings = to_json(entity.settings)
        model.last_message_id = entity.last_message_id
        model.last_message_at = entity.last_message_at
        if entity.created_at is not None:
            model.created_at = entity.created_at
        return model

    async def create(self, chat: Chat) -> Chat:
        db_chat = self._apply(ChatModel(), chat)
        self.session.add(db_chat)
        await self.session.flush()
        await self.session.refresh(db_chat)
        return self._to_entity(db_chat)

    async def get_by_id(self, chat_id: int) -> Optional[Chat]:
        db_chat = await self.session.get(ChatModel, chat_id)
        return self._to_entity(db_chat) if db_chat else None

    async def find(self, user_id: int, artisan_id: int, booking_id: Optional[int]) -> Optional[Chat]:
        query = select(ChatModel).where(ChatModel.user_id == user_id, ChatModel.artisan_id == artisan_id)
        if booking_id is None:
            query = query.where(ChatModel.booking_id.is_(None))
        else:
            query = query.where(ChatModel.booking_id == booking_id)
        db_chat = (await self.session.execute(query.limit(1))).scalar_one_or_none()
        return self._to_entity(db_chat) if db_chat else None

    async def update(self, chat: Chat) -> Chat:
        db_chat = await self.session.get(ChatModel, chat.id)
        if not db_chat:
            raise ChatNotFoundException(chat.id)
        self._apply(db_chat, chat)
        await self.session.flush()
        return self._to_entity(db_chat)

    async def list_for_user(self, user_id: int, skip: int = 0, limit: int = 50) -> List[Chat]:
        query = (
            select(ChatModel)
            .where(or_(ChatModel.user_id == user_id, ChatModel.artisan_id == user_id))
            .order_by(func.coalesce(ChatModel.last_message_id, 0).desc(), ChatModel.id.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return [self._to_entity(m) for m in result.scalars().all()]


class SQLAlchemyMessageRepository(MessageRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: MessageModel) -> Message:
        return Message(
            id=model.id,
            chat_id=model.chat_id,
            sender_id=model.sender_id,
            content=model.content,
            type=model.type,
            encrypted=model.encrypted,
            status=model.status,
            attachments=list(model.attachments or []),
            delivered_to=[Receipt(**with_dates(r, "at")) for r in model.delivered_to or []],
            read_by=[Receipt(**with_dates(r, "at")) for r in model.read_by or []],
            reactions=[Reaction(**with_dates(r, "created_at")) for r in model.reactions or []],
            edited=model.edited,
            edit_history=[EditRecord(**with_dates(e, "edited_at")) for e in model.edit_history or []],
            reply_to_id=model.reply_to_id,
            metadata=model.extra_metadata or {},
            expires_at=model.expires_at,
            created_at=model.created_at,
        )

    @staticmethod
    def _apply(model: MessageModel, entity: Message) -> MessageModel:
        model.chat_id = entity.chat_id
        model.sender_id = entity.sender_id
        model.content = entity.content
        model.type = entity.type.value
        model.encrypted = entity.encrypted
        model.status = entity.status.value
        model.attachments = to_json(entity.attachments)
        model.delivered_to = to_json(entity.delivered_to)
        model.read_by = to_json(entity.read_by)
        model.reactions = to_json(entity.reactions)
        model.edited = entity.edited
        model.edit_history = to_json(entity.edit_history)
        model.reply_to_id = entity.reply_to_id
        model.extra_metadata = to_json(entity.metadata) or None
        model.expires_at = entity.expires_at
        if entity.created_at is not None:
            model.created_at = entity.created_at
        return model

    async def create(self, message: Message) -> Message:
        db_message = self._apply(MessageModel(), message)
        self.session.add(db_message)
        await self.session.flush()
        await self.session.refresh(db_message)
        return self._to_entity(db_message)

    async def get_by_id(self, message_id: int, *, for_update: bool = False) -> Optional[Message]:
        query = select(MessageModel).where(MessageModel.id == message_id)
        if for_update:
            query = query.with_for_update()
        db_message = (await self.session.execute(query)).scalar_one_or_none()
        return self._to_entity(db_message) if db_message else None

    async def update(self, message: Message) -> Message:
        db_message = await self.session.get(MessageModel, message.id)
        if not db_message:
            raise MessageNotFoundException(message.id)
        self._apply(db_message, message)
        await self.session.flush()
        return self._to_entity(db_message)

    async def list_for_chat(self, chat_id: int, *, before_id: Optional[int] = None, limit: int = 50) -> List[Message]:
        query = select(MessageModel).where(MessageModel.chat_id == chat_id)
        if before_id is not None:
            query = query.where(MessageModel.id < before_id)
        query = query.order_by(MessageModel.id.desc()).limit(limit)
        result = await self.session.execute(query)
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_unread(self, chat_id: int, user_id: int) -> List[Message]:
        # read receipts live in a JSON column; filter them after loading
        query = (
            select(MessageModel)
            .where(MessageModel.chat_id == chat_id, MessageModel.sender_id != user_id)
            .order_by(MessageModel.id)
        )
        result = await self.session.execute(query)
        messages = [self._to_entity(m) for m in result.scalars().all()]
        return [m for m in messages if not m.has_read(user_id)]

    async def delete_expired(self, now: datetime) -> int:
        result = await self.session.execute(
            delete(MessageModel).where(MessageModel.expires_at.is_not(None), MessageModel.expires_at <= now)
        )
        return result.rowcount or 0
