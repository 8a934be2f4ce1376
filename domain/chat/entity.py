"""
Chat and message domain entities
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional

from domain.common.clock import ensure_utc, utc_now
from domain.common.exceptions import (
    ChatInactiveException,
    DomainValidationException,
    MessageTooOldToEditException,
    NotAuthorizedException,
)


class ChatStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"
    BLOCKED = "blocked"


class MessageType(str, Enum):
    TEXT = "text"
    SYSTEM = "system"
    QUICK_REPLY = "quick_reply"
    FILE = "file"


class MessageStatus(str, Enum):
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"


_STATUS_RANK = {MessageStatus.SENT: 0, MessageStatus.DELIVERED: 1, MessageStatus.READ: 2}


@dataclass
class ExpirationSettings:
    enabled: bool = False
    duration_hours: int = 24


@dataclass
class ChatSettings:
    encryption: bool = True
    message_expiration: ExpirationSettings = field(default_factory=ExpirationSettings)
    notifications: bool = True


@dataclass
class Chat:
    id: Optional[int]
    user_id: int
    artisan_id: int
    booking_id: Optional[int] = None
    status: ChatStatus = ChatStatus.ACTIVE
    settings: ChatSettings = field(default_factory=ChatSettings)
    last_message_id: Optional[int] = None
    last_message_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.status, str):
            self.status = ChatStatus(self.status)
        if self.user_id == self.artisan_id:
            raise DomainValidationException("Chat participants must differ", field="artisan_id")
        self.last_message_at = ensure_utc(self.last_message_at)
        self.created_at = ensure_utc(self.created_at)

    @property
    def participants(self) -> tuple[int, int]:
        return self.user_id, self.artisan_id

    @property
    def room(self) -> str:
        return f"chat:{self.id}"

    def is_participant(self, user_id: int) -> bool:
        return user_id in self.participants

    def other_participant(self, user_id: int) -> int:
        return self.artisan_id if user_id == self.user_id else self.user_id

    def ensure_participant(self, user_id: int) -> None:
        if not self.is_participant(user_id):
            raise NotAuthorizedException("Not a participant of this chat", details={"chat_id": self.id})

    def ensure_active(self) -> None:
        if self.status != ChatStatus.ACTIVE:
            raise ChatInactiveException(self.id, self.status.value)

    def expiry_for(self, sent_at: datetime) -> Optional[datetime]:
        expiration = self.settings.message_expiration
        if not expiration.enabled:
            return None
        return sent_at + timedelta(hours=expiration.duration_hours)

    def touch(self, message: "Message") -> None:
        self.last_message_id = message.id
        self.last_message_at = message.created_at


@dataclass
class Receipt:
    user_id: int
    at: datetime

    def __post_init__(self):
        self.at = ensure_utc(self.at)


@dataclass
class Reaction:
    user_id: int
    emoji: str
    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.created_at = ensure_utc(self.created_at) or utc_now()


@dataclass
class EditRecord:
    content: str
    edited_at: datetime

    def __post_init__(self):
        self.edited_at = ensure_utc(self.edited_at)


@dataclass
class Message:
    """
    Business rules:
    1. delivered_to and read_by are append-only, one entry per user
    2. status never moves backwards; read implies delivered
    3. only the sender edits, and only within the edit window
    """

    id: Optional[int]
    chat_id: int
    sender_id: int
    content: str
    type: MessageType = MessageType.TEXT
    encrypted: bool = False
    status: MessageStatus = MessageStatus.SENT
    attachments: list[dict[str, Any]] = field(default_factory=list)
    delivered_to: list[Receipt] = field(default_factory=list)
    read_by: list[Receipt] = field(default_factory=list)
    reactions: list[Reaction] = field(default_factory=list)
    edited: bool = False
    edit_history: list[EditRecord] = field(default_factory=list)
    reply_to_id: Optional[int] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.type, str):
            self.type = MessageType(self.type)
        if isinstance(self.status, str):
            self.status = MessageStatus(self.status)
        if not self.content:
            raise DomainValidationException("Message content is required", field="content")
        self.expires_at = ensure_utc(self.expires_at)
        self.created_at = ensure_utc(self.created_at)

    def has_delivered(self, user_id: int) -> bool:
        return any(r.user_id == user_id for r in self.delivered_to)

    def has_read(self, user_id: int) -> bool:
        return any(r.user_id == user_id for r in self.read_by)

    def _advance(self, status: MessageStatus) -> None:
        if _STATUS_RANK[status] > _STATUS_RANK[self.status]:
            self.status = status

    def mark_delivered(self, user_id: int, at: Optional[datetime] = None) -> bool:
        """Returns True when a new receipt was recorded."""
        if user_id == self.sender_id or self.has_delivered(user_id):
            return False
        self.delivered_to.append(Receipt(user_id=user_id, at=at or utc_now()))
        self._advance(MessageStatus.DELIVERED)
        return True

    def mark_read(self, user_id: int, at: Optional[datetime] = None) -> bool:
        if user_id == self.sender_id or self.has_read(user_id):
            return False
        at = at or utc_now()
        if not self.has_delivered(user_id):
            self.delivered_to.append(Receipt(user_id=user_id, at=at))
        self.read_by.append(Receipt(user_id=user_id, at=at))
        self._advance(MessageStatus.READ)
        return True

    def edit(self, editor_id: int, new_content: str, *, window_minutes: int, now: Optional[datetime] = None) -> None:
        if editor_id != self.sender_id:
            raise NotAuthorizedException("Only the sender can edit a message", details={"message_id": self.id})
        if not new_content:
            raise DomainValidationException("Message content is required", field="content")
        now = now or utc_now()
        if self.created_at and now - self.created_at > timedelta(minutes=window_minutes):
            raise MessageTooOldToEditException(self.id, window_minutes)
        self.edit_history.append(EditRecord(content=self.content, edited_at=now))
        self.content = new_content
        self.edited = True

    def set_reaction(self, user_id: int, emoji: str) -> None:
        if not emoji:
            raise DomainValidationException("Emoji is required", field="emoji")
        self.reactions = [r for r in self.reactions if r.user_id != user_id]
        self.reactions.append(Reaction(user_id=user_id, emoji=emoji))

    def remove_reaction(self, user_id: int) -> bool:
        before = len(self.reactions)
        self.reactions = [r for r in self.reactions if r.user_id != user_id]
        return len(self.reactions) != before
