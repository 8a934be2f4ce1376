"""
Chat DTOs
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field

from domain.chat.entity import ChatStatus, MessageStatus, MessageType


class StartChatRequest(BaseModel):
    artisan_id: int
    booking_id: Optional[int] = None


class SendMessageRequest(BaseModel):
    content: str = Field(min_length=1, max_length=5000)
    type: MessageType = MessageType.TEXT
    attachments: list[dict[str, Any]] = Field(default_factory=list, max_length=10)
    reply_to_id: Optional[int] = None


class QuickReplyRequest(BaseModel):
    index: int = Field(ge=0)


class EditMessageRequest(BaseModel):
    content: str = Field(min_length=1, max_length=5000)


class ReactionRequest(BaseModel):
    emoji: str = Field(min_length=1, max_length=16)


class ExpirationView(BaseModel):
    enabled: bool
    duration_hours: int

    model_config = ConfigDict(from_attributes=True)


class ChatSettingsView(BaseModel):
    encryption: bool
    message_expiration: ExpirationView
    notifications: bool

    model_config = ConfigDict(from_attributes=True)


class ChatView(BaseModel):
    id: int
    user_id: int
    artisan_id: int
    booking_id: Optional[int] = None
    status: ChatStatus
    settings: ChatSettingsView
    last_message_id: Optional[int] = None
    last_message_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ReceiptView(BaseModel):
    user_id: int
    at: datetime

    model_config = ConfigDict(from_attributes=True)


class ReactionView(BaseModel):
    user_id: int
    emoji: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class EditRecordView(BaseModel):
    content: str
    edited_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MessageView(BaseModel):
    id: int
    chat_id: int
    sender_id: int
    content: str
    type: MessageType
    status: MessageStatus
    attachments: list[dict[str, Any]] = Field(default_factory=list)
    delivered_to: list[ReceiptView] = Field(default_factory=list)
    read_by: list[ReceiptView] = Field(default_factory=list)
    reactions: list[ReactionView] = Field(default_factory=list)
    edited: bool = False
    edit_history: list[EditRecordView] = Field(default_factory=list)
    reply_to_id: Optional[int] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class UnreadCount(BaseModel):
    chat_id: int
    unread: int
