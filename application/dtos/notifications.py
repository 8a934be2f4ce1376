"""
Notification DTOs
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field

from domain.notification.entity import NotificationPriority, NotificationType, RelatedKind


class RelatedRefDTO(BaseModel):
    kind: RelatedKind
    id: int

    model_config = ConfigDict(from_attributes=True)


class NotificationPayload(BaseModel):
    title: str
    message: str
    priority: NotificationPriority = NotificationPriority.MEDIUM
    related: Optional[RelatedRefDTO] = None
    data: dict[str, Any] = Field(default_factory=dict)
    # extra out-of-band channels: "email", "sms"
    channels: list[str] = Field(default_factory=list)


class NotificationView(BaseModel):
    id: int
    type: NotificationType
    title: str
    message: str
    priority: NotificationPriority
    related: Optional[RelatedRefDTO] = None
    action_url: Optional[str] = None
    action_text: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)
    read: bool
    read_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class NotificationList(BaseModel):
    items: list[NotificationView]
    unread_count: int
    skip: int
    limit: int


class MarkReadRequest(BaseModel):
    ids: list[int] = Field(min_length=1)
