"""
Notification domain entity
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional

from domain.common.clock import ensure_utc, utc_now


class NotificationType(str, Enum):
    BOOKING = "booking"
    MESSAGE = "message"
    PAYMENT = "payment"
    REVIEW = "review"
    SYSTEM = "system"
    DISPUTE = "dispute"


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RelatedKind(str, Enum):
    BOOKING = "booking"
    CHAT = "chat"
    PAYMENT = "payment"
    DISPUTE = "dispute"
    PAYOUT = "payout"


# kind -> (url template, action text)
ACTION_TABLE: dict[RelatedKind, tuple[str, str]] = {
    RelatedKind.BOOKING: ("/bookings/{id}", "View Booking"),
    RelatedKind.CHAT: ("/chats/{id}", "Open Chat"),
    RelatedKind.PAYMENT: ("/payments/{id}", "View Payment"),
    RelatedKind.DISPUTE: ("/disputes/{id}", "View Dispute"),
    RelatedKind.PAYOUT: ("/payouts/{id}", "View Payout"),
}


@dataclass(frozen=True)
class RelatedRef:
    """Reference to the entity a notification is about."""

    kind: RelatedKind
    id: int

    @classmethod
    def of(cls, kind: RelatedKind | str, id: int) -> "RelatedRef":
        return cls(kind=RelatedKind(kind), id=int(id))

    def action(self) -> tuple[str, str]:
        template, text = ACTION_TABLE[self.kind]
        return template.format(id=self.id), text


@dataclass
class Notification:
    """Persisted notification; once read it stays read."""

    id: Optional[int]
    recipient_id: int
    type: NotificationType
    title: str
    message: str
    priority: NotificationPriority = NotificationPriority.MEDIUM
    related: Optional[RelatedRef] = None
    action_url: Optional[str] = None
    action_text: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)
    read: bool = False
    read_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.type, str):
            self.type = NotificationType(self.type)
        if isinstance(self.priority, str):
            self.priority = NotificationPriority(self.priority)
        if self.related is not None and self.action_url is None:
            self.action_url, self.action_text = self.related.action()
        self.read_at = ensure_utc(self.read_at)
        self.expires_at = ensure_utc(self.expires_at)
        self.created_at = ensure_utc(self.created_at)

    @classmethod
    def build(cls, recipient_id: int, type: NotificationType | str, title: str, message: str, *, ttl_days: int, **kwargs) -> "Notification":
        now = utc_now()
        return cls(
            id=None,
            recipient_id=recipient_id,
            type=type,
            title=title,
            message=message,
            created_at=now,
            expires_at=now + timedelta(days=ttl_days),
            **kwargs,
        )

    def mark_read(self) -> bool:
        """Returns False when already read."""
        if self.read:
            return False
        self.read = True
        self.read_at = utc_now()
        return True

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now
