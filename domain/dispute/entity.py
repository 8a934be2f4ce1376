"""
Dispute domain entity - freezes escrow until an admin decides where money goes
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from domain.common.clock import ensure_utc, utc_now
from domain.common.exceptions import (
    ConflictException,
    DisputeClosedException,
    DomainValidationException,
)


class DisputeType(str, Enum):
    QUALITY = "quality"
    DELIVERY = "delivery"
    PAYMENT = "payment"
    COMMUNICATION = "communication"
    OTHER = "other"


class DisputeStatus(str, Enum):
    OPEN = "open"
    UNDER_REVIEW = "under_review"
    ESCALATED = "escalated"
    RESOLVED = "resolved"
    CLOSED = "closed"


class ResolutionType(str, Enum):
    REFUND = "refund"
    PARTIAL_REFUND = "partial_refund"
    RELEASE_PAYMENT = "release_payment"
    SPLIT_PAYMENT = "split_payment"


class EvidenceType(str, Enum):
    IMAGE = "image"
    DOCUMENT = "document"
    TEXT = "text"


TERMINAL_STATUSES = frozenset({DisputeStatus.RESOLVED, DisputeStatus.CLOSED})
# statuses that block releasing the escrowed payment
HOLDING_STATUSES = frozenset({DisputeStatus.OPEN, DisputeStatus.UNDER_REVIEW})


@dataclass
class Evidence:
    type: EvidenceType
    url: Optional[str] = None
    description: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.type, str):
            self.type = EvidenceType(self.type)


@dataclass
class DisputeMessage:
    sender_id: int
    text: str
    attachments: list[str] = field(default_factory=list)
    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.created_at = ensure_utc(self.created_at) or utc_now()


@dataclass
class Resolution:
    type: ResolutionType
    amount: Optional[int] = None
    release_amount: Optional[int] = None
    description: Optional[str] = None
    resolved_by: Optional[int] = None
    resolved_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.type, str):
            self.type = ResolutionType(self.type)
        self.resolved_at = ensure_utc(self.resolved_at)


@dataclass
class Escalation:
    reason: str
    escalated_by: Optional[int] = None
    escalated_at: Optional[datetime] = None

    def __post_init__(self):
        self.escalated_at = ensure_utc(self.escalated_at)


@dataclass
class Dispute:
    """
    Dispute aggregate root.

    Business rules:
    1. raised_by != against
    2. status only moves forward, except open <-> under_review
    3. resolved and closed disputes are immutable
    """

    id: Optional[int]
    order_id: int
    payment_id: int
    raised_by: int
    against: int
    type: DisputeType
    description: str
    status: DisputeStatus = DisputeStatus.OPEN
    evidence: list[Evidence] = field(default_factory=list)
    messages: list[DisputeMessage] = field(default_factory=list)
    resolution: Optional[Resolution] = None
    escalation: Optional[Escalation] = None
    processor_dispute_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.type, str):
            self.type = DisputeType(self.type)
        if isinstance(self.status, str):
            self.status = DisputeStatus(self.status)
        if self.raised_by == self.against:
            raise DomainValidationException("A dispute cannot be raised against oneself", field="against")
        if not (self.description or "").strip():
            raise DomainValidationException("Dispute description is required", field="description")
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at)

    # -------------------- queries --------------------

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def holds_escrow(self) -> bool:
        return self.status in HOLDING_STATUSES

    def is_party(self, user_id: int) -> bool:
        return user_id in (self.raised_by, self.against)

    def other_party(self, user_id: int) -> int:
        return self.against if user_id == self.raised_by else self.raised_by

    # -------------------- transitions --------------------

    def _ensure_mutable(self) -> None:
        if self.is_terminal:
            raise DisputeClosedException(self.id, self.status.value)

    def _touch(self) -> None:
        self.updated_at = utc_now()

    def add_message(self, sender_id: int, text: str, attachments: Optional[list[str]] = None) -> DisputeMessage:
        self._ensure_mutable()
        if not (text or "").strip():
            raise DomainValidationException("Message text is required", field="text")
        message = DisputeMessage(sender_id=sender_id, text=text, attachments=list(attachments or []))
        self.messages.append(message)
        self._touch()
        return message

    def start_review(self) -> None:
        self._ensure_mutable()
        if self.status != DisputeStatus.OPEN:
            raise ConflictException(
                f"Only open disputes can be reviewed (status={self.status.value})",
                details={"dispute_id": self.id, "status": self.status.value},
            )
        self.status = DisputeStatus.UNDER_REVIEW
        self._touch()

    def escalate(self, reason: str, escalated_by: Optional[int]) -> None:
        self._ensure_mutable()
        if self.status == DisputeStatus.ESCALATED:
            raise ConflictException(
                "Dispute is already escalated",
                details={"dispute_id": self.id, "status": self.status.value},
            )
        self.status = DisputeStatus.ESCALATED
        self.escalation = Escalation(reason=reason, escalated_by=escalated_by, escalated_at=utc_now())
        self._touch()

    def resolve(self, resolution: Resolution) -> None:
        self._ensure_mutable()
        resolution.resolved_at = resolution.resolved_at or utc_now()
        self.resolution = resolution
        self.status = DisputeStatus.RESOLVED
        self._touch()

    def close(self, reason: Optional[str], closed_by: Optional[int]) -> None:
        self._ensure_mutable()
        if reason:
            self.messages.append(DisputeMessage(sender_id=closed_by or 0, text=f"Closed: {reason}"))
        self.status = DisputeStatus.CLOSED
        self._touch()
