"""
Dispute DTOs
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from domain.dispute.entity import DisputeStatus, DisputeType, EvidenceType, ResolutionType


class EvidenceDTO(BaseModel):
    type: EvidenceType
    url: Optional[str] = None
    description: Optional[str] = Field(default=None, max_length=1000)

    model_config = ConfigDict(from_attributes=True)


class InitiateDisputeRequest(BaseModel):
    order_id: int
    type: DisputeType
    description: str = Field(min_length=1, max_length=2000)
    evidence: list[EvidenceDTO] = Field(default_factory=list, max_length=10)


class DisputeMessageRequest(BaseModel):
    text: str = Field(min_length=1, max_length=2000)
    attachments: list[str] = Field(default_factory=list, max_length=5)


class EscalateRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=1000)


class CloseRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1000)


class ResolutionRequest(BaseModel):
    type: ResolutionType
    # refund part; defaults to the full refundable amount for "refund"
    amount: Optional[int] = Field(default=None, gt=0)
    # release part for "split_payment"
    release_amount: Optional[int] = Field(default=None, gt=0)
    description: Optional[str] = Field(default=None, max_length=2000)


class DisputeMessageView(BaseModel):
    sender_id: int
    text: str
    attachments: list[str]
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ResolutionView(BaseModel):
    type: ResolutionType
    amount: Optional[int] = None
    release_amount: Optional[int] = None
    description: Optional[str] = None
    resolved_by: Optional[int] = None
    resolved_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class EscalationView(BaseModel):
    reason: str
    escalated_by: Optional[int] = None
    escalated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class DisputeView(BaseModel):
    id: int
    order_id: int
    payment_id: int
    raised_by: int
    against: int
    type: DisputeType
    status: DisputeStatus
    description: str
    evidence: list[EvidenceDTO]
    messages: list[DisputeMessageView]
    resolution: Optional[ResolutionView] = None
    escalation: Optional[EscalationView] = None
    processor_dispute_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
