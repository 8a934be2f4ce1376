"""
Payout domain entity - a batch of released escrow paid out to one artisan
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from domain.common.clock import ensure_utc, utc_now
from domain.common.exceptions import ConflictException, DomainValidationException


class PayoutStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"


@dataclass
class Payout:
    """
    Business rules:
    1. net_amount is the sum of the constituent payments' payee_amount
    2. gross_amount = net_amount + processing_fee
    3. paid and failed are terminal
    """

    id: Optional[int]
    artisan_id: int
    currency: str
    net_amount: int
    processing_fee: int
    gross_amount: int
    period_start: datetime
    period_end: datetime
    payment_ids: list[int] = field(default_factory=list)
    status: PayoutStatus = PayoutStatus.PENDING
    processor_payout_id: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.status, str):
            self.status = PayoutStatus(self.status)
        if self.net_amount <= 0:
            raise DomainValidationException(f"Invalid payout amount: {self.net_amount}", field="net_amount")
        if self.gross_amount != self.net_amount + self.processing_fee:
            raise DomainValidationException("gross_amount must equal net_amount + processing_fee", field="gross_amount")
        self.period_start = ensure_utc(self.period_start)
        self.period_end = ensure_utc(self.period_end)
        self.created_at = ensure_utc(self.created_at)
        self.paid_at = ensure_utc(self.paid_at)

    @property
    def wallet_reference(self) -> str:
        return f"payout:{self.id}"

    @property
    def is_terminal(self) -> bool:
        return self.status in (PayoutStatus.PAID, PayoutStatus.FAILED)

    def mark_processing(self, processor_payout_id: Optional[str] = None) -> None:
        if self.status not in (PayoutStatus.PENDING, PayoutStatus.PROCESSING):
            raise ConflictException(
                f"Cannot process payout in status {self.status.value}",
                details={"payout_id": self.id, "status": self.status.value},
            )
        self.status = PayoutStatus.PROCESSING
        if processor_payout_id:
            self.processor_payout_id = processor_payout_id

    def mark_paid(self) -> bool:
        """Returns False when already paid."""
        if self.status == PayoutStatus.PAID:
            return False
        if self.status == PayoutStatus.FAILED:
            raise ConflictException("Payout already failed", details={"payout_id": self.id})
        self.status = PayoutStatus.PAID
        self.paid_at = utc_now()
        return True

    def mark_failed(self, reason: Optional[str]) -> bool:
        """Returns False when already failed."""
        if self.status == PayoutStatus.FAILED:
            return False
        if self.status == PayoutStatus.PAID:
            raise ConflictException("Payout already paid", details={"payout_id": self.id})
        self.status = PayoutStatus.FAILED
        self.failure_reason = reason
        return True
