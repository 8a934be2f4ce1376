"""
Payment domain entity - escrow payment aggregate root
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from domain.common.clock import ensure_utc, utc_now
from domain.common.exceptions import ConflictException, DomainValidationException


class PaymentStatus(str, Enum):
    """Payment status enum"""
    PENDING = "pending"           # created, no processor intent yet
    PROCESSING = "processing"     # intent created, waiting for the charge
    IN_ESCROW = "in_escrow"       # charged, funds held by the platform
    RELEASED = "released"         # transferred to the payee
    REFUNDED = "refunded"         # returned to the payer
    FAILED = "failed"             # charge failed


class RefundStatus(str, Enum):
    PROCESSOR_APPROVED = "processor_approved"
    COMPLETED = "completed"


DEFAULT_ESCROW_CONDITIONS = ("service_completed", "customer_approved")

_ALLOWED_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PROCESSING, PaymentStatus.FAILED}),
    PaymentStatus.PROCESSING: frozenset({PaymentStatus.IN_ESCROW, PaymentStatus.FAILED}),
    PaymentStatus.IN_ESCROW: frozenset({PaymentStatus.RELEASED, PaymentStatus.REFUNDED}),
    PaymentStatus.RELEASED: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.REFUNDED: frozenset(),
    PaymentStatus.FAILED: frozenset(),
}


@dataclass
class EscrowInfo:
    conditions: list[str] = field(default_factory=list)
    satisfied: list[str] = field(default_factory=list)
    released_at: Optional[datetime] = None
    released_by: Optional[int] = None

    def __post_init__(self):
        self.released_at = ensure_utc(self.released_at)


@dataclass
class RefundInfo:
    amount: int
    reason: str
    status: RefundStatus = RefundStatus.COMPLETED
    refund_id: Optional[str] = None
    reversal_amount: int = 0
    reversal_pending: bool = False
    requested_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.status, str):
            self.status = RefundStatus(self.status)
        self.requested_at = ensure_utc(self.requested_at)
        self.processed_at = ensure_utc(self.processed_at)


@dataclass
class Payment:
    """
    Escrow payment aggregate root, tied 1:1 to an order.

    Business rules:
    1. amount >= 0 and 0 <= platform_fee < amount (both 0 for a zero amount)
    2. status only moves forward: pending -> processing -> in_escrow ->
       released -> refunded; pending/processing -> failed
    3. refund.amount never exceeds amount
    4. payments are never deleted; terminal states are archived
    """

    id: Optional[int]
    order_id: int
    payer_id: int
    payee_id: int
    amount: int
    platform_fee: int
    currency: str
    payment_method: str
    status: PaymentStatus = PaymentStatus.PENDING
    intent_id: Optional[str] = None
    client_secret: Optional[str] = None
    transfer_id: Optional[str] = None
    escrow: EscrowInfo = field(default_factory=EscrowInfo)
    refund: Optional[RefundInfo] = None
    dispute_id: Optional[int] = None
    payout_id: Optional[int] = None
    released_amount: int = 0
    payee_amount: int = 0
    failure_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.status, str):
            self.status = PaymentStatus(self.status)
        self._validate_amounts()
        self._validate_currency()
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at)

    def _validate_amounts(self) -> None:
        if not isinstance(self.amount, int) or self.amount < 0:
            raise DomainValidationException(f"Invalid payment amount: {self.amount}", field="amount")
        if self.platform_fee < 0:
            raise DomainValidationException(f"Invalid platform fee: {self.platform_fee}", field="platform_fee")
        if self.amount > 0 and self.platform_fee >= self.amount:
            raise DomainValidationException(
                f"Platform fee {self.platform_fee} must be lower than amount {self.amount}",
                field="platform_fee",
            )
        if self.amount == 0 and self.platform_fee != 0:
            raise DomainValidationException("Zero payments carry no fee", field="platform_fee")

    def _validate_currency(self) -> None:
        if not self.currency or len(self.currency) != 3 or not self.currency.isalpha():
            raise DomainValidationException(f"Invalid currency code: {self.currency}", field="currency")
        self.currency = self.currency.upper()

    # -------------------- queries --------------------

    @property
    def net_amount(self) -> int:
        """Amount owed to the payee on a full release."""
        return self.amount - self.platform_fee

    @property
    def refunded_amount(self) -> int:
        return self.refund.amount if self.refund else 0

    @property
    def refundable_amount(self) -> int:
        return self.amount - self.refunded_amount

    def is_terminal(self) -> bool:
        return self.status in (PaymentStatus.RELEASED, PaymentStatus.REFUNDED, PaymentStatus.FAILED)

    # -------------------- transitions --------------------

    def _transition(self, target: PaymentStatus) -> None:
        if target not in _ALLOWED_TRANSITIONS[self.status]:
            raise ConflictException(
                f"Cannot move payment from {self.status.value} to {target.value}",
                details={"payment_id": self.id, "from": self.status.value, "to": target.value},
            )
        self.status = target
        self.updated_at = utc_now()

    def mark_processing(self, intent_id: str, client_secret: Optional[str]) -> None:
        self._transition(PaymentStatus.PROCESSING)
        self.intent_id = intent_id
        self.client_secret = client_secret

    def mark_in_escrow(self, conditions: tuple[str, ...] | list[str] = DEFAULT_ESCROW_CONDITIONS) -> None:
        self._transition(PaymentStatus.IN_ESCROW)
        self.escrow.conditions = list(dict.fromkeys(conditions))
        self.failure_reason = None

    def mark_failed(self, reason: Optional[str]) -> None:
        self._transition(PaymentStatus.FAILED)
        self.failure_reason = reason

    def satisfy_condition(self, condition: str) -> bool:
        if condition in self.escrow.satisfied:
            return False
        self.escrow.satisfied.append(condition)
        self.updated_at = utc_now()
        return True

    def mark_released(
        self,
        *,
        transfer_id: Optional[str],
        released_by: Optional[int],
        released_amount: int,
        payee_amount: int,
    ) -> None:
        """Release escrow to the payee; ``released_amount`` is the gross share."""
        if released_amount <= 0 or released_amount > self.refundable_amount:
            raise DomainValidationException(
                f"Release amount {released_amount} exceeds held funds {self.refundable_amount}",
                field="released_amount",
            )
        if payee_amount < 0 or payee_amount > released_amount:
            raise DomainValidationException(f"Invalid payee amount: {payee_amount}", field="payee_amount")
        self._transition(PaymentStatus.RELEASED)
        self.transfer_id = transfer_id
        self.released_amount = released_amount
        self.payee_amount = payee_amount
        self.escrow.released_at = self.updated_at
        self.escrow.released_by = released_by

    def record_refund(self, refund: RefundInfo) -> None:
        """
        Record a processor-approved refund.

        Business rules:
        1. only in_escrow or released payments can be refunded
        2. cumulative refunds never exceed the payment amount
        """
        if self.status not in (PaymentStatus.IN_ESCROW, PaymentStatus.RELEASED):
            raise ConflictException(
                f"Cannot refund a payment in status {self.status.value}",
                details={"payment_id": self.id, "status": self.status.value},
            )
        if refund.amount <= 0 or refund.amount > self.refundable_amount:
            raise DomainValidationException(
                f"Refund amount {refund.amount} exceeds refundable {self.refundable_amount}",
                field="amount",
            )
        if self.refund is not None:
            refund.amount += self.refund.amount
            refund.reversal_amount += self.refund.reversal_amount
            refund.requested_at = self.refund.requested_at or refund.requested_at
        self._transition(PaymentStatus.REFUNDED)
        self.refund = refund

    def record_partial_refund_before_release(self, refund: RefundInfo) -> None:
        """Attach the refund half of a split before releasing the remainder."""
        if self.status != PaymentStatus.IN_ESCROW:
            raise ConflictException(
                f"Cannot split a payment in status {self.status.value}",
                details={"payment_id": self.id, "status": self.status.value},
            )
        if refund.amount <= 0 or refund.amount >= self.amount:
            raise DomainValidationException(f"Invalid split refund amount: {refund.amount}", field="amount")
        self.refund = refund
        self.updated_at = utc_now()
