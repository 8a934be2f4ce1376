"""
Order (booking) entity - the thin collaborator the escrow core reads and writes
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from domain.common.clock import ensure_utc, utc_now
from domain.common.exceptions import ConflictException, DomainValidationException


class OrderStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    REFUND_REVIEW = "refund_review"


class OrderPaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"
    RELEASED = "released"
    REFUNDED = "refunded"


_STATUS_FLOW: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.ACCEPTED, OrderStatus.CANCELLED}),
    OrderStatus.ACCEPTED: frozenset({OrderStatus.IN_PROGRESS, OrderStatus.CANCELLED}),
    OrderStatus.IN_PROGRESS: frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
    OrderStatus.REFUND_REVIEW: frozenset({OrderStatus.REFUNDED, OrderStatus.CANCELLED}),
}


@dataclass
class Order:
    """Booking between a customer (payer) and an artisan (payee)."""

    id: Optional[int]
    user_id: int
    artisan_id: int
    amount: int
    currency: str = "USD"
    status: OrderStatus = OrderStatus.PENDING
    payment_status: OrderPaymentStatus = OrderPaymentStatus.UNPAID
    description: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.status, str):
            self.status = OrderStatus(self.status)
        if isinstance(self.payment_status, str):
            self.payment_status = OrderPaymentStatus(self.payment_status)
        if self.amount < 0:
            raise DomainValidationException(f"Invalid order amount: {self.amount}", field="amount")
        if self.user_id == self.artisan_id:
            raise DomainValidationException("Customer and artisan must differ", field="artisan_id")
        self.currency = (self.currency or "").upper()
        self.scheduled_at = ensure_utc(self.scheduled_at)
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at)

    def is_party(self, user_id: int) -> bool:
        return user_id in (self.user_id, self.artisan_id)

    def payability_problem(self) -> Optional[str]:
        """Reason the order cannot be paid, or None when payable."""
        if self.amount <= 0:
            return "amount must be positive"
        if self.status not in (OrderStatus.PENDING, OrderStatus.ACCEPTED):
            return f"order status is {self.status.value}"
        if self.payment_status not in (OrderPaymentStatus.UNPAID, OrderPaymentStatus.FAILED):
            return f"payment status is {self.payment_status.value}"
        return None

    def set_payment_status(self, status: OrderPaymentStatus) -> None:
        self.payment_status = status
        self.updated_at = utc_now()

    def change_status(self, target: OrderStatus, *, reason: Optional[str] = None) -> None:
        if target not in _STATUS_FLOW[self.status]:
            raise ConflictException(
                f"Cannot move order from {self.status.value} to {target.value}",
                details={"order_id": self.id, "from": self.status.value, "to": target.value},
            )
        self.status = target
        if target == OrderStatus.CANCELLED:
            self.cancellation_reason = reason
        self.updated_at = utc_now()

    def mark_refunded(self) -> None:
        self.status = OrderStatus.REFUNDED
        self.payment_status = OrderPaymentStatus.REFUNDED
        self.updated_at = utc_now()

    def mark_refund_review(self, reason: Optional[str]) -> None:
        self.status = OrderStatus.REFUND_REVIEW
        if reason:
            self.cancellation_reason = reason
        self.updated_at = utc_now()
