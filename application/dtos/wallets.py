"""
Wallet, payout and booking DTOs
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field

from domain.order.entity import OrderPaymentStatus, OrderStatus
from domain.payout.entity import PayoutStatus
from domain.wallet.entity import TransactionStatus, TransactionType


class WalletView(BaseModel):
    user_id: int
    balance: int
    currency: str
    is_locked: bool = False
    last_activity: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class TransactionView(BaseModel):
    type: TransactionType
    amount: int
    reference: str
    description: str = ""
    status: TransactionStatus
    related_order_id: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class WithdrawRequest(BaseModel):
    amount: int = Field(gt=0)
    bank_details: dict[str, Any] = Field(default_factory=dict)


class PayoutView(BaseModel):
    id: int
    artisan_id: int
    currency: str
    net_amount: int
    processing_fee: int
    gross_amount: int
    status: PayoutStatus
    processor_payout_id: Optional[str] = None
    period_start: datetime
    period_end: datetime
    payment_ids: list[int]
    failure_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PayoutBatchView(BaseModel):
    created: list[PayoutView]
    paid: int
    failed: int
    skipped_groups: int

    model_config = ConfigDict(from_attributes=True)


class CreateBookingRequest(BaseModel):
    artisan_id: int
    amount: int = Field(gt=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    description: Optional[str] = Field(default=None, max_length=2000)
    scheduled_at: Optional[datetime] = None


class BookingStatusRequest(BaseModel):
    action: Literal["accept", "start", "complete", "cancel", "approve"]
    reason: Optional[str] = Field(default=None, max_length=500)


class BookingView(BaseModel):
    id: int
    user_id: int
    artisan_id: int
    amount: int
    currency: str
    status: OrderStatus
    payment_status: OrderPaymentStatus
    description: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
