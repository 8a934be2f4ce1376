"""
Payment DTOs (Pydantic v2) used at application boundaries.

Amounts are integer minor units throughout.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from domain.payment.entity import PaymentStatus, RefundStatus

# Common ISO-4217 currencies (extend as needed)
ISO_4217 = {
    "USD", "EUR", "GBP", "CNY", "JPY", "KRW", "HKD", "AUD", "CAD", "SGD", "NGN",
}


def _validate_currency(v: str) -> str:
    u = (v or "").upper()
    if len(u) != 3 or not u.isalpha():
        raise ValueError("currency must be ISO-4217 alpha-3")
    if u not in ISO_4217:
        raise ValueError("unsupported currency")
    return u


# -------------------- processor contracts --------------------

class ChargeIntentRequest(BaseModel):
    amount: int = Field(gt=0)
    currency: str = "USD"
    destination: Optional[str] = None
    application_fee: int = Field(default=0, ge=0)
    customer: Optional[str] = None
    payment_method: Optional[str] = None
    idempotency_key: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("currency")
    @classmethod
    def _upper_and_validate_currency(cls, v: str) -> str:
        return _validate_currency(v)


class ChargeIntent(BaseModel):
    intent_id: str
    client_secret: Optional[str] = None
    status: str
    provider: str


class TransferRequest(BaseModel):
    amount: int = Field(gt=0)
    currency: str = "USD"
    destination: Optional[str] = None
    source_intent_id: Optional[str] = None
    idempotency_key: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class TransferResult(BaseModel):
    transfer_id: str
    status: str
    provider: str


class RefundRequest(BaseModel):
    intent_id: str
    amount: int = Field(gt=0)
    currency: str = "USD"
    reason: Optional[str] = None
    idempotency_key: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class RefundResult(BaseModel):
    refund_id: str
    status: str
    provider: str


class PayoutRequest(BaseModel):
    amount: int = Field(gt=0)
    currency: str = "USD"
    destination: Optional[str] = None
    idempotency_key: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class PayoutResult(BaseModel):
    payout_id: str
    # paid | processing | failed
    status: str
    provider: str
    failure_message: Optional[str] = None


class ProcessorEvent(BaseModel):
    """Webhook event normalised to the internal vocabulary."""
    id: str
    type: str
    provider: str
    provider_type: str
    intent_id: Optional[str] = None
    payout_id: Optional[str] = None
    dispute_id: Optional[str] = None
    message: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore")


# -------------------- API request/response models --------------------

class CreateIntentRequest(BaseModel):
    order_id: int
    payment_method: str = "card"


class CreateIntentResult(BaseModel):
    payment_id: int
    client_secret: Optional[str] = None
    intent_id: str


class RefundPaymentRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=500)
    amount: Optional[int] = Field(default=None, gt=0)


class AutoRefundRequest(BaseModel):
    reason: str


class EscrowView(BaseModel):
    conditions: list[str]
    satisfied: list[str]
    released_at: Optional[datetime] = None
    released_by: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class RefundView(BaseModel):
    amount: int
    reason: str
    status: RefundStatus
    refund_id: Optional[str] = None
    reversal_amount: int = 0
    reversal_pending: bool = False
    processed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PaymentView(BaseModel):
    id: int
    order_id: int
    payer_id: int
    payee_id: int
    amount: int
    platform_fee: int
    currency: str
    payment_method: str
    status: PaymentStatus
    intent_id: Optional[str] = None
    transfer_id: Optional[str] = None
    escrow: EscrowView
    refund: Optional[RefundView] = None
    dispute_id: Optional[int] = None
    payout_id: Optional[int] = None
    released_amount: int = 0
    payee_amount: int = 0
    failure_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AutoRefundResult(BaseModel):
    order_id: int
    # refunded | under_review
    outcome: str
    payment: Optional[PaymentView] = None
    reasons: list[str] = Field(default_factory=list)
