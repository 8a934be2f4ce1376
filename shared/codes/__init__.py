"""
Shared business codes used across layers (Domain/Core/API).

This package exposes BusinessCode at `shared.codes` and keeps
processor-specific codes under `shared.codes.payment_codes`.
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    """Unified business status codes (single source of truth)."""

    # Success
    SUCCESS = 0

    # Parameter errors (1xxxx)
    PARAM_ERROR = 10000
    PARAM_MISSING = 10001
    PARAM_TYPE_ERROR = 10002
    PARAM_VALIDATION_ERROR = 10003

    # Business errors (2xxxx)
    BUSINESS_ERROR = 20000
    USER_NOT_FOUND = 20001
    USER_ALREADY_EXISTS = 20002
    TOKEN_INVALID = 20004
    TOKEN_EXPIRED = 20005
    NOT_FOUND = 20006  # Generic resource not found
    INVALID_STATE_TRANSITION = 20007

    # Orders / payments (201xx)
    ORDER_NOT_FOUND = 20101
    ORDER_NOT_PAYABLE = 20102
    PAYMENT_NOT_FOUND = 20103
    PAYMENT_NOT_IN_ESCROW = 20104
    ESCROW_HELD = 20105
    INVALID_REFUND_AMOUNT = 20106
    PAYMENT_NOT_REFUNDABLE = 20107

    # Disputes (202xx)
    DISPUTE_NOT_FOUND = 20201
    DISPUTE_ALREADY_EXISTS = 20202
    DISPUTE_CLOSED = 20203
    INVALID_SPLIT_AMOUNT = 20204

    # Wallet / ledger (203xx)
    DUPLICATE_REFERENCE = 20301
    INSUFFICIENT_FUNDS = 20302
    WALLET_LOCKED = 20304
    TRANSACTION_NOT_FOUND = 20305

    # Payouts (204xx)
    PAYOUT_NOT_FOUND = 20401

    # Chat (205xx)
    CHAT_NOT_FOUND = 20501
    MESSAGE_NOT_FOUND = 20502
    MESSAGE_TOO_OLD_TO_EDIT = 20503
    CHAT_INACTIVE = 20504

    # Notifications (206xx)
    NOTIFICATION_NOT_FOUND = 20601

    # Authorization errors (3xxxx)
    PERMISSION_ERROR = 30000
    UNAUTHORIZED = 30001
    FORBIDDEN = 30002

    # System errors (4xxxx)
    SYSTEM_ERROR = 40000
    DATABASE_ERROR = 40001
    NETWORK_ERROR = 40002
    SERVICE_UNAVAILABLE = 40003
    RESOURCE_BUSY = 40004

    # Rate limiting (5xxxx)
    RATE_LIMIT_ERROR = 50000
    TOO_MANY_REQUESTS = 50001


__all__ = ["BusinessCode"]
