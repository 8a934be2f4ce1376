"""
Payment processor codes and provider status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    SIGNATURE_ERROR = 60002
    TIMEOUT = 60003
    RATE_LIMITED = 60004


# Provider -> canonical processor event type
PROVIDER_EVENT_TO_INTERNAL = {
    "stripe": {
        "payment_intent.succeeded": "charge.succeeded",
        "payment_intent.payment_failed": "charge.failed",
        "charge.dispute.created": "dispute.created",
        "transfer.paid": "transfer.paid",
        "transfer.failed": "transfer.failed",
        "payout.paid": "transfer.paid",
        "payout.failed": "transfer.failed",
    },
}

# Provider -> canonical payout status
PROVIDER_PAYOUT_STATUS_TO_INTERNAL = {
    "stripe": {
        "paid": "paid",
        "pending": "processing",
        "in_transit": "processing",
        "failed": "failed",
        "canceled": "failed",
    },
}
