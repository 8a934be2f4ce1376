"""
Payment domain service - money arithmetic for escrow payments.

All amounts are integer minor units; rounding is half-up.
"""
from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from domain.common.exceptions import (
    DomainValidationException,
    InvalidRefundAmountException,
    InvalidSplitAmountException,
)
from .entity import Payment


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def proportional_share(part: int, numerator: int, denominator: int) -> int:
    """Return round(part * numerator / denominator), bounded by ``part``."""
    if denominator <= 0:
        return 0
    share = round_half_up(Decimal(part) * Decimal(numerator) / Decimal(denominator))
    return max(0, min(part, share))


class PaymentDomainService:
    """
    Payment domain service - fee and split rules

    Responsibilities:
    1. platform fee computation
    2. refund amount validation
    3. split resolution arithmetic (refund + release == amount)
    4. payee reversal share when a released payment is refunded
    """

    def __init__(self, fee_rate: Decimal | float | str) -> None:
        rate = Decimal(str(fee_rate))
        if rate < 0 or rate >= 1:
            raise DomainValidationException(f"Invalid platform fee rate: {fee_rate}", field="fee_rate")
        self.fee_rate = rate

    def calculate_platform_fee(self, amount: int) -> int:
        if amount <= 0:
            return 0
        fee = round_half_up(Decimal(amount) * self.fee_rate)
        # fee must stay strictly below the amount
        return min(fee, amount - 1)

    @staticmethod
    def resolve_refund_amount(payment: Payment, amount: int | None) -> int:
        refundable = payment.refundable_amount
        value = refundable if amount is None else amount
        if value <= 0 or value > refundable:
            raise InvalidRefundAmountException(value, refundable)
        return value

    @staticmethod
    def validate_split(payment: Payment, refund_amount: int, release_amount: int) -> None:
        if refund_amount <= 0 or release_amount <= 0 or refund_amount + release_amount != payment.amount:
            raise InvalidSplitAmountException(refund_amount, release_amount, payment.amount)

    @staticmethod
    def payee_share_of_release(payment: Payment, release_amount: int) -> int:
        """Net amount the payee receives for ``release_amount`` of gross escrow."""
        fee_share = proportional_share(payment.platform_fee, release_amount, payment.amount)
        return release_amount - fee_share

    @staticmethod
    def payee_reversal_for_refund(payment: Payment, refund_amount: int) -> int:
        """Portion of a post-release refund clawed back from the payee's wallet."""
        if payment.released_amount <= 0:
            return 0
        return proportional_share(payment.payee_amount, refund_amount, payment.released_amount)
