"""
Payout domain service - batching and processor fee arithmetic
"""
from __future__ import annotations

from collections import defaultdict
from decimal import Decimal
from typing import Iterable

from domain.payment.entity import Payment
from domain.payment.service import round_half_up


class PayoutDomainService:

    def __init__(self, fee_rate: Decimal | float | str, fee_fixed: int) -> None:
        self.fee_rate = Decimal(str(fee_rate))
        self.fee_fixed = int(fee_fixed)

    def processing_fee(self, net_amount: int) -> int:
        if net_amount <= 0:
            return 0
        return round_half_up(Decimal(net_amount) * self.fee_rate) + self.fee_fixed

    @staticmethod
    def group(payments: Iterable[Payment]) -> dict[tuple[int, str], list[Payment]]:
        """Group by (payee, currency), keeping payment order stable."""
        groups: dict[tuple[int, str], list[Payment]] = defaultdict(list)
        for payment in payments:
            if payment.payee_amount > 0:
                groups[(payment.payee_id, payment.currency)].append(payment)
        return dict(groups)
