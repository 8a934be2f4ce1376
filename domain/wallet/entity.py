"""
Wallet domain entity - per-user balance with an append-only transaction log
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Optional

from domain.common.clock import ensure_utc, utc_now
from domain.common.exceptions import (
    ConflictException,
    DomainValidationException,
    InsufficientFundsException,
    WalletLockedException,
)


class TransactionType(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"
    REFUND = "refund"
    WITHDRAWAL = "withdrawal"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


_SIGN = {
    TransactionType.CREDIT: 1,
    TransactionType.DEBIT: -1,
    TransactionType.REFUND: -1,
    TransactionType.WITHDRAWAL: -1,
}


@dataclass
class WalletTransaction:
    user_id: int
    type: TransactionType
    amount: int
    reference: str
    description: str = ""
    status: TransactionStatus = TransactionStatus.COMPLETED
    related_order_id: Optional[int] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.type, str):
            self.type = TransactionType(self.type)
        if isinstance(self.status, str):
            self.status = TransactionStatus(self.status)
        self.created_at = ensure_utc(self.created_at) or utc_now()

    @property
    def signed_amount(self) -> int:
        if self.status == TransactionStatus.FAILED:
            return 0
        return _SIGN[self.type] * self.amount


def signed_sum(transactions: Iterable[WalletTransaction]) -> int:
    """Balance implied by a transaction log."""
    return sum(tx.signed_amount for tx in transactions)


@dataclass
class Wallet:
    """
    Wallet aggregate.

    Business rules:
    1. balance equals the signed sum of all non-failed transactions
    2. balance never goes negative; pending withdrawals are reserved
    3. locked wallets reject debits and withdrawals
    """

    user_id: int
    balance: int = 0
    currency: str = "USD"
    is_locked: bool = False
    last_activity: Optional[datetime] = None
    id: Optional[int] = None

    def __post_init__(self):
        self.last_activity = ensure_utc(self.last_activity)
        self.currency = (self.currency or "").upper()

    def _touch(self) -> None:
        self.last_activity = utc_now()

    @staticmethod
    def _check_amount(amount: int) -> None:
        if not isinstance(amount, int) or amount <= 0:
            raise DomainValidationException(f"Amount must be a positive integer: {amount}", field="amount")

    def _ensure_unlocked(self) -> None:
        if self.is_locked:
            raise WalletLockedException(self.user_id)

    def _ensure_covers(self, amount: int) -> None:
        if self.balance < amount:
            raise InsufficientFundsException(
                details={"user_id": self.user_id, "required": amount, "available": self.balance},
            )

    def credit(
        self,
        amount: int,
        reference: str,
        *,
        description: str = "",
        related_order_id: Optional[int] = None,
        metadata: Optional[dict] = None,
    ) -> WalletTransaction:
        self._check_amount(amount)
        self.balance += amount
        self._touch()
        return WalletTransaction(
            user_id=self.user_id,
            type=TransactionType.CREDIT,
            amount=amount,
            reference=reference,
            description=description,
            related_order_id=related_order_id,
            metadata=metadata or {},
        )

    def debit(
        self,
        amount: int,
        reference: str,
        *,
        description: str = "",
        kind: TransactionType = TransactionType.DEBIT,
        related_order_id: Optional[int] = None,
        metadata: Optional[dict] = None,
    ) -> WalletTransaction:
        if kind not in (TransactionType.DEBIT, TransactionType.REFUND):
            raise DomainValidationException(f"Unsupported debit kind: {kind}", field="kind")
        self._check_amount(amount)
        self._ensure_unlocked()
        self._ensure_covers(amount)
        self.balance -= amount
        self._touch()
        return WalletTransaction(
            user_id=self.user_id,
            type=kind,
            amount=amount,
            reference=reference,
            description=description,
            related_order_id=related_order_id,
            metadata=metadata or {},
        )

    def withdraw(self, amount: int, reference: str, *, metadata: Optional[dict] = None) -> WalletTransaction:
        """Reserve funds as a pending withdrawal."""
        self._check_amount(amount)
        self._ensure_unlocked()
        self._ensure_covers(amount)
        self.balance -= amount
        self._touch()
        return WalletTransaction(
            user_id=self.user_id,
            type=TransactionType.WITHDRAWAL,
            amount=amount,
            reference=reference,
            description="Withdrawal",
            status=TransactionStatus.PENDING,
            metadata=metadata or {},
        )

    def confirm_withdrawal(self, tx: WalletTransaction) -> bool:
        """Returns False when already confirmed."""
        self._ensure_withdrawal(tx)
        if tx.status == TransactionStatus.COMPLETED:
            return False
        if tx.status == TransactionStatus.FAILED:
            raise ConflictException(
                "Withdrawal already failed",
                details={"reference": tx.reference, "status": tx.status.value},
            )
        tx.status = TransactionStatus.COMPLETED
        self._touch()
        return True

    def fail_withdrawal(self, tx: WalletTransaction, reason: Optional[str] = None) -> bool:
        """Release the reserved amount; returns False when already failed."""
        self._ensure_withdrawal(tx)
        if tx.status == TransactionStatus.FAILED:
            return False
        if tx.status == TransactionStatus.COMPLETED:
            raise ConflictException(
                "Withdrawal already completed",
                details={"reference": tx.reference, "status": tx.status.value},
            )
        tx.status = TransactionStatus.FAILED
        if reason:
            tx.metadata = {**tx.metadata, "failure_reason": reason}
        self.balance += tx.amount
        self._touch()
        return True

    def _ensure_withdrawal(self, tx: WalletTransaction) -> None:
        if tx.type != TransactionType.WITHDRAWAL or tx.user_id != self.user_id:
            raise DomainValidationException(f"Not a withdrawal of this wallet: {tx.reference}", field="reference")
