"""Unit of Work abstraction"""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.chat.repository import ChatRepository, MessageRepository
from domain.dispute.repository import DisputeRepository
from domain.notification.repository import NotificationRepository
from domain.order.repository import OrderRepository
from domain.payment.repository import PaymentRepository
from domain.payout.repository import PayoutRepository
from domain.user.repository import UserRepository
from domain.wallet.repository import WalletRepository


class AbstractUnitOfWork(ABC):
    """Transaction boundary used by the application layer"""

    users: UserRepository
    orders: OrderRepository
    payments: PaymentRepository
    disputes: DisputeRepository
    payouts: PayoutRepository
    wallets: WalletRepository
    notifications: NotificationRepository
    chats: ChatRepository
    messages: MessageRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._committed = False
        self._readonly = readonly

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc:
            await self.rollback()
        else:
            # commit only when writable and not committed explicitly
            if not self._readonly and not self._committed:
                await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        """Commit the transaction"""
        ...

    @abstractmethod
    async def rollback(self) -> None:
        """Roll back the transaction"""
