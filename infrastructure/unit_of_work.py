"""SQLAlchemy Unit of Work implementation"""
from __future__ import annotations

import inspect
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.database import get_session_factory
from infrastructure.repositories.chat_repository import SQLAlchemyChatRepository, SQLAlchemyMessageRepository
from infrastructure.repositories.dispute_repository import SQLAlchemyDisputeRepository
from infrastructure.repositories.notification_repository import SQLAlchemyNotificationRepository
from infrastructure.repositories.order_repository import SQLAlchemyOrderRepository
from infrastructure.repositories.payment_repository import SQLAlchemyPaymentRepository
from infrastructure.repositories.payout_repository import SQLAlchemyPayoutRepository
from infrastructure.repositories.user_repository import SQLAlchemyUserRepository
from infrastructure.repositories.wallet_repository import SQLAlchemyWalletRepository


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):
    """Unit of Work over one AsyncSession"""

    def __init__(
        self,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
        session: Optional[AsyncSession] = None,
        *,
        readonly: bool = False,
    ) -> None:
        super().__init__(readonly=readonly)
        self._session_factory = session_factory or get_session_factory()
        self._external_session = session
        self.session: Optional[AsyncSession] = session

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        if self.session is None:
            self.session = self._session_factory()
        self.users = SQLAlchemyUserRepository(self.session)
        self.orders = SQLAlchemyOrderRepository(self.session)
        self.payments = SQLAlchemyPaymentRepository(self.session)
        self.disputes = SQLAlchemyDisputeRepository(self.session)
        self.payouts = SQLAlchemyPayoutRepository(self.session)
        self.wallets = SQLAlchemyWalletRepository(self.session)
        self.notifications = SQLAlchemyNotificationRepository(self.session)
        self.chats = SQLAlchemyChatRepository(self.session)
        self.messages = SQLAlchemyMessageRepository(self.session)
        # only writable units open an explicit transaction
        if not self._readonly:
            self._transaction = await self.session.begin()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            tx = getattr(self, "_transaction", None)
            if tx is not None and getattr(tx, "is_active", False):
                res = tx.close()
                if inspect.isawaitable(res):
                    await res
            if self._external_session is None and self.session is not None:
                await self.session.close()
                self.session = None

    async def commit(self) -> None:
        if self._readonly:
            self._committed = True
            return
        if self.session and self.session.in_transaction():
            await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        if self.session and self.session.in_transaction():
            await self.session.rollback()
        self._committed = False


def sqlalchemy_uow_factory(session_factory: Optional[Callable[[], AsyncSession]] = None) -> Callable[..., SQLAlchemyUnitOfWork]:
    def factory(*, readonly: bool = False) -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(session_factory, readonly=readonly)

    return factory
