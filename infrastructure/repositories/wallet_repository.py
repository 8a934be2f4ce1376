"""
Wallet repository - SQLAlchemy implementation
"""
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import DuplicateReferenceException, TransactionNotFoundException
from domain.wallet.entity import Wallet, WalletTransaction
from domain.wallet.repository import WalletRepository
from infrastructure.models.wallet import WalletModel, WalletTransactionModel


logger = get_logger(__name__)


class SQLAlchemyWalletRepository(WalletRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def _wallet(model: WalletModel) -> Wallet:
        return Wallet(
            id=model.id,
            user_id=model.user_id,
            balance=model.balance,
            currency=model.currency,
            is_locked=model.is_locked,
            last_activity=model.last_activity,
        )

    @staticmethod
    def _transaction(model: WalletTransactionModel) -> WalletTransaction:
        return WalletTransaction(
            id=model.id,
            user_id=model.user_id,
            type=model.type,
            amount=model.amount,
            reference=model.reference,
            description=model.description or "",
            status=model.status,
            related_order_id=model.related_order_id,
            metadata=model.extra_metadata or {},
            created_at=model.created_at,
        )

    async def get_by_user_id(self, user_id: int, *, for_update: bool = False) -> Optional[Wallet]:
        query = select(WalletModel).where(WalletModel.user_id == user_id)
        if for_update:
            query = query.with_for_update()
        db_wallet = (await self.session.execute(query)).scalar_one_or_none()
        return self._wallet(db_wallet) if db_wallet else None

    async def create(self, wallet: Wallet) -> Wallet:
        db_wallet = WalletModel(
            user_id=wallet.user_id,
            balance=wallet.balance,
            currency=wallet.currency,
            is_locked=wallet.is_locked,
            last_activity=wallet.last_activity,
        )
        self.session.add(db_wallet)
        await self.session.flush()
        await self.session.refresh(db_wallet)
        return self._wallet(db_wallet)

    async def update(self, wallet: Wallet) -> Wallet:
        db_wallet = (
            await self.session.execute(select(WalletModel).where(WalletModel.user_id == wallet.user_id))
        ).scalar_one()
        db_wallet.balance = wallet.balance
        db_wallet.currency = wallet.currency
        db_wallet.is_locked = wallet.is_locked
        db_wallet.last_activity = wallet.last_activity
        await self.session.flush()
        return self._wallet(db_wallet)

    async def add_transaction(self, tx: WalletTransaction) -> WalletTransaction:
        db_tx = WalletTransactionModel(
            user_id=tx.user_id,
            type=tx.type.value,
            amount=tx.amount,
            reference=tx.reference,
            description=tx.description,
            status=tx.status.value,
            related_order_id=tx.related_order_id,
            extra_metadata=tx.metadata or None,
            created_at=tx.created_at,
        )
        self.session.add(db_tx)
        try:
            await self.session.flush()
        except IntegrityError:
            logger.warning("wallet_reference_conflict", reference=tx.reference, user_id=tx.user_id)
            raise DuplicateReferenceException(tx.reference) from None
        return self._transaction(db_tx)

    async def update_transaction(self, tx: WalletTransaction) -> WalletTransaction:
        db_tx = (
            await self.session.execute(
                select(WalletTransactionModel).where(WalletTransactionModel.reference == tx.reference)
            )
        ).scalar_one_or_none()
        if db_tx is None:
            raise TransactionNotFoundException(tx.reference)
        db_tx.status = tx.status.value
        db_tx.description = tx.description
        db_tx.extra_metadata = tx.metadata or None
        await self.session.flush()
        return self._transaction(db_tx)

    async def get_transaction(self, reference: str) -> Optional[WalletTransaction]:
        db_tx = (
            await self.session.execute(
                select(WalletTransactionModel).where(WalletTransactionModel.reference == reference)
            )
        ).scalar_one_or_none()
        return self._transaction(db_tx) if db_tx else None

    async def list_transactions(self, user_id: int, skip: int = 0, limit: int = 50) -> List[WalletTransaction]:
        query = (
            select(WalletTransactionModel)
            .where(WalletTransactionModel.user_id == user_id)
            .order_by(WalletTransactionModel.id.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return [self._transaction(m) for m in result.scalars().all()]

    async def all_transactions(self, user_id: int) -> List[WalletTransaction]:
        query = (
            select(WalletTransactionModel)
            .where(WalletTransactionModel.user_id == user_id)
            .order_by(WalletTransactionModel.id)
        )
        result = await self.session.execute(query)
        return [self._transaction(m) for m in result.scalars().all()]
