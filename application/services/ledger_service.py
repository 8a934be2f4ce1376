"""
Ledger application service - wallet balances and the append-only transaction log.

One writer per user: every mutation takes the ``wallet:{user_id}`` lock and a
row lock on the wallet. Callers that already run inside a unit of work (the
payment and payout engines) pass it through ``uow`` so the wallet change
commits or rolls back with their own.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Optional

from application.ports.locks import LockProvider
from core.logging_config import get_logger
from domain.common.exceptions import (
    DuplicateReferenceException,
    TransactionNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.wallet.entity import TransactionType, Wallet, WalletTransaction


logger = get_logger(__name__)


def wallet_lock_key(user_id: int) -> str:
    return f"wallet:{user_id}"


class LedgerService:

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        locks: LockProvider,
        *,
        currency: str = "USD",
    ) -> None:
        self._uow_factory = uow_factory
        self._locks = locks
        self._currency = currency

    @asynccontextmanager
    async def _session(self, user_id: int, uow: Optional[AbstractUnitOfWork]) -> AsyncIterator[AbstractUnitOfWork]:
        async with self._locks.hold(wallet_lock_key(user_id)):
            if uow is not None:
                yield uow
                return
            async with self._uow_factory() as own:
                yield own

    async def _load_or_create(self, uow: AbstractUnitOfWork, user_id: int) -> Wallet:
        wallet = await uow.wallets.get_by_user_id(user_id, for_update=True)
        if wallet is None:
            wallet = await uow.wallets.create(Wallet(user_id=user_id, currency=self._currency))
        return wallet

    @staticmethod
    async def _ensure_new_reference(uow: AbstractUnitOfWork, reference: str) -> None:
        if await uow.wallets.get_transaction(reference) is not None:
            raise DuplicateReferenceException(reference)

    # -------------------- mutations --------------------

    async def credit(
        self,
        user_id: int,
        amount: int,
        reference: str,
        *,
        related_order_id: Optional[int] = None,
        description: str = "",
        metadata: Optional[dict[str, Any]] = None,
        uow: Optional[AbstractUnitOfWork] = None,
    ) -> WalletTransaction:
        async with self._session(user_id, uow) as session:
            await self._ensure_new_reference(session, reference)
            wallet = await self._load_or_create(session, user_id)
            tx = wallet.credit(
                amount,
                reference,
                description=description,
                related_order_id=related_order_id,
                metadata=metadata,
            )
            tx = await session.wallets.add_transaction(tx)
            await session.wallets.update(wallet)
        logger.info("wallet_credited", user_id=user_id, amount=amount, reference=reference, balance=wallet.balance)
        return tx

    async def debit(
        self,
        user_id: int,
        amount: int,
        reference: str,
        *,
        description: str = "",
        kind: TransactionType = TransactionType.DEBIT,
        related_order_id: Optional[int] = None,
        metadata: Optional[dict[str, Any]] = None,
        uow: Optional[AbstractUnitOfWork] = None,
    ) -> WalletTransaction:
        async with self._session(user_id, uow) as session:
            await self._ensure_new_reference(session, reference)
            wallet = await self._load_or_create(session, user_id)
            tx = wallet.debit(
                amount,
                reference,
                description=description,
                kind=kind,
                related_order_id=related_order_id,
                metadata=metadata,
            )
            tx = await session.wallets.add_transaction(tx)
            await session.wallets.update(wallet)
        logger.info("wallet_debited", user_id=user_id, amount=amount, reference=reference, kind=kind.value, balance=wallet.balance)
        return tx

    async def withdraw(
        self,
        user_id: int,
        amount: int,
        *,
        bank_details: Optional[dict[str, Any]] = None,
        reference: Optional[str] = None,
        uow: Optional[AbstractUnitOfWork] = None,
    ) -> WalletTransaction:
        """Reserve ``amount`` as a pending withdrawal."""
        async with self._session(user_id, uow) as session:
            wallet = await self._load_or_create(session, user_id)
            if reference is None:
                reference = f"withdrawal:{user_id}:{await self._next_withdrawal_seq(session, user_id)}"
            await self._ensure_new_reference(session, reference)
            tx = wallet.withdraw(amount, reference, metadata={"bank_details": bank_details} if bank_details else None)
            tx = await session.wallets.add_transaction(tx)
            await session.wallets.update(wallet)
        logger.info("wallet_withdrawal_reserved", user_id=user_id, amount=amount, reference=reference, balance=wallet.balance)
        return tx

    @staticmethod
    async def _next_withdrawal_seq(uow: AbstractUnitOfWork, user_id: int) -> int:
        log = await uow.wallets.all_transactions(user_id)
        return 1 + sum(1 for tx in log if tx.type == TransactionType.WITHDRAWAL)

    async def confirm_withdrawal(self, reference: str, *, uow: Optional[AbstractUnitOfWork] = None) -> WalletTransaction:
        return await self._finalise_withdrawal(reference, confirm=True, reason=None, uow=uow)

    async def fail_withdrawal(
        self,
        reference: str,
        reason: Optional[str] = None,
        *,
        uow: Optional[AbstractUnitOfWork] = None,
    ) -> WalletTransaction:
        return await self._finalise_withdrawal(reference, confirm=False, reason=reason, uow=uow)

    async def _finalise_withdrawal(
        self,
        reference: str,
        *,
        confirm: bool,
        reason: Optional[str],
        uow: Optional[AbstractUnitOfWork],
    ) -> WalletTransaction:
        user_id = await self._owner_of(reference, uow)
        async with self._session(user_id, uow) as session:
            tx = await session.wallets.get_transaction(reference)
            if tx is None:
                raise TransactionNotFoundException(reference)
            wallet = await self._load_or_create(session, user_id)
            changed = wallet.confirm_withdrawal(tx) if confirm else wallet.fail_withdrawal(tx, reason)
            if changed:
                await session.wallets.update_transaction(tx)
                await session.wallets.update(wallet)
        logger.info(
            "wallet_withdrawal_confirmed" if confirm else "wallet_withdrawal_failed",
            user_id=user_id,
            reference=reference,
            changed=changed,
            balance=wallet.balance,
        )
        return tx

    async def _owner_of(self, reference: str, uow: Optional[AbstractUnitOfWork]) -> int:
        if uow is not None:
            tx = await uow.wallets.get_transaction(reference)
        else:
            async with self._uow_factory(readonly=True) as ro:
                tx = await ro.wallets.get_transaction(reference)
        if tx is None:
            raise TransactionNotFoundException(reference)
        return tx.user_id

    # -------------------- queries --------------------

    async def has_reference(self, reference: str, *, uow: Optional[AbstractUnitOfWork] = None) -> bool:
        if uow is not None:
            return await uow.wallets.get_transaction(reference) is not None
        async with self._uow_factory(readonly=True) as ro:
            return await ro.wallets.get_transaction(reference) is not None

    async def get_wallet(self, user_id: int) -> Wallet:
        async with self._uow_factory(readonly=True) as uow:
            wallet = await uow.wallets.get_by_user_id(user_id)
        return wallet or Wallet(user_id=user_id, currency=self._currency)

    async def list_transactions(self, user_id: int, skip: int = 0, limit: int = 50) -> list[WalletTransaction]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.wallets.list_transactions(user_id, skip=skip, limit=limit)
