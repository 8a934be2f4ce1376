"""In-process store and unit of work.

Single-process only. Useful for local dev and tests. Each unit of work
stages copies of the rows it writes and applies them to the shared store on
commit; a rollback just drops the staged rows. Entities handed out are deep
copies, so mutating one never leaks into the store before commit.
"""
from __future__ import annotations

import copy
import itertools
from typing import Any, Callable, Dict, Iterator, Optional

from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.memory.repositories import (
    MemoryChatRepository,
    MemoryDisputeRepository,
    MemoryMessageRepository,
    MemoryNotificationRepository,
    MemoryOrderRepository,
    MemoryPaymentRepository,
    MemoryPayoutRepository,
    MemoryUserRepository,
    MemoryWalletRepository,
)


TABLES = (
    "users",
    "orders",
    "payments",
    "disputes",
    "payouts",
    "wallets",
    "wallet_transactions",
    "notifications",
    "chats",
    "messages",
)

_DELETED = object()


class MemoryStore:
    """Committed rows keyed by table then id."""

    def __init__(self) -> None:
        self.tables: Dict[str, Dict[int, Any]] = {name: {} for name in TABLES}
        self._sequences = {name: itertools.count(1) for name in TABLES}

    def next_id(self, table: str) -> int:
        return next(self._sequences[table])

    def clear(self) -> None:
        for rows in self.tables.values():
            rows.clear()


class _Staging:
    """Rows written by one unit of work, read through before the store."""

    def __init__(self, store: MemoryStore) -> None:
        self._store = store
        self._rows: Dict[str, Dict[int, Any]] = {name: {} for name in TABLES}

    def get(self, table: str, row_id: Optional[int]) -> Optional[Any]:
        if row_id is None:
            return None
        staged = self._rows[table].get(row_id)
        if staged is _DELETED:
            return None
        if staged is not None:
            return copy.deepcopy(staged)
        row = self._store.tables[table].get(row_id)
        return copy.deepcopy(row) if row is not None else None

    def put(self, table: str, row_id: int, row: Any) -> None:
        self._rows[table][row_id] = copy.deepcopy(row)

    def delete(self, table: str, row_id: int) -> None:
        self._rows[table][row_id] = _DELETED

    def scan(self, table: str) -> Iterator[Any]:
        """Every visible row of a table, in id order."""
        merged: Dict[int, Any] = dict(self._store.tables[table])
        merged.update(self._rows[table])
        for row_id in sorted(merged):
            row = merged[row_id]
            if row is not _DELETED:
                yield copy.deepcopy(row)

    def apply(self) -> None:
        for table, rows in self._rows.items():
            target = self._store.tables[table]
            for row_id, row in rows.items():
                if row is _DELETED:
                    target.pop(row_id, None)
                else:
                    target[row_id] = row
        self.discard()

    def discard(self) -> None:
        for rows in self._rows.values():
            rows.clear()


class MemoryUnitOfWork(AbstractUnitOfWork):
    """Unit of work over a MemoryStore"""

    def __init__(self, store: MemoryStore, *, readonly: bool = False) -> None:
        super().__init__(readonly=readonly)
        self._store = store
        self._staging = _Staging(store)

    async def __aenter__(self) -> "MemoryUnitOfWork":
        self.users = MemoryUserRepository(self._staging, self._store)
        self.orders = MemoryOrderRepository(self._staging, self._store)
        self.payments = MemoryPaymentRepository(self._staging, self._store)
        self.disputes = MemoryDisputeRepository(self._staging, self._store)
        self.payouts = MemoryPayoutRepository(self._staging, self._store)
        self.wallets = MemoryWalletRepository(self._staging, self._store)
        self.notifications = MemoryNotificationRepository(self._staging, self._store)
        self.chats = MemoryChatRepository(self._staging, self._store)
        self.messages = MemoryMessageRepository(self._staging, self._store)
        return self

    async def commit(self) -> None:
        if not self._readonly:
            self._staging.apply()
        self._committed = True

    async def rollback(self) -> None:
        self._staging.discard()
        self._committed = False


def memory_uow_factory(store: MemoryStore) -> Callable[..., MemoryUnitOfWork]:
    def factory(*, readonly: bool = False) -> MemoryUnitOfWork:
        return MemoryUnitOfWork(store, readonly=readonly)

    return factory
