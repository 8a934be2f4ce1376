"""
Wallet repository interface
"""
from abc import ABC, abstractmethod
from typing import Optional, List

from .entity import Wallet, WalletTransaction


class WalletRepository(ABC):

    @abstractmethod
    async def get_by_user_id(self, user_id: int, *, for_update: bool = False) -> Optional[Wallet]:
        """Load a wallet; ``for_update`` takes a row lock where supported"""

    @abstractmethod
    async def create(self, wallet: Wallet) -> Wallet:
        """Persist a new wallet"""

    @abstractmethod
    async def update(self, wallet: Wallet) -> Wallet:
        """Persist balance and activity changes"""

    @abstractmethod
    async def add_transaction(self, tx: WalletTransaction) -> WalletTransaction:
        """Append to the log; raises DuplicateReferenceException on a reused reference"""

    @abstractmethod
    async def update_transaction(self, tx: WalletTransaction) -> WalletTransaction:
        """Persist a status change of a pending transaction"""

    @abstractmethod
    async def get_transaction(self, reference: str) -> Optional[WalletTransaction]:
        """Transaction by its globally unique reference"""

    @abstractmethod
    async def list_transactions(self, user_id: int, skip: int = 0, limit: int = 50) -> List[WalletTransaction]:
        """Newest first"""

    @abstractmethod
    async def all_transactions(self, user_id: int) -> List[WalletTransaction]:
        """Full log in insertion order"""
