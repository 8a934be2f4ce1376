"""
Payout repository interface
"""
from abc import ABC, abstractmethod
from typing import Optional, List

from .entity import Payout


class PayoutRepository(ABC):

    @abstractmethod
    async def create(self, payout: Payout) -> Payout:
        """Persist a payout and assign its id"""

    @abstractmethod
    async def get_by_id(self, payout_id: int, *, for_update: bool = False) -> Optional[Payout]:
        """Load a payout"""

    @abstractmethod
    async def get_by_processor_id(self, processor_payout_id: str, *, for_update: bool = False) -> Optional[Payout]:
        """Payout by processor reference"""

    @abstractmethod
    async def update(self, payout: Payout) -> Payout:
        """Persist payout changes"""

    @abstractmethod
    async def list_by_artisan(self, artisan_id: int, skip: int = 0, limit: int = 50) -> List[Payout]:
        """Newest first"""
