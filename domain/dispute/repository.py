"""
Dispute repository interface
"""
from abc import ABC, abstractmethod
from typing import Optional, List

from .entity import Dispute, DisputeStatus


class DisputeRepository(ABC):

    @abstractmethod
    async def create(self, dispute: Dispute) -> Dispute:
        """Persist a new dispute"""

    @abstractmethod
    async def get_by_id(self, dispute_id: int, *, for_update: bool = False) -> Optional[Dispute]:
        """Load a dispute"""

    @abstractmethod
    async def get_by_processor_dispute_id(self, processor_dispute_id: str) -> Optional[Dispute]:
        """Dispute opened from a processor chargeback"""

    @abstractmethod
    async def get_active_for_payment(self, payment_id: int) -> Optional[Dispute]:
        """Non-terminal dispute on the payment, if any"""

    @abstractmethod
    async def update(self, dispute: Dispute) -> Dispute:
        """Persist dispute changes"""

    @abstractmethod
    async def list_for_user(
        self,
        user_id: Optional[int],
        skip: int = 0,
        limit: int = 50,
        status: Optional[DisputeStatus] = None,
    ) -> List[Dispute]:
        """Disputes where the user is a party; ``None`` lists all (admin)"""
