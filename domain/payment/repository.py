"""
Payment repository interface - abstract data access for payments
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, List, Sequence

from .entity import Payment, PaymentStatus


class PaymentRepository(ABC):
    """Payment repository contract - what can be done, not how"""

    @abstractmethod
    async def create(self, payment: Payment) -> Payment:
        """Persist a new payment and assign its id"""

    @abstractmethod
    async def get_by_id(self, payment_id: int, *, for_update: bool = False) -> Optional[Payment]:
        """Load a payment; ``for_update`` takes a row lock where supported"""

    @abstractmethod
    async def get_by_order_id(self, order_id: int, *, for_update: bool = False) -> Optional[Payment]:
        """Latest payment attempt for an order"""

    @abstractmethod
    async def get_by_intent_id(self, intent_id: str, *, for_update: bool = False) -> Optional[Payment]:
        """Look up a payment by processor intent id"""

    @abstractmethod
    async def update(self, payment: Payment) -> Payment:
        """Persist changes to an existing payment"""

    @abstractmethod
    async def list_by_user(
        self,
        user_id: int,
        skip: int = 0,
        limit: int = 100,
        status: Optional[PaymentStatus] = None,
    ) -> List[Payment]:
        """Payments where the user is payer or payee"""

    @abstractmethod
    async def list_releasable_for_payout(self, released_before: datetime, limit: int = 1000) -> List[Payment]:
        """Released payments older than the hold window and not attached to a payout"""

    @abstractmethod
    async def claim_for_payout(self, payment_ids: Sequence[int], payout_id: int) -> int:
        """
        Attach payments to a payout only where not yet attached.

        Returns the number of payments claimed; callers treat a short count as
        a lost race.
        """

    @abstractmethod
    async def list_released_between(self, start: datetime, end: datetime) -> List[Payment]:
        """Payments released in [start, end)"""
