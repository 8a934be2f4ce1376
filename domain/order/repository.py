"""
Order repository interface
"""
from abc import ABC, abstractmethod
from typing import Optional, List

from .entity import Order


class OrderRepository(ABC):

    @abstractmethod
    async def create(self, order: Order) -> Order:
        """Persist a new order"""

    @abstractmethod
    async def get_by_id(self, order_id: int, *, for_update: bool = False) -> Optional[Order]:
        """Load an order"""

    @abstractmethod
    async def update(self, order: Order) -> Order:
        """Persist order changes"""

    @abstractmethod
    async def list_by_user(self, user_id: int, skip: int = 0, limit: int = 100) -> List[Order]:
        """Orders where the user is customer or artisan"""
