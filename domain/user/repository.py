"""
User repository interface
"""
from abc import ABC, abstractmethod
from typing import Optional, List
from .entity import User, UserRole


class UserRepository(ABC):
    """User repository contract"""

    @abstractmethod
    async def create(self, user: User) -> User:
        """Persist a user"""
        pass

    @abstractmethod
    async def get_by_id(self, user_id: int) -> Optional[User]:
        """Load a user by id"""
        pass

    @abstractmethod
    async def get_by_email(self, email: str) -> Optional[User]:
        """Load a user by email"""
        pass

    @abstractmethod
    async def list_by_role(self, role: UserRole, *, active_only: bool = True) -> List[User]:
        """All users with the role"""
        pass

    @abstractmethod
    async def update(self, user: User) -> User:
        """Persist user changes"""
        pass
