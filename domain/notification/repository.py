"""
Notification repository interface
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, List, Sequence

from .entity import Notification, NotificationType


class NotificationRepository(ABC):

    @abstractmethod
    async def create(self, notification: Notification) -> Notification:
        """Persist a notification"""

    @abstractmethod
    async def get_by_id(self, notification_id: int) -> Optional[Notification]:
        """Load a notification"""

    @abstractmethod
    async def update(self, notification: Notification) -> Notification:
        """Persist read state"""

    @abstractmethod
    async def list_for_recipient(
        self,
        recipient_id: int,
        *,
        unread_only: bool = False,
        type: Optional[NotificationType] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[Notification]:
        """Newest first"""

    @abstractmethod
    async def count_unread(self, recipient_id: int) -> int:
        """Unread notifications for the recipient"""

    @abstractmethod
    async def mark_read(self, recipient_id: int, ids: Optional[Sequence[int]], read_at: datetime) -> int:
        """Mark the recipient's unread notifications read; ``None`` means all. Returns the count changed"""

    @abstractmethod
    async def delete(self, recipient_id: int, notification_id: int) -> bool:
        """Delete one of the recipient's notifications"""

    @abstractmethod
    async def delete_read_before(self, recipient_id: int, before: datetime) -> int:
        """Delete the recipient's read notifications created before ``before``"""

    @abstractmethod
    async def delete_expired(self, now: datetime) -> int:
        """Delete notifications whose expiry has passed"""
