"""
Chat and message repository interfaces
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, List

from .entity import Chat, Message


class ChatRepository(ABC):

    @abstractmethod
    async def create(self, chat: Chat) -> Chat:
        """Persist a chat"""

    @abstractmethod
    async def get_by_id(self, chat_id: int) -> Optional[Chat]:
        """Load a chat"""

    @abstractmethod
    async def find(self, user_id: int, artisan_id: int, booking_id: Optional[int]) -> Optional[Chat]:
        """Chat between the two participants for the booking"""

    @abstractmethod
    async def update(self, chat: Chat) -> Chat:
        """Persist chat changes"""

    @abstractmethod
    async def list_for_user(self, user_id: int, skip: int = 0, limit: int = 50) -> List[Chat]:
        """Chats the user takes part in, most recent activity first"""


class MessageRepository(ABC):

    @abstractmethod
    async def create(self, message: Message) -> Message:
        """Persist a message and assign its id"""

    @abstractmethod
    async def get_by_id(self, message_id: int, *, for_update: bool = False) -> Optional[Message]:
        """Load a message"""

    @abstractmethod
    async def update(self, message: Message) -> Message:
        """Persist receipts, reactions and edits"""

    @abstractmethod
    async def list_for_chat(self, chat_id: int, *, before_id: Optional[int] = None, limit: int = 50) -> List[Message]:
        """Newest first, optionally older than ``before_id``"""

    @abstractmethod
    async def list_unread(self, chat_id: int, user_id: int) -> List[Message]:
        """Messages not sent by and not yet read by the user"""

    @abstractmethod
    async def delete_expired(self, now: datetime) -> int:
        """Delete messages whose expiry has passed"""
