from abc import ABC, abstractmethod
from typing import Optional, List, Tuple

from app.chat.entity.chat import Message, SenderRole, Thread, ThreadSummary


class IChatRepository(ABC):
    """System of record for chat threads and messages."""

    @abstractmethod
    async def get_thread_by_participants(self, listing_id: int, seller_id: int, buyer_id: int) -> Optional[Thread]:
        pass

    @abstractmethod
    async def create_thread(self, listing_id: int, seller_id: int, buyer_id: int) -> Thread:
        """Atomic compare-and-insert; raises DuplicateThreadError when the triple already exists."""
        pass

    @abstractmethod
    async def list_messages(self, thread_id: int, limit: int, before_id: Optional[int] = None) -> List[Message]:
        pass

    @abstractmethod
    async def add_message(self, thread_id: int, sender_role: SenderRole, content: str) -> Tuple[Thread, Message]:
        pass

    @abstractmethod
    async def mark_messages_read(self, thread_id: int, reader_role: SenderRole) -> Tuple[Thread, int]:
        pass

    @abstractmethod
    async def count_unread(self, user_id: int, role: SenderRole) -> int:
        pass

    @abstractmethod
    async def list_thread_summaries(self, user_id: int, role: SenderRole) -> List[ThreadSummary]:
        pass
