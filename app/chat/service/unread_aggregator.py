from typing import List

from pydantic import TypeAdapter

from app.chat.entity.chat import SenderRole, ThreadSummary, UnreadCount
from app.chat.service.cache import ChatCache
from app.chat.service.service import IChatRepository
from app.core.exceptions import ValidationError

_SUMMARIES = TypeAdapter(List[ThreadSummary])
_UNREAD = TypeAdapter(UnreadCount)


class UnreadAggregator:
    """Per-user views across all threads: unread badge and thread listing."""

    def __init__(self, repository: IChatRepository, cache: ChatCache, unread_ttl: int = 30, threads_ttl: int = 120):
        self.repository = repository
        self.cache = cache
        self.unread_ttl = unread_ttl
        self.threads_ttl = threads_ttl

    @staticmethod
    def _check(user_id, role) -> SenderRole:
        if user_id is None:
            raise ValidationError("Missing required fields", {"fields": ["user_id"]})
        return SenderRole.parse(role)

    async def get_unread_count(self, user_id: int, role=SenderRole.BUYER) -> UnreadCount:
        role = self._check(user_id, role)

        async def load() -> UnreadCount:
            count = await self.repository.count_unread(user_id, role)
            return UnreadCount(user_id=user_id, role=role, unread_count=count)

        return await self.cache.cached_fetch(self.cache.unread_key(user_id, role), load, self.unread_ttl, _UNREAD)

    async def list_threads_for_user(self, user_id: int, role) -> List[ThreadSummary]:
        role = self._check(user_id, role)
        return await self.cache.cached_fetch(
            self.cache.threads_key(user_id, role),
            lambda: self.repository.list_thread_summaries(user_id, role),
            self.threads_ttl,
            _SUMMARIES,
        )

    async def list_active_threads_for_seller(self, seller_id: int) -> List[ThreadSummary]:
        """Seller threads where at least one message was exchanged."""
        threads = await self.list_threads_for_user(seller_id, SenderRole.SELLER)
        return [t for t in threads if t.last_message_at is not None]
