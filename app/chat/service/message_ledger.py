from typing import List, Optional

from pydantic import TypeAdapter

from app.chat.entity.chat import Message, ReadReceipt, SenderRole
from app.chat.service.cache import ChatCache
from app.chat.service.service import IChatRepository
from app.core.exceptions import ValidationError
from app.core.logger import get_logger

logger = get_logger(__name__)

_MESSAGES = TypeAdapter(List[Message])


class MessageLedger:
    """
    Reads and appends thread messages.

    - Postgres → ordered history, the source of truth.
    - Redis → cached message pages per thread, dropped on every write.
    """

    def __init__(
        self,
        repository: IChatRepository,
        cache: ChatCache,
        messages_ttl: int = 300,
        page_size: int = 50,
        max_page_size: int = 200,
        max_message_length: int = 2000,
    ):
        self.repository = repository
        self.cache = cache
        self.messages_ttl = messages_ttl
        self.page_size = page_size
        self.max_page_size = max_page_size
        self.max_message_length = max_message_length

    async def list_messages(self, thread_id: int, limit: Optional[int] = None, before_id: Optional[int] = None) -> List[Message]:
        """Messages of a thread, oldest first. `before_id` pages back through older history."""
        if thread_id is None:
            raise ValidationError("Missing required fields", {"fields": ["thread_id"]})
        limit = self.page_size if limit is None else limit
        if not 1 <= limit <= self.max_page_size:
            raise ValidationError(
                f"limit must be between 1 and {self.max_page_size}", {"field": "limit", "value": limit}
            )

        return await self.cache.cached_fetch(
            self.cache.messages_key(thread_id, limit, before_id),
            lambda: self.repository.list_messages(thread_id, limit, before_id),
            self.messages_ttl,
            _MESSAGES,
        )

    async def append_message(self, thread_id: int, sender_role, content: Optional[str]) -> Message:
        """Persist a message, then drop the projections it changes. Returns the committed message."""
        missing = [name for name, value in (("thread_id", thread_id), ("sender_role", sender_role)) if value is None]
        text = content.strip() if isinstance(content, str) else ""
        if not text:
            missing.append("content")
        if missing:
            raise ValidationError("Missing required fields", {"fields": missing})
        role = SenderRole.parse(sender_role, field="sender_role")
        if len(text) > self.max_message_length:
            raise ValidationError(
                f"Message is longer than {self.max_message_length} characters",
                {"field": "content", "length": len(text)},
            )

        thread, message = await self.repository.add_message(thread_id, role, text)

        recipient = role.counterpart
        await self.cache.invalidate_quietly(
            self.cache.messages_pattern(thread_id),
            self.cache.threads_key(thread.seller_id, SenderRole.SELLER),
            self.cache.threads_key(thread.buyer_id, SenderRole.BUYER),
            self.cache.unread_key(thread.participant(recipient), recipient),
        )
        logger.info(f"Message {message.id} appended to thread {thread_id} by {role.value}")
        return message

    async def mark_thread_read(self, thread_id: int, reader_role) -> ReadReceipt:
        """Mark every message the other party sent in this thread as read by `reader_role`."""
        if thread_id is None:
            raise ValidationError("Missing required fields", {"fields": ["thread_id"]})
        role = SenderRole.parse(reader_role, field="reader_role")

        thread, marked = await self.repository.mark_messages_read(thread_id, role)

        if marked:
            reader_id = thread.participant(role)
            await self.cache.invalidate_quietly(
                self.cache.messages_pattern(thread_id),
                self.cache.threads_key(reader_id, role),
                self.cache.unread_key(reader_id, role),
            )
            logger.info(f"Marked {marked} message(s) read in thread {thread_id} for {role.value} {reader_id}")
        return ReadReceipt(thread_id=thread_id, reader_role=role, marked_read=marked)
