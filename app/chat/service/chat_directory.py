from app.chat.entity.chat import InitializedThread, SenderRole, Thread
from app.chat.service.cache import ChatCache
from app.chat.service.message_ledger import MessageLedger
from app.chat.service.service import IChatRepository
from app.core.exceptions import DuplicateThreadError, StorageError, ValidationError
from app.core.logger import get_logger

logger = get_logger(__name__)


class ChatDirectory:
    """Resolves, or creates exactly once, the thread of a (listing, seller, buyer) triple."""

    def __init__(self, repository: IChatRepository, cache: ChatCache, ledger: MessageLedger):
        self.repository = repository
        self.cache = cache
        self.ledger = ledger

    async def initialize_thread(self, listing_id: int, seller_id: int, buyer_id: int) -> InitializedThread:
        """
        Idempotent: both parties may call this any number of times, concurrently,
        and always get the same thread id back.
        """
        missing = [
            name
            for name, value in (("listing_id", listing_id), ("seller_id", seller_id), ("buyer_id", buyer_id))
            if value is None
        ]
        if missing:
            raise ValidationError("Missing required fields", {"fields": missing})

        thread = await self.repository.get_thread_by_participants(listing_id, seller_id, buyer_id)
        if thread is not None:
            return await self._existing(thread)

        try:
            thread = await self.repository.create_thread(listing_id, seller_id, buyer_id)
        except DuplicateThreadError:
            # Lost the insert race; the winner's row is committed
            logger.info(f"Thread for listing {listing_id} ({seller_id}, {buyer_id}) created concurrently, re-reading")
            thread = await self.repository.get_thread_by_participants(listing_id, seller_id, buyer_id)
            if thread is None:
                raise StorageError(
                    "Chat thread conflict could not be resolved",
                    {"listing_id": listing_id, "seller_id": seller_id, "buyer_id": buyer_id},
                )
            return await self._existing(thread)

        await self.cache.invalidate_quietly(
            self.cache.threads_key(seller_id, SenderRole.SELLER),
            self.cache.threads_key(buyer_id, SenderRole.BUYER),
        )
        return InitializedThread(thread_id=thread.id, messages=[], created=True)

    async def _existing(self, thread: Thread) -> InitializedThread:
        messages = await self.ledger.list_messages(thread.id)
        return InitializedThread(thread_id=thread.id, messages=messages, created=False)
