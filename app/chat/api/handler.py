from typing import Any, Optional
import logging

from fastapi import HTTPException

from app.chat.api.dto import InitializeChatDTO, MarkReadDTO, SendMessageDTO
from app.chat.service.cache import ChatCache
from app.chat.service.chat_directory import ChatDirectory
from app.chat.service.message_ledger import MessageLedger
from app.chat.service.unread_aggregator import UnreadAggregator
from app.core.exceptions import CacheError, NotFoundError, ValidationError
from app.core.logger import get_logger


class ChatHandler:
    """Translates HTTP calls into chat operations and chat errors into HTTP errors."""

    def __init__(
        self,
        directory: ChatDirectory,
        ledger: MessageLedger,
        aggregator: UnreadAggregator,
        cache: ChatCache,
        logger: Optional[logging.Logger] = None,
    ):
        self.directory = directory
        self.ledger = ledger
        self.aggregator = aggregator
        self.cache = cache
        self.logger = logger or get_logger("ChatHandler")

    def _http_error(self, error: Exception, failure_message: str) -> HTTPException:
        if isinstance(error, ValidationError):
            return HTTPException(status_code=400, detail=error.message)
        if isinstance(error, NotFoundError):
            return HTTPException(status_code=404, detail=error.message)
        self.logger.error(f"{failure_message}: {error!s}")
        return HTTPException(status_code=500, detail=failure_message)

    async def initialize_chat(self, body: InitializeChatDTO) -> dict[str, Any]:
        try:
            result = await self.directory.initialize_thread(body.listing_id, body.seller_id, body.buyer_id)
            return {
                "status": True,
                "message": "Chat created successfully" if result.created else "Chat fetched successfully",
                "data": result.model_dump(mode="json"),
            }
        except Exception as e:
            raise self._http_error(e, "Error initializing chat") from e

    async def get_messages(self, thread_id: int, limit: Optional[int] = None, before_id: Optional[int] = None) -> dict[str, Any]:
        try:
            messages = await self.ledger.list_messages(thread_id, limit=limit, before_id=before_id)
            return {
                "status": True,
                "message": "Messages fetched successfully",
                "data": [m.model_dump(mode="json") for m in messages],
            }
        except Exception as e:
            raise self._http_error(e, "Error fetching messages") from e

    async def send_message(self, thread_id: int, body: SendMessageDTO) -> dict[str, Any]:
        try:
            message = await self.ledger.append_message(thread_id, body.sender_role, body.content)
            return {
                "status": True,
                "message": "Message sent successfully",
                "data": message.model_dump(mode="json"),
            }
        except Exception as e:
            raise self._http_error(e, "Error sending message") from e

    async def mark_read(self, thread_id: int, body: MarkReadDTO) -> dict[str, Any]:
        try:
            receipt = await self.ledger.mark_thread_read(thread_id, body.reader_role)
            return {
                "status": True,
                "message": "Messages marked as read",
                "data": receipt.model_dump(mode="json"),
            }
        except Exception as e:
            raise self._http_error(e, "Error marking messages as read") from e

    async def get_user_chats(self, user_id: int, role: str) -> dict[str, Any]:
        try:
            threads = await self.aggregator.list_threads_for_user(user_id, role)
            return {
                "status": True,
                "message": "Chats fetched successfully",
                "data": [t.model_dump(mode="json") for t in threads],
            }
        except Exception as e:
            raise self._http_error(e, "Error fetching user chats") from e

    async def get_active_chats_for_seller(self, seller_id: int) -> dict[str, Any]:
        try:
            threads = await self.aggregator.list_active_threads_for_seller(seller_id)
            return {
                "status": True,
                "message": "Active chats fetched successfully",
                "data": [t.model_dump(mode="json") for t in threads],
            }
        except Exception as e:
            raise self._http_error(e, "Error fetching active chats") from e

    async def get_unread_count(self, user_id: int, role: str) -> dict[str, Any]:
        try:
            unread = await self.aggregator.get_unread_count(user_id, role)
            return {
                "status": True,
                "message": "Unread count fetched successfully",
                "data": unread.model_dump(mode="json"),
            }
        except Exception as e:
            raise self._http_error(e, "Error getting unread counts") from e

    async def clear_cache(self) -> dict[str, Any]:
        try:
            await self.cache.flush_all()
        except CacheError as e:
            self.logger.error(f"Error clearing Redis cache: {e.__cause__ or e}")
            raise HTTPException(status_code=500, detail="Error clearing Redis cache") from e
        return {
            "status": True,
            "message": "Redis cache cleared successfully",
            "data": None,
        }
