# app/chat/repository/chat_repository.py

from datetime import datetime, timedelta
from typing import Optional, List, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import aliased

from app.chat.entity.chat import Message, SenderRole, Thread, ThreadSummary, utcnow
from app.chat.repository.sql_schema.chat import ThreadModel, MessageModel
from app.chat.repository.sql_schema.marketplace import BookModel, BuyerModel, SellerModel
from app.chat.service.service import IChatRepository
from app.core.exceptions import DuplicateThreadError, NotFoundError, StorageError
from app.core.logger import get_logger
from pkg.db_util.postgres_conn import PostgresConnection

logger = get_logger(__name__)

# Driver/network faults surface as OSError (ConnectionError included)
STORE_FAULTS = (SQLAlchemyError, OSError)

PREVIEW_LENGTH = 80


def next_sent_at(last_sent_at: Optional[datetime], now: Optional[datetime] = None) -> datetime:
    """Timestamp for a new message: wall clock, but strictly after the thread's newest message."""
    now = now or utcnow()
    if last_sent_at is not None and now <= last_sent_at:
        return last_sent_at + timedelta(microseconds=1)
    return now


def _preview(content: Optional[str]) -> Optional[str]:
    if content is None or len(content) <= PREVIEW_LENGTH:
        return content
    return content[:PREVIEW_LENGTH - 3] + "..."


class ChatRepository(IChatRepository):
    """Handles all database interactions for chat threads and messages."""

    def __init__(self, postgres: PostgresConnection):
        self.postgres = postgres
        self.logger = logger

    # ────────────────────────────────────────────────
    # Threads
    # ────────────────────────────────────────────────

    async def get_thread_by_participants(self, listing_id: int, seller_id: int, buyer_id: int) -> Optional[Thread]:
        try:
            async with self.postgres.get_session() as session:
                result = await session.execute(
                    select(ThreadModel).where(
                        ThreadModel.listing_id == listing_id,
                        ThreadModel.seller_id == seller_id,
                        ThreadModel.buyer_id == buyer_id,
                    )
                )
                thread = result.scalar_one_or_none()
                return Thread.model_validate(thread) if thread else None
        except STORE_FAULTS as e:
            self.logger.error(f"Error looking up thread ({listing_id}, {seller_id}, {buyer_id}): {e}")
            raise StorageError("Failed to look up chat thread") from e

    async def create_thread(self, listing_id: int, seller_id: int, buyer_id: int) -> Thread:
        """Insert a thread; the unique constraint on the triple decides concurrent races."""
        try:
            async with self.postgres.get_session() as session:
                new_thread = ThreadModel(
                    listing_id=listing_id,
                    seller_id=seller_id,
                    buyer_id=buyer_id,
                    created_at=utcnow(),
                    last_message_at=None,
                )
                session.add(new_thread)
                await session.flush()
                created = Thread.model_validate(new_thread)
        except IntegrityError as e:
            raise DuplicateThreadError(
                "Chat thread already exists",
                {"listing_id": listing_id, "seller_id": seller_id, "buyer_id": buyer_id},
            ) from e
        except STORE_FAULTS as e:
            self.logger.error(f"Error creating thread ({listing_id}, {seller_id}, {buyer_id}): {e}")
            raise StorageError("Failed to create chat thread") from e

        self.logger.info(f"Chat thread created: {created.id}")
        return created

    # ────────────────────────────────────────────────
    # Messages
    # ────────────────────────────────────────────────

    async def list_messages(self, thread_id: int, limit: int, before_id: Optional[int] = None) -> List[Message]:
        """Newest `limit` messages (older than `before_id` when given), returned oldest first."""
        stmt = select(MessageModel).where(MessageModel.thread_id == thread_id)
        if before_id is not None:
            # ids grow with sent_at inside a thread (appends hold the thread row lock)
            stmt = stmt.where(MessageModel.id < before_id)
        stmt = stmt.order_by(MessageModel.sent_at.desc(), MessageModel.id.desc()).limit(limit)

        try:
            async with self.postgres.get_session() as session:
                result = await session.execute(stmt)
                rows = result.scalars().all()
        except STORE_FAULTS as e:
            self.logger.error(f"Error fetching messages for thread {thread_id}: {e}")
            raise StorageError("Failed to fetch messages", {"thread_id": thread_id}) from e

        return [Message.model_validate(m) for m in reversed(rows)]

    async def add_message(self, thread_id: int, sender_role: SenderRole, content: str) -> Tuple[Thread, Message]:
        """
        Append a message under the thread row lock.

        The lock serializes appends per thread, so sent_at follows commit order
        and never repeats. Returns the thread (for cache invalidation) and the
        committed message.
        """
        thread = None
        message = None
        try:
            async with self.postgres.get_session() as session:
                result = await session.execute(
                    select(ThreadModel).where(ThreadModel.id == thread_id).with_for_update()
                )
                thread_row = result.scalar_one_or_none()
                if thread_row is not None:
                    sent_at = next_sent_at(thread_row.last_message_at)
                    new_msg = MessageModel(
                        thread_id=thread_id,
                        sender_role=sender_role.value,
                        content=content,
                        sent_at=sent_at,
                        is_read=False,
                        read_at=None,
                    )
                    session.add(new_msg)
                    thread_row.last_message_at = sent_at
                    await session.flush()
                    thread = Thread.model_validate(thread_row)
                    message = Message.model_validate(new_msg)
        except STORE_FAULTS as e:
            self.logger.error(f"Error appending message to thread {thread_id}: {e}")
            raise StorageError("Failed to send message", {"thread_id": thread_id}) from e

        if thread is None:
            raise NotFoundError(f"Chat thread {thread_id} not found", {"thread_id": thread_id})

        self.logger.debug(f"Message {message.id} saved for thread {thread_id}")
        return thread, message

    async def mark_messages_read(self, thread_id: int, reader_role: SenderRole) -> Tuple[Thread, int]:
        """Mark the other party's unread messages as read; returns the thread and the count marked."""
        thread = None
        marked = 0
        try:
            async with self.postgres.get_session() as session:
                thread_row = await session.get(ThreadModel, thread_id)
                if thread_row is not None:
                    thread = Thread.model_validate(thread_row)
                    result = await session.execute(
                        update(MessageModel)
                        .where(
                            MessageModel.thread_id == thread_id,
                            MessageModel.sender_role == reader_role.counterpart.value,
                            MessageModel.is_read.is_(False),
                        )
                        .values(is_read=True, read_at=utcnow())
                        .execution_options(synchronize_session=False)
                    )
                    marked = result.rowcount or 0
        except STORE_FAULTS as e:
            self.logger.error(f"Error marking thread {thread_id} read: {e}")
            raise StorageError("Failed to mark messages as read", {"thread_id": thread_id}) from e

        if thread is None:
            raise NotFoundError(f"Chat thread {thread_id} not found", {"thread_id": thread_id})
        return thread, marked

    # ────────────────────────────────────────────────
    # Per-user aggregates
    # ────────────────────────────────────────────────

    @staticmethod
    def _owner_column(role: SenderRole):
        return ThreadModel.seller_id if role is SenderRole.SELLER else ThreadModel.buyer_id

    async def count_unread(self, user_id: int, role: SenderRole) -> int:
        stmt = (
            select(func.count(MessageModel.id))
            .select_from(MessageModel)
            .join(ThreadModel, ThreadModel.id == MessageModel.thread_id)
            .where(
                self._owner_column(role) == user_id,
                MessageModel.sender_role == role.counterpart.value,
                MessageModel.is_read.is_(False),
            )
        )
        try:
            async with self.postgres.get_session() as session:
                result = await session.execute(stmt)
                return int(result.scalar_one() or 0)
        except STORE_FAULTS as e:
            self.logger.error(f"Error counting unread messages for {role.value} {user_id}: {e}")
            raise StorageError("Failed to count unread messages") from e

    async def list_thread_summaries(self, user_id: int, role: SenderRole) -> List[ThreadSummary]:
        """Threads of the user with peer name, listing title, last message and unread count."""
        if role is SenderRole.SELLER:
            peer_model, peer_column = BuyerModel, ThreadModel.buyer_id
        else:
            peer_model, peer_column = SellerModel, ThreadModel.seller_id

        last_message = aliased(MessageModel)
        latest_id = (
            select(func.max(MessageModel.id))
            .where(MessageModel.thread_id == ThreadModel.id)
            .correlate(ThreadModel)
            .scalar_subquery()
        )
        unread = (
            select(func.count(MessageModel.id))
            .where(
                MessageModel.thread_id == ThreadModel.id,
                MessageModel.sender_role == role.counterpart.value,
                MessageModel.is_read.is_(False),
            )
            .correlate(ThreadModel)
            .scalar_subquery()
        )
        stmt = (
            select(
                ThreadModel,
                peer_model.name,
                BookModel.title,
                last_message.content,
                last_message.sent_at,
                unread.label("unread_count"),
            )
            .outerjoin(peer_model, peer_model.id == peer_column)
            .outerjoin(BookModel, BookModel.id == ThreadModel.listing_id)
            .outerjoin(last_message, last_message.id == latest_id)
            .where(self._owner_column(role) == user_id)
            .order_by(
                func.coalesce(ThreadModel.last_message_at, ThreadModel.created_at).desc(),
                ThreadModel.id.desc(),
            )
        )

        try:
            async with self.postgres.get_session() as session:
                result = await session.execute(stmt)
                rows = result.all()
        except STORE_FAULTS as e:
            self.logger.error(f"Error listing threads for {role.value} {user_id}: {e}")
            raise StorageError("Failed to list chat threads") from e

        return [
            ThreadSummary(
                thread_id=t.id,
                listing_id=t.listing_id,
                listing_title=title,
                seller_id=t.seller_id,
                buyer_id=t.buyer_id,
                peer_id=t.buyer_id if role is SenderRole.SELLER else t.seller_id,
                peer_name=peer_name,
                last_message=_preview(content),
                last_message_at=sent_at,
                unread_count=int(unread_count or 0),
                created_at=t.created_at,
            )
            for t, peer_name, title, content, sent_at, unread_count in rows
        ]
