from sqlalchemy import (
    Column, String, DateTime, Text, Boolean, ForeignKey, Index, UniqueConstraint
)

from pkg.db_util.sql_alchemy.declarative_base import Base, IdType


# Thread Table
class ThreadModel(Base):
    __tablename__ = "chat_threads"
    __table_args__ = (
        # One thread per (listing, seller, buyer); the compare-and-insert relies on it
        UniqueConstraint("listing_id", "seller_id", "buyer_id", name="uq_chat_threads_participants"),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    listing_id = Column(IdType, nullable=False)
    seller_id = Column(IdType, nullable=False, index=True)
    buyer_id = Column(IdType, nullable=False, index=True)
    created_at = Column(DateTime, nullable=False)
    # sent_at of the newest message; drives monotonic timestamps and listing order
    last_message_at = Column(DateTime, nullable=True)


# Message Table
class MessageModel(Base):
    __tablename__ = "chat_messages"
    __table_args__ = (
        Index("ix_chat_messages_thread_sent", "thread_id", "sent_at"),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    thread_id = Column(IdType, ForeignKey("chat_threads.id"), nullable=False)
    sender_role = Column(String(10), nullable=False)
    content = Column(Text, nullable=False)
    sent_at = Column(DateTime, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime, nullable=True)


# Tables owned by the chat service, parents first
CHAT_TABLES = [ThreadModel.__table__, MessageModel.__table__]
