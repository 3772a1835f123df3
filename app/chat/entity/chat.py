# app/chat/entity/chat.py
"""
Domain models for marketplace chat threads and messages.
These models are also the shape of the cached JSON snapshots.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.core.exceptions import ValidationError


def utcnow() -> datetime:
    """Naive UTC timestamp (columns are TIMESTAMP WITHOUT TIME ZONE)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SenderRole(str, Enum):
    SELLER = "seller"
    BUYER = "buyer"

    @property
    def counterpart(self) -> "SenderRole":
        return SenderRole.BUYER if self is SenderRole.SELLER else SenderRole.SELLER

    @classmethod
    def parse(cls, value, field: str = "role") -> "SenderRole":
        if isinstance(value, cls):
            return value
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError("Missing required fields", {"fields": [field]})
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(
                f"Invalid {field}: must be one of 'seller' or 'buyer'",
                {"field": field, "value": str(value)},
            ) from None


class Thread(BaseModel):
    """A conversation scoped to exactly one (listing, seller, buyer) triple."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    listing_id: int
    seller_id: int
    buyer_id: int
    created_at: datetime
    last_message_at: Optional[datetime] = None

    def participant(self, role: SenderRole) -> int:
        return self.seller_id if role is SenderRole.SELLER else self.buyer_id


class Message(BaseModel):
    """One chat utterance within a thread."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    thread_id: int
    sender_role: SenderRole
    content: str
    sent_at: datetime
    is_read: bool = False
    read_at: Optional[datetime] = None


class ThreadSummary(BaseModel):
    """A thread as listed for one of its participants."""
    thread_id: int
    listing_id: int
    listing_title: Optional[str] = None
    seller_id: int
    buyer_id: int
    peer_id: int
    peer_name: Optional[str] = None
    last_message: Optional[str] = None
    last_message_at: Optional[datetime] = None
    unread_count: int = 0
    created_at: datetime


class UnreadCount(BaseModel):
    user_id: int
    role: SenderRole
    unread_count: int = 0


class InitializedThread(BaseModel):
    thread_id: int
    messages: List[Message] = Field(default_factory=list)
    created: bool = False


class ReadReceipt(BaseModel):
    thread_id: int
    reader_role: SenderRole
    marked_read: int = 0
