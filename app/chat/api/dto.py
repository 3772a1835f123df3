from pydantic import BaseModel, ConfigDict, Field, AliasChoices
from typing import Any, Optional


class BaseResponse(BaseModel):
    """Standard response envelope"""
    status: bool
    message: str
    data: Optional[Any] = None


class InitializeChatDTO(BaseModel):
    """Open (or re-open) the chat about a listing between a seller and a buyer"""
    model_config = ConfigDict(populate_by_name=True)

    listing_id: Optional[int] = Field(default=None, validation_alias=AliasChoices("listing_id", "bookId", "listingId"))
    seller_id: Optional[int] = Field(default=None, validation_alias=AliasChoices("seller_id", "sellerId"))
    buyer_id: Optional[int] = Field(default=None, validation_alias=AliasChoices("buyer_id", "buyerId"))


class SendMessageDTO(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sender_role: Optional[str] = Field(default=None, validation_alias=AliasChoices("sender_role", "senderType", "senderRole"))
    content: Optional[str] = None


class MarkReadDTO(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reader_role: Optional[str] = Field(default=None, validation_alias=AliasChoices("reader_role", "readerType", "readerRole"))
