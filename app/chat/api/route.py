from fastapi import APIRouter, Depends, Query
from typing import Optional
from app.chat.api.dto import BaseResponse, InitializeChatDTO, MarkReadDTO, SendMessageDTO
from app.chat.api.dependencies import get_chat_handler
from app.chat.api.handler import ChatHandler

chat_router = APIRouter(prefix="/chat", tags=["Chat"])


@chat_router.post("/initialize", response_model=BaseResponse)
async def initialize_chat(
    body: InitializeChatDTO,
    chat_handler: ChatHandler = Depends(get_chat_handler),
):
    """
    Open the chat about a listing between a seller and a buyer.
    Safe to call repeatedly from either side: always returns the same thread.
    """
    return await chat_handler.initialize_chat(body)


@chat_router.get("/{thread_id}/messages", response_model=BaseResponse)
async def get_messages(
    thread_id: int,
    limit: Optional[int] = Query(default=None, ge=1, description="Page size (defaults to CHAT_PAGE_SIZE)"),
    before_id: Optional[int] = Query(default=None, description="Return messages older than this message id"),
    chat_handler: ChatHandler = Depends(get_chat_handler),
):
    """Messages of a thread, oldest first."""
    return await chat_handler.get_messages(thread_id, limit=limit, before_id=before_id)


@chat_router.post("/{thread_id}/messages", response_model=BaseResponse, status_code=201)
async def send_message(
    thread_id: int,
    body: SendMessageDTO,
    chat_handler: ChatHandler = Depends(get_chat_handler),
):
    return await chat_handler.send_message(thread_id, body)


@chat_router.post("/{thread_id}/read", response_model=BaseResponse)
async def mark_thread_read(
    thread_id: int,
    body: MarkReadDTO,
    chat_handler: ChatHandler = Depends(get_chat_handler),
):
    """Mark the other party's messages in this thread as read."""
    return await chat_handler.mark_read(thread_id, body)


@chat_router.get("/users/{role}/{user_id}/threads", response_model=BaseResponse)
async def get_user_chats(
    role: str,
    user_id: int,
    chat_handler: ChatHandler = Depends(get_chat_handler),
):
    """Threads of a seller or buyer, most recently active first."""
    return await chat_handler.get_user_chats(user_id, role)


@chat_router.get("/sellers/{seller_id}/active", response_model=BaseResponse)
async def get_active_chats_for_seller(
    seller_id: int,
    chat_handler: ChatHandler = Depends(get_chat_handler),
):
    return await chat_handler.get_active_chats_for_seller(seller_id)


@chat_router.get("/unread/{user_id}", response_model=BaseResponse)
async def get_unread_count(
    user_id: int,
    role: str = Query(default="buyer", description="'buyer' or 'seller'"),
    chat_handler: ChatHandler = Depends(get_chat_handler),
):
    return await chat_handler.get_unread_count(user_id, role)


@chat_router.delete("/cache", response_model=BaseResponse)
async def clear_cache(
    chat_handler: ChatHandler = Depends(get_chat_handler),
):
    """Administrative: drop every cached chat projection."""
    return await chat_handler.clear_cache()
