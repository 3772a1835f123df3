from fastapi import Request, HTTPException

from app.chat.api.handler import ChatHandler


def get_chat_handler(request: Request) -> ChatHandler:
    """Get chat handler from app state."""
    # Check if startup completed successfully
    if not getattr(request.app.state, "startup_complete", False):
        raise HTTPException(
            status_code=503,
            detail="Service is starting up. Please retry in a moment."
        )

    startup_error = getattr(request.app.state, "startup_error", None)
    if startup_error:
        raise HTTPException(
            status_code=503,
            detail=f"Service initialization failed: {startup_error}"
        )

    if hasattr(request.app.state, "chat_handler"):
        return request.app.state.chat_handler

    for component in ("chat_directory", "message_ledger", "unread_aggregator", "chat_cache"):
        if getattr(request.app.state, component, None) is None:
            raise HTTPException(
                status_code=503,
                detail="Chat service not initialized. Check application logs."
            )

    chat_handler = ChatHandler(
        directory=request.app.state.chat_directory,
        ledger=request.app.state.message_ledger,
        aggregator=request.app.state.unread_aggregator,
        cache=request.app.state.chat_cache,
        logger=getattr(request.app.state, "logger", None),
    )
    request.app.state.chat_handler = chat_handler
    return chat_handler
