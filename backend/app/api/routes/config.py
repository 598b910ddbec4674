"""
Configuration API endpoints.

Provides access to chat limits for clients.
"""

from fastapi import APIRouter
from typing import Dict, Any

from app.config import get_settings

router = APIRouter(prefix="/config", tags=["config"])


@router.get("/chat")
async def get_chat_config() -> Dict[str, Any]:
    """
    Get chat limits.

    Lets the frontend validate input and pace its polling the same way
    the backend enforces them.

    Returns:
        dict: Chat, rate limit and polling parameters
    """
    settings = get_settings()
    chat = settings.chat
    rate_limit = settings.rate_limit

    return {
        # Profiles
        "DISPLAY_NAME_MAX_LENGTH": chat.DISPLAY_NAME_MAX_LENGTH,
        "USERNAME_MIN_LENGTH": chat.USERNAME_MIN_LENGTH,
        "USERNAME_MAX_LENGTH": chat.USERNAME_MAX_LENGTH,
        "BIO_MAX_LENGTH": chat.BIO_MAX_LENGTH,

        # Messages
        "MAX_MESSAGE_LENGTH": chat.MAX_MESSAGE_LENGTH,
        "EDIT_WINDOW_SECONDS": chat.EDIT_WINDOW_SECONDS,
        "MAX_PINNED_MESSAGES": chat.MAX_PINNED_MESSAGES,
        "MAX_REACTIONS_PER_MESSAGE": chat.MAX_REACTIONS_PER_MESSAGE,
        "MAX_ATTACHMENTS_PER_MESSAGE": chat.MAX_ATTACHMENTS_PER_MESSAGE,
        "DEFAULT_ROOM_ID": chat.DEFAULT_ROOM_ID,
        "DEFAULT_PAGE_SIZE": chat.DEFAULT_PAGE_SIZE,

        # Abuse control
        "MIN_INTERVAL_SECONDS": rate_limit.MIN_INTERVAL_SECONDS,
        "DAILY_MESSAGE_CAP": rate_limit.DAILY_MESSAGE_CAP,

        # Polling
        "POLL_INTERVAL_SECONDS": settings.server.POLL_INTERVAL_SECONDS,
    }
