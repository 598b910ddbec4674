"""
FastAPI dependencies shared by the chat routers.

The caller identity always comes from the X-Caller-Identity header set by
the authenticating proxy, never from a request body.
"""

from typing import Optional

from fastapi import Header, Request

from app.core.chat_store import ChatStore


def get_chat_store(request: Request) -> ChatStore:
    """Return the store attached to the running application."""
    return request.app.state.chat_store


def get_caller(
    x_caller_identity: str = Header(..., min_length=1, description="Authenticated caller identity")
) -> str:
    return x_caller_identity


def get_optional_caller(
    x_caller_identity: Optional[str] = Header(default=None, description="Authenticated caller identity")
) -> Optional[str]:
    return x_caller_identity
