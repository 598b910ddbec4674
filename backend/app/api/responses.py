"""
Response models and result conversion for the chat API.

Store results are turned into HTTP errors here so every router maps
ChatError values to the same status codes.
"""

from typing import Dict, List, Optional

from fastapi import HTTPException
from pydantic import BaseModel

from app.core.chat import Message, User
from app.core.result import ChatError, Result


# Status code per store error
ERROR_STATUS_CODES: Dict[ChatError, int] = {
    ChatError.UNAUTHORIZED: 403,
    ChatError.NOT_FOUND: 404,
    ChatError.INVALID_INPUT: 400,
    ChatError.RATE_LIMITED: 429,
    ChatError.BANNED: 403,
    ChatError.NO_PERMISSION: 403,
    ChatError.ALREADY_EXISTS: 409,
    ChatError.MESSAGE_TOO_LONG: 400,
}


def unwrap(result: Result):
    """
    Return the result value or raise the matching HTTPException.

    Raises:
        HTTPException: With detail {"error": code, "message": text}
    """
    if result.ok:
        return result.value
    raise HTTPException(
        status_code=ERROR_STATUS_CODES[result.error],
        detail={"error": result.error.value, "message": result.message},
    )


# ===== Pydantic Models =====

class UserResponse(BaseModel):
    """Public user profile."""
    identity: str
    display_name: str
    username: Optional[str] = None
    bio: str = ""
    role: str
    status: str
    banned: bool
    banned_until: Optional[float] = None
    joined: float
    last_seen: float
    message_count: int


class ReactionResponse(BaseModel):
    reactor: str
    emoji: str
    timestamp: float


class AttachmentResponse(BaseModel):
    filename: str
    content_type: str
    size_bytes: int


class MessageResponse(BaseModel):
    """Message as seen by clients."""
    id: int
    sender: str
    sender_name: Optional[str] = None  # None once the sender removed their account
    content: str
    timestamp: float
    room_id: str
    reply_to: Optional[int] = None
    edited: bool
    edited_at: Optional[float] = None
    deleted: bool
    pinned: bool
    reactions: List[ReactionResponse]
    reaction_counts: Dict[str, int]
    attachments: List[AttachmentResponse]


# ===== Helper Functions =====

def user_to_response(user: User, now: float) -> UserResponse:
    """Convert User dataclass to UserResponse. Expired bans read as not banned."""
    banned = user.is_banned(now)
    return UserResponse(
        identity=user.identity,
        display_name=user.display_name,
        username=user.username,
        bio=user.bio,
        role=user.role.value,
        status=user.status.value,
        banned=banned,
        banned_until=user.banned_until if banned else None,
        joined=user.joined,
        last_seen=user.last_seen,
        message_count=user.message_count,
    )


def message_to_response(message: Message, sender: Optional[User] = None) -> MessageResponse:
    """Convert Message dataclass to MessageResponse."""
    return MessageResponse(
        id=message.id,
        sender=message.sender,
        sender_name=sender.display_name if sender else None,
        content=message.content,
        timestamp=message.timestamp,
        room_id=message.room_id,
        reply_to=message.reply_to,
        edited=message.edited,
        edited_at=message.edited_at,
        deleted=message.deleted,
        pinned=message.pinned,
        reactions=[
            ReactionResponse(reactor=r.reactor, emoji=r.emoji, timestamp=r.timestamp)
            for r in message.reactions
        ],
        reaction_counts=message.reaction_counts(),
        attachments=[
            AttachmentResponse(filename=a.filename, content_type=a.content_type, size_bytes=a.size_bytes)
            for a in message.attachments
        ],
    )
