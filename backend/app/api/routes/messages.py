"""
REST API endpoints for messages.

Provides the message lifecycle:
- Send, edit and delete messages
- Pin and react
- Timeline pages, polling cursors, threads and search
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from app.api.dependencies import get_caller, get_chat_store, get_optional_caller
from app.api.responses import MessageResponse, message_to_response, unwrap
from app.core.chat import Attachment, Message
from app.core.chat_store import ChatStore

router = APIRouter(prefix="/messages", tags=["messages"])


# ===== Pydantic Models =====

class AttachmentRequest(BaseModel):
    """Attachment metadata; file upload happens elsewhere."""
    filename: str
    content_type: str
    size_bytes: int = Field(..., ge=0)


class SendMessageRequest(BaseModel):
    """Request to post a message."""
    content: str = Field(..., description="Message text (1-5000 characters)")
    reply_to: Optional[int] = Field(default=None, description="Id of the message being answered")
    room_id: Optional[str] = Field(default=None, description="Target room (default room if omitted)")
    attachments: List[AttachmentRequest] = Field(default_factory=list)


class SendMessageResponse(BaseModel):
    id: int


class EditMessageRequest(BaseModel):
    content: str


class ReactionRequest(BaseModel):
    emoji: str


class ToggleResponse(BaseModel):
    """Whether the operation changed anything."""
    changed: bool


class ReactionToggleResponse(BaseModel):
    added: bool  # False = reaction removed


class CountResponse(BaseModel):
    count: int


# ===== Helper Functions =====

def _to_responses(store: ChatStore, messages: List[Message]) -> List[MessageResponse]:
    """Convert messages, resolving sender display names."""
    return [message_to_response(m, store.get_user(m.sender)) for m in messages]


def _to_response(store: ChatStore, message: Message) -> MessageResponse:
    return message_to_response(message, store.get_user(message.sender))


# ===== REST Endpoints =====

@router.post("", response_model=SendMessageResponse, status_code=201)
async def send_message(
    request: SendMessageRequest,
    caller: str = Depends(get_caller),
    store: ChatStore = Depends(get_chat_store),
):
    """
    Post a message.

    Raises:
        400: Blank, too long or otherwise invalid message
        403: Caller banned or room locked
        404: Caller not registered
        429: Rate limited
    """
    attachments = [
        Attachment(filename=a.filename, content_type=a.content_type, size_bytes=a.size_bytes)
        for a in request.attachments
    ]
    message_id = unwrap(store.send_message(
        caller,
        request.content,
        reply_to=request.reply_to,
        room_id=request.room_id,
        attachments=attachments,
    ))
    return SendMessageResponse(id=message_id)


@router.get("", response_model=List[MessageResponse])
async def get_messages(
    room_id: Optional[str] = Query(default=None, description="Room filter (all rooms if omitted)"),
    limit: Optional[int] = Query(default=None, ge=0),
    before: Optional[int] = Query(default=None, description="Only messages with a smaller id"),
    store: ChatStore = Depends(get_chat_store),
):
    """Newest-first timeline page, cursor based."""
    return _to_responses(store, store.get_messages(room_id=room_id, limit=limit, before=before))


@router.get("/page", response_model=List[MessageResponse])
async def get_messages_page(
    page: int = Query(default=0, ge=0),
    page_size: Optional[int] = Query(default=None, ge=0),
    room_id: Optional[str] = Query(default=None),
    store: ChatStore = Depends(get_chat_store),
):
    return _to_responses(store, store.get_messages_page(page=page, page_size=page_size, room_id=room_id))


@router.get("/since", response_model=List[MessageResponse])
async def get_messages_since(
    timestamp: float = Query(..., description="Return messages created after this time"),
    room_id: Optional[str] = Query(default=None),
    limit: Optional[int] = Query(default=None, ge=0),
    store: ChatStore = Depends(get_chat_store),
):
    """Polling query: messages newer than a timestamp, oldest first."""
    return _to_responses(store, store.get_messages_since(timestamp, room_id=room_id, limit=limit))


@router.get("/after", response_model=List[MessageResponse])
async def get_messages_after(
    after_id: int = Query(..., description="Return messages with a greater id"),
    room_id: Optional[str] = Query(default=None),
    limit: Optional[int] = Query(default=None, ge=0),
    store: ChatStore = Depends(get_chat_store),
):
    """Polling query: messages after an id cursor, oldest first."""
    return _to_responses(store, store.get_messages_after(after_id, room_id=room_id, limit=limit))


@router.get("/search", response_model=List[MessageResponse])
async def search_messages(
    q: str = Query(default="", description="Keyword (case-insensitive)"),
    limit: Optional[int] = Query(default=None, ge=0),
    offset: int = Query(default=0, ge=0),
    room_id: Optional[str] = Query(default=None),
    store: ChatStore = Depends(get_chat_store),
):
    return _to_responses(store, store.search_messages(q, limit=limit, offset=offset, room_id=room_id))


@router.get("/count", response_model=CountResponse)
async def message_count(
    room_id: Optional[str] = Query(default=None),
    store: ChatStore = Depends(get_chat_store),
):
    return CountResponse(count=store.message_count(room_id=room_id))


@router.get("/pinned", response_model=List[MessageResponse])
async def get_pinned_messages(
    room_id: Optional[str] = Query(default=None),
    store: ChatStore = Depends(get_chat_store),
):
    return _to_responses(store, store.get_pinned_messages(room_id=room_id))


@router.get("/{message_id}", response_model=MessageResponse)
async def get_message(
    message_id: int,
    caller: Optional[str] = Depends(get_optional_caller),
    store: ChatStore = Depends(get_chat_store),
):
    """
    Get one message. Deleted messages are only returned to moderators.

    Raises:
        404: Message not found (or deleted and caller not a moderator)
    """
    message = unwrap(store.get_message_by_id(caller or "", message_id))
    return _to_response(store, message)


@router.get("/{message_id}/thread", response_model=List[MessageResponse])
async def get_thread(message_id: int, store: ChatStore = Depends(get_chat_store)):
    """Root message followed by its replies in send order."""
    return _to_responses(store, store.get_thread(message_id))


@router.put("/{message_id}", response_model=MessageResponse)
async def edit_message(
    message_id: int,
    request: EditMessageRequest,
    caller: str = Depends(get_caller),
    store: ChatStore = Depends(get_chat_store),
):
    """
    Edit a message.

    Raises:
        403: Not the author, or the edit window has passed
        404: Message not found
    """
    message = unwrap(store.edit_message(caller, message_id, request.content))
    return _to_response(store, message)


@router.delete("/{message_id}", response_model=ToggleResponse)
async def delete_message(
    message_id: int,
    caller: str = Depends(get_caller),
    store: ChatStore = Depends(get_chat_store),
):
    """Soft-delete a message (author or moderator)."""
    return ToggleResponse(changed=unwrap(store.delete_message(caller, message_id)))


@router.post("/{message_id}/pin", response_model=ToggleResponse)
async def pin_message(
    message_id: int,
    caller: str = Depends(get_caller),
    store: ChatStore = Depends(get_chat_store),
):
    return ToggleResponse(changed=unwrap(store.pin_message(caller, message_id)))


@router.delete("/{message_id}/pin", response_model=ToggleResponse)
async def unpin_message(
    message_id: int,
    caller: str = Depends(get_caller),
    store: ChatStore = Depends(get_chat_store),
):
    return ToggleResponse(changed=unwrap(store.unpin_message(caller, message_id)))


@router.post("/{message_id}/reactions", response_model=ReactionToggleResponse)
async def toggle_reaction(
    message_id: int,
    request: ReactionRequest,
    caller: str = Depends(get_caller),
    store: ChatStore = Depends(get_chat_store),
):
    """
    Toggle the caller's reaction.

    Returns:
        added=True if the reaction was added, False if it was removed
    """
    return ReactionToggleResponse(added=unwrap(store.toggle_reaction(caller, message_id, request.emoji)))
