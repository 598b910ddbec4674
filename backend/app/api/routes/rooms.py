"""
Room endpoints: listing, statistics and locking.
"""

from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from app.api.dependencies import get_caller, get_chat_store
from app.api.responses import unwrap
from app.core.chat_store import ChatStore

router = APIRouter(prefix="/rooms", tags=["rooms"])


class RoomResponse(BaseModel):
    room_id: str
    locked: bool
    message_count: int


class RoomStatisticsResponse(BaseModel):
    room_id: Optional[str] = None
    total_messages: int
    active_users: int
    messages_today: int
    top_posters: List[Tuple[str, int]]


class LockResponse(BaseModel):
    changed: bool


@router.get("", response_model=List[RoomResponse])
async def list_rooms(store: ChatStore = Depends(get_chat_store)):
    return [
        RoomResponse(
            room_id=room_id,
            locked=store.is_room_locked(room_id),
            message_count=store.message_count(room_id=room_id),
        )
        for room_id in store.get_rooms()
    ]


@router.get("/statistics", response_model=RoomStatisticsResponse)
async def get_room_statistics(
    room_id: Optional[str] = Query(default=None, description="Room (all rooms if omitted)"),
    top_n: Optional[int] = Query(default=None, ge=0),
    store: ChatStore = Depends(get_chat_store),
):
    """
    Message totals, active users, today's count and top posters.

    Top posters are ordered by count, ties broken by identity.
    """
    stats = store.get_room_statistics(room_id=room_id, top_n=top_n)
    return RoomStatisticsResponse(
        room_id=stats.room_id,
        total_messages=stats.total_messages,
        active_users=stats.active_users,
        messages_today=stats.messages_today,
        top_posters=stats.top_posters,
    )


@router.post("/{room_id}/lock", response_model=LockResponse)
async def lock_room(
    room_id: str,
    caller: str = Depends(get_caller),
    store: ChatStore = Depends(get_chat_store),
):
    """Only moderators may post in a locked room."""
    return LockResponse(changed=unwrap(store.lock_room(caller, room_id)))


@router.delete("/{room_id}/lock", response_model=LockResponse)
async def unlock_room(
    room_id: str,
    caller: str = Depends(get_caller),
    store: ChatStore = Depends(get_chat_store),
):
    return LockResponse(changed=unwrap(store.unlock_room(caller, room_id)))
