"""
Moderation and admin endpoints.

Provides role management, bans, destructive resets, retention cleanup
and the moderation audit log. Authorization is enforced by the store
based on the caller's role.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from app.api.dependencies import get_caller, get_chat_store
from app.api.responses import unwrap
from app.core.chat_store import ChatStore

router = APIRouter(prefix="/admin", tags=["admin"])


# ===== Pydantic Models =====

class BanRequest(BaseModel):
    """Request to ban a user."""
    duration_seconds: Optional[float] = Field(default=None, gt=0, description="Ban length (permanent if omitted)")
    reason: str = Field(default="", max_length=500)


class ChangedResponse(BaseModel):
    changed: bool


class RemovedResponse(BaseModel):
    removed: int


class CleanupResponse(BaseModel):
    messages_purged: int
    rate_limits_purged: int


class AuditEntryResponse(BaseModel):
    timestamp: float
    actor: str
    action: str
    target: Optional[str] = None
    detail: str = ""


# ===== Roles =====

@router.post("/moderators/{identity}", response_model=ChangedResponse)
async def add_moderator(
    identity: str,
    caller: str = Depends(get_caller),
    store: ChatStore = Depends(get_chat_store),
):
    return ChangedResponse(changed=unwrap(store.add_moderator(caller, identity)))


@router.delete("/moderators/{identity}", response_model=ChangedResponse)
async def remove_moderator(
    identity: str,
    caller: str = Depends(get_caller),
    store: ChatStore = Depends(get_chat_store),
):
    return ChangedResponse(changed=unwrap(store.remove_moderator(caller, identity)))


@router.post("/transfer/{identity}", response_model=ChangedResponse)
async def transfer_admin(
    identity: str,
    caller: str = Depends(get_caller),
    store: ChatStore = Depends(get_chat_store),
):
    """Give the caller's admin or owner role to another user; the caller becomes a user."""
    return ChangedResponse(changed=unwrap(store.transfer_admin(caller, identity)))


# ===== Bans =====

@router.post("/bans/{identity}", response_model=ChangedResponse)
async def ban_user(
    identity: str,
    request: BanRequest,
    caller: str = Depends(get_caller),
    store: ChatStore = Depends(get_chat_store),
):
    """
    Ban a user.

    Raises:
        403: Caller is not a moderator or does not outrank the target
        404: Target not found
    """
    changed = unwrap(store.ban_user(
        caller,
        identity,
        duration_seconds=request.duration_seconds,
        reason=request.reason,
    ))
    return ChangedResponse(changed=changed)


@router.delete("/bans/{identity}", response_model=ChangedResponse)
async def unban_user(
    identity: str,
    caller: str = Depends(get_caller),
    store: ChatStore = Depends(get_chat_store),
):
    return ChangedResponse(changed=unwrap(store.unban_user(caller, identity)))


# ===== Destructive resets and maintenance =====

@router.delete("/messages", response_model=RemovedResponse)
async def clear_messages(
    caller: str = Depends(get_caller),
    store: ChatStore = Depends(get_chat_store),
):
    """Remove every message (admin only). Message ids are not reused afterwards."""
    return RemovedResponse(removed=unwrap(store.clear_messages(caller)))


@router.delete("/users", response_model=RemovedResponse)
async def clear_users(
    caller: str = Depends(get_caller),
    store: ChatStore = Depends(get_chat_store),
):
    """Remove every user except the caller (admin only)."""
    return RemovedResponse(removed=unwrap(store.clear_users(caller)))


@router.post("/cleanup", response_model=CleanupResponse)
async def run_cleanup(
    caller: str = Depends(get_caller),
    store: ChatStore = Depends(get_chat_store),
):
    report = unwrap(store.run_cleanup(caller))
    return CleanupResponse(
        messages_purged=report.messages_purged,
        rate_limits_purged=report.rate_limits_purged,
    )


@router.get("/audit", response_model=List[AuditEntryResponse])
async def get_audit_log(
    limit: Optional[int] = Query(default=None, ge=0),
    caller: str = Depends(get_caller),
    store: ChatStore = Depends(get_chat_store),
):
    """Most recent moderation actions first (moderator only)."""
    entries = unwrap(store.get_audit_log(caller, limit=limit))
    return [
        AuditEntryResponse(
            timestamp=e.timestamp,
            actor=e.actor,
            action=e.action,
            target=e.target,
            detail=e.detail,
        )
        for e in entries
    ]
