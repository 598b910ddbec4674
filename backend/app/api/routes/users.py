"""
User API endpoints.

Provides registration, profile updates, presence and user lookup.
The acting user is always taken from the X-Caller-Identity header.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from app.api.dependencies import get_caller, get_chat_store
from app.api.responses import UserResponse, unwrap, user_to_response
from app.core.chat import ProfileUpdate, Role, UserStatus
from app.core.chat_store import ChatStore

router = APIRouter(prefix="/users", tags=["users"])


# Request/Response models
class RegisterUserRequest(BaseModel):
    """Request model for user registration."""
    display_name: str = Field(..., description="Display name (1-50 characters, no '@' or '/')")
    username: Optional[str] = Field(default=None, description="Optional unique username (3-30 characters)")
    bio: Optional[str] = Field(default=None, description="Optional profile text")


class UpdateProfileRequest(BaseModel):
    """Partial profile update; omitted fields keep their value."""
    display_name: Optional[str] = None
    username: Optional[str] = Field(default=None, description="Empty string removes the username")
    bio: Optional[str] = Field(default=None, description="Empty string clears the bio")
    status: Optional[UserStatus] = None


class HeartbeatRequest(BaseModel):
    status: Optional[UserStatus] = None


class UserRoleResponse(BaseModel):
    identity: str
    role: str


class MessageCountResponse(BaseModel):
    identity: str
    count: int


@router.post("/register", response_model=UserResponse, status_code=201)
async def register_user(
    request: RegisterUserRequest,
    caller: str = Depends(get_caller),
    store: ChatStore = Depends(get_chat_store),
):
    """
    Register the caller.

    The first user to register becomes the owner.

    Raises:
        400: Invalid display name, username or bio
        409: Identity or username already registered
    """
    user = unwrap(store.register_user(
        caller,
        display_name=request.display_name,
        username=request.username,
        bio=request.bio,
    ))
    return user_to_response(user, store.now())


@router.get("", response_model=List[UserResponse])
async def list_users(
    online_only: bool = Query(default=False, description="Only users seen recently and not offline"),
    role: Optional[Role] = Query(default=None, description="Filter by role"),
    store: ChatStore = Depends(get_chat_store),
):
    """List users in registration order."""
    return [user_to_response(u, store.now()) for u in store.get_users(online_only=online_only, role=role)]


@router.get("/search", response_model=List[UserResponse])
async def search_users(
    q: str = Query(..., description="Substring of display name or username"),
    limit: Optional[int] = Query(default=None, ge=0),
    offset: int = Query(default=0, ge=0),
    store: ChatStore = Depends(get_chat_store),
):
    return [user_to_response(u, store.now()) for u in store.search_users(q, limit=limit, offset=offset)]


@router.get("/me", response_model=UserResponse)
async def who_am_i(
    caller: str = Depends(get_caller),
    store: ChatStore = Depends(get_chat_store),
):
    """
    Resolve the caller to their user record.

    Raises:
        404: Caller is not registered
    """
    user = store.who_am_i(caller)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user_to_response(user, store.now())


@router.patch("/me", response_model=UserResponse)
async def update_profile(
    request: UpdateProfileRequest,
    caller: str = Depends(get_caller),
    store: ChatStore = Depends(get_chat_store),
):
    update = ProfileUpdate(
        display_name=request.display_name,
        username=request.username,
        bio=request.bio,
        status=request.status,
    )
    return user_to_response(unwrap(store.update_profile(caller, update)), store.now())


@router.post("/me/heartbeat", response_model=UserResponse)
async def heartbeat(
    request: HeartbeatRequest,
    caller: str = Depends(get_caller),
    store: ChatStore = Depends(get_chat_store),
):
    return user_to_response(unwrap(store.heartbeat(caller, status=request.status)), store.now())


@router.delete("/me", status_code=204)
async def delete_account(
    caller: str = Depends(get_caller),
    store: ChatStore = Depends(get_chat_store),
):
    """
    Delete the caller's account. Their messages remain.

    Raises:
        403: Banned, or owner with other users still registered
        404: Caller is not registered
    """
    unwrap(store.delete_account(caller))
    return None


@router.get("/{identity}", response_model=UserResponse)
async def get_user(identity: str, store: ChatStore = Depends(get_chat_store)):
    user = store.get_user(identity)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user_to_response(user, store.now())


@router.get("/{identity}/role", response_model=UserRoleResponse)
async def get_user_role(identity: str, store: ChatStore = Depends(get_chat_store)):
    role = store.get_user_role(identity)
    if role is None:
        raise HTTPException(status_code=404, detail="User not found")
    return UserRoleResponse(identity=identity, role=role.value)


@router.get("/{identity}/message-count", response_model=MessageCountResponse)
async def get_user_message_count(identity: str, store: ChatStore = Depends(get_chat_store)):
    """Live message count; also answers for identities that deleted their account."""
    return MessageCountResponse(identity=identity, count=store.user_message_count(identity))
