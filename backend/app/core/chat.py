"""
Chat data structures.

This module defines the records held by the chat store: users and their
roles, messages with reactions and attachment metadata, and the small
value objects returned by statistics and moderation operations.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Role(Enum):
    """User roles, lowest to highest."""
    USER = "user"
    MODERATOR = "moderator"
    ADMIN = "admin"
    OWNER = "owner"

    @property
    def rank(self) -> int:
        return _ROLE_RANKS[self]

    def outranks(self, other: "Role") -> bool:
        """Check if this role is strictly above another."""
        return self.rank > other.rank

    def is_moderator(self) -> bool:
        """Moderator, Admin and Owner may moderate content."""
        return self.rank >= Role.MODERATOR.rank


_ROLE_RANKS = {
    Role.USER: 0,
    Role.MODERATOR: 1,
    Role.ADMIN: 2,
    Role.OWNER: 3,
}


class UserStatus(Enum):
    """Presence status chosen by the user."""
    ONLINE = "online"
    AWAY = "away"
    OFFLINE = "offline"
    DO_NOT_DISTURB = "do_not_disturb"


@dataclass
class User:
    """A registered chat participant, keyed by identity."""
    identity: str  # Opaque caller identity from the transport layer
    display_name: str
    joined: float
    last_seen: float
    username: Optional[str] = None
    bio: str = ""
    role: Role = Role.USER
    banned: bool = False
    banned_until: Optional[float] = None  # None with banned=True = permanent
    message_count: int = 0  # Lifetime accepted sends
    status: UserStatus = UserStatus.ONLINE

    def is_banned(self, now: float) -> bool:
        """Check if ban is in effect at the given time."""
        if not self.banned:
            return False
        return self.banned_until is None or now < self.banned_until

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identity": self.identity,
            "display_name": self.display_name,
            "joined": self.joined,
            "last_seen": self.last_seen,
            "username": self.username,
            "bio": self.bio,
            "role": self.role.value,
            "banned": self.banned,
            "banned_until": self.banned_until,
            "message_count": self.message_count,
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(
            identity=data["identity"],
            display_name=data["display_name"],
            joined=data["joined"],
            last_seen=data["last_seen"],
            username=data.get("username"),
            bio=data.get("bio", ""),
            role=Role(data.get("role", Role.USER.value)),
            banned=data.get("banned", False),
            banned_until=data.get("banned_until"),
            message_count=data.get("message_count", 0),
            status=UserStatus(data.get("status", UserStatus.OFFLINE.value)),
        )


@dataclass
class Reaction:
    """A single emoji reaction; at most one per (reactor, emoji) on a message."""
    reactor: str
    emoji: str
    timestamp: float


@dataclass
class Attachment:
    """Attachment metadata only; file bytes live elsewhere."""
    filename: str
    content_type: str
    size_bytes: int


@dataclass
class Message:
    """
    A chat message.

    id and timestamp are assigned once by the store and never change.
    Deleted messages stay in storage for thread integrity and audit.
    """
    id: int
    sender: str
    content: str
    timestamp: float
    room_id: str
    reply_to: Optional[int] = None
    edited: bool = False
    edited_at: Optional[float] = None
    deleted: bool = False
    pinned: bool = False
    pinned_at: Optional[float] = None
    reactions: List[Reaction] = field(default_factory=list)
    attachments: List[Attachment] = field(default_factory=list)

    def find_reaction(self, reactor: str, emoji: str) -> Optional[Reaction]:
        for reaction in self.reactions:
            if reaction.reactor == reactor and reaction.emoji == emoji:
                return reaction
        return None

    def reaction_counts(self) -> Dict[str, int]:
        """Count reactions per emoji, in first-use order."""
        counts: Dict[str, int] = {}
        for reaction in self.reactions:
            counts[reaction.emoji] = counts.get(reaction.emoji, 0) + 1
        return counts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sender": self.sender,
            "content": self.content,
            "timestamp": self.timestamp,
            "room_id": self.room_id,
            "reply_to": self.reply_to,
            "edited": self.edited,
            "edited_at": self.edited_at,
            "deleted": self.deleted,
            "pinned": self.pinned,
            "pinned_at": self.pinned_at,
            "reactions": [
                {"reactor": r.reactor, "emoji": r.emoji, "timestamp": r.timestamp}
                for r in self.reactions
            ],
            "attachments": [
                {"filename": a.filename, "content_type": a.content_type, "size_bytes": a.size_bytes}
                for a in self.attachments
            ],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        return cls(
            id=int(data["id"]),
            sender=data["sender"],
            content=data["content"],
            timestamp=data["timestamp"],
            room_id=data["room_id"],
            reply_to=data.get("reply_to"),
            edited=data.get("edited", False),
            edited_at=data.get("edited_at"),
            deleted=data.get("deleted", False),
            pinned=data.get("pinned", False),
            pinned_at=data.get("pinned_at"),
            reactions=[Reaction(**r) for r in data.get("reactions", [])],
            attachments=[Attachment(**a) for a in data.get("attachments", [])],
        )


@dataclass
class ProfileUpdate:
    """
    Partial profile update.

    Fields left as None keep their current value. An empty string clears
    the optional username or bio.
    """
    display_name: Optional[str] = None
    username: Optional[str] = None
    bio: Optional[str] = None
    status: Optional[UserStatus] = None


@dataclass
class RoomStatistics:
    """Aggregate numbers for one room (or all rooms when room_id is None)."""
    room_id: Optional[str]
    total_messages: int
    active_users: int
    messages_today: int
    top_posters: List[Tuple[str, int]] = field(default_factory=list)


@dataclass
class AuditEntry:
    """One moderation or admin action."""
    timestamp: float
    actor: str
    action: str
    target: Optional[str] = None
    detail: str = ""


@dataclass
class CleanupReport:
    """What a maintenance pass removed."""
    messages_purged: int = 0
    rate_limits_purged: int = 0
