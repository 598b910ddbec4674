"""
Chat store for users, messages and moderation state.

This module owns all chat state in memory: the user registry with its
username index, messages with their room index, reactions, pins, locked
rooms, the moderation audit log and the per-identity rate limiter. Every
public method runs under one store-wide lock, and every mutating method
returns a Result instead of raising for business-rule failures.
"""

import bisect
import functools
import logging
import threading
import time
from collections import deque
from dataclasses import asdict
from typing import Any, Callable, Deque, Dict, Iterator, List, Optional, Set, Tuple

from app.config import Settings, get_settings
from app.core.chat import (
    Attachment,
    AuditEntry,
    CleanupReport,
    Message,
    ProfileUpdate,
    Reaction,
    Role,
    RoomStatistics,
    User,
    UserStatus,
)
from app.core.rate_limiter import RateLimiter
from app.core.result import ChatError, Result, SnapshotError
from app.core.validation import (
    validate_attachments,
    validate_bio,
    validate_content,
    validate_display_name,
    validate_emoji,
    validate_room_id,
    validate_username,
)

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


def synchronized(method):
    """Run a store method while holding the store lock."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)
    return wrapper


class ChatStore:
    """
    Single authority over all chat state.

    Callers are identified by an opaque identity string supplied by the
    transport layer. Operations run to completion one at a time; snapshots
    taken with serialize() are consistent because they hold the same lock.
    """

    def __init__(self, settings: Optional[Settings] = None, clock: Callable[[], float] = time.time):
        """
        Initialize an empty store.

        Args:
            settings: Limits and windows (uses global settings if None)
            clock: Returns the current time in seconds
        """
        self.settings = settings or get_settings()
        self.config = self.settings.chat
        self._clock = clock
        self._lock = threading.RLock()

        self._users: Dict[str, User] = {}
        self._usernames: Dict[str, str] = {}  # lowercased username -> identity
        self._messages: Dict[int, Message] = {}  # insertion order == id order
        self._rooms: Dict[str, List[int]] = {}  # room_id -> ascending message ids
        self._locked_rooms: Set[str] = set()
        self._audit: Deque[AuditEntry] = deque(maxlen=self.config.MAX_AUDIT_ENTRIES)
        self._rate_limiter = RateLimiter(self.settings.rate_limit)
        self._next_message_id = 0
        self._sends_since_cleanup = 0

    def now(self) -> float:
        """Current time from the store clock."""
        return self._clock()

    # ===== Internal helpers =====

    def _reject(self, error: ChatError, message: str) -> Result:
        logger.debug(f"Rejected: {error.value}: {message}")
        return Result.failure(error, message)

    def _active_user(self, caller: str, now: float) -> Tuple[Optional[User], Optional[Result]]:
        """Resolve a registered, non-banned caller or return the failure."""
        user = self._users.get(caller)
        if user is None:
            return None, self._reject(ChatError.NOT_FOUND, f"User {caller} is not registered")

        if user.banned and not user.is_banned(now):
            # Temporary ban ran out
            user.banned = False
            user.banned_until = None
            logger.info(f"Ban on {caller} expired")

        if user.banned:
            return None, self._reject(ChatError.BANNED, f"User {caller} is banned")

        return user, None

    def _require_role(self, caller: str, now: float, minimum: Role) -> Tuple[Optional[User], Optional[Result]]:
        user, failure = self._active_user(caller, now)
        if failure:
            return None, failure
        if user.role.rank < minimum.rank:
            return None, self._reject(
                ChatError.UNAUTHORIZED,
                f"User {caller} ({user.role.value}) needs role {minimum.value} or higher",
            )
        return user, None

    def _live_message(self, message_id: int) -> Optional[Message]:
        message = self._messages.get(message_id)
        if message is None or message.deleted:
            return None
        return message

    def _record_audit(self, actor: str, action: str, target: Optional[str] = None, detail: str = "") -> None:
        self._audit.append(AuditEntry(
            timestamp=self.now(),
            actor=actor,
            action=action,
            target=target,
            detail=detail,
        ))

    def _content_failure(self, content: str) -> Optional[Result]:
        valid, error = validate_content(content, self.config)
        if valid:
            return None
        if len(content) > self.config.MAX_MESSAGE_LENGTH:
            return self._reject(ChatError.MESSAGE_TOO_LONG, error)
        return self._reject(ChatError.INVALID_INPUT, error)

    def _is_online(self, user: User, now: float) -> bool:
        if user.status == UserStatus.OFFLINE:
            return False
        return now - user.last_seen <= self.config.ONLINE_WINDOW_SECONDS

    def _ordered_ids(self, room_id: Optional[str]) -> List[int]:
        """Ascending message ids for one room, or for all rooms."""
        if room_id is None:
            return list(self._messages)
        return self._rooms.get(room_id, [])

    def _iter_live(self, room_id: Optional[str] = None, newest_first: bool = False) -> Iterator[Message]:
        ids = self._ordered_ids(room_id)
        if newest_first:
            ids = reversed(ids)
        for message_id in ids:
            message = self._messages[message_id]
            if not message.deleted:
                yield message

    def _page_limit(self, limit: Optional[int], default: int, maximum: int) -> int:
        if limit is None:
            return default
        return max(0, min(limit, maximum))

    # ===== User registry =====

    @synchronized
    def register_user(
        self,
        caller: str,
        display_name: str,
        username: Optional[str] = None,
        bio: Optional[str] = None,
    ) -> Result[User]:
        """
        Register the caller.

        The first user ever registered in an empty registry becomes the Owner;
        everyone else starts as a regular User.

        Args:
            caller: Identity supplied by the transport layer
            display_name: 1-50 characters, no '@' or '/'
            username: Optional unique handle (3-30 letters, digits, underscores)
            bio: Optional profile text

        Returns:
            Result with the new User
        """
        now = self.now()
        if caller in self._users:
            return self._reject(ChatError.ALREADY_EXISTS, f"Identity {caller} is already registered")

        display_name = (display_name or "").strip()
        valid, error = validate_display_name(display_name, self.config)
        if not valid:
            return self._reject(ChatError.INVALID_INPUT, error)

        if username is not None:
            username = username.strip() or None
        if username is not None:
            valid, error = validate_username(username, self.config)
            if not valid:
                return self._reject(ChatError.INVALID_INPUT, error)
            if username.lower() in self._usernames:
                return self._reject(ChatError.ALREADY_EXISTS, f"Username {username} is taken")

        bio = (bio or "").strip()
        valid, error = validate_bio(bio, self.config)
        if not valid:
            return self._reject(ChatError.INVALID_INPUT, error)

        role = Role.OWNER if not self._users else Role.USER
        user = User(
            identity=caller,
            display_name=display_name,
            username=username,
            bio=bio,
            role=role,
            joined=now,
            last_seen=now,
        )
        self._users[caller] = user
        if username is not None:
            self._usernames[username.lower()] = caller

        logger.info(f"Registered user {caller} as '{display_name}' (role: {role.value})")
        return Result.success(user)

    @synchronized
    def update_profile(self, caller: str, update: ProfileUpdate) -> Result[User]:
        """
        Apply a partial profile update to the caller's own record.

        All fields are validated before anything changes; the username index
        is updated together with the user record.
        """
        now = self.now()
        user, failure = self._active_user(caller, now)
        if failure:
            return failure

        display_name = user.display_name
        if update.display_name is not None:
            display_name = update.display_name.strip()
            valid, error = validate_display_name(display_name, self.config)
            if not valid:
                return self._reject(ChatError.INVALID_INPUT, error)

        username = user.username
        if update.username is not None:
            username = update.username.strip() or None
            if username is not None:
                valid, error = validate_username(username, self.config)
                if not valid:
                    return self._reject(ChatError.INVALID_INPUT, error)
                holder = self._usernames.get(username.lower())
                if holder is not None and holder != caller:
                    return self._reject(ChatError.ALREADY_EXISTS, f"Username {username} is taken")

        bio = user.bio
        if update.bio is not None:
            bio = update.bio.strip()
            valid, error = validate_bio(bio, self.config)
            if not valid:
                return self._reject(ChatError.INVALID_INPUT, error)

        old_key = user.username.lower() if user.username else None
        new_key = username.lower() if username else None
        if old_key != new_key:
            if old_key is not None:
                self._usernames.pop(old_key, None)
            if new_key is not None:
                self._usernames[new_key] = caller

        user.display_name = display_name
        user.username = username
        user.bio = bio
        if update.status is not None:
            user.status = update.status
        user.last_seen = now

        logger.info(f"Updated profile of {caller}")
        return Result.success(user)

    @synchronized
    def heartbeat(self, caller: str, status: Optional[UserStatus] = None) -> Result[User]:
        """Refresh the caller's last_seen (called by polling clients)."""
        user = self._users.get(caller)
        if user is None:
            return self._reject(ChatError.NOT_FOUND, f"User {caller} is not registered")
        user.last_seen = self.now()
        if status is not None:
            user.status = status
        return Result.success(user)

    @synchronized
    def delete_account(self, caller: str) -> Result[bool]:
        """
        Remove the caller's own user record.

        Messages stay and keep pointing at the removed identity. Banned users
        cannot delete themselves, and the Owner must hand over ownership
        first while anyone else is registered. Rate-limit state stays with
        the identity until maintenance ages it out.
        """
        now = self.now()
        user, failure = self._active_user(caller, now)
        if failure:
            return failure

        if user.role == Role.OWNER and len(self._users) > 1:
            return self._reject(ChatError.NO_PERMISSION, "Transfer ownership before deleting the owner account")

        del self._users[caller]
        if user.username:
            self._usernames.pop(user.username.lower(), None)

        logger.info(f"User {caller} deleted their account")
        return Result.success(True)

    @synchronized
    def get_user(self, identity: str) -> Optional[User]:
        return self._users.get(identity)

    @synchronized
    def get_user_by_username(self, username: str) -> Optional[User]:
        identity = self._usernames.get(username.strip().lower())
        if identity is None:
            return None
        return self._users.get(identity)

    @synchronized
    def who_am_i(self, caller: str) -> Optional[User]:
        """Resolve the caller identity to its User record."""
        return self._users.get(caller)

    @synchronized
    def get_user_role(self, identity: str) -> Optional[Role]:
        user = self._users.get(identity)
        return user.role if user else None

    @synchronized
    def get_users(self, online_only: bool = False, role: Optional[Role] = None) -> List[User]:
        """
        List users in registration order.

        Args:
            online_only: Only users not offline and seen within the online window
            role: Only users with exactly this role
        """
        now = self.now()
        users = list(self._users.values())
        if role is not None:
            users = [u for u in users if u.role == role]
        if online_only:
            users = [u for u in users if self._is_online(u, now)]
        return users

    @synchronized
    def search_users(self, query: str, limit: Optional[int] = None, offset: int = 0) -> List[User]:
        """
        Case-insensitive substring search over display names and usernames.

        Results keep registration order. A blank query returns nothing.
        """
        needle = (query or "").strip().casefold()
        if not needle:
            return []

        matches = [
            user for user in self._users.values()
            if needle in user.display_name.casefold()
            or (user.username is not None and needle in user.username.casefold())
        ]
        limit = self._page_limit(limit, self.config.DEFAULT_SEARCH_LIMIT, self.config.MAX_PAGE_SIZE)
        offset = max(0, offset)
        return matches[offset:offset + limit]

    # ===== Roles and bans =====

    @synchronized
    def add_moderator(self, caller: str, target: str) -> Result[bool]:
        """
        Promote a regular user to Moderator (Admin/Owner only).

        Returns:
            Result with True if the role changed, False if already a moderator
        """
        now = self.now()
        actor, failure = self._require_role(caller, now, Role.ADMIN)
        if failure:
            return failure

        target_user = self._users.get(target)
        if target_user is None:
            return self._reject(ChatError.NOT_FOUND, f"User {target} not found")

        if target_user.role == Role.MODERATOR:
            return Result.success(False)

        if target_user.role != Role.USER:
            return self._reject(ChatError.INVALID_INPUT, f"User {target} is already {target_user.role.value}")

        if target_user.is_banned(now):
            return self._reject(ChatError.INVALID_INPUT, f"User {target} is banned")

        target_user.role = Role.MODERATOR
        self._record_audit(caller, "add_moderator", target)
        logger.info(f"{caller} promoted {target} to moderator")
        return Result.success(True)

    @synchronized
    def remove_moderator(self, caller: str, target: str) -> Result[bool]:
        """Demote a Moderator back to User (Admin/Owner only)."""
        now = self.now()
        actor, failure = self._require_role(caller, now, Role.ADMIN)
        if failure:
            return failure

        target_user = self._users.get(target)
        if target_user is None:
            return self._reject(ChatError.NOT_FOUND, f"User {target} not found")

        if target_user.role == Role.USER:
            return Result.success(False)

        if target_user.role != Role.MODERATOR:
            return self._reject(ChatError.INVALID_INPUT, f"User {target} is {target_user.role.value}, not a moderator")

        target_user.role = Role.USER
        self._record_audit(caller, "remove_moderator", target)
        logger.info(f"{caller} demoted {target} to user")
        return Result.success(True)

    @synchronized
    def transfer_admin(self, caller: str, target: str) -> Result[bool]:
        """
        Hand the caller's Admin or Owner role to another user.

        The target receives the caller's role and the caller becomes a plain
        User. Everything is checked before either record changes.
        """
        now = self.now()
        actor, failure = self._require_role(caller, now, Role.ADMIN)
        if failure:
            return failure

        if target == caller:
            return self._reject(ChatError.INVALID_INPUT, "Cannot transfer a role to yourself")

        target_user = self._users.get(target)
        if target_user is None:
            return self._reject(ChatError.NOT_FOUND, f"User {target} not found")

        if target_user.is_banned(now):
            return self._reject(ChatError.INVALID_INPUT, f"User {target} is banned")

        if not actor.role.outranks(target_user.role):
            return self._reject(
                ChatError.UNAUTHORIZED,
                f"{actor.role.value} cannot transfer to a {target_user.role.value}",
            )

        role = actor.role
        target_user.role = role
        actor.role = Role.USER
        self._record_audit(caller, "transfer_admin", target, detail=role.value)
        logger.info(f"{caller} transferred {role.value} role to {target}")
        return Result.success(True)

    @synchronized
    def ban_user(self, caller: str, target: str, duration_seconds: Optional[float] = None, reason: str = "") -> Result[bool]:
        """
        Ban a user, permanently or for a duration.

        Moderators and above may ban, but only users of strictly lower rank.

        Args:
            caller: Acting moderator
            target: Identity to ban
            duration_seconds: Ban length (None = permanent)
            reason: Free text stored in the audit log
        """
        now = self.now()
        actor, failure = self._require_role(caller, now, Role.MODERATOR)
        if failure:
            return failure

        if target == caller:
            return self._reject(ChatError.INVALID_INPUT, "Cannot ban yourself")

        target_user = self._users.get(target)
        if target_user is None:
            return self._reject(ChatError.NOT_FOUND, f"User {target} not found")

        if not actor.role.outranks(target_user.role):
            return self._reject(
                ChatError.UNAUTHORIZED,
                f"{actor.role.value} cannot ban a {target_user.role.value}",
            )

        if duration_seconds is not None and duration_seconds <= 0:
            return self._reject(ChatError.INVALID_INPUT, "Ban duration must be positive")

        target_user.banned = True
        target_user.banned_until = now + duration_seconds if duration_seconds is not None else None
        self._record_audit(caller, "ban_user", target, detail=reason)
        logger.info(f"{caller} banned {target} (until: {target_user.banned_until or 'permanent'})")
        return Result.success(True)

    @synchronized
    def unban_user(self, caller: str, target: str) -> Result[bool]:
        """Lift a ban; same rank rule as ban_user."""
        now = self.now()
        actor, failure = self._require_role(caller, now, Role.MODERATOR)
        if failure:
            return failure

        target_user = self._users.get(target)
        if target_user is None:
            return self._reject(ChatError.NOT_FOUND, f"User {target} not found")

        if not actor.role.outranks(target_user.role):
            return self._reject(
                ChatError.UNAUTHORIZED,
                f"{actor.role.value} cannot unban a {target_user.role.value}",
            )

        if not target_user.banned:
            return Result.success(False)

        target_user.banned = False
        target_user.banned_until = None
        self._record_audit(caller, "unban_user", target)
        logger.info(f"{caller} unbanned {target}")
        return Result.success(True)

    # ===== Messages =====

    @synchronized
    def send_message(
        self,
        caller: str,
        content: str,
        reply_to: Optional[int] = None,
        room_id: Optional[str] = None,
        attachments: Optional[List[Attachment]] = None,
    ) -> Result[int]:
        """
        Post a message.

        The rate limiter is consulted last, after every other check passed,
        and the message is stored in the same locked call, so a counted send
        always produces a message and a rejected one never counts.

        Args:
            caller: Sender identity
            content: Message text (1-5000 characters)
            reply_to: Id of the message being answered (may no longer exist)
            room_id: Target room (default room if None)
            attachments: Attachment metadata

        Returns:
            Result with the new message id
        """
        now = self.now()
        user, failure = self._active_user(caller, now)
        if failure:
            return failure

        content = content or ""
        failure = self._content_failure(content)
        if failure:
            return failure

        room_id = room_id or self.config.DEFAULT_ROOM_ID
        valid, error = validate_room_id(room_id, self.config)
        if not valid:
            return self._reject(ChatError.INVALID_INPUT, error)

        attachments = list(attachments or [])
        valid, error = validate_attachments(attachments, self.config)
        if not valid:
            return self._reject(ChatError.INVALID_INPUT, error)

        if reply_to is not None and not 0 <= reply_to < self._next_message_id:
            return self._reject(ChatError.INVALID_INPUT, f"Cannot reply to message {reply_to}")

        if room_id in self._locked_rooms and not user.role.is_moderator():
            return self._reject(ChatError.NO_PERMISSION, f"Room {room_id} is locked")

        if not self._rate_limiter.try_acquire(caller, now):
            return self._reject(ChatError.RATE_LIMITED, "Sending too fast, try again later")

        message_id = self._next_message_id
        self._next_message_id += 1
        self._messages[message_id] = Message(
            id=message_id,
            sender=caller,
            content=content,
            timestamp=now,
            room_id=room_id,
            reply_to=reply_to,
            attachments=attachments,
        )
        self._rooms.setdefault(room_id, []).append(message_id)
        user.message_count += 1
        user.last_seen = now
        logger.debug(f"Message {message_id} from {caller} in {room_id}")

        self._sends_since_cleanup += 1
        if self._sends_since_cleanup >= self.settings.retention.CLEANUP_EVERY_N_MESSAGES:
            self._sends_since_cleanup = 0
            self._run_maintenance(now)

        return Result.success(message_id)

    @synchronized
    def edit_message(self, caller: str, message_id: int, new_content: str) -> Result[Message]:
        """
        Replace a message's content.

        The author may edit within the edit window counted from creation;
        Moderators, Admins and the Owner may edit any message at any time.
        The creation timestamp never changes.
        """
        now = self.now()
        user, failure = self._active_user(caller, now)
        if failure:
            return failure

        message = self._live_message(message_id)
        if message is None:
            return self._reject(ChatError.NOT_FOUND, f"Message {message_id} not found")

        is_author = message.sender == caller
        if not user.role.is_moderator():
            if not is_author:
                return self._reject(ChatError.UNAUTHORIZED, f"Cannot edit message {message_id} of another user")
            if now - message.timestamp > self.config.EDIT_WINDOW_SECONDS:
                return self._reject(ChatError.UNAUTHORIZED, f"Edit window for message {message_id} has expired")

        new_content = new_content or ""
        failure = self._content_failure(new_content)
        if failure:
            return failure

        message.content = new_content
        message.edited = True
        message.edited_at = now
        if not is_author:
            self._record_audit(caller, "edit_message", message.sender, detail=f"message {message_id}")
        return Result.success(message)

    @synchronized
    def soft_delete_message(self, caller: str, message_id: int) -> Result[bool]:
        """
        Mark a message deleted (author or moderator+).

        The message stays addressable by id for threads and audit but
        disappears from every listing, search and count.
        """
        now = self.now()
        user, failure = self._active_user(caller, now)
        if failure:
            return failure

        message = self._live_message(message_id)
        if message is None:
            return self._reject(ChatError.NOT_FOUND, f"Message {message_id} not found")

        is_author = message.sender == caller
        if not is_author and not user.role.is_moderator():
            return self._reject(ChatError.UNAUTHORIZED, f"Cannot delete message {message_id} of another user")

        message.deleted = True
        if not is_author:
            self._record_audit(caller, "delete_message", message.sender, detail=f"message {message_id}")
        logger.info(f"Message {message_id} deleted by {caller}")
        return Result.success(True)

    def delete_message(self, caller: str, message_id: int) -> Result[bool]:
        """Delete a message; deletion is always soft."""
        return self.soft_delete_message(caller, message_id)

    @synchronized
    def pin_message(self, caller: str, message_id: int) -> Result[bool]:
        """
        Pin a message (moderator+).

        Several messages per room may be pinned at once. Pinning beyond
        MAX_PINNED_MESSAGES unpins the oldest pin in that room.

        Returns:
            Result with True if newly pinned, False if it was already pinned
        """
        now = self.now()
        actor, failure = self._require_role(caller, now, Role.MODERATOR)
        if failure:
            return failure

        message = self._live_message(message_id)
        if message is None:
            return self._reject(ChatError.NOT_FOUND, f"Message {message_id} not found")

        if message.pinned:
            return Result.success(False)

        pinned = sorted(
            (m for m in self._iter_live(message.room_id) if m.pinned),
            key=lambda m: (m.pinned_at, m.id),
        )
        while len(pinned) >= self.config.MAX_PINNED_MESSAGES:
            oldest = pinned.pop(0)
            oldest.pinned = False
            oldest.pinned_at = None
            logger.info(f"Unpinned message {oldest.id} to make room for {message_id}")

        message.pinned = True
        message.pinned_at = now
        self._record_audit(caller, "pin_message", message.sender, detail=f"message {message_id}")
        logger.info(f"Message {message_id} pinned by {caller}")
        return Result.success(True)

    @synchronized
    def unpin_message(self, caller: str, message_id: int) -> Result[bool]:
        now = self.now()
        actor, failure = self._require_role(caller, now, Role.MODERATOR)
        if failure:
            return failure

        message = self._messages.get(message_id)
        if message is None:
            return self._reject(ChatError.NOT_FOUND, f"Message {message_id} not found")

        if not message.pinned:
            return Result.success(False)

        message.pinned = False
        message.pinned_at = None
        self._record_audit(caller, "unpin_message", message.sender, detail=f"message {message_id}")
        return Result.success(True)

    @synchronized
    def get_pinned_messages(self, room_id: Optional[str] = None) -> List[Message]:
        """Live pinned messages, oldest pin first."""
        return sorted(
            (m for m in self._iter_live(room_id) if m.pinned),
            key=lambda m: (m.pinned_at, m.id),
        )

    @synchronized
    def toggle_reaction(self, caller: str, message_id: int, emoji: str) -> Result[bool]:
        """
        Add the caller's reaction, or remove it if already present.

        Returns:
            Result with True if the reaction was added, False if removed
        """
        now = self.now()
        user, failure = self._active_user(caller, now)
        if failure:
            return failure

        message = self._live_message(message_id)
        if message is None:
            return self._reject(ChatError.NOT_FOUND, f"Message {message_id} not found")

        valid, error = validate_emoji(emoji, self.config)
        if not valid:
            return self._reject(ChatError.INVALID_INPUT, error)

        existing = message.find_reaction(caller, emoji)
        if existing is not None:
            message.reactions.remove(existing)
            return Result.success(False)

        if len(message.reactions) >= self.config.MAX_REACTIONS_PER_MESSAGE:
            return self._reject(ChatError.INVALID_INPUT, f"Message {message_id} has too many reactions")

        message.reactions.append(Reaction(reactor=caller, emoji=emoji, timestamp=now))
        return Result.success(True)

    # ===== Reads =====

    @synchronized
    def get_message_by_id(self, caller: str, message_id: int) -> Result[Message]:
        """
        Look up one message.

        Deleted messages are only visible to moderators and above.
        """
        message = self._messages.get(message_id)
        if message is None:
            return self._reject(ChatError.NOT_FOUND, f"Message {message_id} not found")

        if message.deleted:
            viewer = self._users.get(caller)
            if viewer is None or not viewer.role.is_moderator():
                return self._reject(ChatError.NOT_FOUND, f"Message {message_id} not found")

        return Result.success(message)

    @synchronized
    def get_thread(self, root_id: int) -> List[Message]:
        """Root message (if still live) followed by its live replies in send order."""
        thread = []
        root = self._live_message(root_id)
        if root is not None:
            thread.append(root)
        thread.extend(m for m in self._iter_live() if m.reply_to == root_id)
        return thread

    @synchronized
    def get_messages(
        self,
        room_id: Optional[str] = None,
        limit: Optional[int] = None,
        before: Optional[int] = None,
    ) -> List[Message]:
        """
        Newest-first page of live messages.

        Args:
            room_id: Restrict to one room (None = all rooms)
            limit: Page size, capped at DEFAULT_PAGE_SIZE
            before: Only messages with an id smaller than this cursor

        Returns:
            Messages in strictly decreasing id order
        """
        limit = self._page_limit(limit, self.config.DEFAULT_PAGE_SIZE, self.config.DEFAULT_PAGE_SIZE)
        ids = self._ordered_ids(room_id)
        if before is not None:
            ids = ids[:bisect.bisect_left(ids, before)]

        page = []
        for message_id in reversed(ids):
            if len(page) >= limit:
                break
            message = self._messages[message_id]
            if not message.deleted:
                page.append(message)
        return page

    @synchronized
    def get_messages_page(self, page: int = 0, page_size: Optional[int] = None, room_id: Optional[str] = None) -> List[Message]:
        """Zero-based page over live messages, newest first."""
        page_size = self._page_limit(page_size, self.config.DEFAULT_PAGE_SIZE, self.config.MAX_PAGE_SIZE)
        if page_size == 0 or page < 0:
            return []
        live = list(self._iter_live(room_id, newest_first=True))
        start = page * page_size
        return live[start:start + page_size]

    @synchronized
    def get_messages_since(
        self,
        timestamp: float,
        room_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Message]:
        """
        Live messages created strictly after `timestamp`, oldest first.

        At most `limit` messages (capped at MAX_PAGE_SIZE) are returned;
        clients continue from the last id with get_messages_after. Messages
        are stored in send order, so the scan walks back from the newest
        one and stops at the first message at or before `timestamp`.
        """
        limit = self._page_limit(limit, self.config.DEFAULT_PAGE_SIZE, self.config.MAX_PAGE_SIZE)
        ids = self._ordered_ids(room_id)
        newer = []
        for message_id in reversed(ids):
            message = self._messages[message_id]
            if message.timestamp <= timestamp:
                break
            if not message.deleted:
                newer.append(message)
        newer.reverse()
        return newer[:limit]

    @synchronized
    def get_messages_after(self, after_id: int, room_id: Optional[str] = None, limit: Optional[int] = None) -> List[Message]:
        """Live messages with an id greater than `after_id`, oldest first."""
        limit = self._page_limit(limit, self.config.DEFAULT_PAGE_SIZE, self.config.MAX_PAGE_SIZE)
        ids = self._ordered_ids(room_id)
        result = []
        for message_id in ids[bisect.bisect_right(ids, after_id):]:
            if len(result) >= limit:
                break
            message = self._messages[message_id]
            if not message.deleted:
                result.append(message)
        return result

    @synchronized
    def search_messages(
        self,
        keyword: str,
        limit: Optional[int] = None,
        offset: int = 0,
        room_id: Optional[str] = None,
    ) -> List[Message]:
        """
        Case-insensitive substring search over live messages, newest first.

        A blank keyword returns nothing rather than every message.
        """
        needle = (keyword or "").strip().casefold()
        if not needle:
            return []

        limit = self._page_limit(limit, self.config.DEFAULT_SEARCH_LIMIT, self.config.MAX_PAGE_SIZE)
        offset = max(0, offset)
        matches = [m for m in self._iter_live(room_id, newest_first=True) if needle in m.content.casefold()]
        return matches[offset:offset + limit]

    @synchronized
    def message_count(self, room_id: Optional[str] = None) -> int:
        return sum(1 for _ in self._iter_live(room_id))

    @synchronized
    def user_message_count(self, identity: str) -> int:
        """Live messages sent by `identity` (works for removed users too)."""
        return sum(1 for m in self._iter_live() if m.sender == identity)

    @synchronized
    def get_room_statistics(self, room_id: Optional[str] = None, top_n: Optional[int] = None) -> RoomStatistics:
        """
        Totals for a room (or all rooms).

        Top posters are ordered by message count descending, then identity
        ascending so ties are deterministic.
        """
        top_n = self.config.TOP_POSTERS if top_n is None else max(0, top_n)
        today = self._rate_limiter.day_bucket(self.now())

        counts: Dict[str, int] = {}
        total = 0
        messages_today = 0
        for message in self._iter_live(room_id):
            total += 1
            counts[message.sender] = counts.get(message.sender, 0) + 1
            if message.timestamp >= today:
                messages_today += 1

        top_posters = sorted(counts.items(), key=lambda item: (-item[1], item[0]))[:top_n]
        return RoomStatistics(
            room_id=room_id,
            total_messages=total,
            active_users=len(counts),
            messages_today=messages_today,
            top_posters=top_posters,
        )

    @synchronized
    def get_rooms(self) -> List[str]:
        """Rooms that hold messages or are locked, sorted."""
        return sorted(set(self._rooms) | self._locked_rooms)

    @synchronized
    def is_room_locked(self, room_id: str) -> bool:
        return room_id in self._locked_rooms

    # ===== Moderation and admin utilities =====

    @synchronized
    def lock_room(self, caller: str, room_id: str) -> Result[bool]:
        """Only moderators and above may post in a locked room."""
        return self._set_room_lock(caller, room_id, locked=True)

    @synchronized
    def unlock_room(self, caller: str, room_id: str) -> Result[bool]:
        return self._set_room_lock(caller, room_id, locked=False)

    def _set_room_lock(self, caller: str, room_id: str, locked: bool) -> Result[bool]:
        now = self.now()
        actor, failure = self._require_role(caller, now, Role.MODERATOR)
        if failure:
            return failure

        valid, error = validate_room_id(room_id, self.config)
        if not valid:
            return self._reject(ChatError.INVALID_INPUT, error)

        if (room_id in self._locked_rooms) == locked:
            return Result.success(False)

        if locked:
            self._locked_rooms.add(room_id)
        else:
            self._locked_rooms.discard(room_id)
        action = "lock_room" if locked else "unlock_room"
        self._record_audit(caller, action, room_id)
        logger.info(f"{caller}: {action} {room_id}")
        return Result.success(True)

    @synchronized
    def get_audit_log(self, caller: str, limit: Optional[int] = None) -> Result[List[AuditEntry]]:
        """Most recent moderation actions first (moderator+)."""
        actor, failure = self._require_role(caller, self.now(), Role.MODERATOR)
        if failure:
            return failure
        limit = self._page_limit(limit, self.config.MAX_PAGE_SIZE, self.config.MAX_AUDIT_ENTRIES)
        return Result.success(list(reversed(self._audit))[:limit])

    @synchronized
    def clear_messages(self, caller: str) -> Result[int]:
        """
        Drop every message (Admin/Owner only).

        The id counter is kept so ids are never reused.

        Returns:
            Result with the number of messages removed
        """
        actor, failure = self._require_role(caller, self.now(), Role.ADMIN)
        if failure:
            return failure

        removed = len(self._messages)
        self._messages.clear()
        self._rooms.clear()
        self._record_audit(caller, "clear_messages", detail=f"{removed} messages")
        logger.warning(f"{caller} cleared {removed} messages")
        return Result.success(removed)

    @synchronized
    def clear_users(self, caller: str) -> Result[int]:
        """
        Remove every user the caller outranks (Admin/Owner only).

        The caller stays, and so do users of equal or higher rank: an Admin
        cannot remove the Owner or another Admin.

        Returns:
            Result with the number of users removed
        """
        actor, failure = self._require_role(caller, self.now(), Role.ADMIN)
        if failure:
            return failure

        kept = {
            identity: user for identity, user in self._users.items()
            if identity == caller or not actor.role.outranks(user.role)
        }
        removed = len(self._users) - len(kept)
        self._users = kept
        self._usernames = {
            user.username.lower(): identity
            for identity, user in kept.items() if user.username
        }
        self._rate_limiter.clear()
        self._record_audit(caller, "clear_users", detail=f"{removed} users")
        logger.warning(f"{caller} cleared {removed} users, kept {len(kept)}")
        return Result.success(removed)

    @synchronized
    def run_cleanup(self, caller: str) -> Result[CleanupReport]:
        """Run retention cleanup now (Admin/Owner only)."""
        now = self.now()
        actor, failure = self._require_role(caller, now, Role.ADMIN)
        if failure:
            return failure
        report = self._run_maintenance(now)
        self._record_audit(
            caller,
            "run_cleanup",
            detail=f"{report.messages_purged} messages, {report.rate_limits_purged} rate limits",
        )
        return Result.success(report)

    @synchronized
    def run_maintenance(self) -> CleanupReport:
        """Purge stale rate-limit entries and expired non-pinned messages."""
        return self._run_maintenance(self.now())

    def _run_maintenance(self, now: float) -> CleanupReport:
        report = CleanupReport()
        report.rate_limits_purged = self._rate_limiter.purge_stale(now)

        cutoff = now - self.settings.retention.RETENTION_SECONDS
        expired = {
            message_id for message_id, message in self._messages.items()
            if message.timestamp < cutoff and not message.pinned
        }
        if expired:
            for message_id in expired:
                del self._messages[message_id]
            for room_id in list(self._rooms):
                remaining = [i for i in self._rooms[room_id] if i not in expired]
                if remaining:
                    self._rooms[room_id] = remaining
                else:
                    del self._rooms[room_id]
        report.messages_purged = len(expired)

        if report.messages_purged or report.rate_limits_purged:
            logger.info(
                f"Cleanup purged {report.messages_purged} messages and "
                f"{report.rate_limits_purged} rate limit entries"
            )
        return report

    # ===== Snapshots =====

    @synchronized
    def serialize(self) -> Dict[str, Any]:
        """
        Flatten all state into JSON-compatible lists.

        Holds the store lock for the whole copy, so no mutation is in flight.
        """
        return {
            "version": SNAPSHOT_VERSION,
            "next_message_id": self._next_message_id,
            "users": [[identity, user.to_dict()] for identity, user in self._users.items()],
            "messages": [[message_id, message.to_dict()] for message_id, message in self._messages.items()],
            "rooms": [[room_id, list(ids)] for room_id, ids in self._rooms.items()],
            "rate_limits": self._rate_limiter.to_list(),
            "locked_rooms": sorted(self._locked_rooms),
            "audit_log": [asdict(entry) for entry in self._audit],
        }

    @synchronized
    def deserialize(self, snapshot: Dict[str, Any]) -> None:
        """
        Replace all state with the contents of a snapshot.

        Indexes are rebuilt from the records themselves. Nothing changes if
        the snapshot is malformed.

        Raises:
            SnapshotError: If the snapshot cannot be rebuilt
        """
        if not isinstance(snapshot, dict) or snapshot.get("version") != SNAPSHOT_VERSION:
            raise SnapshotError("Unsupported snapshot version")

        try:
            users: Dict[str, User] = {}
            usernames: Dict[str, str] = {}
            for identity, data in snapshot.get("users", []):
                user = User.from_dict(data)
                if user.identity != identity or identity in users:
                    raise SnapshotError(f"Inconsistent user entry for {identity}")
                if user.username:
                    key = user.username.lower()
                    if key in usernames:
                        raise SnapshotError(f"Duplicate username {user.username}")
                    usernames[key] = identity
                users[identity] = user

            messages: Dict[int, Message] = {}
            for message_id, data in sorted(snapshot.get("messages", []), key=lambda pair: pair[0]):
                message = Message.from_dict(data)
                if message.id != message_id or message_id in messages:
                    raise SnapshotError(f"Inconsistent message entry for {message_id}")
                messages[message_id] = message

            rooms: Dict[str, List[int]] = {}
            for message in messages.values():
                rooms.setdefault(message.room_id, []).append(message.id)
            saved_rooms = {room_id: sorted(ids) for room_id, ids in snapshot.get("rooms", [])}
            if saved_rooms != rooms:
                logger.warning("Room index in snapshot did not match messages, rebuilt from messages")

            next_message_id = int(snapshot.get("next_message_id", 0))
            if messages:
                next_message_id = max(next_message_id, max(messages) + 1)

            rate_limiter = RateLimiter(self.settings.rate_limit)
            rate_limiter.load_list(snapshot.get("rate_limits", []))

            audit: Deque[AuditEntry] = deque(
                (AuditEntry(**entry) for entry in snapshot.get("audit_log", [])),
                maxlen=self.config.MAX_AUDIT_ENTRIES,
            )
            locked_rooms = set(snapshot.get("locked_rooms", []))
        except SnapshotError:
            raise
        except (KeyError, TypeError, ValueError) as e:
            raise SnapshotError(f"Malformed snapshot: {e}") from e

        self._users = users
        self._usernames = usernames
        self._messages = messages
        self._rooms = rooms
        self._rate_limiter = rate_limiter
        self._audit = audit
        self._locked_rooms = locked_rooms
        self._next_message_id = next_message_id
        self._sends_since_cleanup = 0
        logger.info(f"Restored snapshot: {len(users)} users, {len(messages)} messages")

    @classmethod
    def from_snapshot(
        cls,
        snapshot: Dict[str, Any],
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.time,
    ) -> "ChatStore":
        store = cls(settings=settings, clock=clock)
        store.deserialize(snapshot)
        return store
