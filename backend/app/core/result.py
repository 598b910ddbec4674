"""
Result type for chat store operations.

Expected business-rule failures (bad input, missing permissions, rate
limits) are returned as values instead of raised, so every caller has to
look at the error before using the payload.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ChatError(Enum):
    """Error taxonomy shared by every store operation."""
    UNAUTHORIZED = "unauthorized"          # Authenticated but not permitted
    NOT_FOUND = "not_found"
    INVALID_INPUT = "invalid_input"
    RATE_LIMITED = "rate_limited"
    BANNED = "banned"
    NO_PERMISSION = "no_permission"        # Room/feature-level, not role-level
    ALREADY_EXISTS = "already_exists"
    MESSAGE_TOO_LONG = "message_too_long"


@dataclass
class Result(Generic[T]):
    """Success value or a ChatError with a human readable message."""
    ok: bool
    value: Optional[T] = None
    error: Optional[ChatError] = None
    message: str = ""

    @classmethod
    def success(cls, value: T = None) -> "Result[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: ChatError, message: str = "") -> "Result[T]":
        return cls(ok=False, error=error, message=message or error.value)

    def __bool__(self) -> bool:
        return self.ok


class SnapshotError(Exception):
    """Raised when a persisted snapshot cannot be rebuilt into a store."""
