"""
Per-identity send rate limiting.

Tracks the last accepted send and a daily message counter for every
identity. The state is an abuse-control cache: losing it only resets
the counters. The owning ChatStore calls into this class under its own
lock, so the check and the counter update are never interleaved with
another send.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from app.config import RateLimitConfig

logger = logging.getLogger(__name__)


@dataclass
class RateLimitState:
    """Send history for one identity."""
    last_send: float
    day_bucket_start: float
    day_count: int = 0


class RateLimiter:
    """
    Minimum-interval plus daily-cap limiter.

    An attempt is rejected if it comes less than MIN_INTERVAL_SECONDS after
    the previous accepted send, or if the identity already reached
    DAILY_MESSAGE_CAP in the current day bucket. Rejected attempts leave the
    state untouched.
    """

    def __init__(self, config: RateLimitConfig):
        self.config = config
        self._entries: Dict[str, RateLimitState] = {}

    def day_bucket(self, now: float) -> float:
        """Start of the day bucket containing `now`."""
        return now - (now % self.config.DAY_LENGTH_SECONDS)

    def get_state(self, identity: str) -> Optional[RateLimitState]:
        return self._entries.get(identity)

    def try_acquire(self, identity: str, now: float) -> bool:
        """
        Check the limits and record the send if allowed.

        Args:
            identity: Sender identity
            now: Current time in seconds

        Returns:
            True if the send is allowed (and has been counted), False otherwise
        """
        state = self._entries.get(identity)
        bucket = self.day_bucket(now)

        if state is None:
            self._entries[identity] = RateLimitState(last_send=now, day_bucket_start=bucket, day_count=1)
            return True

        if now - state.last_send < self.config.MIN_INTERVAL_SECONDS:
            logger.debug(f"Rate limited {identity}: {now - state.last_send:.3f}s since last send")
            return False

        if state.day_bucket_start == bucket:
            if state.day_count >= self.config.DAILY_MESSAGE_CAP:
                logger.debug(f"Rate limited {identity}: daily cap of {self.config.DAILY_MESSAGE_CAP} reached")
                return False
            state.day_count += 1
        else:
            state.day_bucket_start = bucket
            state.day_count = 1

        state.last_send = now
        return True

    def clear(self) -> None:
        self._entries.clear()

    def purge_stale(self, now: float) -> int:
        """
        Remove entries whose last send is older than the cleanup window.

        Returns:
            Number of entries removed
        """
        cutoff = now - self.config.CLEANUP_WINDOW_SECONDS
        stale = [identity for identity, state in self._entries.items() if state.last_send < cutoff]
        for identity in stale:
            del self._entries[identity]
        return len(stale)

    def to_list(self) -> List[List[Any]]:
        return [
            [identity, {
                "last_send": state.last_send,
                "day_bucket_start": state.day_bucket_start,
                "day_count": state.day_count,
            }]
            for identity, state in self._entries.items()
        ]

    def load_list(self, entries: List[List[Any]]) -> None:
        self._entries = {
            identity: RateLimitState(
                last_send=data["last_send"],
                day_bucket_start=data["day_bucket_start"],
                day_count=data.get("day_count", 0),
            )
            for identity, data in entries
        }
