"""
In-memory rate limiting for pairing code claims.

Claims are unauthenticated (the code is the credential), so attempts are
counted per client IP to keep brute force of the code space impractical.
Counts live in process memory and reset on restart.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from datetime import UTC, datetime, timedelta


def _now() -> datetime:
    return datetime.now(UTC)


class RateLimiter:
    """
    Sliding-window rate limiter.

    Tracks request timestamps per key (e.g. "claim:<ip>").
    """

    def __init__(self, clock: Callable[[], datetime] = _now):
        self._clock = clock
        self._requests: dict[str, list[datetime]] = defaultdict(list)

    def check_rate_limit(self, key: str, max_requests: int, window_minutes: int = 60) -> bool:
        """
        Record an attempt for key unless it is over the limit.

        Args:
            key: Identifier to rate limit
            max_requests: Maximum attempts allowed in the window
            window_minutes: Time window in minutes (default 60)

        Returns:
            True if under the limit, False if limit exceeded
        """
        now = self._clock()
        cutoff = now - timedelta(minutes=window_minutes)

        recent = [ts for ts in self._requests[key] if ts > cutoff]
        if len(recent) >= max_requests:
            self._requests[key] = recent
            return False

        recent.append(now)
        self._requests[key] = recent
        return True

    def cleanup_old_entries(self, max_age_hours: int = 2) -> int:
        """
        Drop attempts older than max_age_hours.

        Returns:
            Number of keys removed entirely
        """
        cutoff = self._clock() - timedelta(hours=max_age_hours)
        removed = 0
        for key in list(self._requests.keys()):
            self._requests[key] = [ts for ts in self._requests[key] if ts > cutoff]
            if not self._requests[key]:
                del self._requests[key]
                removed += 1
        return removed

    def reset(self) -> None:
        self._requests.clear()


# Global rate limiter instance
rate_limiter = RateLimiter()
