"""
In-memory sliding-window rate limiter for login attempts.

One ``SlidingWindowLimiter`` is created per application and kept on
``app.state``. Each check prunes expired attempts, compares the remainder
against the limit and records the new attempt under a single lock.
"""

import threading
import time
from typing import Callable, Dict, List


class SlidingWindowLimiter:
    """Allow at most ``max_attempts`` per key within ``window_seconds``."""

    def __init__(
        self,
        max_attempts: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_attempts <= 0 or window_seconds <= 0:
            raise ValueError("max_attempts and window_seconds must be positive")
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._clock = clock
        self._attempts: Dict[str, List[float]] = {}
        self._lock = threading.Lock()

    def allow(self, key: str) -> bool:
        """
        Record an attempt for ``key`` if it is within the limit.

        Returns:
            True if the attempt is allowed, False if the key is over its limit
        """
        with self._lock:
            now = self._clock()
            cutoff = now - self.window_seconds
            attempts = [t for t in self._attempts.get(key, []) if t > cutoff]
            if len(attempts) >= self.max_attempts:
                self._attempts[key] = attempts
                return False
            attempts.append(now)
            self._attempts[key] = attempts[-self.max_attempts:]
            self._prune(cutoff)
            return True

    def reset(self) -> None:
        with self._lock:
            self._attempts.clear()

    def _prune(self, cutoff: float) -> None:
        # Caller holds the lock.
        stale = [k for k, v in self._attempts.items() if not v or v[-1] <= cutoff]
        for k in stale:
            del self._attempts[k]


def login_key(client_ip: str, login: str) -> str:
    """Rate limit key for a login attempt: client IP plus normalised login."""
    return f"{client_ip or 'unknown'}|{(login or '').strip().lower()}"
