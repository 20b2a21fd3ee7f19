"""
Sliding-window rate limiter for sensitive operations.

State lives in process memory, so limits are per worker process and are
lost on restart. Deployments running several processes need a shared store
behind the same interface.
"""

import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, Optional

from src.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_WINDOW_SECONDS = 5 * 60
DEFAULT_MAX_ATTEMPTS = 3


class SlidingWindowRateLimiter:
    """
    Counts attempts per key inside a trailing time window.

    Example:
        >>> limiter = SlidingWindowRateLimiter(window_seconds=300, max_attempts=3)
        >>> limiter.hit("sensitive_42")
        True
    """

    def __init__(
        self,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            window_seconds: Length of the trailing window
            max_attempts: Attempts admitted per key inside one window
            clock: Source of the current time in seconds
        """
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.window_seconds = window_seconds
        self.max_attempts = max_attempts
        self._clock = clock
        self._attempts: Dict[str, Deque[float]] = {}
        self._last_sweep = clock()
        self._lock = threading.Lock()

    def _sweep(self, now: float) -> None:
        # keys whose newest attempt has left the window hold nothing
        stale = [k for k, a in self._attempts.items() if not a or now - a[-1] >= self.window_seconds]
        for key in stale:
            del self._attempts[key]
        self._last_sweep = now

    def hit(self, key: str) -> bool:
        """
        Record an attempt for ``key`` if the window has room.

        Returns:
            True if the attempt is admitted, False if the limit is reached.
            Denied attempts are not recorded.
        """
        with self._lock:
            now = self._clock()
            if now - self._last_sweep >= self.window_seconds:
                self._sweep(now)

            attempts = self._attempts.get(key)
            if attempts is None:
                attempts = self._attempts[key] = deque()

            while attempts and now - attempts[0] >= self.window_seconds:
                attempts.popleft()

            if len(attempts) >= self.max_attempts:
                logger.warning(f"Rate limit reached for {key} ({len(attempts)} attempts in window)")
                return False

            attempts.append(now)
            return True

    def remaining(self, key: str) -> int:
        """Attempts still admitted for ``key`` in the current window."""
        with self._lock:
            now = self._clock()
            attempts = self._attempts.get(key, ())
            recent = sum(1 for t in attempts if now - t < self.window_seconds)
            return max(0, self.max_attempts - recent)

    def reset(self, key: Optional[str] = None) -> None:
        """Forget the attempts of one key, or of every key."""
        with self._lock:
            if key is None:
                self._attempts.clear()
            else:
                self._attempts.pop(key, None)
