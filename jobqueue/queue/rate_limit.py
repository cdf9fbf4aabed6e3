"""
Per-tenant fixed-window rate limiting.
"""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from jobqueue.constants import DEFAULT_RATE_LIMIT, DEFAULT_RATE_WINDOW_SECONDS


@dataclass
class FixedWindow:
    """
    Token counter for one tenant.

    The window resets lazily: the first check after ``window_seconds`` have
    elapsed refills the tokens and restarts the window from that moment.
    Bursts straddling a window boundary are accepted.
    """

    limit: int
    window_seconds: float
    tokens: int
    window_start: float

    def consume(self, now: float) -> bool:
        """
        Try to take one token.

        Args:
            now: Current clock reading.

        Returns:
            True if a token was taken, False if the window is exhausted.
        """
        if now - self.window_start >= self.window_seconds:
            self.tokens = self.limit
            self.window_start = now

        if self.tokens > 0:
            self.tokens -= 1
            return True

        return False

    def retry_after(self, now: float) -> float:
        """Seconds until the window resets."""
        return max(0.0, self.window_start + self.window_seconds - now)


class FixedWindowRateLimiter:
    """
    In-memory fixed-window rate limiter keyed by tenant.

    Counters live for the lifetime of the process and are not persisted;
    a restart gives every tenant a fresh window. Every read-modify-write
    happens under a single lock.
    """

    def __init__(
        self,
        limit: int = DEFAULT_RATE_LIMIT,
        window_seconds: float = DEFAULT_RATE_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the rate limiter.

        Args:
            limit: Submissions allowed per tenant per window.
            window_seconds: Window length.
            clock: Monotonic clock, injectable for tests.
        """
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, FixedWindow] = {}
        self._lock = threading.Lock()

    def allow(self, tenant_id: str) -> bool:
        """
        Check and consume one submission token for a tenant.

        Args:
            tenant_id: The tenant identifier.

        Returns:
            True if the submission is allowed.
        """
        with self._lock:
            now = self._clock()
            window = self._windows.get(tenant_id)
            if window is None:
                window = FixedWindow(
                    limit=self.limit,
                    window_seconds=self.window_seconds,
                    tokens=self.limit,
                    window_start=now,
                )
                self._windows[tenant_id] = window
            return window.consume(now)

    def retry_after(self, tenant_id: str) -> float:
        """Seconds until the tenant's window resets (0 if unknown)."""
        with self._lock:
            window = self._windows.get(tenant_id)
            if window is None:
                return 0.0
            return window.retry_after(self._clock())

    def remaining(self, tenant_id: str) -> int:
        """Tokens left in the tenant's current window."""
        with self._lock:
            window = self._windows.get(tenant_id)
            if window is None:
                return self.limit
            if self._clock() - window.window_start >= self.window_seconds:
                return self.limit
            return window.tokens

    def refund(self, tenant_id: str) -> None:
        """Return one token to the tenant's current window, if it is still open."""
        with self._lock:
            window = self._windows.get(tenant_id)
            if window is None:
                return
            if self._clock() - window.window_start >= self.window_seconds:
                return
            window.tokens = min(window.limit, window.tokens + 1)

    def reset(self, tenant_id: str) -> None:
        """Forget the tenant's window."""
        with self._lock:
            self._windows.pop(tenant_id, None)
