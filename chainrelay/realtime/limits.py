"""Abuse limits for real-time clients: per-event rate limits and per-IP admission."""

import logging
import time
from collections import deque
from collections.abc import Callable

logger = logging.getLogger(__name__)


class SlidingWindowRateLimiter:
    """Allow at most ``max_events`` per ``(client, event type)`` within a window.

    Timestamps older than the window are purged lazily on the next check.

    Args:
        max_events: Events accepted per window.
        window_seconds: Window length.
        clock: Time source, ``time.monotonic`` by default.
    """

    def __init__(
        self,
        max_events: int = 60,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_events = max_events
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[tuple[str, str], deque[float]] = {}

    def is_limited(self, client_id: str, event_type: str) -> bool:
        """Record an event and return True if it exceeds the limit.

        Rejected events are not recorded.
        """
        now = self._clock()
        key = (client_id, event_type)
        window = self._windows.setdefault(key, deque())
        while window and now - window[0] >= self.window_seconds:
            window.popleft()

        if len(window) >= self.max_events:
            logger.warning("Rate limit exceeded for client %s on %s", client_id, event_type)
            return True

        window.append(now)
        return False

    def forget(self, client_id: str) -> None:
        """Drop every window belonging to *client_id*."""
        for key in [k for k in self._windows if k[0] == client_id]:
            del self._windows[key]

    def window_size(self, client_id: str, event_type: str) -> int:
        return len(self._windows.get((client_id, event_type), ()))


class ConnectionCounter:
    """Concurrent connection count per source IP.

    Args:
        max_per_ip: Connections admitted at once from one IP.
    """

    def __init__(self, max_per_ip: int = 10) -> None:
        self.max_per_ip = max_per_ip
        self._counts: dict[str, int] = {}

    def acquire(self, ip: str) -> bool:
        """Admit a connection from *ip*. Returns False when at the cap."""
        current = self._counts.get(ip, 0)
        if current >= self.max_per_ip:
            logger.warning(
                "Maximum connection limit reached for IP %s (%d)", ip, self.max_per_ip
            )
            return False
        self._counts[ip] = current + 1
        return True

    def release(self, ip: str) -> None:
        """Release one admitted connection. Never goes below zero."""
        current = self._counts.get(ip, 0)
        if current <= 1:
            self._counts.pop(ip, None)
        else:
            self._counts[ip] = current - 1

    def count(self, ip: str) -> int:
        return self._counts.get(ip, 0)

    @property
    def total(self) -> int:
        return sum(self._counts.values())
