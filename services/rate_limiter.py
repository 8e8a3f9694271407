#!/usr/bin/env python3

"""Rate Limiter Module.

Provides the `RequestWindow` class, a sliding-window request tracker used to pace
calls to the Discogs API without any server-side coordination.

The tracker keeps the monotonic timestamps of recent requests. Stale entries are
purged lazily on every read, so the retained history always describes the trailing
`window_seconds`. When the server reports its own remaining budget
(`X-Discogs-Ratelimit-Remaining`), that figure is trusted over the local estimate,
because the server also sees requests made by other clients sharing the same token.

One instance is created per run and owned by the dependency container; clock and
sleep functions are injectable so the pacing logic can be tested without waiting.
"""

from __future__ import annotations

import asyncio
import logging
import time

from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any

DEFAULT_WAIT_THRESHOLD = 2
DEFAULT_BUFFER_SECONDS = 0.1
DEFAULT_CONSERVATIVE_DELAY = 1.0


class RequestWindow:
    """Sliding-window tracker of request timestamps."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        wait_threshold: int = DEFAULT_WAIT_THRESHOLD,
        buffer_seconds: float = DEFAULT_BUFFER_SECONDS,
        conservative_delay: float = DEFAULT_CONSERVATIVE_DELAY,
        logger: logging.Logger | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize the tracker."""
        if not isinstance(max_requests, int) or max_requests <= 0:
            raise ValueError("max_requests must be a positive integer")
        if not isinstance(window_seconds, int | float) or window_seconds <= 0:
            raise ValueError("window_seconds must be a positive number")
        if wait_threshold < 0:
            raise ValueError("wait_threshold must not be negative")
        if buffer_seconds < 0 or conservative_delay < 0:
            raise ValueError("buffer_seconds and conservative_delay must not be negative")

        self.max_requests = max_requests
        self.window_seconds = float(window_seconds)
        self.wait_threshold = wait_threshold
        self.buffer_seconds = float(buffer_seconds)
        self.conservative_delay = float(conservative_delay)
        self.logger = logger or logging.getLogger(__name__)
        self._clock = clock
        self._sleep = sleep
        self.request_timestamps: deque[float] = deque()
        self.total_waits: int = 0
        self.total_wait_time: float = 0.0

    def _purge(self) -> None:
        """Drop timestamps that are no longer inside the window."""
        now = self._clock()
        while self.request_timestamps and now - self.request_timestamps[0] >= self.window_seconds:
            self.request_timestamps.popleft()

    def record_request(self) -> None:
        """Record that a request has just been issued."""
        self._purge()
        self.request_timestamps.append(self._clock())

    def requests_in_window(self) -> int:
        """Return the number of requests issued within the trailing window."""
        self._purge()
        return len(self.request_timestamps)

    def remaining(self, max_requests: int | None = None) -> int:
        """Return how many more requests fit in the window, never negative."""
        budget = self.max_requests if max_requests is None else max_requests
        return max(0, budget - self.requests_in_window())

    def compute_delay(
        self,
        max_requests: int | None = None,
        observed_remaining: int | None = None,
    ) -> float:
        """Return the pacing delay required before the next request (0.0 if none).

        `observed_remaining` is the server-reported budget from the last response;
        when given it replaces the locally computed remaining count.
        """
        remaining = (
            observed_remaining
            if observed_remaining is not None
            else self.remaining(max_requests)
        )
        if remaining > self.wait_threshold:
            return 0.0

        self._purge()
        if not self.request_timestamps:
            # No timing evidence to compute from
            return self.conservative_delay

        oldest = self.request_timestamps[0]
        delay = self.window_seconds - (self._clock() - oldest) + self.buffer_seconds
        return max(0.0, delay)

    async def wait_if_needed(
        self,
        max_requests: int | None = None,
        observed_remaining: int | None = None,
    ) -> float:
        """Suspend until the window has room for another request.

        Returns:
            The number of seconds waited.

        """
        delay = self.compute_delay(max_requests, observed_remaining)
        if delay <= 0:
            return 0.0

        budget = self.max_requests if max_requests is None else max_requests
        self.logger.info(
            f"⏳ Rate limit: {len(self.request_timestamps)}/{budget} used"
            + (f" (server reports {observed_remaining} remaining)" if observed_remaining is not None else "")
            + f". Waiting {delay:.1f}s..."
        )
        await self._sleep(delay)
        self.total_waits += 1
        self.total_wait_time += delay
        self._purge()
        return delay

    def get_stats(self) -> dict[str, Any]:
        """Get statistics about tracker usage."""
        current = self.requests_in_window()
        return {
            "total_waits": self.total_waits,
            "total_wait_time": self.total_wait_time,
            "current_window_usage": current,
            "remaining": max(0, self.max_requests - current),
            "max_requests_per_window": self.max_requests,
        }
