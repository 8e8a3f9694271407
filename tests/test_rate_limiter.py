"""Unit tests for RequestWindow."""

from __future__ import annotations

import asyncio
import logging

import pytest

from services.rate_limiter import RequestWindow
from tests.conftest import FakeClock


def _window(clock: FakeClock, max_requests: int = 10, **kwargs) -> RequestWindow:
    return RequestWindow(
        max_requests=max_requests,
        window_seconds=60,
        logger=logging.getLogger("wantlist_test"),
        clock=clock,
        sleep=clock.sleep,
        **kwargs,
    )


class TestRequestWindowInit:
    """Tests for constructor validation."""

    def test_invalid_max_requests_zero(self) -> None:
        with pytest.raises(ValueError, match="max_requests must be a positive integer"):
            RequestWindow(max_requests=0, window_seconds=60)

    def test_invalid_window_negative(self) -> None:
        with pytest.raises(ValueError, match="window_seconds must be a positive number"):
            RequestWindow(max_requests=10, window_seconds=-1)

    def test_invalid_threshold(self) -> None:
        with pytest.raises(ValueError, match="wait_threshold"):
            RequestWindow(max_requests=10, window_seconds=60, wait_threshold=-1)


class TestRequestWindowAccounting:
    """Tests for window purging and remaining budget."""

    def test_records_are_counted(self, clock: FakeClock) -> None:
        window = _window(clock)
        for _ in range(3):
            window.record_request()
            clock.advance(1)
        assert window.requests_in_window() == 3
        assert window.remaining() == 7

    def test_entries_older_than_window_are_purged(self, clock: FakeClock) -> None:
        window = _window(clock)
        window.record_request()
        clock.advance(30)
        window.record_request()
        window.record_request()
        # The first entry is now exactly window_seconds old
        clock.advance(30)
        assert window.requests_in_window() == 2
        clock.advance(30)
        assert window.requests_in_window() == 0

    def test_window_empties_after_full_duration(self, clock: FakeClock) -> None:
        window = _window(clock)
        for _ in range(5):
            window.record_request()
        clock.advance(60 + 1e-6)
        assert window.requests_in_window() == 0
        assert window.remaining() == 10

    def test_remaining_never_negative(self, clock: FakeClock) -> None:
        window = _window(clock, max_requests=2)
        for _ in range(5):
            window.record_request()
        assert window.remaining() == 0
        assert window.remaining(max_requests=1) == 0
        assert window.remaining(max_requests=100) == 95

    def test_stats(self, clock: FakeClock) -> None:
        window = _window(clock)
        window.record_request()
        stats = window.get_stats()
        assert stats["current_window_usage"] == 1
        assert stats["remaining"] == 9
        assert stats["max_requests_per_window"] == 10
        assert stats["total_waits"] == 0


class TestRequestWindowWaiting:
    """Tests for wait_if_needed pacing."""

    @pytest.mark.asyncio
    async def test_no_wait_when_budget_is_available(self, clock: FakeClock) -> None:
        window = _window(clock)
        window.record_request()
        assert await window.wait_if_needed() == 0.0
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_waits_until_oldest_entry_leaves_window(self, clock: FakeClock) -> None:
        window = _window(clock, max_requests=5)
        window.record_request()
        clock.advance(10)
        for _ in range(2):
            window.record_request()
        clock.advance(5)
        # 3 used, 2 remaining: at the threshold
        waited = await window.wait_if_needed()
        assert waited == pytest.approx(60 - 15 + 0.1)
        assert clock.sleeps == [pytest.approx(45.1)]
        # The oldest entry has been purged after the wait
        assert window.requests_in_window() == 2

    @pytest.mark.asyncio
    async def test_observed_remaining_overrides_local_estimate(self, clock: FakeClock) -> None:
        window = _window(clock, max_requests=60)
        window.record_request()
        clock.advance(20)
        # Locally 59 remain, but the server says 1
        waited = await window.wait_if_needed(observed_remaining=1)
        assert waited == pytest.approx(40.1)

    @pytest.mark.asyncio
    async def test_high_observed_remaining_skips_wait(self, clock: FakeClock) -> None:
        window = _window(clock, max_requests=3)
        for _ in range(3):
            window.record_request()
        assert await window.wait_if_needed(observed_remaining=30) == 0.0

    @pytest.mark.asyncio
    async def test_conservative_delay_when_window_is_empty(self, clock: FakeClock) -> None:
        window = _window(clock, conservative_delay=1.5)
        waited = await window.wait_if_needed(observed_remaining=0)
        assert waited == 1.5
        assert clock.sleeps == [1.5]

    @pytest.mark.asyncio
    async def test_wait_statistics_accumulate(self, clock: FakeClock) -> None:
        window = _window(clock, conservative_delay=2.0)
        await window.wait_if_needed(observed_remaining=0)
        await window.wait_if_needed(observed_remaining=0)
        stats = window.get_stats()
        assert stats["total_waits"] == 2
        assert stats["total_wait_time"] == pytest.approx(4.0)

    @pytest.mark.asyncio
    async def test_cancelled_wait_keeps_timestamps(self) -> None:
        window = RequestWindow(max_requests=2, window_seconds=60, logger=logging.getLogger("wantlist_test"))
        window.record_request()
        window.record_request()
        before = list(window.request_timestamps)

        task = asyncio.create_task(window.wait_if_needed())
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert list(window.request_timestamps) == before
        assert window.total_waits == 0
