"""Pytest configuration and shared fixtures for the wantlist checker.

Puts the project root on sys.path so tests import `services`, `utils` and
`wantlist_checker` the same way the script does.
"""

from __future__ import annotations

import logging
import sys

from pathlib import Path
from typing import Any

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from services.discogs_client import ApiResponse, DiscogsRateLimitError  # noqa: E402
from services.rate_limiter import RequestWindow  # noqa: E402
from utils.config import normalize_config  # noqa: E402


class FakeClock:
    """Manually advanced monotonic clock; `sleep` advances it instead of waiting."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class StubReleaseDatabase:
    """In-memory stand-in for the Discogs API.

    `releases` maps release id -> release body; `masters` maps master id -> list of
    version pages. `failures` maps release id -> list of exceptions raised, in order,
    by successive `get_release` calls before the real body is returned.
    """

    def __init__(
        self,
        releases: dict[int, dict[str, Any]] | None = None,
        masters: dict[int, list[dict[str, Any]]] | None = None,
        failures: dict[int, list[Exception]] | None = None,
        master_failures: dict[int, list[Exception]] | None = None,
        rate_limit_remaining: int | None = None,
    ):
        self.releases = releases or {}
        self.masters = masters or {}
        self.failures = {k: list(v) for k, v in (failures or {}).items()}
        self.master_failures = {k: list(v) for k, v in (master_failures or {}).items()}
        self.rate_limit_remaining = rate_limit_remaining
        self.calls: list[tuple[str, int, int]] = []

    async def get_release(self, release_id: int) -> ApiResponse:
        self.calls.append(("release", release_id, 0))
        pending = self.failures.get(release_id)
        if pending:
            raise pending.pop(0)
        if release_id not in self.releases:
            raise KeyError(f"release {release_id} not stubbed")
        return ApiResponse(self.releases[release_id], self.rate_limit_remaining)

    async def get_master_versions(self, master_id: int, page: int = 1, per_page: int = 100) -> ApiResponse:
        self.calls.append(("versions", master_id, page))
        pending = self.master_failures.get(master_id)
        if pending:
            raise pending.pop(0)
        pages = self.masters[master_id]
        return ApiResponse(pages[page - 1], self.rate_limit_remaining)


@pytest.fixture
def quiet_logger() -> logging.Logger:
    """Logger that does not print during tests but still reaches caplog."""
    logger = logging.getLogger("wantlist_test")
    logger.setLevel(logging.DEBUG)
    logger.propagate = True
    return logger


@pytest.fixture
def config() -> dict[str, Any]:
    """Fully defaulted configuration with a fixed token state."""
    cfg = normalize_config({"discogs": {"user_token": ""}})
    cfg["retry"]["base_delay_seconds"] = 60
    return cfg


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rate_window(clock: FakeClock, quiet_logger: logging.Logger) -> RequestWindow:
    return RequestWindow(
        max_requests=60,
        window_seconds=60,
        logger=quiet_logger,
        clock=clock,
        sleep=clock.sleep,
    )


@pytest.fixture
def rate_limit_error() -> DiscogsRateLimitError:
    return DiscogsRateLimitError("Rate limited (429)")
