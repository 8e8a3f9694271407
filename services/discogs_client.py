#!/usr/bin/env python3

"""Discogs API Client.

This module provides the `DiscogsClient` class, a thin aiohttp wrapper around the two
read operations the wantlist checker needs:

- `get_release`: fetch a release by id (used to find its master work)
- `get_master_versions`: fetch one page of the versions of a master work

The client performs a single HTTP request per call and never retries on its own.
Pacing and retry policy belong to `ReleaseLookupService`, which needs to see every
response's `X-Discogs-Ratelimit-Remaining` header and every 429 rejection.

Errors:
- `DiscogsRateLimitError`: the API answered 429 Too Many Requests
- `DiscogsApiError`: any other non-2xx status, a transport failure, or a body
  that is not a JSON object
"""

from __future__ import annotations

import logging
import time

from collections import defaultdict
from typing import Any, Protocol, runtime_checkable

import aiohttp

# --- Constants ---
HTTP_TOO_MANY_REQUESTS = 429
RATE_LIMIT_REMAINING_HEADER = "X-Discogs-Ratelimit-Remaining"
ERROR_SNIPPET_LENGTH = 200


class DiscogsApiError(Exception):
    """Raised when a Discogs request fails."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class DiscogsRateLimitError(DiscogsApiError):
    """Raised when Discogs rejects a request with 429 Too Many Requests."""

    def __init__(self, message: str):
        super().__init__(message, status=HTTP_TOO_MANY_REQUESTS)


class ApiResponse:
    """Decoded JSON body of a Discogs response plus its rate-limit figure."""

    __slots__ = ("data", "rate_limit_remaining")

    def __init__(self, data: dict[str, Any], rate_limit_remaining: int | None = None):
        self.data = data
        self.rate_limit_remaining = rate_limit_remaining

    def __repr__(self) -> str:
        return f"ApiResponse(data={self.data!r}, rate_limit_remaining={self.rate_limit_remaining!r})"


@runtime_checkable
class ReleaseDatabaseProtocol(Protocol):
    """The read operations of the remote release database."""

    async def get_release(self, release_id: int) -> ApiResponse:
        """Fetch a release by id."""
        ...

    async def get_master_versions(self, master_id: int, page: int = 1, per_page: int = 100) -> ApiResponse:
        """Fetch one page of the versions of a master work."""
        ...


def parse_rate_limit_remaining(value: str | None) -> int | None:
    """Parse the remaining-requests header; None when absent or malformed."""
    if value is None:
        return None
    try:
        return max(0, int(value.strip()))
    except ValueError:
        return None


class DiscogsClient:
    """Async client for the Discogs database API."""

    def __init__(
        self,
        config: dict[str, Any],
        console_logger: logging.Logger,
        error_logger: logging.Logger,
    ):
        """Initialize the client from the `discogs` configuration section."""
        self.console_logger = console_logger
        self.error_logger = error_logger
        self.session: aiohttp.ClientSession | None = None

        discogs_config = config.get("discogs", {})
        self.user_token: str = discogs_config.get("user_token") or ""
        if self.user_token.startswith("${"):
            # Unresolved placeholder means the variable was never set
            self.user_token = ""
        self.user_agent: str = discogs_config.get("user_agent", "wantlist-checker/1.0")
        self.api_base_url: str = discogs_config.get("api_base_url", "https://api.discogs.com").rstrip("/")
        self.request_timeout: float = float(discogs_config.get("request_timeout_seconds", 45))

        # --- Statistics Tracking ---
        self.request_counts: dict[str, int] = defaultdict(int)
        self.call_durations: dict[str, list[float]] = defaultdict(list)

    @property
    def is_authenticated(self) -> bool:
        """True when a personal access token is configured."""
        return bool(self.user_token)

    def _build_headers(self) -> dict[str, str]:
        headers = {
            "User-Agent": self.user_agent,
            "Accept": "application/json",
        }
        if self.user_token:
            headers["Authorization"] = f"Discogs token={self.user_token}"
        return headers

    async def initialize(self) -> None:
        """Open the aiohttp ClientSession."""
        if not self.session or self.session.closed:
            timeout = aiohttp.ClientTimeout(total=self.request_timeout)
            self.session = aiohttp.ClientSession(timeout=timeout, headers=self._build_headers())
            self.console_logger.debug(
                f"Discogs session initialized with User-Agent: {self.user_agent}"
                + (" (authenticated)" if self.is_authenticated else " (unauthenticated)")
            )

    async def close(self) -> None:
        """Close the session and log request statistics."""
        if self.session and not self.session.closed:
            total_calls = sum(self.request_counts.values())
            if total_calls:
                self.console_logger.info("--- Discogs API Call Statistics ---")
                for endpoint, count in sorted(self.request_counts.items()):
                    durations = self.call_durations.get(endpoint, [])
                    avg_duration = sum(durations) / max(1, len(durations))
                    self.console_logger.info(
                        f"Endpoint: {endpoint:<16} | Requests: {count:<5} | Avg Duration: {avg_duration:.3f}s"
                    )
            else:
                self.console_logger.debug("No Discogs API calls were made during this session.")
            await self.session.close()
            self.console_logger.debug("Discogs session closed")

    async def get_release(self, release_id: int) -> ApiResponse:
        """Fetch a release; the body carries `master_id` when it belongs to a master."""
        return await self._get("release", f"{self.api_base_url}/releases/{release_id}")

    async def get_master_versions(self, master_id: int, page: int = 1, per_page: int = 100) -> ApiResponse:
        """Fetch one page of the versions of a master work."""
        return await self._get(
            "master_versions",
            f"{self.api_base_url}/masters/{master_id}/versions",
            params={"page": str(page), "per_page": str(per_page)},
        )

    async def _get(
        self,
        endpoint: str,
        url: str,
        params: dict[str, str] | None = None,
    ) -> ApiResponse:
        """Issue one GET request and map the outcome to an ApiResponse or an error."""
        if self.session is None or self.session.closed:
            raise RuntimeError("HTTP session is not initialized. Call initialize() method first.")

        self.request_counts[endpoint] += 1
        start_time = time.monotonic()
        try:
            async with self.session.get(url, params=params) as response:
                elapsed = time.monotonic() - start_time
                self.call_durations[endpoint].append(elapsed)
                remaining = parse_rate_limit_remaining(response.headers.get(RATE_LIMIT_REMAINING_HEADER))
                self.console_logger.debug(
                    f"[discogs] GET {url} - Status: {response.status} ({elapsed:.3f}s), "
                    f"remaining: {remaining if remaining is not None else 'n/a'}"
                )

                if response.status == HTTP_TOO_MANY_REQUESTS:
                    raise DiscogsRateLimitError(f"Rate limited (429) on {url}")

                if not response.ok:
                    snippet = (await response.text(errors="ignore"))[:ERROR_SNIPPET_LENGTH]
                    raise DiscogsApiError(
                        f"Request to {url} failed with status {response.status}: {snippet}",
                        status=response.status,
                    )

                try:
                    data = await response.json(content_type=None)
                except ValueError as e:
                    raise DiscogsApiError(f"Invalid JSON from {url}: {e}", status=response.status) from e

                if not isinstance(data, dict):
                    raise DiscogsApiError(
                        f"JSON response is not an object (type: {type(data).__name__}) from {url}",
                        status=response.status,
                    )
                return ApiResponse(data, remaining)

        except (TimeoutError, aiohttp.ClientError) as e:
            self.call_durations[endpoint].append(time.monotonic() - start_time)
            raise DiscogsApiError(f"{type(e).__name__} requesting {url}: {e}") from e
