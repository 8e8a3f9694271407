#!/usr/bin/env python3

"""Release Lookup Service.

This module provides `ReleaseLookupService`, which checks one wantlist release against
Discogs: release -> master -> master versions, then keeps the versions released in or
after the configured year.

Every request goes through the same protocol:
1. wait on the shared `RequestWindow` until there is budget,
2. issue the request and record it,
3. if the response reports the server-side remaining budget, pace against it right away.

A 429 rejection on any request restarts the whole lookup after an exponential backoff
(`base_delay * 2**retry`), up to `max_retries` times. Any other failure, or a 429 once
the retries are used up, ends the lookup for that release only: the error is logged and
a non-matching result is returned. The batch is never aborted by a single release.
"""

from __future__ import annotations

import asyncio
import logging

from collections.abc import Awaitable, Callable
from typing import Any

from services.discogs_client import (
    ApiResponse,
    DiscogsRateLimitError,
    ReleaseDatabaseProtocol,
)
from services.rate_limiter import RequestWindow
from utils.metadata import (
    LookupResult,
    LookupTarget,
    VersionCandidate,
    filter_versions_since,
    parse_versions,
)


class ReleaseLookupService:
    """Backoff-retrying lookup of the post-threshold versions of a release's master."""

    def __init__(
        self,
        config: dict[str, Any],
        client: ReleaseDatabaseProtocol,
        rate_window: RequestWindow,
        console_logger: logging.Logger,
        error_logger: logging.Logger,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize the service with configuration, the API client and the request window."""
        self.client = client
        self.rate_window = rate_window
        self.console_logger = console_logger
        self.error_logger = error_logger
        self._sleep = sleep

        retry_config = config.get("retry", {})
        self.max_retries: int = int(retry_config.get("max_retries", 5))
        self.base_delay: float = float(retry_config.get("base_delay_seconds", 60))
        if self.max_retries < 0:
            raise ValueError("max_retries must not be negative")
        if self.base_delay < 0:
            raise ValueError("base_delay_seconds must not be negative")

        self.min_year: int = int(config.get("min_year", 2015))

        discogs_config = config.get("discogs", {})
        self.site_base_url: str = discogs_config.get("site_base_url", "https://www.discogs.com")
        self.versions_per_page: int = int(discogs_config.get("versions_per_page", 100))
        self.default_title: str = config.get("defaults", {}).get("title", "Unknown")

        self.backoff_waits: int = 0

    def backoff_delay(self, retry_count: int) -> float:
        """Return the delay before retry number `retry_count + 1`."""
        return self.base_delay * (2**retry_count)

    async def check_release(self, target: LookupTarget) -> LookupResult:
        """Look up one release; never raises for per-release failures."""
        try:
            return await self._lookup_with_retries(target)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            message = str(e) or type(e).__name__
            self.console_logger.error(f"Error checking release {target.release_id}: {message}")
            self.error_logger.error(
                f"Lookup failed for release {target.release_id} ({target.artist} - {target.title}): "
                f"{type(e).__name__}: {message}"
            )
            return LookupResult.unmatched(target, error=message)

    async def _lookup_with_retries(self, target: LookupTarget) -> LookupResult:
        """Run lookup attempts until one completes or the retry budget is spent.

        The final attempt runs outside the loop, so its 429 propagates to the caller.
        """
        for retry_count in range(self.max_retries):
            try:
                return await self._lookup_once(target)
            except DiscogsRateLimitError:
                delay = self.backoff_delay(retry_count)
                self.console_logger.warning(
                    f"⚠️  Rate limit hit for release {target.release_id}. "
                    f"Waiting {delay:.0f}s before retry {retry_count + 1}/{self.max_retries}..."
                )
                self.backoff_waits += 1
                await self._sleep(delay)
        return await self._lookup_once(target)

    async def _lookup_once(self, target: LookupTarget) -> LookupResult:
        """One complete attempt: release, then every page of the master's versions."""
        release = await self._paced_call(lambda: self.client.get_release(target.release_id))

        master_id = release.data.get("master_id")
        if not master_id:
            self.console_logger.debug(f"Release {target.release_id} has no master; nothing to compare")
            return LookupResult.unmatched(target)

        candidates = await self._fetch_all_versions(int(master_id))
        matching = filter_versions_since(candidates, self.min_year)
        self.console_logger.debug(
            f"Release {target.release_id}: master {master_id} has {len(candidates)} versions, "
            f"{len(matching)} from {self.min_year} on"
        )
        return LookupResult(
            release_id=target.release_id,
            artist=target.artist,
            title=target.title,
            matching_versions=tuple(matching),
        )

    async def _fetch_all_versions(self, master_id: int) -> list[VersionCandidate]:
        """Fetch every page of a master's version list."""
        candidates: list[VersionCandidate] = []
        page = 1
        while True:
            response = await self._paced_call(
                lambda p=page: self.client.get_master_versions(master_id, page=p, per_page=self.versions_per_page)
            )
            versions = response.data.get("versions") or []
            candidates.extend(parse_versions(versions, self.site_base_url, self.default_title))

            pages = (response.data.get("pagination") or {}).get("pages", 1)
            if not isinstance(pages, int) or page >= pages:
                return candidates
            page += 1

    async def _paced_call(self, request: Callable[[], Awaitable[ApiResponse]]) -> ApiResponse:
        """Gate on the request window, issue the request and record it."""
        await self.rate_window.wait_if_needed()
        response = await request()
        self.rate_window.record_request()
        if response.rate_limit_remaining is not None:
            await self.rate_window.wait_if_needed(observed_remaining=response.rate_limit_remaining)
        return response
