#!/usr/bin/env python3
"""Dependency Injection Container Module.

Builds the services of one wantlist-checker run and owns their lifecycle:
configuration, the Discogs client, the request window shared by every lookup,
the lookup service and the `WantlistChecker` orchestrator.

The container is created synchronously; `initialize()` opens the HTTP session
and `shutdown()` closes it and stops the logging listener.
"""

from __future__ import annotations

import logging

from logging.handlers import QueueListener
from typing import TYPE_CHECKING, Any

from services.discogs_client import DiscogsClient
from services.rate_limiter import RequestWindow
from services.release_lookup import ReleaseLookupService
from utils.config import TOKEN_ENV_VAR, requests_per_minute

if TYPE_CHECKING:
    from wantlist_checker import WantlistChecker

DISCOGS_DEVELOPER_SETTINGS_URL = "https://www.discogs.com/settings/developers"


class DependencyContainer:
    """Central container for the services of one run."""

    def __init__(
        self,
        config: dict[str, Any],
        console_logger: logging.Logger,
        error_logger: logging.Logger,
        logging_listener: QueueListener | None = None,
    ):
        """Wire the services from an already loaded configuration."""
        self.config = config
        self.console_logger = console_logger
        self.error_logger = error_logger
        self._listener = logging_listener

        self.discogs_client = DiscogsClient(self.config, self.console_logger, self.error_logger)
        self.max_requests = requests_per_minute(self.config, self.discogs_client.is_authenticated)
        if not self.discogs_client.is_authenticated:
            authenticated_budget = requests_per_minute(self.config, authenticated=True)
            self.console_logger.warning(
                f"⚠️  No authentication provided. Using unauthenticated mode ({self.max_requests} req/min limit). "
                f"For better rate limits ({authenticated_budget} req/min), set the {TOKEN_ENV_VAR} environment variable. "
                f"Get your token at: {DISCOGS_DEVELOPER_SETTINGS_URL}"
            )

        rate_config = self.config.get("rate_limits", {})
        self.rate_window = RequestWindow(
            max_requests=self.max_requests,
            window_seconds=rate_config.get("window_seconds", 60),
            wait_threshold=rate_config.get("wait_threshold", 2),
            buffer_seconds=rate_config.get("buffer_seconds", 0.1),
            conservative_delay=rate_config.get("conservative_delay_seconds", 1.0),
            logger=self.console_logger,
        )

        self.release_lookup_service = ReleaseLookupService(
            self.config,
            self.discogs_client,
            self.rate_window,
            self.console_logger,
            self.error_logger,
        )

        # Imported here to avoid a circular import with the entry-point module
        from wantlist_checker import WantlistChecker

        self._checker = WantlistChecker(
            self.config,
            self.console_logger,
            self.error_logger,
            self.release_lookup_service,
            self.rate_window,
        )
        self.console_logger.debug("All services initialized and wired.")

    async def initialize(self) -> None:
        """Open the resources that need a running event loop."""
        await self.discogs_client.initialize()

    async def close(self) -> None:
        """Close the HTTP session."""
        await self.discogs_client.close()

    def get_checker(self) -> WantlistChecker:
        """Return the orchestrator."""
        return self._checker

    def shutdown(self) -> None:
        """Stop the logging listener, flushing queued file records."""
        if self._listener:
            self.console_logger.debug("Stopping logging listener...")
            self._listener.stop()
            self._listener = None
