#!/usr/bin/env python3

"""Discogs Wantlist Reissue Checker.

Reads a Discogs wantlist export and, for every release in it, checks whether the
master work it belongs to has a version (pressing/edition) released in or after a
configurable year. Releases with such versions are written to a timestamped CSV file.

Architecture:
- WantlistChecker: batch driver; checks releases strictly one after another and reports progress
- DependencyContainer: builds the services and manages their lifecycle
- Services: DiscogsClient, RequestWindow (sliding-window pacing), ReleaseLookupService (backoff and retries)
- Utilities: configuration loading, logging, wantlist/report CSV handling

Usage:
    wantlist_checker.py [csv_path] [--config PATH] [--min-year YEAR] [--output-dir DIR] [--dry-run]

Set DISCOGS_USER_TOKEN (environment or .env) to use the authenticated request budget.
Configuration in my-config.yaml controls rate limits, retries, defaults and logging.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
import time

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import yaml

from services.dependencies_service import DependencyContainer
from utils.config import load_config
from utils.logger import get_loggers
from utils.metadata import LookupResult, LookupTarget
from utils.reports import (
    WantlistReadError,
    generate_output_filename,
    load_wantlist,
    log_matches,
    result_headers,
    save_results_csv,
)

if TYPE_CHECKING:
    from services.rate_limiter import RequestWindow
    from services.release_lookup import ReleaseLookupService

SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
CONFIG_PATH = os.path.join(SCRIPT_DIR, "my-config.yaml")


@dataclass(frozen=True)
class BatchSummary:
    """Aggregated outcome of a batch, in input order."""

    results: tuple[LookupResult, ...]
    matched: tuple[LookupResult, ...]
    elapsed_seconds: float

    @property
    def failed(self) -> int:
        """Number of lookups that ended with an error."""
        return sum(1 for r in self.results if r.error is not None)


class WantlistChecker:
    """Checks wantlist releases one at a time through the lookup service."""

    def __init__(
        self,
        config: dict[str, Any],
        console_logger: logging.Logger,
        error_logger: logging.Logger,
        release_lookup_service: ReleaseLookupService,
        rate_window: RequestWindow,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the checker with its dependencies."""
        self.config = config
        self.console_logger = console_logger
        self.error_logger = error_logger
        self.release_lookup_service = release_lookup_service
        self.rate_window = rate_window
        self._clock = clock

        self.min_year: int = int(config.get("min_year", 2015))
        self.report_interval: int = max(1, int(config.get("progress", {}).get("report_interval", 10)))
        defaults = config.get("defaults", {})
        self.default_artist: str = defaults.get("artist", "Unknown")
        self.default_title: str = defaults.get("title", "Unknown")
        self.filename_prefix: str = config.get("csv_output", {}).get("filename_prefix", "wantlist-results-")

    def _report_progress(self, processed: int, total: int, start_time: float) -> None:
        elapsed_min = int((self._clock() - start_time) // 60)
        in_window = self.rate_window.requests_in_window()
        remaining = self.rate_window.remaining()
        self.console_logger.info(
            f"Processed {processed}/{total} releases... ({elapsed_min} min elapsed, "
            f"{in_window}/{self.rate_window.max_requests} requests in window, {remaining} remaining)"
        )

    async def run(self, targets: list[LookupTarget]) -> BatchSummary:
        """Check every target in order and aggregate the results."""
        results: list[LookupResult] = []
        matched: list[LookupResult] = []
        total = len(targets)
        start_time = self._clock()

        for index, target in enumerate(targets):
            if index > 0 and index % self.report_interval == 0:
                self._report_progress(index, total, start_time)

            result = await self.release_lookup_service.check_release(target)
            results.append(result)
            if result.matched:
                matched.append(result)

        return BatchSummary(
            results=tuple(results),
            matched=tuple(matched),
            elapsed_seconds=self._clock() - start_time,
        )

    async def run_file(self, csv_path: str, output_dir: str, dry_run: bool = False) -> str | None:
        """Check a wantlist file and write the results CSV.

        Returns:
            The path of the written results file, or None when nothing was written.

        Raises:
            WantlistReadError: If the wantlist cannot be read.

        """
        self.console_logger.info(f"Reading CSV file: {csv_path}")
        targets = load_wantlist(csv_path, self.default_artist, self.default_title)
        self.console_logger.info(f"Found {len(targets)} release IDs to process")
        self.console_logger.info(
            f"Rate limit: {self.rate_window.max_requests} requests/minute "
            f"({self.rate_window.window_seconds:.0f}-second sliding window)"
        )

        summary = await self.run(targets)

        self.console_logger.info("=== Results ===")
        self.console_logger.info(f"Total releases processed: {len(summary.results)}")
        self.console_logger.info(f"Releases with {self.min_year}+ versions: {len(summary.matched)}")
        if summary.failed:
            self.console_logger.warning(f"Lookups failed: {summary.failed} (see log file for details)")
        window_stats = self.rate_window.get_stats()
        self.console_logger.info(
            f"Pacing waits: {window_stats['total_waits']} ({window_stats['total_wait_time']:.1f}s), "
            f"rate-limit retries: {self.release_lookup_service.backoff_waits}"
        )
        self.error_logger.info(
            f"Run finished: {len(summary.results)} processed, {len(summary.matched)} matched, "
            f"{summary.failed} failed in {summary.elapsed_seconds:.1f}s"
        )

        if not summary.matched:
            self.console_logger.info(f"No releases found with {self.min_year}+ versions.")
            return None

        output_path = None
        if dry_run:
            self.console_logger.info("Dry run: results file not written.")
        else:
            output_path = os.path.join(output_dir, generate_output_filename(self.filename_prefix))
            save_results_csv(
                list(summary.matched),
                output_path,
                result_headers(self.min_year),
                self.console_logger,
                self.error_logger,
                self.default_artist,
                self.default_title,
            )
            self.console_logger.info(f"✅ Results saved to: {output_path}")

        log_matches(list(summary.matched), self.min_year, self.console_logger)
        return output_path


# --- Argument Parsing ---
def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments using argparse."""
    parser = argparse.ArgumentParser(
        description="Check a Discogs wantlist for recent versions of each release's master."
    )
    parser.add_argument(
        "csv_path",
        nargs="?",
        help="Wantlist CSV export (default: wantlist_csv_path from the config).",
    )
    parser.add_argument("--config", default=CONFIG_PATH, help="Path to the YAML configuration file.")
    parser.add_argument("--min-year", type=int, help="Override the year threshold (inclusive).")
    parser.add_argument("--output-dir", help="Directory for the results CSV (default: output_dir from the config).")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Check releases and list matches without writing the results file.",
    )
    return parser.parse_args(argv)


def apply_overrides(config: dict[str, Any], args: argparse.Namespace) -> dict[str, Any]:
    """Apply command-line overrides to the loaded configuration."""
    config = dict(config)
    if args.min_year is not None:
        config["min_year"] = args.min_year
    if args.output_dir:
        config["output_dir"] = args.output_dir
    if args.csv_path:
        config["wantlist_csv_path"] = args.csv_path
    return config


async def main_async(deps: DependencyContainer, args: argparse.Namespace) -> None:
    """Open the services, run the checker and close the services."""
    await deps.initialize()
    try:
        await deps.get_checker().run_file(
            deps.config["wantlist_csv_path"],
            deps.config.get("output_dir", "."),
            dry_run=args.dry_run,
        )
    finally:
        await deps.close()


def main(argv: list[str] | None = None) -> None:
    """Parse arguments, set up logging and services, and run the checker."""
    start_all = time.time()
    args = parse_arguments(argv)

    try:
        config = apply_overrides(load_config(args.config), args)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        print(f"FATAL ERROR: Failed to load configuration from {args.config}: {e}", file=sys.stderr)
        sys.exit(1)

    console_logger, error_logger, listener = get_loggers(config)
    deps = None

    try:
        deps = DependencyContainer(config, console_logger, error_logger, listener)
        asyncio.run(main_async(deps, args))
    except WantlistReadError as e:
        console_logger.error(str(e))
        error_logger.critical(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        console_logger.info("Script interrupted by user.")
        sys.exit(130)
    except Exception as e:
        console_logger.critical(f"A critical error occurred: {e}")
        error_logger.critical("A critical error occurred in the main execution block: %s", e, exc_info=True)
        sys.exit(1)
    finally:
        console_logger.info(f"Total script execution time: {time.time() - start_all:.2f} seconds")
        if deps:
            deps.shutdown()
        elif listener:
            listener.stop()


if __name__ == "__main__":
    main()
