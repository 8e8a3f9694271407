#!/usr/bin/env python3

"""Reports Module.

Handles the CSV side of the wantlist checker:

- load_wantlist: read a Discogs wantlist export into LookupTarget objects
- escape_csv_field: quote a value for comma-delimited text
- build_result_rows: one output row per (result, qualifying version) pair
- save_results_csv: write the results file atomically
- generate_output_filename: timestamped output file name
- log_matches: human-readable listing of the matches on the console
"""

from __future__ import annotations

import csv
import logging
import os

from collections.abc import Iterable, Iterator
from datetime import UTC, datetime
from typing import Any

from utils.logger import ensure_directory
from utils.metadata import DEFAULT_ARTIST, DEFAULT_TITLE, LookupResult, LookupTarget

RELEASE_ID_COLUMN = "release_id"
ARTIST_COLUMN = "Artist"
TITLE_COLUMN = "Title"

CHARS_REQUIRING_QUOTES = (",", '"', "\n")


class WantlistReadError(Exception):
    """Raised when the wantlist file cannot be read or parsed."""


def _parse_release_id(raw: str | None) -> int | None:
    """Return the positive integer release id of a cell, or None."""
    if raw is None:
        return None
    try:
        release_id = int(raw.strip())
    except ValueError:
        return None
    return release_id if release_id > 0 else None


def extract_targets(
    rows: Iterable[dict[str, Any]],
    default_artist: str = DEFAULT_ARTIST,
    default_title: str = DEFAULT_TITLE,
) -> list[LookupTarget]:
    """Convert wantlist rows to lookup targets, silently skipping bad release ids."""
    targets = []
    for row in rows:
        raw_id = row.get(RELEASE_ID_COLUMN)
        release_id = _parse_release_id(raw_id if isinstance(raw_id, str) else None)
        if release_id is None:
            continue
        artist = (row.get(ARTIST_COLUMN) or "").strip() or default_artist
        title = (row.get(TITLE_COLUMN) or "").strip() or default_title
        targets.append(LookupTarget(release_id=release_id, artist=artist, title=title))
    return targets


def load_wantlist(
    csv_path: str,
    default_artist: str = DEFAULT_ARTIST,
    default_title: str = DEFAULT_TITLE,
) -> list[LookupTarget]:
    """Load the wantlist CSV and return its lookup targets in file order.

    Raises:
        WantlistReadError: If the file is missing, unreadable, not valid CSV,
            or has no `release_id` column.

    """
    try:
        with open(csv_path, encoding="utf-8-sig", newline="") as f:
            reader = csv.DictReader(f)
            if reader.fieldnames is None:
                raise WantlistReadError(f"CSV file {csv_path} is empty or has no header.")
            fieldnames = [name.strip() for name in reader.fieldnames]
            if RELEASE_ID_COLUMN not in fieldnames:
                raise WantlistReadError(
                    f"CSV file {csv_path} has no '{RELEASE_ID_COLUMN}' column. Found: {fieldnames}"
                )
            reader.fieldnames = fieldnames
            # Ragged rows: DictReader pads short rows with None and collects extra cells under None
            rows = [row for row in reader if any(v for k, v in row.items() if k is not None)]
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        raise WantlistReadError(f"Error reading CSV file {csv_path}: {e}") from e

    return extract_targets(rows, default_artist, default_title)


def escape_csv_field(value: object) -> str:
    """Quote a field containing a comma, quote or newline; internal quotes are doubled."""
    text = str(value)
    if any(char in text for char in CHARS_REQUIRING_QUOTES):
        return '"' + text.replace('"', '""') + '"'
    return text


def result_headers(min_year: int) -> list[str]:
    """Column labels of the results file."""
    return [
        "Original Artist",
        "Original Title",
        "Original Release ID",
        f"{min_year}+ Release Year",
        f"{min_year}+ Release Title",
        f"{min_year}+ Release ID",
        f"{min_year}+ Release URL",
    ]


def build_result_rows(
    results: Iterable[LookupResult],
    default_artist: str = DEFAULT_ARTIST,
    default_title: str = DEFAULT_TITLE,
) -> Iterator[list[object]]:
    """Yield one row per qualifying version; results without versions yield nothing."""
    for result in results:
        for version in result.matching_versions:
            yield [
                result.artist or default_artist,
                result.title or default_title,
                result.release_id,
                version.year,
                version.title,
                version.id,
                version.url,
            ]


def save_results_csv(
    results: list[LookupResult],
    file_path: str,
    headers: list[str],
    console_logger: logging.Logger,
    error_logger: logging.Logger,
    default_artist: str = DEFAULT_ARTIST,
    default_title: str = DEFAULT_TITLE,
) -> int:
    """Write the results file atomically via a temporary file.

    Returns:
        The number of data rows written.

    Raises:
        OSError: If the file cannot be written.

    """
    ensure_directory(os.path.dirname(file_path), error_logger)
    lines = [",".join(escape_csv_field(h) for h in headers)]
    for row in build_result_rows(results, default_artist, default_title):
        lines.append(",".join(escape_csv_field(v) for v in row))

    temp_file_path = f"{file_path}.tmp"
    try:
        with open(temp_file_path, mode="w", encoding="utf-8", newline="") as f:
            f.write("\n".join(lines))
        os.replace(temp_file_path, file_path)
    except OSError as e:
        error_logger.error(f"Failed to save results to {file_path}: {e}")
        if os.path.exists(temp_file_path):
            try:
                os.remove(temp_file_path)
            except OSError as cleanup_e:
                error_logger.warning(f"Failed to remove temporary file {temp_file_path}: {cleanup_e}")
        raise

    row_count = len(lines) - 1
    console_logger.debug(f"Results saved to {file_path} ({row_count} rows).")
    return row_count


def generate_output_filename(prefix: str, now: datetime | None = None) -> str:
    """Return `<prefix><YYYY-MM-DDTHH-MM-SS>.csv` for the given (UTC) time."""
    moment = now or datetime.now(UTC)
    return f"{prefix}{moment.strftime('%Y-%m-%dT%H-%M-%S')}.csv"


def log_matches(results: list[LookupResult], min_year: int, console_logger: logging.Logger) -> None:
    """Log the matched releases and their qualifying versions."""
    console_logger.info(f"Releases with {min_year}+ versions:")
    for result in results:
        console_logger.info(f"{result.artist} - {result.title}")
        console_logger.info(f"  Release ID: {result.release_id}")
        console_logger.info(f"  {min_year}+ releases ({len(result.matching_versions)}):")
        for version in result.matching_versions:
            console_logger.info(f"    - [{version.year}] {version.title} (ID: {version.id})")
            console_logger.info(f"      URL: {version.url}")
