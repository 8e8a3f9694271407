#!/usr/bin/env python3

"""Metadata Helpers Module.

Provides the data model of the wantlist checker and the functions that classify
Discogs master versions against the year threshold.

Types:
    - LookupTarget: one wantlist entry to check
    - YearSource: where a version's year was resolved from
    - VersionCandidate: one version (pressing/edition) of a master work
    - LookupResult: the outcome of checking one LookupTarget

Functions:
    - resolve_year: resolves the year of a raw version record once, at ingestion
    - parse_version_id: validates the id of a raw version record
    - parse_versions: converts raw version records into VersionCandidate objects
    - filter_versions_since: keeps candidates released in or after a given year
"""

from __future__ import annotations

import re

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

YEAR_PATTERN = re.compile(r"(\d{4})")

DEFAULT_ARTIST = "Unknown"
DEFAULT_TITLE = "Unknown"


class YearSource(Enum):
    """Tag describing how a version's year was obtained."""

    YEAR_FIELD = "year"
    RELEASED_DATE = "released"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class LookupTarget:
    """A wantlist release to look up."""

    release_id: int
    artist: str = DEFAULT_ARTIST
    title: str = DEFAULT_TITLE

    def __post_init__(self) -> None:
        if self.release_id <= 0:
            raise ValueError(f"release_id must be positive, got {self.release_id}")


@dataclass(frozen=True, slots=True)
class VersionCandidate:
    """One version of a master work, with its year resolved."""

    id: int
    title: str
    year: int | None
    year_source: YearSource
    url: str

    @classmethod
    def from_api(
        cls,
        version: dict[str, Any],
        site_base_url: str = "https://www.discogs.com",
        default_title: str = DEFAULT_TITLE,
    ) -> VersionCandidate:
        """Build a candidate from a raw Discogs version record.

        Raises:
            ValueError: If the record has no positive integer id.

        """
        version_id = parse_version_id(version.get("id"))
        if version_id is None:
            raise ValueError(f"Version record has no usable id: {version.get('id')!r}")
        year, source = resolve_year(version)
        return cls(
            id=version_id,
            title=version.get("title") or default_title,
            year=year,
            year_source=source,
            url=release_url(version_id, site_base_url),
        )


@dataclass(frozen=True, slots=True)
class LookupResult:
    """Outcome of checking one wantlist release."""

    release_id: int
    artist: str = DEFAULT_ARTIST
    title: str = DEFAULT_TITLE
    matching_versions: tuple[VersionCandidate, ...] = field(default_factory=tuple)
    error: str | None = None

    @property
    def matched(self) -> bool:
        """True when at least one version qualifies."""
        return len(self.matching_versions) > 0

    @classmethod
    def unmatched(cls, target: LookupTarget, error: str | None = None) -> LookupResult:
        """Non-matching result for a target (no master, or a failed lookup)."""
        return cls(release_id=target.release_id, artist=target.artist, title=target.title, error=error)


def release_url(release_id: int, site_base_url: str = "https://www.discogs.com") -> str:
    """Return the canonical Discogs page URL of a release."""
    return f"{site_base_url.rstrip('/')}/release/{release_id}"


def resolve_year(version: dict[str, Any]) -> tuple[int | None, YearSource]:
    """Resolve the year of a raw version record.

    Resolution order: a non-zero numeric `year` field, then the first 4-digit run in
    the free-form `released` string. Anything else is unknown and yields no year.
    """
    year = version.get("year")
    # bool is an int subclass and never a year
    if isinstance(year, int) and not isinstance(year, bool) and year:
        return year, YearSource.YEAR_FIELD

    released = version.get("released")
    if isinstance(released, str) and released:
        match = YEAR_PATTERN.search(released)
        if match:
            return int(match.group(1)), YearSource.RELEASED_DATE

    return None, YearSource.UNKNOWN


def parse_version_id(raw: Any) -> int | None:
    """Return the positive integer id of a version record, or None."""
    if isinstance(raw, bool):
        return None
    try:
        version_id = int(raw)
    except (TypeError, ValueError, OverflowError):
        return None
    return version_id if version_id > 0 else None


def parse_versions(
    versions: list[dict[str, Any]],
    site_base_url: str = "https://www.discogs.com",
    default_title: str = DEFAULT_TITLE,
) -> list[VersionCandidate]:
    """Convert raw version records into candidates, skipping records without a usable id."""
    candidates = []
    for version in versions:
        if not isinstance(version, dict) or parse_version_id(version.get("id")) is None:
            continue
        candidates.append(VersionCandidate.from_api(version, site_base_url, default_title))
    return candidates


def filter_versions_since(candidates: list[VersionCandidate], min_year: int) -> list[VersionCandidate]:
    """Keep candidates whose resolved year is at least `min_year` (inclusive).

    Candidates with an unknown year never qualify.
    """
    return [c for c in candidates if c.year is not None and c.year >= min_year]
