"""Unit tests for wantlist parsing and results CSV output."""

from __future__ import annotations

import csv
import io
import logging

from datetime import UTC, datetime
from pathlib import Path

import pytest

from utils.metadata import LookupResult, LookupTarget, VersionCandidate
from utils.reports import (
    WantlistReadError,
    build_result_rows,
    escape_csv_field,
    generate_output_filename,
    load_wantlist,
    result_headers,
    save_results_csv,
)

WANTLIST_HEADER = "Catalog#,Artist,Title,Label,Format,Rating,Released,release_id,Notes\n"


def _write(tmp_path: Path, content: str) -> str:
    path = tmp_path / "wantlist.csv"
    path.write_text(content, encoding="utf-8")
    return str(path)


class TestLoadWantlist:
    """Tests for reading the wantlist export."""

    def test_reads_targets_in_order(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path,
            WANTLIST_HEADER
            + "CAT1,Boards of Canada,Geogaddi,Warp,LP,,2002,111,\n"
            + 'CAT2,"Artist, The",Title,Label,CD,,1999,222,"note, with comma"\n',
        )
        targets = load_wantlist(path)
        assert targets == [
            LookupTarget(111, "Boards of Canada", "Geogaddi"),
            LookupTarget(222, "Artist, The", "Title"),
        ]

    def test_bad_release_ids_are_skipped(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path,
            "release_id,Artist,Title\nabc,A,B\n0,A,B\n-4,A,B\n,A,B\n333,A,B\n",
        )
        assert [t.release_id for t in load_wantlist(path)] == [333]

    def test_missing_artist_and_title_default(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "release_id\n444\n\n555\n")
        targets = load_wantlist(path, default_artist="N/A")
        assert targets == [LookupTarget(444, "N/A", "Unknown"), LookupTarget(555, "N/A", "Unknown")]

    def test_empty_cells_default(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "release_id,Artist,Title\n666,,\n")
        assert load_wantlist(path) == [LookupTarget(666, "Unknown", "Unknown")]

    def test_ragged_rows_are_tolerated(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "Artist,Title,release_id\nA,B,777,extra,cells\nC\n")
        assert [t.release_id for t in load_wantlist(path)] == [777]

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(WantlistReadError):
            load_wantlist(str(tmp_path / "missing.csv"))

    def test_missing_release_id_column_raises(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "Artist,Title\nA,B\n")
        with pytest.raises(WantlistReadError, match="release_id"):
            load_wantlist(path)

    def test_empty_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(WantlistReadError):
            load_wantlist(_write(tmp_path, ""))


class TestEscaping:
    """Tests for comma-delimited field escaping."""

    @pytest.mark.parametrize("value", ["plain", 2016, "with space"])
    def test_plain_values_are_unchanged(self, value: object) -> None:
        assert escape_csv_field(value) == str(value)

    def test_special_characters_are_quoted(self) -> None:
        value = 'Live, "Deluxe"\nEdition'
        escaped = escape_csv_field(value)
        assert escaped == '"Live, ""Deluxe""\nEdition"'
        parsed = next(csv.reader(io.StringIO(escaped)))
        assert parsed == [value]


def _result(release_id: int, *versions: tuple[int, int, str]) -> LookupResult:
    candidates = tuple(
        VersionCandidate.from_api({"id": vid, "year": year, "title": title}) for vid, year, title in versions
    )
    return LookupResult(release_id=release_id, artist="Artist", title="Album", matching_versions=candidates)


class TestResultRows:
    """Tests for building and writing result rows."""

    def test_one_row_per_version(self) -> None:
        rows = list(build_result_rows([_result(1, (9, 2016, "A"), (10, 2020, "B")), _result(2)]))
        assert rows == [
            ["Artist", "Album", 1, 2016, "A", 9, "https://www.discogs.com/release/9"],
            ["Artist", "Album", 1, 2020, "B", 10, "https://www.discogs.com/release/10"],
        ]

    def test_headers_interpolate_year(self) -> None:
        headers = result_headers(2015)
        assert headers[:3] == ["Original Artist", "Original Title", "Original Release ID"]
        assert headers[3:] == ["2015+ Release Year", "2015+ Release Title", "2015+ Release ID", "2015+ Release URL"]

    def test_save_results_csv_round_trips(self, tmp_path: Path) -> None:
        logger = logging.getLogger("wantlist_test")
        path = tmp_path / "out" / "results.csv"
        written = save_results_csv(
            [_result(1, (9, 2016, 'Reissue, "Remastered"'))],
            str(path),
            result_headers(2015),
            logger,
            logger,
        )
        assert written == 1
        with open(path, encoding="utf-8", newline="") as f:
            rows = list(csv.reader(f))
        assert rows[0] == result_headers(2015)
        assert rows[1] == ["Artist", "Album", "1", "2016", 'Reissue, "Remastered"', "9", "https://www.discogs.com/release/9"]
        assert not (tmp_path / "out" / "results.csv.tmp").exists()


def test_generate_output_filename() -> None:
    moment = datetime(2024, 1, 15, 10, 30, 45, tzinfo=UTC)
    assert generate_output_filename("wantlist-results-", moment) == "wantlist-results-2024-01-15T10-30-45.csv"
