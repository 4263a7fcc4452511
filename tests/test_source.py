from __future__ import annotations

from pathlib import Path

import pytest

from bibview.scanner import library_id_for, scan_libraries
from bibview.source import CalibreSource, SourceError

from conftest import make_library


@pytest.fixture
def root(tmp_path: Path) -> Path:
    make_library(tmp_path / "SciFi")
    make_library(tmp_path / "nested" / "Archive")
    make_library(tmp_path / ".hidden" / "Secret")
    make_library(tmp_path / "a" / "b" / "TooDeep")
    return tmp_path


def test_scan_finds_libraries_up_to_depth_two(root: Path) -> None:
    libraries = scan_libraries(root)
    assert [lib.name for lib in libraries] == ["Archive", "SciFi"]
    assert all(lib.record_count == 3 for lib in libraries)
    assert libraries[1].id == library_id_for(root / "SciFi")
    # ids are stable across scans
    assert [lib.id for lib in scan_libraries(root)] == [lib.id for lib in libraries]


def test_records_come_back_most_recent_first(root: Path) -> None:
    source = CalibreSource(root)
    lib_id = library_id_for(root / "SciFi")
    records = source.load_records(lib_id)
    assert [r.id for r in records] == [2, 3, 1]

    foundation, messiah, dune = records
    assert foundation.sort == "Foundation, The"
    assert foundation.pubdate is None
    assert foundation.series is None and foundation.series_index is None
    assert messiah.authors == ("Frank Herbert", "Isaac Asimov")
    assert messiah.tags == ("Fiction", "Sequel")
    assert messiah.series_label() == "Dune #2"
    assert dune.formats == ("EPUB", "PDF")
    assert dune.comments == "<p>Desert <b>planet</b></p>"
    assert dune.publisher == "Chilton"
    assert dune.rating_label() == "8/10"
    assert dune.has_cover is True


def test_facets_carry_counts_and_sort_keys(root: Path) -> None:
    source = CalibreSource(root)
    tables = source.load_facets(library_id_for(root / "SciFi"))
    assert [(a.id, a.count) for a in tables.authors] == [(12, 0), (11, 2), (10, 2)]
    assert tables.authors[2].sort_key == "Herbert, Frank"
    assert tables.authors[0].sort_key == "Nobody"
    assert [(t.name, t.count) for t in tables.tags] == [("Fiction", 3), ("Sequel", 1)]
    assert [(s.name, s.count) for s in tables.series] == [("Dune", 1)]


def test_unknown_library_is_a_source_error(root: Path) -> None:
    with pytest.raises(SourceError):
        CalibreSource(root).load_records("nope")


def test_unreadable_database_is_a_source_error(tmp_path: Path) -> None:
    lib = tmp_path / "Broken"
    lib.mkdir()
    (lib / "metadata.db").write_bytes(b"this is not sqlite")
    source = CalibreSource(tmp_path)
    [info] = source.list_libraries()
    assert info.record_count == 0
    with pytest.raises(SourceError):
        source.load_records(info.id)
