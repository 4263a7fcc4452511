from __future__ import annotations

import sqlite3
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .logutil import logger
from .models import Facet, FacetTables, LibraryInfo, Record
from .scanner import scan_libraries

MAX_RECORDS = 10000


class SourceError(RuntimeError):
    """A library, record or facet fetch failed."""


def connect(db_path: Path | str) -> sqlite3.Connection:
    # Calibre owns metadata.db; never write to it
    conn = sqlite3.connect(Path(db_path).resolve().as_uri() + "?mode=ro", uri=True)
    conn.row_factory = sqlite3.Row
    return conn


def _grouped(conn: sqlite3.Connection, sql: str, optional: bool = False) -> Dict[int, List[Any]]:
    """Run a ``(book, value)`` query and collect the values per book, in row order."""
    out: Dict[int, List[Any]] = defaultdict(list)
    try:
        rows = conn.execute(sql).fetchall()
    except sqlite3.OperationalError as e:
        if not optional:
            raise
        logger.debug("Skipping optional lookup: {}", e)
        return out
    for book, value in rows:
        if value is not None:
            out[int(book)].append(value)
    return out


def _first(values: Sequence[Any]) -> Optional[Any]:
    return values[0] if values else None


def _pubdate(value: Optional[str]) -> Optional[str]:
    # Calibre stores "undefined" dates as year 101
    if not value or value.startswith("0101-"):
        return None
    return value


BOOKS_SQL = """
SELECT id, title, sort, pubdate, series_index, has_cover
FROM books
ORDER BY timestamp DESC
LIMIT ?
"""

AUTHORS_SQL = """
SELECT bal.book, a.name FROM books_authors_link AS bal
JOIN authors AS a ON a.id = bal.author
ORDER BY bal.id
"""
TAGS_SQL = """
SELECT btl.book, t.name FROM books_tags_link AS btl
JOIN tags AS t ON t.id = btl.tag
ORDER BY t.name
"""
SERIES_SQL = """
SELECT bsl.book, s.name FROM books_series_link AS bsl
JOIN series AS s ON s.id = bsl.series
"""
FORMATS_SQL = "SELECT book, format FROM data ORDER BY format"
COMMENTS_SQL = "SELECT book, text FROM comments"
PUBLISHERS_SQL = """
SELECT bpl.book, p.name FROM books_publishers_link AS bpl
JOIN publishers AS p ON p.id = bpl.publisher
"""
RATINGS_SQL = """
SELECT brl.book, r.rating FROM books_ratings_link AS brl
JOIN ratings AS r ON r.id = brl.rating
"""

AUTHOR_FACETS_SQL = """
SELECT a.id, a.name, a.sort, COUNT(bal.book) AS book_count
FROM authors AS a
LEFT JOIN books_authors_link AS bal ON a.id = bal.author
GROUP BY a.id, a.name, a.sort
ORDER BY a.sort
"""
TAG_FACETS_SQL = """
SELECT t.id, t.name, NULL AS sort, COUNT(btl.book) AS book_count
FROM tags AS t
LEFT JOIN books_tags_link AS btl ON t.id = btl.tag
GROUP BY t.id, t.name
ORDER BY t.name
"""
SERIES_FACETS_SQL = """
SELECT s.id, s.name, s.sort, COUNT(bsl.book) AS book_count
FROM series AS s
LEFT JOIN books_series_link AS bsl ON s.id = bsl.series
GROUP BY s.id, s.name, s.sort
ORDER BY s.sort
"""


def read_records(conn: sqlite3.Connection, limit: int = MAX_RECORDS) -> List[Record]:
    books = conn.execute(BOOKS_SQL, (int(limit),)).fetchall()
    authors = _grouped(conn, AUTHORS_SQL)
    tags = _grouped(conn, TAGS_SQL, optional=True)
    series = _grouped(conn, SERIES_SQL, optional=True)
    formats = _grouped(conn, FORMATS_SQL, optional=True)
    comments = _grouped(conn, COMMENTS_SQL, optional=True)
    publishers = _grouped(conn, PUBLISHERS_SQL, optional=True)
    ratings = _grouped(conn, RATINGS_SQL, optional=True)

    records = []
    for row in books:
        book_id = int(row["id"])
        series_name = _first(series.get(book_id, ()))
        records.append(
            Record.from_dict(
                {
                    "id": book_id,
                    "title": row["title"],
                    "sort": row["sort"],
                    "authors": authors.get(book_id, []),
                    "tags": tags.get(book_id, []),
                    "series": series_name,
                    "series_index": row["series_index"] if series_name else None,
                    "formats": formats.get(book_id, []),
                    "comments": _first(comments.get(book_id, ())),
                    "publisher": _first(publishers.get(book_id, ())),
                    "pubdate": _pubdate(row["pubdate"]),
                    "rating": _first(ratings.get(book_id, ())),
                    "has_cover": row["has_cover"],
                }
            )
        )
    return records


def _read_facets(conn: sqlite3.Connection, sql: str) -> Tuple[Facet, ...]:
    return tuple(
        Facet(id=int(r["id"]), name=r["name"], sort=r["sort"] or None, count=int(r["book_count"]))
        for r in conn.execute(sql).fetchall()
    )


def read_facets(conn: sqlite3.Connection) -> FacetTables:
    return FacetTables(
        authors=_read_facets(conn, AUTHOR_FACETS_SQL),
        tags=_read_facets(conn, TAG_FACETS_SQL),
        series=_read_facets(conn, SERIES_FACETS_SQL),
    )


class CalibreSource:
    """Record source backed by the Calibre libraries found under ``root``."""

    def __init__(self, root: Path | str, limit: int = MAX_RECORDS):
        self.root = Path(root)
        self.limit = limit
        self._libraries: Optional[Dict[str, LibraryInfo]] = None

    def refresh(self) -> List[LibraryInfo]:
        try:
            found = scan_libraries(self.root)
        except OSError as e:
            raise SourceError(f"cannot scan {self.root}: {e}") from e
        self._libraries = {lib.id: lib for lib in found}
        return found

    def list_libraries(self) -> List[LibraryInfo]:
        if self._libraries is None:
            return self.refresh()
        return sorted(self._libraries.values(), key=lambda lib: lib.name)

    def _library(self, library_id: str) -> LibraryInfo:
        if self._libraries is None:
            self.refresh()
        lib = self._libraries.get(library_id)
        if lib is None:
            raise SourceError(f"library not found: {library_id}")
        return lib

    def load_records(self, library_id: str) -> List[Record]:
        lib = self._library(library_id)
        try:
            conn = connect(lib.metadata_db)
            try:
                return read_records(conn, self.limit)
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise SourceError(f"cannot read records of {lib.name}: {e}") from e

    def load_facets(self, library_id: str) -> FacetTables:
        lib = self._library(library_id)
        try:
            conn = connect(lib.metadata_db)
            try:
                return read_facets(conn)
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise SourceError(f"cannot read facets of {lib.name}: {e}") from e


class MemorySource:
    """Source over plain dicts, as a JSON API would return them."""

    def __init__(self, libraries: Mapping[str, Mapping[str, Any]] | None = None):
        self._libraries: Dict[str, Dict[str, Any]] = {}
        self.failing: set = set()
        for library_id, payload in (libraries or {}).items():
            self.put(library_id, **payload)

    def put(
        self,
        library_id: str,
        records: Iterable[Mapping[str, Any]] = (),
        authors: Iterable[Mapping[str, Any]] = (),
        tags: Iterable[Mapping[str, Any]] = (),
        series: Iterable[Mapping[str, Any]] = (),
        name: Optional[str] = None,
    ) -> None:
        records = [Record.from_dict(r) for r in records]
        self._libraries[library_id] = {
            "info": LibraryInfo(id=library_id, name=name or library_id, record_count=len(records)),
            "records": records,
            "facets": FacetTables(
                authors=tuple(Facet.from_dict(f) for f in authors),
                tags=tuple(Facet.from_dict(f) for f in tags),
                series=tuple(Facet.from_dict(f) for f in series),
            ),
        }

    def remove(self, library_id: str) -> None:
        self._libraries.pop(library_id, None)

    def refresh(self) -> List[LibraryInfo]:
        return self.list_libraries()

    def list_libraries(self) -> List[LibraryInfo]:
        return sorted((lib["info"] for lib in self._libraries.values()), key=lambda lib: lib.name)

    def _library(self, library_id: str) -> Dict[str, Any]:
        if library_id in self.failing:
            raise SourceError(f"fetch failed for {library_id}")
        lib = self._libraries.get(library_id)
        if lib is None:
            raise SourceError(f"library not found: {library_id}")
        return lib

    def load_records(self, library_id: str) -> List[Record]:
        return list(self._library(library_id)["records"])

    def load_facets(self, library_id: str) -> FacetTables:
        return self._library(library_id)["facets"]
