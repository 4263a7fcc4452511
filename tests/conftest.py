from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from bibview.engine import BrowseEngine, BrowseListener
from bibview.persist import ViewStatePersistence
from bibview.source import MemorySource


def book(book_id: int, title: str, authors=(), tags=(), **extra: Any) -> Dict[str, Any]:
    return {"id": book_id, "title": title, "authors": list(authors), "tags": list(tags), **extra}


SCENARIO_RECORDS = [
    book(1, "Dune", ["Herbert, Frank"], ["Fiction"], formats=["epub", "pdf"]),
    book(2, "Foundation", ["Asimov, Isaac"], ["Fiction"], formats=["mobi"], series="Foundation", series_index=1),
    book(3, "Dune Messiah", ["Herbert, Frank"], ["Sequel"], formats=["EPUB"], series="Dune", series_index=2),
]
SCENARIO_AUTHORS = [
    {"id": 10, "name": "Herbert, Frank", "sort": "Herbert, Frank", "book_count": 2},
    {"id": 11, "name": "Asimov, Isaac", "sort": "Asimov, Isaac", "book_count": 1},
]
SCENARIO_TAGS = [
    {"id": 20, "name": "Fiction", "book_count": 2},
    {"id": 21, "name": "Sequel", "book_count": 1},
]
SCENARIO_SERIES = [
    {"id": 30, "name": "Dune", "book_count": 1},
    {"id": 31, "name": "Foundation", "book_count": 1},
]


CALIBRE_SCHEMA = """
CREATE TABLE books (id INTEGER PRIMARY KEY, title TEXT, sort TEXT, timestamp TEXT,
                    pubdate TEXT, series_index REAL DEFAULT 1.0, has_cover BOOL DEFAULT 0);
CREATE TABLE authors (id INTEGER PRIMARY KEY, name TEXT, sort TEXT);
CREATE TABLE books_authors_link (id INTEGER PRIMARY KEY, book INTEGER, author INTEGER);
CREATE TABLE tags (id INTEGER PRIMARY KEY, name TEXT);
CREATE TABLE books_tags_link (id INTEGER PRIMARY KEY, book INTEGER, tag INTEGER);
CREATE TABLE series (id INTEGER PRIMARY KEY, name TEXT, sort TEXT);
CREATE TABLE books_series_link (id INTEGER PRIMARY KEY, book INTEGER, series INTEGER);
CREATE TABLE data (id INTEGER PRIMARY KEY, book INTEGER, format TEXT, name TEXT);
CREATE TABLE comments (id INTEGER PRIMARY KEY, book INTEGER, text TEXT);
CREATE TABLE publishers (id INTEGER PRIMARY KEY, name TEXT);
CREATE TABLE books_publishers_link (id INTEGER PRIMARY KEY, book INTEGER, publisher INTEGER);
CREATE TABLE ratings (id INTEGER PRIMARY KEY, rating INTEGER);
CREATE TABLE books_ratings_link (id INTEGER PRIMARY KEY, book INTEGER, rating INTEGER);
"""


def make_library(path: Path) -> Path:
    path.mkdir(parents=True)
    conn = sqlite3.connect(path / "metadata.db")
    conn.executescript(CALIBRE_SCHEMA)
    conn.executemany(
        "INSERT INTO books(id, title, sort, timestamp, pubdate, series_index, has_cover) VALUES(?,?,?,?,?,?,?)",
        [
            (1, "Dune", "Dune", "2020-01-01", "1965-08-01T00:00:00+00:00", 1.0, 1),
            (2, "The Foundation", "Foundation, The", "2022-01-01", "0101-01-01T00:00:00+00:00", 1.0, 0),
            (3, "Dune Messiah", "Dune Messiah", "2021-01-01", None, 2.0, 1),
        ],
    )
    conn.executemany(
        "INSERT INTO authors(id, name, sort) VALUES(?,?,?)",
        [(10, "Frank Herbert", "Herbert, Frank"), (11, "Isaac Asimov", "Asimov, Isaac"), (12, "Nobody", None)],
    )
    conn.executemany(
        "INSERT INTO books_authors_link(book, author) VALUES(?,?)",
        [(1, 10), (2, 11), (3, 10), (3, 11)],
    )
    conn.executemany("INSERT INTO tags(id, name) VALUES(?,?)", [(20, "Fiction"), (21, "Sequel")])
    conn.executemany("INSERT INTO books_tags_link(book, tag) VALUES(?,?)", [(1, 20), (2, 20), (3, 21), (3, 20)])
    conn.execute("INSERT INTO series(id, name, sort) VALUES(30, 'Dune', 'Dune')")
    conn.execute("INSERT INTO books_series_link(book, series) VALUES(3, 30)")
    conn.executemany("INSERT INTO data(book, format) VALUES(?,?)", [(1, "EPUB"), (1, "PDF"), (3, "MOBI")])
    conn.execute("INSERT INTO comments(book, text) VALUES(1, '<p>Desert <b>planet</b></p>')")
    conn.execute("INSERT INTO publishers(id, name) VALUES(1, 'Chilton')")
    conn.execute("INSERT INTO books_publishers_link(book, publisher) VALUES(1, 1)")
    conn.execute("INSERT INTO ratings(id, rating) VALUES(1, 8)")
    conn.execute("INSERT INTO books_ratings_link(book, rating) VALUES(1, 1)")
    conn.commit()
    conn.close()
    return path


class RecordingListener(BrowseListener):
    def __init__(self):
        self.filtered: List[list] = []
        self.pages: List[list] = []
        self.selections: List[Optional[int]] = []
        self.statuses: List[str] = []

    def on_filtered_set_changed(self, ordered):
        self.filtered.append(list(ordered))

    def on_page_materialized(self, page):
        self.pages.append(list(page))

    def on_selection_changed(self, record):
        self.selections.append(record.id if record else None)

    def on_status(self, message):
        self.statuses.append(message)


@pytest.fixture
def source() -> MemorySource:
    src = MemorySource()
    src.put(
        "lib-a",
        name="A",
        records=SCENARIO_RECORDS,
        authors=SCENARIO_AUTHORS,
        tags=SCENARIO_TAGS,
        series=SCENARIO_SERIES,
    )
    src.put(
        "lib-b",
        name="B",
        records=[book(7, "Solaris", ["Lem, Stanislaw"], ["Fiction"]), book(8, "Eden", ["Lem, Stanislaw"])],
        authors=[{"id": 10, "name": "Lem, Stanislaw", "book_count": 2}],
        tags=[{"id": 20, "name": "Fiction", "book_count": 1}],
    )
    src.put("lib-empty", name="Z")
    return src


@pytest.fixture
def persistence() -> ViewStatePersistence:
    return ViewStatePersistence.in_memory()


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()


@pytest.fixture
def make_engine(source, persistence, listener):
    def _make(page_size: int = 100) -> BrowseEngine:
        return BrowseEngine(source, persistence, listener=listener, page_size=page_size)

    return _make
