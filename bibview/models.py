from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Tuple


class FacetType(str, Enum):
    AUTHOR = "author"
    TAG = "tag"
    SERIES = "series"


class SortMethod(str, Enum):
    RECENT = "recent"
    TITLE = "title"
    AUTHOR = "author"

    @classmethod
    def parse(cls, value: Any) -> "SortMethod":
        """Unknown or missing values fall back to load order."""
        try:
            return cls(value)
        except ValueError:
            return cls.RECENT


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value)
    return value if value.strip() else None


def _opt_float(value: Any) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _opt_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError, OverflowError):
        return None


def _str_tuple(value: Any) -> Tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(str(v) for v in value if v is not None)


@dataclass(frozen=True)
class Record:
    id: int
    title: str
    authors: Tuple[str, ...] = ()
    tags: Tuple[str, ...] = ()
    series: Optional[str] = None
    series_index: Optional[float] = None
    publisher: Optional[str] = None
    pubdate: Optional[str] = None
    rating: Optional[int] = None
    comments: Optional[str] = None
    has_cover: bool = False
    formats: Tuple[str, ...] = ()
    sort: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Record":
        # Optional fields that are missing or empty are stored as None
        comments = data.get("comments")
        return cls(
            id=int(data["id"]),
            title=str(data.get("title") or ""),
            authors=_str_tuple(data.get("authors")),
            tags=_str_tuple(data.get("tags")),
            series=_opt_str(data.get("series")),
            series_index=_opt_float(data.get("series_index")),
            publisher=_opt_str(data.get("publisher")),
            pubdate=_opt_str(data.get("pubdate")),
            rating=_opt_int(data.get("rating")),
            comments=comments if isinstance(comments, str) and comments.strip() else None,
            has_cover=bool(data.get("has_cover")),
            formats=_str_tuple(data.get("formats")),
            sort=_opt_str(data.get("sort")),
        )

    def display_formats(self) -> Tuple[str, ...]:
        return tuple(f.upper() for f in self.formats)

    def series_label(self) -> Optional[str]:
        if not self.series:
            return None
        if self.series_index:
            idx = self.series_index
            text = str(int(idx)) if float(idx).is_integer() else str(idx)
            return f"{self.series} #{text}"
        return self.series

    def rating_label(self) -> Optional[str]:
        return f"{self.rating}/10" if self.rating else None

    def display_authors(self) -> str:
        return " & ".join(format_author_name(a) for a in self.authors) or "Unknown"


@dataclass(frozen=True)
class Facet:
    id: int
    name: str
    sort: Optional[str] = None
    count: int = 0

    @property
    def sort_key(self) -> str:
        return self.sort or self.name

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Facet":
        return cls(
            id=int(data["id"]),
            name=str(data.get("name") or ""),
            sort=_opt_str(data.get("sort")),
            count=_opt_int(data.get("book_count", data.get("count"))) or 0,
        )


@dataclass(frozen=True)
class LibraryInfo:
    id: str
    name: str
    path: str = ""
    metadata_db: str = ""
    record_count: int = 0


@dataclass
class FacetTables:
    authors: Tuple[Facet, ...] = field(default_factory=tuple)
    tags: Tuple[Facet, ...] = field(default_factory=tuple)
    series: Tuple[Facet, ...] = field(default_factory=tuple)

    def for_type(self, facet_type: FacetType) -> Tuple[Facet, ...]:
        if facet_type is FacetType.AUTHOR:
            return self.authors
        if facet_type is FacetType.TAG:
            return self.tags
        return self.series


def format_author_name(name: str) -> str:
    """Turn Calibre's "Last|First" storage form into "First Last"."""
    if "|" in name:
        parts = name.split("|")
        if len(parts) == 2:
            last, first = parts[0].strip(), parts[1].strip()
            if first and last:
                return f"{first} {last}"
    return name
