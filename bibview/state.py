from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Set

from .models import FacetType, SortMethod


def _int_ids(values: Any) -> Set[int]:
    if values is None:
        return set()
    if not isinstance(values, (list, tuple, set)):
        raise ValueError(f"expected a list of ids, got {type(values).__name__}")
    return {int(v) for v in values}


def _opt_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


@dataclass
class ViewState:
    active_library_id: Optional[str] = None
    selected_authors: Set[int] = field(default_factory=set)
    selected_tags: Set[int] = field(default_factory=set)
    selected_series: Set[int] = field(default_factory=set)
    selected_formats: Set[str] = field(default_factory=set)
    search_term: str = ""
    sort_method: SortMethod = SortMethod.RECENT
    displayed_count: int = 0
    selected_record_id: Optional[int] = None
    selected_record_library_id: Optional[str] = None

    def facet_selection(self, facet_type: FacetType) -> Set[int]:
        facet_type = FacetType(facet_type)
        if facet_type is FacetType.AUTHOR:
            return self.selected_authors
        if facet_type is FacetType.TAG:
            return self.selected_tags
        return self.selected_series

    def has_filters(self) -> bool:
        return bool(
            self.selected_authors
            or self.selected_tags
            or self.selected_series
            or self.selected_formats
            or self.search_term
        )

    def clear_filters(self) -> None:
        self.selected_authors.clear()
        self.selected_tags.clear()
        self.selected_series.clear()
        self.selected_formats.clear()
        self.search_term = ""

    def reset_view(self) -> None:
        """Drop every filter, go back to load order and to an unrendered list."""
        self.clear_filters()
        self.sort_method = SortMethod.RECENT
        self.displayed_count = 0

    def restore_filters(self, other: "ViewState") -> None:
        self.selected_authors = set(other.selected_authors)
        self.selected_tags = set(other.selected_tags)
        self.selected_series = set(other.selected_series)
        self.selected_formats = set(other.selected_formats)
        self.search_term = other.search_term
        self.sort_method = other.sort_method
        self.displayed_count = other.displayed_count
        if other.selected_record_id is not None and other.selected_record_library_id:
            self.select(other.selected_record_id, other.selected_record_library_id)
        else:
            self.clear_selection()

    def select(self, record_id: int, library_id: str) -> None:
        self.selected_record_id = record_id
        self.selected_record_library_id = library_id

    def clear_selection(self) -> None:
        self.selected_record_id = None
        self.selected_record_library_id = None

    def has_selection(self) -> bool:
        return self.selected_record_id is not None and self.selected_record_library_id is not None

    def to_snapshot(self) -> Dict[str, Any]:
        return {
            "activeLibraryId": self.active_library_id,
            "selectedAuthorIds": sorted(self.selected_authors),
            "selectedTagIds": sorted(self.selected_tags),
            "selectedSeriesIds": sorted(self.selected_series),
            "selectedFormatNames": sorted(self.selected_formats),
            "searchTerm": self.search_term,
            "sortMethod": self.sort_method.value,
            "displayedCount": self.displayed_count,
            "selectedRecordId": self.selected_record_id,
            "selectedRecordLibraryId": self.selected_record_library_id,
        }

    @classmethod
    def from_snapshot(cls, data: Mapping[str, Any]) -> "ViewState":
        """Build a state from a stored snapshot.

        Raises ValueError, TypeError or OverflowError when the payload is not
        shaped like a snapshot; callers treat that as "no snapshot".
        """
        if not isinstance(data, Mapping):
            raise TypeError("snapshot must be a JSON object")
        formats = data.get("selectedFormatNames") or []
        if not isinstance(formats, (list, tuple)):
            raise ValueError("selectedFormatNames must be a list")
        library_id = data.get("activeLibraryId")
        record_id = _opt_int(data.get("selectedRecordId"))
        record_library = data.get("selectedRecordLibraryId") or None
        state = cls(
            active_library_id=str(library_id) if library_id else None,
            selected_authors=_int_ids(data.get("selectedAuthorIds")),
            selected_tags=_int_ids(data.get("selectedTagIds")),
            selected_series=_int_ids(data.get("selectedSeriesIds")),
            selected_formats={str(f).upper() for f in formats},
            search_term=str(data.get("searchTerm") or ""),
            sort_method=SortMethod.parse(data.get("sortMethod")),
            displayed_count=max(0, int(data.get("displayedCount") or 0)),
        )
        # both halves of the selection or neither
        if record_id is not None and record_library:
            state.select(record_id, str(record_library))
        return state


VIEW_MODES = ("grid", "table")
COLUMNS = ("title", "authors", "series", "publisher", "rating", "pubdate")
SECTIONS = ("libraries", "authors", "series", "tags", "formats")
MIN_COVER_SIZE = 50
MAX_COVER_SIZE = 250
DEFAULT_COVER_SIZE = 120


def clamp_cover_size(size: int) -> int:
    return max(MIN_COVER_SIZE, min(MAX_COVER_SIZE, int(size)))


@dataclass
class ViewPreferences:
    view_mode: str = "grid"
    cover_size: int = DEFAULT_COVER_SIZE
    column_visibility: Dict[str, bool] = field(default_factory=lambda: {c: True for c in COLUMNS})
    collapsed_sections: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "viewMode": self.view_mode,
            "coverSize": self.cover_size,
            "columnVisibility": dict(self.column_visibility),
            "collapsedSections": list(self.collapsed_sections),
        }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "ViewPreferences":
        prefs = cls()
        if not isinstance(data, Mapping):
            return prefs
        # each field falls back on its own
        if data.get("viewMode") in VIEW_MODES:
            prefs.view_mode = data["viewMode"]
        try:
            prefs.cover_size = clamp_cover_size(data.get("coverSize", DEFAULT_COVER_SIZE))
        except (TypeError, ValueError, OverflowError):
            pass
        visibility = data.get("columnVisibility")
        if isinstance(visibility, Mapping):
            for col in COLUMNS:
                if isinstance(visibility.get(col), bool):
                    prefs.column_visibility[col] = visibility[col]
        sections = data.get("collapsedSections")
        if isinstance(sections, list):
            prefs.collapsed_sections = [s for s in sections if s in SECTIONS]
        return prefs

    def toggle_column(self, column: str) -> bool:
        if column not in COLUMNS:
            raise ValueError(f"unknown column: {column}")
        self.column_visibility[column] = not self.column_visibility.get(column, True)
        return self.column_visibility[column]

    def toggle_section(self, section: str) -> bool:
        """Flip a filter panel section; returns True when it is now collapsed."""
        if section not in SECTIONS:
            raise ValueError(f"unknown section: {section}")
        if section in self.collapsed_sections:
            self.collapsed_sections.remove(section)
            return False
        self.collapsed_sections.append(section)
        return True
