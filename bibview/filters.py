from __future__ import annotations

from typing import Callable, Iterable, List, Sequence

from .catalog import FacetIndex
from .logutil import logger
from .models import FacetType, Record
from .state import ViewState


def matches_search(record: Record, term: str) -> bool:
    if not term:
        return True
    needle = term.lower()
    if needle in record.title.lower():
        return True
    return any(needle in a.lower() for a in record.authors)


def _matches_names(values: Iterable[str], wanted: set) -> bool:
    return any(v.lower() in wanted for v in values)


def _name_filter(names: List[str], values: Callable[[Record], Iterable[str]]) -> Callable[[Record], bool]:
    wanted = {n.lower() for n in names}
    return lambda record: _matches_names(values(record), wanted)


def _series_names(record: Record) -> Iterable[str]:
    return (record.series,) if record.series else ()


def filter_records(records: Sequence[Record], state: ViewState, index: FacetIndex) -> List[Record]:
    """Apply search, author, tag, series and format filters, in that order.

    Axes combine with AND, selections within an axis with OR. The input is
    not modified and the output keeps input order.
    """
    filtered = list(records)

    if state.search_term:
        filtered = [r for r in filtered if matches_search(r, state.search_term)]

    axes = (
        (FacetType.AUTHOR, lambda r: r.authors),
        (FacetType.TAG, lambda r: r.tags),
        (FacetType.SERIES, _series_names),
    )
    for facet_type, values in axes:
        selected = state.facet_selection(facet_type)
        if not selected:
            continue
        names = index.resolve_names(facet_type, selected)
        if len(names) != len(selected):
            logger.debug("Dropped {} stale {} id(s) from filter", len(selected) - len(names), facet_type.value)
        keep = _name_filter(names, values)
        filtered = [r for r in filtered if keep(r)]

    if state.selected_formats:
        wanted = {f.upper() for f in state.selected_formats}
        filtered = [r for r in filtered if any(f.upper() in wanted for f in r.formats)]

    return filtered
