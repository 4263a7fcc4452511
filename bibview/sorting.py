from __future__ import annotations

from typing import Callable, Dict, List, Sequence

from .catalog import FacetIndex
from .models import Record, SortMethod


def title_key(record: Record) -> str:
    return (record.sort or record.title).lower()


def author_key_for(index: FacetIndex) -> Callable[[Record], str]:
    def key(record: Record) -> str:
        if not record.authors:
            return ""
        return index.author_sort_key(record.authors[0]).lower()

    return key


def sort_records(records: Sequence[Record], method: SortMethod, index: FacetIndex) -> List[Record]:
    """Return a new list ordered by ``method``; ties keep their input order."""
    method = SortMethod.parse(method)
    if method is SortMethod.TITLE:
        return sorted(records, key=title_key)
    if method is SortMethod.AUTHOR:
        return sorted(records, key=author_key_for(index))
    # recent: source order is already most-recent-first
    return list(records)


SORT_LABELS: Dict[SortMethod, str] = {
    SortMethod.RECENT: "Recently added",
    SortMethod.TITLE: "Title",
    SortMethod.AUTHOR: "Author",
}
