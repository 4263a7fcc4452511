from __future__ import annotations

from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .models import Facet, FacetTables, FacetType, Record


class FacetIndex:
    """Id -> facet lookup for one library's author, tag and series tables.

    Selections are stored as ids while records carry names, so every id-based
    filter goes through ``resolve_name`` first. Ids that no longer exist
    resolve to None.
    """

    def __init__(self, tables: Optional[FacetTables] = None):
        self.tables = tables or FacetTables()
        self._by_id: Dict[FacetType, Dict[int, Facet]] = {}
        for facet_type in FacetType:
            table: Dict[int, Facet] = {}
            for facet in self.tables.for_type(facet_type):
                table.setdefault(facet.id, facet)
            self._by_id[facet_type] = table
        # first entry wins on duplicate names
        self._author_by_name: Dict[str, Facet] = {}
        for facet in self.tables.authors:
            self._author_by_name.setdefault(facet.name, facet)

    def resolve_name(self, facet_type: FacetType, facet_id: int) -> Optional[str]:
        facet = self._by_id[FacetType(facet_type)].get(facet_id)
        return facet.name if facet else None

    def resolve_names(self, facet_type: FacetType, ids: Iterable[int]) -> List[str]:
        names = []
        for facet_id in sorted(ids):
            name = self.resolve_name(facet_type, facet_id)
            if name is not None:
                names.append(name)
        return names

    def author_sort_key(self, name: str) -> str:
        facet = self._author_by_name.get(name)
        if facet and facet.sort:
            return facet.sort
        return name

    def facets(self, facet_type: FacetType) -> Tuple[Facet, ...]:
        return self.tables.for_type(FacetType(facet_type))


class CatalogStore:
    """Records and facet tables of the active library, replaced wholesale on every load."""

    def __init__(self):
        self.library_id: Optional[str] = None
        self.records: Tuple[Record, ...] = ()
        self.index = FacetIndex()
        self._by_id: Dict[int, Record] = {}

    def load(self, library_id: str, records: Sequence[Record], tables: FacetTables) -> None:
        self.library_id = library_id
        self.records = tuple(records)
        self.index = FacetIndex(tables)
        self._by_id = {}
        for record in self.records:
            self._by_id.setdefault(record.id, record)

    def find_record(self, record_id: Optional[int]) -> Optional[Record]:
        if record_id is None:
            return None
        return self._by_id.get(record_id)

    def format_counts(self) -> List[Tuple[str, int]]:
        counts: Counter = Counter()
        for record in self.records:
            counts.update({fmt.upper() for fmt in record.formats})
        return sorted(counts.items())

    def __len__(self) -> int:
        return len(self.records)
