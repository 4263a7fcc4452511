from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from .models import Facet

GROUP_THRESHOLD = 100
CATCH_ALL = "#"
_ASCII_UPPER = frozenset("ABCDEFGHIJKLMNOPQRSTUVWXYZ")


@dataclass
class FacetBucket:
    key: str
    entries: List[Facet] = field(default_factory=list)
    expanded: bool = False


@dataclass
class FacetGroups:
    entries: List[Facet]
    buckets: List[FacetBucket] = field(default_factory=list)

    @property
    def is_grouped(self) -> bool:
        return bool(self.buckets)


def sort_facets(facets: Iterable[Facet]) -> List[Facet]:
    return sorted(facets, key=lambda f: f.sort_key.lower())


def bucket_key(facet: Facet) -> str:
    first = facet.sort_key[:1].upper()
    return first if first in _ASCII_UPPER else CATCH_ALL


def group_facets(sorted_facets: Iterable[Facet], threshold: int = GROUP_THRESHOLD) -> FacetGroups:
    """Bucket a sorted facet list by first letter once it grows past ``threshold``.

    Lists of ``threshold`` entries or fewer stay flat. Buckets keep the input
    order of their entries and are ordered by key with plain string
    comparison, which puts ``#`` ahead of the letters. Only the first bucket
    starts expanded.
    """
    entries = list(sorted_facets)
    if len(entries) <= threshold:
        return FacetGroups(entries=entries)

    by_key: Dict[str, FacetBucket] = {}
    for facet in entries:
        key = bucket_key(facet)
        bucket = by_key.get(key)
        if bucket is None:
            bucket = by_key[key] = FacetBucket(key=key)
        bucket.entries.append(facet)

    buckets = [by_key[k] for k in sorted(by_key)]
    buckets[0].expanded = True
    return FacetGroups(entries=entries, buckets=buckets)
