from __future__ import annotations

import pytest

from bibview.catalog import CatalogStore, FacetIndex
from bibview.filters import filter_records, matches_search
from bibview.models import Facet, FacetTables, FacetType, Record, SortMethod
from bibview.sorting import sort_records
from bibview.state import ViewState
from bibview.source import MemorySource

from conftest import SCENARIO_AUTHORS, SCENARIO_RECORDS, SCENARIO_SERIES, SCENARIO_TAGS


@pytest.fixture
def catalog() -> CatalogStore:
    src = MemorySource()
    src.put("lib", records=SCENARIO_RECORDS, authors=SCENARIO_AUTHORS, tags=SCENARIO_TAGS, series=SCENARIO_SERIES)
    store = CatalogStore()
    store.load("lib", src.load_records("lib"), src.load_facets("lib"))
    return store


def ids(records):
    return [r.id for r in records]


def test_empty_state_matches_everything(catalog: CatalogStore) -> None:
    assert ids(filter_records(catalog.records, ViewState(), catalog.index)) == [1, 2, 3]


def test_author_filter_then_title_sort_then_search(catalog: CatalogStore) -> None:
    state = ViewState(selected_authors={10})
    filtered = filter_records(catalog.records, state, catalog.index)
    assert ids(filtered) == [1, 3]

    state.sort_method = SortMethod.TITLE
    ordered = sort_records(filtered, state.sort_method, catalog.index)
    assert [r.title for r in ordered] == ["Dune", "Dune Messiah"]

    state.search_term = "messiah"
    assert ids(filter_records(catalog.records, state, catalog.index)) == [3]


def test_filtering_is_idempotent_and_does_not_mutate_input(catalog: CatalogStore) -> None:
    records = list(catalog.records)
    state = ViewState(selected_tags={20}, search_term="u")
    first = filter_records(records, state, catalog.index)
    second = filter_records(records, state, catalog.index)
    assert first == second
    assert records == list(catalog.records)
    assert first is not records


def test_search_matches_title_or_any_author_case_insensitively() -> None:
    record = Record(id=1, title="The Left Hand of Darkness", authors=("Le Guin, Ursula K.", "Someone Else"))
    assert matches_search(record, "LEFT hand")
    assert matches_search(record, "ursula")
    assert matches_search(record, "else")
    assert not matches_search(record, "winter")
    assert matches_search(record, "")


def test_within_axis_is_or_across_axes_is_and(catalog: CatalogStore) -> None:
    state = ViewState(selected_tags={20, 21})
    assert ids(filter_records(catalog.records, state, catalog.index)) == [1, 2, 3]

    state.selected_authors = {11}
    assert ids(filter_records(catalog.records, state, catalog.index)) == [2]


def test_stale_facet_ids_are_dropped(catalog: CatalogStore) -> None:
    state = ViewState(selected_authors={10, 999})
    assert ids(filter_records(catalog.records, state, catalog.index)) == [1, 3]

    # nothing left to match against once every id is stale
    state.selected_authors = {999}
    assert filter_records(catalog.records, state, catalog.index) == []


def test_names_compare_case_insensitively() -> None:
    records = [Record(id=1, title="x", tags=("science FICTION",)), Record(id=2, title="y", tags=("Drama",))]
    index = FacetIndex(FacetTables(tags=(Facet(id=5, name="Science Fiction"),)))
    state = ViewState(selected_tags={5})
    assert ids(filter_records(records, state, index)) == [1]


def test_series_filter_skips_records_without_series(catalog: CatalogStore) -> None:
    state = ViewState(selected_series={30})
    assert ids(filter_records(catalog.records, state, catalog.index)) == [3]

    state.selected_series = {30, 31}
    assert ids(filter_records(catalog.records, state, catalog.index)) == [2, 3]


def test_format_filter_is_case_insensitive(catalog: CatalogStore) -> None:
    state = ViewState(selected_formats={"Epub"})
    assert ids(filter_records(catalog.records, state, catalog.index)) == [1, 3]

    state.selected_formats = {"mobi", "pdf"}
    assert ids(filter_records(catalog.records, state, catalog.index)) == [1, 2]


def test_format_counts_are_computed_from_records(catalog: CatalogStore) -> None:
    assert catalog.format_counts() == [("EPUB", 2), ("MOBI", 1), ("PDF", 1)]


def test_facet_index_resolves_names(catalog: CatalogStore) -> None:
    assert catalog.index.resolve_name(FacetType.AUTHOR, 11) == "Asimov, Isaac"
    assert catalog.index.resolve_name(FacetType.SERIES, 31) == "Foundation"
    assert catalog.index.resolve_name(FacetType.TAG, 404) is None
