from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from .catalog import CatalogStore
from .filters import filter_records
from .logutil import logger
from .models import FacetTables, FacetType, LibraryInfo, Record, SortMethod
from .persist import ViewStatePersistence
from .sorting import sort_records
from .state import VIEW_MODES, ViewState, clamp_cover_size
from .source import SourceError
from .viewport import DEFAULT_PAGE_SIZE, ViewportFiller


class BrowseListener:
    """Receives engine output. Subclass and override what you need."""

    def on_filtered_set_changed(self, ordered: Sequence[Record]) -> None:
        pass

    def on_page_materialized(self, page: Sequence[Record]) -> None:
        pass

    def on_selection_changed(self, record: Optional[Record]) -> None:
        pass

    def on_status(self, message: str) -> None:
        pass


@dataclass(frozen=True)
class Activation:
    generation: int
    library_id: str
    is_refresh: bool
    restore_from: Optional[ViewState] = None


class BrowseEngine:
    """Filter, sort and paginate one library at a time, and keep the view state persisted.

    Every public mutator recomputes the ordered list and writes the session
    snapshot before returning. Library activation is split into
    ``begin_activation`` and ``complete_activation`` so a host that fetches
    asynchronously can hand results in later; results of an activation that
    has since been superseded are dropped.
    """

    def __init__(
        self,
        source,
        persistence: ViewStatePersistence,
        listener: Optional[BrowseListener] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        self.source = source
        self.persistence = persistence
        self.listener = listener or BrowseListener()
        self.state = ViewState()
        self.catalog = CatalogStore()
        self.filler: ViewportFiller[Record] = ViewportFiller(page_size, on_page=self._page_materialized)
        self.ordered: List[Record] = []
        self.selected_record: Optional[Record] = None
        self.libraries: List[LibraryInfo] = []
        self.preferences = persistence.load_preferences()
        self.status = ""
        self._active_library: Optional[str] = None
        self._has_activated = False
        self._startup_snapshot: Optional[ViewState] = None
        self._generation = 0

    # -- lifecycle -----------------------------------------------------

    @property
    def active_library_id(self) -> Optional[str]:
        return self._active_library

    def start(self) -> Optional[str]:
        """Load the session snapshot and activate the library it names, or the first one."""
        snapshot = self.persistence.load_view_state()
        self._startup_snapshot = snapshot
        if snapshot is not None:
            self.state = snapshot
            logger.info("Loaded session snapshot for library {}", snapshot.active_library_id)
        if not self.load_libraries():
            return None
        ids = [lib.id for lib in self.libraries]
        if snapshot is not None and snapshot.active_library_id in ids:
            target = snapshot.active_library_id
        elif ids:
            target = ids[0]
        else:
            self._set_status("No libraries found")
            return None
        self.activate_library(target)
        return self._active_library

    def load_libraries(self, refresh: bool = False) -> bool:
        try:
            self.libraries = self.source.refresh() if refresh else self.source.list_libraries()
        except SourceError as e:
            logger.exception("Failed to load libraries: {}", e)
            self._set_status("Error loading libraries")
            return False
        return True

    def refresh(self) -> Optional[str]:
        """Rescan libraries and reload the active one, keeping the current view."""
        self._set_status("Refreshing libraries...")
        if not self.load_libraries(refresh=True):
            return None
        ids = [lib.id for lib in self.libraries]
        if self._active_library in ids:
            target = self._active_library
        elif ids:
            target = ids[0]
        else:
            self._set_status("No libraries found")
            return None
        if self.activate_library(target):
            self._set_status("Libraries refreshed")
        return self._active_library

    def activate_library(self, library_id: str) -> bool:
        activation = self.begin_activation(library_id)
        try:
            records = self.source.load_records(library_id)
            tables = self.source.load_facets(library_id)
        except SourceError as e:
            self.fail_activation(activation, e)
            return False
        return self.complete_activation(activation, records, tables)

    def begin_activation(self, library_id: str) -> Activation:
        self._generation += 1
        is_refresh = self._active_library == library_id
        restore = None
        snapshot = self._startup_snapshot
        if not is_refresh and not self._has_activated and snapshot is not None:
            if snapshot.active_library_id == library_id:
                restore = snapshot
        logger.info(
            "Activating library {} (generation {}, {})",
            library_id,
            self._generation,
            "refresh" if is_refresh else ("restore" if restore else "switch"),
        )
        self._set_status("Loading records...")
        return Activation(self._generation, library_id, is_refresh, restore)

    def is_current(self, activation: Activation) -> bool:
        return activation.generation == self._generation

    def complete_activation(self, activation: Activation, records: Sequence[Record], tables: FacetTables) -> bool:
        if not self.is_current(activation):
            logger.info(
                "Discarding stale load of library {} (generation {}, current {})",
                activation.library_id,
                activation.generation,
                self._generation,
            )
            return False
        library_id = activation.library_id
        self.catalog.load(library_id, records, tables)
        # a refresh keeps the view state as it is
        if activation.restore_from is not None:
            self.state.restore_filters(activation.restore_from)
        elif not activation.is_refresh:
            self.state.reset_view()
        self.state.active_library_id = library_id
        self._active_library = library_id
        self._has_activated = True
        self._startup_snapshot = None

        self._recompute()
        self._reconcile_selection()
        self._persist()
        logger.info("Library {} ready: {} records, {} shown", library_id, len(self.catalog), len(self.ordered))
        self._set_status("Ready")
        return True

    def fail_activation(self, activation: Activation, error: Exception) -> None:
        if not self.is_current(activation):
            logger.info("Ignoring failure of superseded load of library {}", activation.library_id)
            return
        logger.opt(exception=error).error("Failed to load library {}: {}", activation.library_id, error)
        self._set_status("Error loading library")

    def _reconcile_selection(self) -> None:
        state = self.state
        previous = self.selected_record
        record = None
        if state.has_selection():
            if state.selected_record_library_id == self._active_library:
                record = self.catalog.find_record(state.selected_record_id)
            if record is None:
                if self.catalog.records:
                    record = self.catalog.records[0]
                    state.select(record.id, self._active_library)
                    logger.info("Selected record not in library {}, selecting {}", self._active_library, record.id)
                else:
                    state.clear_selection()
        self.selected_record = record
        if record is not previous:
            self.listener.on_selection_changed(record)

    # -- filter/sort mutations -----------------------------------------

    def toggle_facet(self, facet_type: FacetType, facet_id: int) -> bool:
        """Add or remove a facet id; returns True when it is now selected."""
        selected = self.state.facet_selection(facet_type)
        facet_id = int(facet_id)
        if facet_id in selected:
            selected.discard(facet_id)
        else:
            selected.add(facet_id)
        self._mutated()
        return facet_id in selected

    def toggle_format(self, name: str) -> bool:
        name = name.upper()
        formats = self.state.selected_formats
        if name in formats:
            formats.discard(name)
        else:
            formats.add(name)
        self._mutated()
        return name in formats

    def clear_facet(self, facet_type: FacetType) -> None:
        self.state.facet_selection(facet_type).clear()
        self._mutated()

    def clear_formats(self) -> None:
        self.state.selected_formats.clear()
        self._mutated()

    def clear_filters(self) -> None:
        self.state.clear_filters()
        self._mutated()

    def set_search(self, term: str) -> None:
        self.state.search_term = term or ""
        self._mutated()

    def clear_search(self) -> None:
        self.set_search("")

    def set_sort(self, method: SortMethod | str) -> None:
        self.state.sort_method = SortMethod.parse(method)
        self._mutated()

    def selection_counts(self) -> Dict[str, int]:
        return {
            FacetType.AUTHOR.value: len(self.state.selected_authors),
            FacetType.TAG.value: len(self.state.selected_tags),
            FacetType.SERIES.value: len(self.state.selected_series),
            "format": len(self.state.selected_formats),
        }

    # -- selection -----------------------------------------------------

    def select_record(self, record_id: int) -> Optional[Record]:
        record = self.catalog.find_record(int(record_id))
        if record is None:
            logger.warning("Record {} not in library {}", record_id, self._active_library)
            return None
        self.state.select(record.id, self._active_library)
        self.selected_record = record
        self._persist()
        self.listener.on_selection_changed(record)
        return record

    def clear_selection(self) -> None:
        self.state.clear_selection()
        self.selected_record = None
        self._persist()
        self.listener.on_selection_changed(None)

    # -- pagination ----------------------------------------------------

    def load_more(self) -> List[Record]:
        return self.filler.materialize_next_page()

    def fill_viewport(self, has_space: Callable[[], bool]) -> int:
        return self.filler.fill_to_viewport(has_space)

    def visible_records(self) -> List[Record]:
        return self.filler.visible()

    @property
    def has_more(self) -> bool:
        return self.filler.has_more

    # -- durable preferences -------------------------------------------

    def set_view_mode(self, mode: str) -> None:
        if mode not in VIEW_MODES:
            raise ValueError(f"unknown view mode: {mode}")
        self.preferences.view_mode = mode
        self.persistence.save_preferences(self.preferences)
        # a new view renders from the first page
        self._rerender()

    def set_cover_size(self, size: int) -> int:
        self.preferences.cover_size = clamp_cover_size(size)
        self.persistence.save_preferences(self.preferences)
        return self.preferences.cover_size

    def toggle_column(self, column: str) -> bool:
        visible = self.preferences.toggle_column(column)
        self.persistence.save_preferences(self.preferences)
        return visible

    def toggle_section(self, section: str) -> bool:
        collapsed = self.preferences.toggle_section(section)
        self.persistence.save_preferences(self.preferences)
        return collapsed

    # -- internals -----------------------------------------------------

    def _recompute(self) -> None:
        filtered = filter_records(self.catalog.records, self.state, self.catalog.index)
        self.ordered = sort_records(filtered, self.state.sort_method, self.catalog.index)
        self.listener.on_filtered_set_changed(self.ordered)
        self._rerender()

    def _rerender(self) -> None:
        self.filler.reset(self.ordered)
        self.state.displayed_count = 0
        self.filler.materialize_next_page()

    def _mutated(self) -> None:
        self._recompute()
        self._persist()

    def _page_materialized(self, page: List[Record]) -> None:
        self.state.displayed_count = min(self.filler.displayed_count, len(self.ordered))
        self.listener.on_page_materialized(page)

    def _persist(self) -> None:
        self.persistence.save_view_state(self.state)

    def _set_status(self, message: str) -> None:
        self.status = message
        self.listener.on_status(message)
