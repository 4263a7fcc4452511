from __future__ import annotations

from enum import Enum
from typing import Callable, Generic, List, Sequence, TypeVar

from .logutil import logger

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 100


class FillState(str, Enum):
    IDLE = "idle"
    FILLING = "filling"
    EXHAUSTED = "exhausted"


class ViewportFiller(Generic[T]):
    """Hands out an ordered list one page at a time.

    ``displayed_count`` is the number of items handed out so far. It only
    moves forward, in steps of at most ``page_size``, until ``reset`` is
    called with a new list.
    """

    def __init__(self, page_size: int = DEFAULT_PAGE_SIZE, on_page: Callable[[List[T]], None] | None = None):
        if page_size < 1:
            raise ValueError("page_size must be positive")
        self.page_size = page_size
        self.on_page = on_page
        self._items: Sequence[T] = ()
        self.displayed_count = 0
        self.state = FillState.IDLE

    def reset(self, items: Sequence[T]) -> None:
        self._items = items
        self.displayed_count = 0
        self.state = FillState.IDLE

    @property
    def remaining(self) -> int:
        return max(0, len(self._items) - self.displayed_count)

    @property
    def has_more(self) -> bool:
        return self.remaining > 0

    def visible(self) -> List[T]:
        return list(self._items[: self.displayed_count])

    def materialize_next_page(self) -> List[T]:
        if self.state is FillState.FILLING:
            logger.debug("Page request ignored while a page is being materialized")
            return []
        if self.state is FillState.EXHAUSTED:
            return []
        # cursor may have drifted past a shorter list
        if self.displayed_count > len(self._items):
            self.displayed_count = len(self._items)
        self.state = FillState.FILLING
        start = self.displayed_count
        end = start + min(self.page_size, self.remaining)
        page = list(self._items[start:end])
        self.displayed_count = end
        try:
            if page and self.on_page is not None:
                self.on_page(page)
        finally:
            self.state = FillState.EXHAUSTED if end >= len(self._items) else FillState.IDLE
        return page

    def fill_to_viewport(self, has_space: Callable[[], bool]) -> int:
        """Materialize pages while ``has_space()`` holds; returns the number of pages added."""
        pages = 0
        max_pages = -(-len(self._items) // self.page_size)
        while self.state is FillState.IDLE and pages <= max_pages and has_space():
            page = self.materialize_next_page()
            if not page:
                break
            pages += 1
        return pages
