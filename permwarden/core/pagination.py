"""Fixed-size, wrap-around paging over the permission list."""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TypeVar

T = TypeVar("T")


@dataclass
class Pagination:
    """Current page over a list of ``length`` items.

    Navigation wraps in both directions.  An empty list still reports
    one page so "Page 1 / 1" can be shown.
    """

    page_size: int = 6
    page: int = 0

    def __post_init__(self) -> None:
        if self.page_size < 1:
            msg = f"page_size must be at least 1, got {self.page_size}"
            raise ValueError(msg)

    def page_count(self, length: int) -> int:
        return max(1, math.ceil(length / self.page_size))

    def clamp(self, length: int) -> int:
        """Pull the page index back into range after the list changed size."""
        last = self.page_count(length) - 1
        if self.page < 0 or self.page > last:
            self.page = last
        return self.page

    def next(self, length: int) -> int:
        self.page += 1
        if self.page >= self.page_count(length):
            self.page = 0
        return self.page

    def prev(self, length: int) -> int:
        self.page -= 1
        if self.page < 0:
            self.page = self.page_count(length) - 1
        return self.page

    def slice(self, items: Sequence[T], page: int | None = None) -> list[T]:
        """Return the items on *page* (the current page by default)."""
        index = self.page if page is None else page
        if index < 0:
            return []
        start = index * self.page_size
        return list(items[start : start + self.page_size])
