from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Sequence, TypeVar

from ..core.constants import DEFAULT_PAGE, DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT

T = TypeVar("T")


def normalize_page(page, limit, *, default_limit: int = DEFAULT_PAGE_LIMIT) -> tuple[int, int]:
    """Clamp user supplied paging values; bad input falls back to defaults."""

    try:
        page = int(page)
    except (TypeError, ValueError):
        page = DEFAULT_PAGE
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        limit = default_limit
    return max(page, 1), min(max(limit, 1), MAX_PAGE_LIMIT)


@dataclass(frozen=True)
class Page(Generic[T]):
    items: Sequence[T]
    total: int
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def total_pages(self) -> int:
        return -(-self.total // self.limit) if self.limit else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    def pagination(self) -> dict:
        return {
            "currentPage": self.page,
            "totalPages": self.total_pages,
            "totalItems": self.total,
            "hasNextPage": self.has_next,
            "hasPrevPage": self.has_prev,
        }
