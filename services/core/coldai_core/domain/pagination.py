"""Offset pagination over in-memory result lists.

Prospect lists are aggregated in Python from a full snapshot, so pagination
happens after filtering and sorting rather than in SQL.
"""

import math
from dataclasses import dataclass
from typing import Any, Generic, Optional, Sequence, TypeVar

T = TypeVar("T")


DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


@dataclass
class PaginationParams:
    """Parameters for offset-based pagination.

    Attributes:
        page: Requested page number (1-indexed)
        page_size: Number of items per page
        max_page_size: Maximum allowed page size
    """

    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE
    max_page_size: int = MAX_PAGE_SIZE

    def __post_init__(self):
        if self.page < 1:
            self.page = 1
        if self.page_size < 1:
            self.page_size = 1
        if self.page_size > self.max_page_size:
            self.page_size = self.max_page_size

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    @classmethod
    def from_query_params(
        cls,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
        max_page_size: int = MAX_PAGE_SIZE,
    ) -> "PaginationParams":
        """Create PaginationParams from query parameters."""
        return cls(
            page=page or 1,
            page_size=page_size or DEFAULT_PAGE_SIZE,
            max_page_size=max_page_size,
        )


@dataclass
class PaginatedResult(Generic[T]):
    """One page of a filtered result.

    Attributes:
        items: Items on the current page
        total: Number of items across all pages
        page: Page actually served (may differ from the requested page)
        page_size: Number of items per page
        page_reset: True when the requested page was out of range and
            the first page was served instead
    """

    items: list[T]
    total: int
    page: int
    page_size: int
    page_reset: bool = False

    @property
    def total_pages(self) -> int:
        return total_pages(self.total, self.page_size)

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    def to_dict(self) -> dict[str, Any]:
        """Convert result to dictionary for API response."""
        return {
            "items": self.items,
            "total": self.total,
            "page": self.page,
            "page_size": self.page_size,
            "total_pages": self.total_pages,
            "has_next": self.has_next,
            "has_previous": self.has_previous,
            "page_reset": self.page_reset,
        }


def total_pages(total: int, page_size: int) -> int:
    if total == 0:
        return 0
    return math.ceil(total / page_size)


def paginate(items: Sequence[T], params: PaginationParams) -> PaginatedResult[T]:
    """Slice one page out of an already filtered and sorted sequence.

    When the requested page lies beyond the last page (typically because a
    filter change shrank the result), the first page is served instead.
    """
    total = len(items)
    page = params.page
    page_reset = False

    pages = total_pages(total, params.page_size)
    if pages > 0 and page > pages:
        page = 1
        page_reset = True

    start = (page - 1) * params.page_size
    return PaginatedResult(
        items=list(items[start:start + params.page_size]),
        total=total,
        page=page,
        page_size=params.page_size,
        page_reset=page_reset,
    )
