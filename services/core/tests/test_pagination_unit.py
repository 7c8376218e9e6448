"""Unit tests for pagination utilities."""

import pytest

from coldai_core.domain.pagination import (
    PaginatedResult,
    PaginationParams,
    paginate,
    total_pages,
)


class TestPaginationParams:
    """Tests for PaginationParams dataclass."""

    def test_create_default_params(self):
        params = PaginationParams()

        assert params.page == 1
        assert params.page_size == 50
        assert params.offset == 0

    def test_offset_calculation(self):
        """Test offset calculation from page and page_size."""
        params = PaginationParams(page=5, page_size=25)

        assert params.offset == 100  # (5-1) * 25

    def test_page_size_clamped_to_max(self):
        params = PaginationParams(page=1, page_size=500, max_page_size=100)

        assert params.page_size == 100

    @pytest.mark.parametrize("page", [0, -5])
    def test_page_minimum_is_one(self, page):
        assert PaginationParams(page=page).page == 1

    def test_page_size_minimum(self):
        assert PaginationParams(page_size=0).page_size == 1

    def test_from_query_params_defaults(self):
        params = PaginationParams.from_query_params(page=None, page_size=None)

        assert params.page == 1
        assert params.page_size == 50


class TestTotalPages:
    @pytest.mark.parametrize(
        "total,page_size,expected",
        [(0, 50, 0), (1, 50, 1), (50, 50, 1), (51, 50, 2)],
    )
    def test_total_pages(self, total, page_size, expected):
        assert total_pages(total, page_size) == expected


class TestPaginate:
    """Tests for paginate()."""

    def test_slices_requested_page(self):
        result = paginate(list(range(7)), PaginationParams(page=2, page_size=3))

        assert result.items == [3, 4, 5]
        assert result.total == 7
        assert result.has_next is True
        assert result.has_previous is True

    def test_last_partial_page(self):
        result = paginate(list(range(7)), PaginationParams(page=3, page_size=3))

        assert result.items == [6]
        assert result.has_next is False

    def test_page_beyond_range_resets_to_first(self):
        """A filter that shrinks the result sends the user back to page 1."""
        result = paginate(list(range(4)), PaginationParams(page=5, page_size=3))

        assert result.page == 1
        assert result.page_reset is True
        assert result.items == [0, 1, 2]

    def test_empty_result_is_not_a_reset(self):
        result = paginate([], PaginationParams(page=3))

        assert result.items == []
        assert result.page_reset is False
        assert result.total_pages == 0


class TestPaginatedResult:
    def test_to_dict(self):
        result = PaginatedResult(items=["a"], total=3, page=1, page_size=1)

        data = result.to_dict()

        assert data == {
            "items": ["a"],
            "total": 3,
            "page": 1,
            "page_size": 1,
            "total_pages": 3,
            "has_next": True,
            "has_previous": False,
            "page_reset": False,
        }
