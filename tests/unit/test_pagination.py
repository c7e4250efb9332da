"""Tests for the pagination engine."""

import pytest

from facility_perf.data.models import ProcessingError
from facility_perf.data.pagination import (
    LazyBatchLoader,
    calculate_optimal_page_size,
    paginate,
    pagination_metadata,
)


class TestPaginate:
    def test_middle_page(self):
        result = paginate(list(range(100)), 2, 10)

        assert result.data == tuple(range(10, 20))
        info = result.pagination
        assert info.current_page == 2
        assert info.total_pages == 10
        assert info.total_items == 100
        assert info.start_index == 10
        assert info.end_index == 20
        assert info.has_previous_page is True
        assert info.has_next_page is True

    def test_last_partial_page(self):
        result = paginate(list(range(23)), 3, 10)
        assert result.data == (20, 21, 22)
        assert result.pagination.end_index == 23
        assert result.pagination.has_next_page is False

    def test_page_zero_clamps_to_first(self):
        result = paginate(list(range(30)), 0, 10)
        assert result.pagination.current_page == 1
        assert result.data == tuple(range(10))

    def test_page_past_end_clamps_to_last(self):
        result = paginate(list(range(30)), 99, 10)
        assert result.pagination.current_page == 3
        assert result.data == tuple(range(20, 30))

    def test_empty_collection(self):
        result = paginate([], 5, 25)
        info = result.pagination
        assert result.data == ()
        assert info.total_pages == 0
        assert info.current_page == 1
        assert info.start_index == 0
        assert info.end_index == 0
        assert info.has_next_page is False
        assert info.has_previous_page is False

    @pytest.mark.parametrize("page_size", [0, -5, 2.5, True, "10"])
    def test_invalid_page_size(self, page_size):
        with pytest.raises(ProcessingError):
            paginate([1, 2, 3], 1, page_size)

    def test_invalid_page(self):
        with pytest.raises(ProcessingError):
            paginate([1, 2, 3], "second", 10)

    def test_to_dict_uses_view_keys(self):
        data = paginate(list(range(5)), 1, 2).pagination.to_dict()
        assert data["currentPage"] == 1
        assert data["totalPages"] == 3
        assert data["hasNextPage"] is True
        assert data["endIndex"] == 2


class TestPageSizeHeuristics:
    def test_optimal_page_size(self):
        # 600px / 60px = 10 visible rows, doubled
        assert calculate_optimal_page_size(600) == 20

    def test_optimal_page_size_bounds(self):
        assert calculate_optimal_page_size(100) == 10
        assert calculate_optimal_page_size(10000) == 100
        assert calculate_optimal_page_size(600, item_height=0) == 10

    def test_metadata_for_large_sets(self):
        meta = pagination_metadata(5000, 50)
        assert meta["total_pages"] == 100
        assert meta["page_sizes"] == [25, 50, 100, 200]
        assert meta["recommended_page_size"] == 50

    def test_metadata_for_medium_and_small_sets(self):
        assert pagination_metadata(500, 25)["recommended_page_size"] == 25
        small = pagination_metadata(40, 10)
        assert small["page_sizes"] == [5, 10, 25, 50]
        assert small["recommended_page_size"] == 10
        assert small["total_pages"] == 4


class TestLazyBatchLoader:
    def test_load_batch_memoizes(self):
        loader = LazyBatchLoader(list(range(45)), batch_size=20)
        assert loader.total_batches == 3

        first = loader.load_batch(5)
        assert first == tuple(range(20))
        assert loader.load_batch(19) is first
        assert loader.loaded_batches == [0]

    def test_preload_next_batch(self):
        loader = LazyBatchLoader(list(range(45)), batch_size=20)
        loader.preload_next_batch(25)
        assert loader.loaded_batches == [2]
        assert loader.load_batch(40) == tuple(range(40, 45))

    def test_preload_past_end_is_noop(self):
        loader = LazyBatchLoader(list(range(45)), batch_size=20)
        loader.preload_next_batch(44)
        assert loader.loaded_batches == []

    def test_invalid_batch_size(self):
        with pytest.raises(ProcessingError):
            LazyBatchLoader([1], batch_size=0)
