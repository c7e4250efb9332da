"""Tests for virtual-scroll window calculation."""

import pytest

from facility_perf.data.models import VirtualScrollConfig
from facility_perf.data.virtual_scroll import (
    calculate_virtual_window,
    max_window_rows,
    viewport_rows,
    visible_slice,
)


CONFIG = VirtualScrollConfig(item_height=60, container_height=400, overscan=5, threshold=50)


class TestCalculateVirtualWindow:
    def test_scrolled_window(self):
        window = calculate_virtual_window(1200, 200, CONFIG)

        assert window.should_virtualize is True
        assert window.start_index == 15
        assert window.end_index == 32
        assert window.visible_items == 17
        assert window.total_height == 12000
        assert window.offset_y == 900

    def test_top_of_list(self):
        window = calculate_virtual_window(0, 200, CONFIG)
        assert window.start_index == 0
        # ceil(400 / 60) + 5
        assert window.end_index == 12
        assert window.offset_y == 0

    def test_bottom_of_list_clamps_end(self):
        window = calculate_virtual_window(200 * 60 - 400, 200, CONFIG)
        assert window.end_index == 200
        assert window.start_index <= window.end_index

    def test_below_threshold_renders_everything(self):
        window = calculate_virtual_window(600, 50, CONFIG)
        assert window.should_virtualize is False
        assert window.start_index == 0
        assert window.end_index == 50
        assert window.total_height == 3000

    def test_negative_scroll_treated_as_zero(self):
        assert calculate_virtual_window(-300, 200, CONFIG) == calculate_virtual_window(0, 200, CONFIG)

    def test_scroll_past_end_stays_ordered(self):
        window = calculate_virtual_window(1_000_000, 200, CONFIG)
        assert window.start_index <= window.end_index
        assert window.end_index == 200

    @pytest.mark.parametrize(
        "config",
        [
            VirtualScrollConfig(item_height=0, container_height=400),
            VirtualScrollConfig(item_height=-10, container_height=400),
            VirtualScrollConfig(item_height=60, container_height=0),
        ],
    )
    def test_degenerate_geometry_disables_virtualization(self, config):
        window = calculate_virtual_window(500, 1000, config)
        assert window.should_virtualize is False
        assert window.start_index == 0
        assert window.end_index == 1000

    def test_window_never_exceeds_bound(self):
        bound = max_window_rows(CONFIG)
        for scroll_top in range(0, 200 * 60, 7):
            window = calculate_virtual_window(scroll_top, 200, CONFIG)
            assert 0 <= window.start_index <= window.end_index <= 200
            assert window.visible_items <= bound

    def test_viewport_rows(self):
        assert viewport_rows(CONFIG) == 8
        assert max_window_rows(CONFIG) == 18
        assert viewport_rows(VirtualScrollConfig(item_height=0)) == 0


class TestVisibleSlice:
    def test_slices_virtualized_window(self):
        items = list(range(200))
        window = calculate_virtual_window(1200, len(items), CONFIG)
        assert visible_slice(items, window) == tuple(range(15, 32))

    def test_returns_everything_when_not_virtualized(self):
        items = list(range(10))
        window = calculate_virtual_window(0, len(items), CONFIG)
        assert visible_slice(items, window) == tuple(items)
