"""Virtual-scroll window arithmetic.

Computes which rows of a long list must be rendered for a given scroll
offset. The view layer measures pixels; this module only does the index
math. Windowing is skipped for short lists, where it would only add
hit-testing complexity.
"""

from __future__ import annotations

import math
from typing import Any, Optional, Sequence, Tuple

from .models import VirtualScrollConfig, VirtualWindow


DEFAULT_CONFIG = VirtualScrollConfig()


def full_window(total_items: int, item_height: float) -> VirtualWindow:
    """Window covering every item, with virtualization disabled."""
    total_items = max(0, total_items)
    height = max(0.0, item_height) * total_items
    return VirtualWindow(
        start_index=0,
        end_index=total_items,
        visible_items=total_items,
        total_height=height,
        offset_y=0,
        should_virtualize=False,
    )


def calculate_virtual_window(
    scroll_top: float,
    total_items: int,
    config: Optional[VirtualScrollConfig] = None,
) -> VirtualWindow:
    """Compute the index range to render.

    Args:
        scroll_top: Current scroll offset of the container in pixels
        total_items: Number of rows in the list
        config: Container geometry; defaults to 60px rows in a 400px container

    Returns:
        VirtualWindow. ``end_index`` is exclusive.
    """
    config = config or DEFAULT_CONFIG
    item_height = config.item_height
    container_height = config.container_height

    # Unmeasured or collapsed containers render everything
    if item_height <= 0 or container_height <= 0:
        return full_window(total_items, item_height)
    if total_items <= config.threshold:
        return full_window(total_items, item_height)

    overscan = max(0, int(config.overscan))
    scroll_top = max(0.0, float(scroll_top))

    start_index = max(0, math.floor(scroll_top / item_height) - overscan)
    end_index = min(total_items, math.ceil((scroll_top + container_height) / item_height) + overscan)
    # Scrolled past the end (e.g. list shrank under a stale offset)
    start_index = min(start_index, end_index)

    return VirtualWindow(
        start_index=start_index,
        end_index=end_index,
        visible_items=end_index - start_index,
        total_height=total_items * item_height,
        offset_y=start_index * item_height,
        should_virtualize=True,
    )


def viewport_rows(config: VirtualScrollConfig) -> int:
    """Rows that can be at least partly visible at any scroll offset.

    An unaligned offset straddles one extra row.
    """
    if config.item_height <= 0 or config.container_height <= 0:
        return 0
    return math.ceil(config.container_height / config.item_height) + 1


def max_window_rows(config: VirtualScrollConfig) -> int:
    """Upper bound on rendered rows once virtualization is active."""
    return viewport_rows(config) + 2 * max(0, int(config.overscan))


def visible_slice(items: Sequence[Any], window: VirtualWindow) -> Tuple[Any, ...]:
    """Return the rows to render for ``window``."""
    if not window.should_virtualize:
        return tuple(items)
    return tuple(items[window.start_index:window.end_index])
