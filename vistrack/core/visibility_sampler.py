"""Visibility measurement: how much of an element lies inside the viewport.

Provides the percentage computation that feeds the VisibilityTracker,
both for a single sample and, vectorised with NumPy, for a whole
recorded scroll trace.

The percentage is ``100 * visible_area / element_area``.  Elements with
zero width or height are reported as 0 % visible.

Typical usage::

    element = Rectangle(0, 900, 400, 300)
    viewport = Rectangle(0, 0, 400, 1000)
    visibility_percentage(element, viewport)        # 33.33...

    offsets = np.arange(0, 1200, 16)
    trace = visibility_trace(element, viewport, offsets)
"""

from __future__ import annotations

from collections.abc import Callable

import numpy as np
from numpy.typing import ArrayLike, NDArray

from vistrack.models.geometry import Rectangle


def visibility_percentage(element: Rectangle, viewport: Rectangle) -> float:
    """Return the visible percentage of *element* inside *viewport*.

    Args:
        element: Bounds of the tracked element.
        viewport: Bounds of the visible region of the scroll container,
            in the same coordinate space.

    Returns:
        A value in [0, 100].
    """
    if element.is_empty():
        return 0.0
    visible = element.intersection(viewport).area()
    percentage = visible / element.area() * 100.0
    return min(100.0, max(0.0, percentage))


def visibility_trace(
    element: Rectangle,
    viewport: Rectangle,
    offsets: ArrayLike,
) -> NDArray[np.float64]:
    """Compute visibility for a sequence of vertical scroll offsets.

    A scroll offset of ``dy`` moves the viewport down by ``dy`` pixels
    over the content, i.e. the element appears ``dy`` pixels higher.

    Args:
        element: Bounds of the tracked element in content coordinates.
        viewport: Viewport bounds at scroll offset 0.
        offsets: 1-D array of vertical scroll offsets in pixels.

    Returns:
        A float64 array of percentages in [0, 100], one per offset.
    """
    dy = np.asarray(offsets, dtype=np.float64).reshape(-1)
    if element.is_empty():
        return np.zeros_like(dy)

    # Horizontal overlap does not depend on the scroll offset.
    overlap_w = max(
        0.0, min(element.right, viewport.right) - max(element.x, viewport.x)
    )

    top = np.maximum(element.y, viewport.y + dy)
    bottom = np.minimum(element.bottom, viewport.bottom + dy)
    overlap_h = np.clip(bottom - top, 0.0, None)

    percentages = overlap_w * overlap_h / element.area() * 100.0
    return np.clip(percentages, 0.0, 100.0)


class ScrollingSource:
    """Percentage source for an element inside a vertically scrolled viewport.

    Reads the current scroll offset from a callable each time it is
    sampled, so it can be bound to a live scroll position or to a
    recorded trace.

    Args:
        element: Bounds of the tracked element in content coordinates.
        viewport: Viewport bounds at scroll offset 0.
        scroll_offset: Callable returning the current vertical offset.
    """

    def __init__(
        self,
        element: Rectangle,
        viewport: Rectangle,
        scroll_offset: Callable[[], float],
    ) -> None:
        self._element = element
        self._viewport = viewport
        self._scroll_offset = scroll_offset

    @property
    def element(self) -> Rectangle:
        """Bounds of the tracked element."""
        return self._element

    def current_viewport(self) -> Rectangle:
        """Viewport bounds at the current scroll offset."""
        return self._viewport.translated(dy=self._scroll_offset())

    def __call__(self) -> float:
        return visibility_percentage(self._element, self.current_viewport())
