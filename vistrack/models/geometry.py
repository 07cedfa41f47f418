"""Geometry model: axis-aligned rectangles in container coordinates.

A Rectangle describes either a tracked element's bounds or the
viewport of the scrollable container it lives in.  The visibility
sampler measures one against the other to obtain the visible
fraction of the element.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Rectangle:
    """Axis-aligned bounding rectangle.

    All values are in pixels.  The origin (0, 0) is the top-left corner
    of the scroll container's content.

    Attributes:
        x: Left edge x-coordinate.
        y: Top edge y-coordinate.
        width: Horizontal extent in pixels (must be >= 0).
        height: Vertical extent in pixels (must be >= 0).
    """

    x: float
    y: float
    width: float
    height: float

    def __post_init__(self) -> None:
        """Validate that width and height are non-negative."""
        if self.width < 0:
            raise ValueError(f"Rectangle width must be >= 0, got {self.width}")
        if self.height < 0:
            raise ValueError(f"Rectangle height must be >= 0, got {self.height}")

    @property
    def right(self) -> float:
        """Right edge x-coordinate."""
        return self.x + self.width

    @property
    def bottom(self) -> float:
        """Bottom edge y-coordinate."""
        return self.y + self.height

    def area(self) -> float:
        """Return the area of the rectangle in square pixels.

        Returns:
            The product of width and height.
        """
        return self.width * self.height

    def is_empty(self) -> bool:
        """Return True when the rectangle has zero width or height."""
        return self.width == 0 or self.height == 0

    def intersection(self, other: Rectangle) -> Rectangle:
        """Return the overlapping region of this rectangle and *other*.

        Rectangles that do not overlap (including ones that only touch
        along an edge) produce a zero-size rectangle anchored at the
        clamped corner, so ``area()`` is always safe to call.

        Args:
            other: The rectangle to intersect with.

        Returns:
            The intersection as a new ``Rectangle``.
        """
        left = max(self.x, other.x)
        top = max(self.y, other.y)
        right = min(self.right, other.right)
        bottom = min(self.bottom, other.bottom)
        return Rectangle(
            x=left,
            y=top,
            width=max(0.0, right - left),
            height=max(0.0, bottom - top),
        )

    def translated(self, dx: float = 0.0, dy: float = 0.0) -> Rectangle:
        """Return a copy of this rectangle shifted by ``(dx, dy)``."""
        return Rectangle(self.x + dx, self.y + dy, self.width, self.height)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Rectangle:
        """Build a rectangle from ``{"x", "y", "width", "height"}``.

        Missing ``x`` / ``y`` default to 0.

        Raises:
            KeyError: If ``width`` or ``height`` is missing.
            ValueError: If a size is negative.
        """
        return cls(
            x=float(data.get("x", 0)),
            y=float(data.get("y", 0)),
            width=float(data["width"]),
            height=float(data["height"]),
        )

    def to_dict(self) -> dict[str, float]:
        """Serialise the rectangle to a plain dictionary."""
        return {
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
        }
