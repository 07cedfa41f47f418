"""Debug overlay rendering for tracked elements.

Draws the scroll container's viewport, the tracked element and the
visible part of the element into a BGR image, with the session's debug
label centred on the element and the last emitted event (if any) in
the top-left corner.  Frames can be written to disk as PNG.

Typical usage::

    frame = render_overlay(element, viewport, session.label, event)
    save_overlay(frame, Path("overlays") / "000042.png")
"""

from __future__ import annotations

import logging
from pathlib import Path

import cv2
import numpy as np
from numpy.typing import NDArray

from vistrack.models.events import Direction, VisibilityEvent
from vistrack.models.geometry import Rectangle

logger = logging.getLogger(__name__)

# Colours are BGR.
_BACKGROUND_COLOUR = (40, 40, 40)
_VIEWPORT_COLOUR = (200, 200, 200)  # Grey
_ELEMENT_COLOUR = (255, 122, 0)  # System blue
_VISIBLE_COLOUR = (255, 200, 120)  # Light blue
_TEXT_COLOUR = (255, 255, 255)  # White
_TEXT_BG_COLOUR = (0, 0, 0)  # Black
_EVENT_IN_COLOUR = (0, 220, 0)  # Green
_EVENT_OUT_COLOUR = (0, 0, 255)  # Red

_FONT = cv2.FONT_HERSHEY_SIMPLEX
_FONT_SCALE = 0.5
_FONT_THICKNESS = 1
_MARGIN = 20


def render_overlay(
    element: Rectangle,
    viewport: Rectangle,
    label: str,
    event: VisibilityEvent | None = None,
) -> NDArray[np.uint8]:
    """Render one debug frame.

    The canvas spans the bounding box of the element and the viewport
    plus a fixed margin, so an element scrolled out of view is still
    drawn.

    Args:
        element: Current bounds of the tracked element.
        viewport: Current bounds of the visible region.
        label: Text drawn at the centre of the element.
        event: Most recent emitted event, annotated when given.

    Returns:
        A ``(H, W, 3)`` uint8 BGR image.
    """
    left = min(element.x, viewport.x)
    top = min(element.y, viewport.y)
    right = max(element.right, viewport.right)
    bottom = max(element.bottom, viewport.bottom)

    width = int(np.ceil(right - left)) + 2 * _MARGIN
    height = int(np.ceil(bottom - top)) + 2 * _MARGIN
    canvas = np.full((height, width, 3), _BACKGROUND_COLOUR, dtype=np.uint8)

    def _corners(rect: Rectangle) -> tuple[tuple[int, int], tuple[int, int]]:
        x0 = int(round(rect.x - left)) + _MARGIN
        y0 = int(round(rect.y - top)) + _MARGIN
        return (x0, y0), (x0 + int(round(rect.width)), y0 + int(round(rect.height)))

    p0, p1 = _corners(element)
    cv2.rectangle(canvas, p0, p1, _ELEMENT_COLOUR, -1)

    visible = element.intersection(viewport)
    if not visible.is_empty():
        v0, v1 = _corners(visible)
        cv2.rectangle(canvas, v0, v1, _VISIBLE_COLOUR, -1)

    w0, w1 = _corners(viewport)
    cv2.rectangle(canvas, w0, w1, _VIEWPORT_COLOUR, 2)

    if label:
        text_w, text_h = cv2.getTextSize(label, _FONT, _FONT_SCALE, _FONT_THICKNESS)[0]
        cx = (p0[0] + p1[0]) // 2 - text_w // 2
        cy = (p0[1] + p1[1]) // 2 + text_h // 2
        _draw_text(canvas, label, (cx, cy), _TEXT_COLOUR)

    if event is not None:
        colour = (
            _EVENT_IN_COLOUR
            if event.direction is Direction.MOVING_IN
            else _EVENT_OUT_COLOUR
        )
        text = f"{event.direction.value} @ {event.percentage:.1f}%"
        _draw_text(canvas, text, (10, 20), colour)

    return canvas


def save_overlay(frame: NDArray[np.uint8], path: Path) -> Path:
    """Write a rendered frame as PNG, creating parent directories.

    Raises:
        OSError: If OpenCV fails to encode or write the file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    if not cv2.imwrite(str(path), frame):
        raise OSError(f"Could not write overlay frame to {path}")
    logger.debug("Overlay written to %s", path)
    return path


def _draw_text(
    canvas: NDArray[np.uint8],
    text: str,
    origin: tuple[int, int],
    colour: tuple[int, int, int],
) -> None:
    """Draw *text* on a dark background box for readability."""
    x, y = origin
    text_w, text_h = cv2.getTextSize(text, _FONT, _FONT_SCALE, _FONT_THICKNESS)[0]
    cv2.rectangle(
        canvas,
        (x - 2, y - text_h - 4),
        (x + text_w + 2, y + 4),
        _TEXT_BG_COLOUR,
        -1,
    )
    cv2.putText(
        canvas,
        text,
        (x, y),
        _FONT,
        _FONT_SCALE,
        colour,
        _FONT_THICKNESS,
        cv2.LINE_AA,
    )
