"""Visibility events emitted by the tracker.

A VisibilityEvent records that a tracked element crossed one of its
configured visibility thresholds while becoming more visible
(``MOVING_IN``) or less visible (``MOVING_OUT``).  Analytics sinks
consume these events; the host UI forwards them under the
``onVisibilityStateChange`` name.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

EVENT_NAME: str = "onVisibilityStateChange"


class Direction(Enum):
    """Direction of the most recent change in visibility.

    Attributes:
        MOVING_IN: Visibility increased since the last observation.
        MOVING_OUT: Visibility decreased since the last observation.
        NONE: No net change since the last observation.
    """

    MOVING_IN = "movingIn"
    MOVING_OUT = "movingOut"
    NONE = "none"

    @classmethod
    def from_string(cls, text: str) -> Direction:
        """Look up a direction by its wire value, case-insensitively.

        Unknown values map to ``NONE``.
        """
        lowered = text.lower()
        for member in cls:
            if member.value.lower() == lowered:
                return member
        return cls.NONE


@dataclass(frozen=True)
class VisibilityEvent:
    """A threshold crossing reported for one tracked element.

    Attributes:
        element_id: Identifier of the tracked element, echoed verbatim
            from the tracking configuration.
        direction: ``MOVING_IN`` or ``MOVING_OUT``.  Events are never
            created with ``NONE``.
        percentage: The exact visibility percentage that triggered the
            crossing (not the threshold value itself).
    """

    element_id: str
    direction: Direction
    percentage: float

    def __post_init__(self) -> None:
        """Reject events without a direction."""
        if self.direction is Direction.NONE:
            raise ValueError("VisibilityEvent direction must not be NONE")

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the host event payload.

        Returns:
            ``{"id": ..., "direction": "movingIn"|"movingOut",
            "percentage": ...}``
        """
        return {
            "id": self.element_id,
            "direction": self.direction.value,
            "percentage": self.percentage,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VisibilityEvent:
        """Rebuild an event from its payload form."""
        return cls(
            element_id=str(data["id"]),
            direction=Direction.from_string(str(data["direction"])),
            percentage=float(data["percentage"]),
        )
