"""Threshold configuration for visibility tracking.

A ThresholdSet holds the visibility percentages that count as
"crossings" in each direction.  ``moving_in`` is scanned while the
element becomes more visible and must be sorted ascending;
``moving_out`` is scanned while it becomes less visible and must be
sorted descending.  ``ThresholdSet.from_dict`` performs that sorting
for raw host configuration; constructing a ThresholdSet directly
assumes the caller already did.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from vistrack.models.events import Direction

_KEY_ALIASES: dict[str, tuple[str, ...]] = {
    "moving_in": ("movingIn", "moving_in"),
    "moving_out": ("movingOut", "moving_out"),
}


@dataclass(frozen=True)
class ThresholdSet:
    """Ordered visibility thresholds for both directions.

    Attributes:
        moving_in: Percentages in [0, 100], ascending.
        moving_out: Percentages in [0, 100], descending.
    """

    moving_in: tuple[float, ...] = ()
    moving_out: tuple[float, ...] = ()

    def crossed(self, percentage: float, direction: Direction) -> float | None:
        """Return the furthest threshold *percentage* has crossed.

        Moving in, a threshold ``t`` is crossed when ``percentage > t``;
        moving out, when ``percentage < t``.  Equality never counts.
        The scan stops at the first threshold that is not crossed, since
        no later threshold in a sorted list can be.

        Args:
            percentage: Visibility percentage to test.
            direction: Which list to scan.  ``NONE`` never crosses.

        Returns:
            The last crossed threshold value, or ``None`` if the first
            threshold is not crossed (or the list is empty).
        """
        crossed: float | None = None
        if direction is Direction.MOVING_IN:
            for threshold in self.moving_in:
                if percentage > threshold:
                    crossed = threshold
                else:
                    break
        elif direction is Direction.MOVING_OUT:
            for threshold in self.moving_out:
                if percentage < threshold:
                    crossed = threshold
                else:
                    break
        return crossed

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ThresholdSet:
        """Build a sorted ThresholdSet from raw host configuration.

        Accepts ``movingIn`` / ``movingOut`` (or snake_case) keys whose
        values are either sequences of numbers or mappings of stage
        name to number.  A missing key yields an empty list.

        Args:
            data: Raw configuration mapping.

        Returns:
            A ThresholdSet with ``moving_in`` ascending and
            ``moving_out`` descending.

        Raises:
            ValueError: If any value is outside [0, 100].
            TypeError: If a value is not a number, sequence or mapping.
        """
        moving_in = _values(_lookup(data, "moving_in"))
        moving_out = _values(_lookup(data, "moving_out"))
        return cls(
            moving_in=tuple(sorted(moving_in)),
            moving_out=tuple(sorted(moving_out, reverse=True)),
        )

    def to_dict(self) -> dict[str, list[float]]:
        """Serialise to the camelCase host configuration shape."""
        return {
            "movingIn": list(self.moving_in),
            "movingOut": list(self.moving_out),
        }


def _lookup(data: Mapping[str, Any], field_name: str) -> Any:
    for key in _KEY_ALIASES[field_name]:
        if key in data:
            return data[key]
    return None


def _values(raw: Any) -> list[float]:
    if raw is None:
        return []
    if isinstance(raw, Mapping):
        items: Iterable[Any] = raw.values()
    elif isinstance(raw, (list, tuple)):
        items = raw
    else:
        raise TypeError(
            f"threshold list must be a sequence or mapping, got {type(raw).__name__}"
        )

    values: list[float] = []
    for item in items:
        if isinstance(item, bool) or not isinstance(item, (int, float)):
            raise TypeError(f"threshold must be a number, got {item!r}")
        value = float(item)
        if not 0.0 <= value <= 100.0:
            raise ValueError(f"threshold must be in [0, 100], got {value}")
        values.append(value)
    return values
