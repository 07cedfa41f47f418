"""Visibility tracker: threshold-crossing decisions for one tracked element.

The VisibilityTracker receives a stream of visibility percentages
(one per animation tick) and decides whether each sample constitutes a
new, reportable threshold crossing.  It works out the direction of
change, applies the throttle window, finds the furthest configured
threshold crossed in that direction, and suppresses repeats of the
crossing it last reported.

The tracker is pure and synchronous.  Time is passed in by the caller
so the decision logic never reads a clock.  Threshold lists are assumed
to be sorted already (see ``ThresholdSet.from_dict``).

This module depends only on ``vistrack.models``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from vistrack.models.events import Direction, VisibilityEvent
from vistrack.models.thresholds import ThresholdSet

logger = logging.getLogger(__name__)


@dataclass
class TrackerState:
    """Observation and emission history for one tracked element.

    Attributes:
        last_percentage: Most recently observed visibility percentage,
            or ``None`` before the first observation.
        last_direction: Direction computed on the last observation,
            including ``NONE``.
        last_emitted_event: The most recently emitted event since the
            last (re)start, if any.
        last_emitted_at_ms: Timestamp of the last emission in
            milliseconds.  0 until something is emitted.
    """

    last_percentage: float | None = None
    last_direction: Direction = Direction.NONE
    last_emitted_event: VisibilityEvent | None = None
    last_emitted_at_ms: int = 0


class VisibilityTracker:
    """Decides when a tracked element has crossed a visibility threshold.

    Example::

        tracker = VisibilityTracker()
        thresholds = ThresholdSet(moving_in=(25, 50), moving_out=(50, 25))
        tracker.start(0, thresholds, "card-7")
        event = tracker.observe(30.0, 16, thresholds, "card-7")
        # VisibilityEvent(element_id="card-7", direction=MOVING_IN, percentage=30.0)

    Attributes:
        state: The current ``TrackerState``.  Replaced on every start.
        is_tracking: Whether ``start`` has been called without a
            matching ``stop``.
    """

    def __init__(self) -> None:
        self._state = TrackerState()
        self._is_tracking: bool = False

    @property
    def state(self) -> TrackerState:
        """Observation and emission history since the last start."""
        return self._state

    @property
    def is_tracking(self) -> bool:
        """Whether tracking is currently active."""
        return self._is_tracking

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(
        self,
        now_ms: int,
        config: ThresholdSet | None,
        element_id: str | None,
        throttle_ms: float | None = None,
    ) -> VisibilityEvent | None:
        """Begin tracking with fresh history.

        Resets all state and records an initial observation at 0 %.
        Calling ``start`` while already tracking does nothing.

        Returns:
            Always ``None`` in practice, since the first observation of
            a fresh state has no direction.
        """
        if self._is_tracking:
            return None
        self._state = TrackerState()
        event = self.observe(0.0, now_ms, config, element_id, throttle_ms)
        self._is_tracking = True
        return event

    def stop(
        self,
        now_ms: int,
        config: ThresholdSet | None,
        element_id: str | None,
        throttle_ms: float | None = None,
    ) -> VisibilityEvent | None:
        """Stop tracking after a final observation at 0 %.

        The final observation is a regular one: if the element was
        visible it counts as moving out and may emit.  Calling ``stop``
        while not tracking does nothing.

        Returns:
            The event produced by the final observation, if any.
        """
        if not self._is_tracking:
            return None
        event = self.observe(0.0, now_ms, config, element_id, throttle_ms)
        self._is_tracking = False
        return event

    # ------------------------------------------------------------------
    # Core decision
    # ------------------------------------------------------------------

    def observe(
        self,
        percentage: float,
        now_ms: int,
        config: ThresholdSet | None,
        element_id: str | None,
        throttle_ms: float | None = None,
    ) -> VisibilityEvent | None:
        """Process one visibility sample.

        Args:
            percentage: Visible fraction of the element, in [0, 100].
            now_ms: Current time in integer milliseconds.
            config: Threshold configuration.  ``None`` means tracking is
                not configured yet and the call is ignored.
            element_id: Identifier of the tracked element.  ``None`` is
                treated like a missing config.
            throttle_ms: Minimum milliseconds between emissions.  ``None``
                or 0 disables throttling.

        Returns:
            A ``VisibilityEvent`` if this sample is a new reportable
            crossing, otherwise ``None``.
        """
        if config is None or element_id is None:
            return None

        state = self._state
        previous = state.last_percentage if state.last_percentage is not None else 0.0
        delta = percentage - previous
        if delta > 0:
            direction = Direction.MOVING_IN
        elif delta < 0:
            direction = Direction.MOVING_OUT
        else:
            direction = Direction.NONE

        state.last_percentage = percentage
        state.last_direction = direction

        if direction is Direction.NONE:
            return None

        elapsed = now_ms - state.last_emitted_at_ms
        if throttle_ms is not None and throttle_ms > 0 and elapsed < throttle_ms:
            return None

        current = config.crossed(percentage, direction)
        if current is None:
            return None

        if not self._should_emit(current, direction, config):
            return None

        event = VisibilityEvent(
            element_id=element_id,
            direction=direction,
            percentage=percentage,
        )
        state.last_emitted_at_ms = now_ms
        state.last_emitted_event = event
        logger.debug(
            "%s crossed %.1f%% %s at %.2f%%",
            element_id,
            current,
            direction.value,
            percentage,
        )
        return event

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _should_emit(
        self,
        current: float,
        direction: Direction,
        config: ThresholdSet,
    ) -> bool:
        """Check *current* against the last emitted event.

        A first crossing or a direction reversal always emits.  In the
        same direction, the threshold the last event's percentage would
        have crossed is recomputed from that stored percentage; the new
        crossing emits only if it lands on a different threshold.
        """
        last = self._state.last_emitted_event
        if last is None:
            return True
        if last.direction is not direction:
            return True
        previous = config.crossed(last.percentage, direction)
        return previous is None or previous != current

    # ------------------------------------------------------------------
    # Dunder helpers
    # ------------------------------------------------------------------

    def __repr__(self) -> str:
        """Human-readable summary of the tracker state."""
        return (
            f"VisibilityTracker(tracking={self._is_tracking}, "
            f"last_percentage={self._state.last_percentage!r}, "
            f"last_direction={self._state.last_direction.value})"
        )
