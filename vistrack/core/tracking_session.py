"""Tracking session: drives a VisibilityTracker for one on-screen element.

A TrackingSession binds the pure decision engine to its collaborators:
a percentage source that measures the element, a millisecond clock, and
an event sink that forwards emitted events.  It owns the start/stop
lifecycle, keeps a bounded history of emitted events, and maintains the
debug label shown over the element (``"card-7 - 42% Visible"``).

The session is synchronous.  A host either calls ``tick`` from its own
frame callback, or calls ``run`` to sample at ``sample_interval_ms`` in
a blocking loop.

``tick`` only hands events to the sink's ``emit``.  Buffered sinks such
as ``HttpEventSink`` do their I/O in ``flush``, which the session calls
after ``run`` and ``stop``; a host driving ``tick`` itself calls
``flush_sink`` from outside its frame callback.

This module depends on ``vistrack.models``, ``vistrack.config.settings``
and the ``core`` tracker and sink modules.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Callable

from vistrack.config.settings import Settings
from vistrack.core.event_sink import EventSink
from vistrack.core.visibility_tracker import VisibilityTracker
from vistrack.models.events import VisibilityEvent
from vistrack.models.thresholds import ThresholdSet

logger = logging.getLogger(__name__)

PercentageSource = Callable[[], float]
Clock = Callable[[], int]


def wall_clock_ms() -> int:
    """Current wall-clock time in integer milliseconds."""
    return int(time.time() * 1000)


class TrackingSession:
    """Samples an element's visibility and reports threshold crossings.

    Example::

        session = TrackingSession("card-7", preset, settings, source, sink)
        session.start()
        session.tick()       # call once per frame
        session.stop()

    Args:
        element_id: Identifier echoed in emitted events.  ``None``
            leaves the session inert.
        config: Threshold configuration.  ``None`` leaves the session
            inert until one is assigned.
        settings: Provides the sampling cadence, throttle and history
            size.
        source: Callable returning the current visibility percentage.
        sink: Destination for emitted events.  Optional.
        clock: Millisecond clock.  Defaults to wall-clock time.
        sleep: Sleep function used by ``run`` (seconds).
        throttle_ms: Overrides ``settings.throttle_ms`` when given.
    """

    def __init__(
        self,
        element_id: str | None,
        config: ThresholdSet | None,
        settings: Settings,
        source: PercentageSource,
        sink: EventSink | None = None,
        *,
        clock: Clock = wall_clock_ms,
        sleep: Callable[[float], None] = time.sleep,
        throttle_ms: float | None = None,
    ) -> None:
        self._element_id = element_id
        self._config: ThresholdSet | None = None
        self._settings = settings
        self._source = source
        self._sink = sink
        self._clock = clock
        self._sleep = sleep
        self._throttle_ms: float = (
            settings.throttle_ms if throttle_ms is None else throttle_ms
        )
        if self._throttle_ms < 0:
            raise ValueError(f"throttle_ms must be >= 0, got {self._throttle_ms}")

        self._tracker = VisibilityTracker()
        self._history: deque[VisibilityEvent] = deque(maxlen=settings.history_maxlen)
        self._label: str = ""
        self._last_sample: float = 0.0

        self.config = config

    # ------------------------------------------------------------------
    # Public read-only properties
    # ------------------------------------------------------------------

    @property
    def element_id(self) -> str | None:
        """Identifier of the tracked element."""
        return self._element_id

    @property
    def config(self) -> ThresholdSet | None:
        """Threshold configuration in use."""
        return self._config

    @config.setter
    def config(self, value: ThresholdSet | None) -> None:
        self._config = value
        if value is not None:
            logger.debug("Moving in (ascending): %s", list(value.moving_in))
            logger.debug("Moving out (descending): %s", list(value.moving_out))

    @property
    def throttle_ms(self) -> float:
        """Minimum milliseconds between emitted events."""
        return self._throttle_ms

    @property
    def tracker(self) -> VisibilityTracker:
        """The underlying decision engine."""
        return self._tracker

    @property
    def is_tracking(self) -> bool:
        """Whether the session is between ``start`` and ``stop``."""
        return self._tracker.is_tracking

    @property
    def label(self) -> str:
        """Debug label for the most recent sample."""
        return self._label

    @property
    def last_sample(self) -> float:
        """Most recently sampled visibility percentage."""
        return self._last_sample

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Begin tracking with fresh history.

        No-op when already tracking.
        """
        if self.is_tracking:
            return
        self._history.clear()
        event = self._tracker.start(
            self._clock(), self._config, self._element_id, self._throttle_ms
        )
        self._deliver(event)
        logger.info("Tracking started for %s", self._element_id)

    def stop(self) -> VisibilityEvent | None:
        """Stop tracking after a final 0 % observation.

        Returns:
            The event produced by the final observation, if any.
        """
        if not self.is_tracking:
            return None
        event = self._tracker.stop(
            self._clock(), self._config, self._element_id, self._throttle_ms
        )
        self._deliver(event)
        self.flush_sink()
        logger.info(
            "Tracking stopped for %s (%d events)",
            self._element_id,
            len(self._history),
        )
        return event

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------

    def tick(self) -> VisibilityEvent | None:
        """Sample visibility once and feed it to the tracker.

        Samples are clamped to [0, 100] before reaching the tracker.
        Does nothing when not tracking.

        Returns:
            The emitted event, if this sample produced one.
        """
        if not self.is_tracking:
            return None

        percentage = min(100.0, max(0.0, float(self._source())))
        self._last_sample = percentage
        self._label = self.format_label(self._element_id, percentage)

        event = self._tracker.observe(
            percentage,
            self._clock(),
            self._config,
            self._element_id,
            self._throttle_ms,
        )
        self._deliver(event)
        return event

    def run(self, duration_ms: int) -> list[VisibilityEvent]:
        """Sample at the configured cadence for *duration_ms*.

        Starts the session if needed.  The session is left running so
        the caller decides when to ``stop``.  The sink is flushed once
        the sampling loop ends, so network delivery never delays a
        sample.

        Args:
            duration_ms: How long to keep sampling, measured with the
                session clock.

        Returns:
            The events emitted during the run, oldest first.
        """
        self.start()
        interval_s = self._settings.sample_interval_ms / 1000.0
        deadline = self._clock() + duration_ms
        emitted: list[VisibilityEvent] = []

        while self.is_tracking and self._clock() < deadline:
            event = self.tick()
            if event is not None:
                emitted.append(event)
            self._sleep(interval_s)

        self.flush_sink()
        return emitted

    def flush_sink(self) -> int:
        """Flush buffered events from the sink.

        Returns:
            Number of events the sink delivered, 0 without a sink.
        """
        if self._sink is None:
            return 0
        delivered = self._sink.flush()
        if delivered:
            logger.debug("Flushed %d events for %s", delivered, self._element_id)
        return delivered

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------

    def get_event_history(self, limit: int = 50) -> list[VisibilityEvent]:
        """Return the most recent emitted events, oldest first.

        Args:
            limit: Maximum number of events to return.

        Returns:
            Up to *limit* events since the last ``start``.
        """
        if limit <= 0:
            return []
        if limit >= len(self._history):
            return list(self._history)
        return list(self._history)[-limit:]

    @staticmethod
    def format_label(element_id: str | None, percentage: float) -> str:
        """Render the debug label text for a sample."""
        return f"{element_id} - {percentage:.0f}% Visible"

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _deliver(self, event: VisibilityEvent | None) -> None:
        if event is None:
            return
        self._history.append(event)
        if self._sink is not None and not self._sink.emit(event):
            logger.warning(
                "Sink did not accept %s event for %s",
                event.direction.value,
                event.element_id,
            )

    def __repr__(self) -> str:
        """Human-readable summary of the session state."""
        return (
            f"TrackingSession(element_id={self._element_id!r}, "
            f"tracking={self.is_tracking}, "
            f"history={len(self._history)})"
        )
