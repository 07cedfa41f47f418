"""Visibility tracker entry point: replay a recorded scroll trace.

Loads a scroll trace, drives a ``TrackingSession`` through it with a
clock that follows the trace timestamps, and prints every emitted
threshold-crossing event.  Events can optionally be forwarded to an
analytics endpoint and rendered as debug overlay frames.

Trace file format (JSON)::

    {
        "id": "card-7",
        "element": {"x": 0, "y": 900, "width": 400, "height": 300},
        "viewport": {"x": 0, "y": 0, "width": 400, "height": 1000},
        "thresholds": {"movingIn": [25, 50], "movingOut": [50, 25]},
        "samples": [{"t": 0, "offset": 0}, {"t": 16, "offset": 12}, ...]
    }

``id`` and ``thresholds`` are optional; without ``thresholds`` the
preset chosen on the command line is used.

Typical usage::

    python -m vistrack.main --trace trace.json --preset shorts
    python -m vistrack.main -t trace.json --endpoint https://example.test/events
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import numpy as np

from vistrack.config.presets import PRESETS, get_preset, stage_for
from vistrack.config.settings import Settings
from vistrack.core.event_sink import EventSink, HttpEventSink
from vistrack.core.overlay import render_overlay, save_overlay
from vistrack.core.tracking_session import TrackingSession, wall_clock_ms
from vistrack.core.visibility_sampler import ScrollingSource, visibility_trace
from vistrack.models.events import VisibilityEvent
from vistrack.models.geometry import Rectangle
from vistrack.models.thresholds import ThresholdSet

logger = logging.getLogger(__name__)

_DEFAULT_ELEMENT_ID = "element"


# ---------------------------------------------------------------------------
# Trace model
# ---------------------------------------------------------------------------


@dataclass
class ScrollTrace:
    """A recorded scroll session for one element.

    Attributes:
        element_id: Identifier reported in emitted events.
        element: Element bounds in content coordinates.
        viewport: Viewport bounds at scroll offset 0.
        times_ms: Sample timestamps in milliseconds, non-decreasing.
        offsets: Vertical scroll offset at each sample.
        thresholds: Thresholds recorded with the trace, if any.
    """

    element_id: str
    element: Rectangle
    viewport: Rectangle
    times_ms: list[int]
    offsets: list[float]
    thresholds: ThresholdSet | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScrollTrace:
        """Parse a trace from its JSON form.

        Raises:
            KeyError: If a required key is missing.
            ValueError: If the samples are empty or out of order.
        """
        samples = data["samples"]
        if not samples:
            raise ValueError("trace must contain at least one sample")
        times = [int(s["t"]) for s in samples]
        if any(b < a for a, b in zip(times, times[1:])):
            raise ValueError("trace sample times must be non-decreasing")

        raw_thresholds = data.get("thresholds")
        return cls(
            element_id=str(data.get("id", _DEFAULT_ELEMENT_ID)),
            element=Rectangle.from_dict(data["element"]),
            viewport=Rectangle.from_dict(data["viewport"]),
            times_ms=times,
            offsets=[float(s["offset"]) for s in samples],
            thresholds=(
                ThresholdSet.from_dict(raw_thresholds) if raw_thresholds else None
            ),
        )

    @classmethod
    def load(cls, path: Path) -> ScrollTrace:
        """Read and parse a trace file."""
        with path.open(encoding="utf-8") as fh:
            return cls.from_dict(json.load(fh))


@dataclass
class ReplayResult:
    """Outcome of replaying a trace.

    Attributes:
        events: Events emitted, in order, including the final event
            produced when the session stops.
        emitted_at_ms: Trace timestamp of each event.
        peak_visibility: Highest visibility percentage in the trace.
        overlay_paths: Overlay frames written, one per event.
    """

    events: list[VisibilityEvent] = field(default_factory=list)
    emitted_at_ms: list[int] = field(default_factory=list)
    peak_visibility: float = 0.0
    overlay_paths: list[Path] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Replay
# ---------------------------------------------------------------------------


class _TraceCursor:
    """Current position in a trace; acts as both clock and scroll offset."""

    def __init__(self, trace: ScrollTrace) -> None:
        self._trace = trace
        self.index = 0

    def now_ms(self) -> int:
        return self._trace.times_ms[self.index]

    def offset(self) -> float:
        return self._trace.offsets[self.index]


def replay_trace(
    trace: ScrollTrace,
    settings: Settings,
    config: ThresholdSet,
    sink: EventSink | None = None,
    overlay_dir: Path | None = None,
    throttle_ms: float | None = None,
) -> ReplayResult:
    """Drive a tracking session through every sample of *trace*.

    The session starts at the first sample's timestamp, ticks once per
    sample, and stops at the last one.

    Args:
        trace: The recorded scroll trace.
        settings: Session settings.
        config: Thresholds to apply.
        sink: Optional sink that also receives every event.
        overlay_dir: When given, an overlay PNG is written per event.
        throttle_ms: Overrides ``settings.throttle_ms``.

    Returns:
        A ``ReplayResult`` with the emitted events.
    """
    cursor = _TraceCursor(trace)
    source = ScrollingSource(trace.element, trace.viewport, cursor.offset)

    # Trace times are relative; the throttle clock starts at 0, so anchor
    # them to wall-clock time.
    base_ms = wall_clock_ms()
    session = TrackingSession(
        trace.element_id,
        config,
        settings,
        source,
        sink,
        clock=lambda: base_ms + cursor.now_ms(),
        throttle_ms=throttle_ms,
    )

    result = ReplayResult()
    percentages = visibility_trace(trace.element, trace.viewport, trace.offsets)
    result.peak_visibility = float(np.max(percentages))

    def _record(event: VisibilityEvent | None) -> None:
        if event is None:
            return
        result.events.append(event)
        result.emitted_at_ms.append(cursor.now_ms())
        if overlay_dir is not None:
            frame = render_overlay(
                trace.element,
                source.current_viewport(),
                session.label,
                event,
            )
            path = overlay_dir / f"{len(result.events):06d}.png"
            result.overlay_paths.append(save_overlay(frame, path))

    session.start()
    for index in range(len(trace.times_ms)):
        cursor.index = index
        _record(session.tick())
    _record(session.stop())

    logger.info(
        "Replayed %d samples for %s: %d events",
        len(trace.times_ms),
        trace.element_id,
        len(result.events),
    )
    return result


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def _non_negative_ms(value: str) -> float:
    """argparse type for millisecond options that must be >= 0."""
    try:
        ms = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"invalid millisecond value: {value!r}"
        ) from None
    if ms < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0, got {value}")
    return ms


def main(argv: list[str] | None = None) -> int:
    """Parse CLI arguments, replay the trace, and print the events."""
    parser = argparse.ArgumentParser(
        prog="vistrack",
        description="Replay a scroll trace and report visibility threshold crossings.",
    )
    parser.add_argument(
        "--trace",
        "-t",
        required=True,
        type=Path,
        help="Path to a JSON scroll trace.",
    )
    parser.add_argument(
        "--preset",
        "-p",
        choices=sorted(PRESETS),
        default=None,
        help="Threshold preset used when the trace has no thresholds.",
    )
    parser.add_argument(
        "--throttle-ms",
        type=_non_negative_ms,
        default=None,
        help="Minimum milliseconds between events (default from settings).",
    )
    parser.add_argument(
        "--endpoint",
        "-e",
        default="",
        help="Analytics endpoint to POST events to.",
    )
    parser.add_argument(
        "--overlay-dir",
        type=Path,
        default=None,
        help="Write a debug overlay PNG per event into this directory.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging.",
    )

    args = parser.parse_args(argv)

    # -- Logging setup ---------------------------------------------------
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    settings = Settings()

    try:
        trace = ScrollTrace.load(args.trace)
    except (OSError, KeyError, ValueError, TypeError) as exc:
        logger.error("Could not load trace %s: %s", args.trace, exc)
        return 1

    preset_name = args.preset or settings.default_preset
    config = trace.thresholds or get_preset(preset_name)

    sink: EventSink | None = None
    endpoint = args.endpoint or settings.sink_endpoint
    if endpoint:
        http_sink = HttpEventSink(endpoint, settings)
        logger.info("Forwarding events to %s", http_sink.endpoint)
        sink = http_sink

    overlay_dir = args.overlay_dir
    if overlay_dir is None and settings.overlay_enabled:
        overlay_dir = Path(settings.overlay_dir)

    try:
        result = replay_trace(
            trace,
            settings,
            config,
            sink=sink,
            overlay_dir=overlay_dir,
            throttle_ms=args.throttle_ms,
        )
    finally:
        if sink is not None:
            sink.close()

    _print_result_summary(trace, result, None if trace.thresholds else preset_name)
    return 0


def _print_result_summary(
    trace: ScrollTrace,
    result: ReplayResult,
    preset_name: str | None,
) -> None:
    """Print one line per event followed by a short summary."""
    separator = "-" * 60
    print(separator)
    for at_ms, event in zip(result.emitted_at_ms, result.events):
        line = (
            f"{at_ms:>8d} ms  {event.element_id}  "
            f"{event.direction.value:<9}  {event.percentage:6.2f}%"
        )
        if preset_name is not None:
            stage = stage_for(event, PRESETS[preset_name])
            if stage is not None:
                line += f"  [{stage}]"
        print(line)
    print(separator)
    print(f"Element:    {trace.element_id}")
    print(f"Samples:    {len(trace.times_ms)}")
    print(f"Events:     {len(result.events)}")
    print(f"Peak:       {result.peak_visibility:.1f}% visible")
    print(separator)


if __name__ == "__main__":
    sys.exit(main())
