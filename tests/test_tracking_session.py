"""Unit tests for vistrack.core.tracking_session.TrackingSession.

Covers the start/stop lifecycle, per-tick sampling and clamping, sink
delivery and flushing, the debug label, history, and the blocking
cadence loop.
A fake clock drives time so no test sleeps.
"""

from __future__ import annotations

import pytest

from vistrack.config.settings import Settings
from vistrack.core.event_sink import CallbackSink, EventSink, MemorySink
from vistrack.core.tracking_session import TrackingSession, wall_clock_ms
from vistrack.models.events import Direction, VisibilityEvent
from vistrack.models.thresholds import ThresholdSet

T0 = 1_700_000_000_000

# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


class FakeClock:
    """Millisecond clock advanced manually or by fake sleeps."""

    def __init__(self, start: int = T0) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += int(round(seconds * 1000))


class ScriptedSource:
    """Returns the next scripted percentage on each call."""

    def __init__(self, values: list[float]) -> None:
        self._values = list(values)
        self.calls = 0

    def __call__(self) -> float:
        value = self._values[min(self.calls, len(self._values) - 1)]
        self.calls += 1
        return value


class RejectingSink(EventSink):
    """Sink that refuses every event."""

    def __init__(self) -> None:
        self.seen = 0

    def emit(self, event: VisibilityEvent) -> bool:
        self.seen += 1
        return False


class BufferingSink(EventSink):
    """Sink that queues on emit and records each flush."""

    def __init__(self) -> None:
        self.pending: list[VisibilityEvent] = []
        self.flushed: list[list[VisibilityEvent]] = []

    def emit(self, event: VisibilityEvent) -> bool:
        self.pending.append(event)
        return True

    def flush(self) -> int:
        batch, self.pending = self.pending, []
        self.flushed.append(batch)
        return len(batch)


@pytest.fixture()
def config() -> ThresholdSet:
    """Thresholds at 25/50 in both directions."""
    return ThresholdSet(moving_in=(25.0, 50.0), moving_out=(50.0, 25.0))


@pytest.fixture()
def clock() -> FakeClock:
    """A fake clock at T0."""
    return FakeClock()


def _session(
    values: list[float],
    config: ThresholdSet | None,
    clock: FakeClock,
    *,
    element_id: str | None = "card-9",
    settings: Settings | None = None,
    sink: EventSink | None = None,
    throttle_ms: float | None = None,
) -> TrackingSession:
    return TrackingSession(
        element_id,
        config,
        settings or Settings(),
        ScriptedSource(values),
        sink,
        clock=clock,
        sleep=clock.sleep,
        throttle_ms=throttle_ms,
    )


# ==================================================================
# Lifecycle
# ==================================================================


class TestLifecycle:
    """start/stop behaviour."""

    def test_not_tracking_initially(self, config: ThresholdSet, clock: FakeClock) -> None:
        """A new session is idle and ticks do nothing."""
        session = _session([60.0], config, clock)
        assert session.is_tracking is False
        assert session.tick() is None

    def test_start_begins_tracking(self, config: ThresholdSet, clock: FakeClock) -> None:
        """start enables ticking without emitting."""
        sink = MemorySink()
        session = _session([60.0], config, clock, sink=sink)
        session.start()
        assert session.is_tracking is True
        assert sink.events == []

    def test_stop_emits_final_moving_out(self, config: ThresholdSet, clock: FakeClock) -> None:
        """Stopping a visible element reports it leaving."""
        sink = MemorySink()
        session = _session([60.0], config, clock, sink=sink)
        session.start()
        clock.now += 16
        session.tick()
        clock.now += 16
        final = session.stop()

        assert final == VisibilityEvent("card-9", Direction.MOVING_OUT, 0.0)
        assert sink.events[-1] == final
        assert session.is_tracking is False

    def test_stop_when_idle_returns_none(self, config: ThresholdSet, clock: FakeClock) -> None:
        """stop without start is a no-op."""
        assert _session([60.0], config, clock).stop() is None

    def test_restart_clears_history(self, config: ThresholdSet, clock: FakeClock) -> None:
        """History does not survive a stop/start cycle."""
        session = _session([60.0], config, clock)
        session.start()
        session.tick()
        session.stop()
        assert len(session.get_event_history()) == 2

        session.start()
        assert session.get_event_history() == []
        clock.now += 16
        assert session.tick() == VisibilityEvent("card-9", Direction.MOVING_IN, 60.0)

    def test_unconfigured_session_never_emits(self, clock: FakeClock) -> None:
        """Without thresholds the session samples but stays silent."""
        session = _session([60.0, 10.0], None, clock)
        session.start()
        assert session.tick() is None
        assert session.tick() is None
        assert session.stop() is None

    def test_config_assigned_later(self, config: ThresholdSet, clock: FakeClock) -> None:
        """Assigning config after start activates emission."""
        session = _session([30.0], None, clock)
        session.start()
        session.config = config
        assert session.tick() is not None


# ==================================================================
# Sampling
# ==================================================================


class TestTick:
    """Per-tick sampling."""

    def test_label_tracks_last_sample(self, config: ThresholdSet, clock: FakeClock) -> None:
        """The debug label shows id and rounded percentage."""
        session = _session([42.4], config, clock)
        session.start()
        session.tick()
        assert session.label == "card-9 - 42% Visible"
        assert session.last_sample == 42.4

    @pytest.mark.parametrize(("raw", "clamped"), [(-5.0, 0.0), (140.0, 100.0)])
    def test_samples_are_clamped(
        self, config: ThresholdSet, clock: FakeClock, raw: float, clamped: float
    ) -> None:
        """Out-of-range source values are clamped before observing."""
        session = _session([raw], config, clock)
        session.start()
        session.tick()
        assert session.last_sample == clamped
        assert session.tracker.state.last_percentage == clamped

    def test_scroll_in_sequence(self, config: ThresholdSet, clock: FakeClock) -> None:
        """A scroll in and out reports each band once."""
        values = [10.0, 30.0, 40.0, 60.0, 70.0, 40.0, 20.0, 10.0]
        session = _session(values, config, clock)
        session.start()
        events = []
        for _ in values:
            clock.now += 16
            event = session.tick()
            if event is not None:
                events.append((event.direction, event.percentage))

        assert events == [
            (Direction.MOVING_IN, 30.0),
            (Direction.MOVING_IN, 60.0),
            (Direction.MOVING_OUT, 40.0),
            (Direction.MOVING_OUT, 20.0),
        ]

    def test_session_throttle_override(self, config: ThresholdSet, clock: FakeClock) -> None:
        """throttle_ms argument overrides settings."""
        session = _session(
            [30.0, 60.0],
            config,
            clock,
            settings=Settings(throttle_ms=0),
            throttle_ms=1000,
        )
        assert session.throttle_ms == 1000
        session.start()
        clock.now += 16
        assert session.tick() is not None
        clock.now += 16
        assert session.tick() is None

    def test_negative_throttle_rejected(self, config: ThresholdSet, clock: FakeClock) -> None:
        """A negative throttle override raises ValueError."""
        with pytest.raises(ValueError):
            _session([0.0], config, clock, throttle_ms=-1)

    def test_rejecting_sink_keeps_history(
        self, config: ThresholdSet, clock: FakeClock
    ) -> None:
        """A failing sink does not lose the event from history."""
        sink = RejectingSink()
        session = _session([30.0], config, clock, sink=sink)
        session.start()
        event = session.tick()
        assert event is not None
        assert sink.seen == 1
        assert session.get_event_history() == [event]

    def test_raising_callback_does_not_break_tick(
        self, config: ThresholdSet, clock: FakeClock
    ) -> None:
        """A callback that raises still leaves the event returned and recorded."""

        def failing(event: VisibilityEvent) -> None:
            raise RuntimeError("analytics down")

        session = _session([30.0, 60.0], config, clock, sink=CallbackSink(failing))
        session.start()
        clock.now += 16
        first = session.tick()
        clock.now += 16
        second = session.tick()

        assert first == VisibilityEvent("card-9", Direction.MOVING_IN, 30.0)
        assert second == VisibilityEvent("card-9", Direction.MOVING_IN, 60.0)
        assert session.get_event_history() == [first, second]

    def test_tick_does_not_flush(self, config: ThresholdSet, clock: FakeClock) -> None:
        """tick only emits; buffered delivery waits for a flush."""
        sink = BufferingSink()
        session = _session([30.0], config, clock, sink=sink)
        session.start()
        event = session.tick()

        assert sink.pending == [event]
        assert sink.flushed == []
        assert session.flush_sink() == 1
        assert sink.flushed == [[event]]


# ==================================================================
# History
# ==================================================================


class TestHistory:
    """Bounded event history."""

    def test_history_is_bounded(self, config: ThresholdSet, clock: FakeClock) -> None:
        """Only history_maxlen events are retained."""
        values = [30.0, 10.0, 30.0, 10.0, 30.0]
        session = _session(values, config, clock, settings=Settings(history_maxlen=2))
        session.start()
        for _ in values:
            clock.now += 16
            session.tick()
        history = session.get_event_history()
        assert len(history) == 2
        assert history[-1].percentage == 30.0

    def test_limit(self, config: ThresholdSet, clock: FakeClock) -> None:
        """limit trims to the most recent events; <= 0 returns nothing."""
        values = [30.0, 10.0, 30.0]
        session = _session(values, config, clock)
        session.start()
        for _ in values:
            session.tick()
        assert [e.percentage for e in session.get_event_history(limit=1)] == [30.0]
        assert session.get_event_history(limit=0) == []


# ==================================================================
# Run loop
# ==================================================================


class TestRun:
    """The blocking cadence loop."""

    def test_run_samples_at_cadence(self, config: ThresholdSet, clock: FakeClock) -> None:
        """run ticks once per interval until the duration elapses."""
        source = ScriptedSource([10.0, 30.0, 60.0])
        session = TrackingSession(
            "card-9",
            config,
            Settings(sample_interval_ms=16),
            source,
            clock=clock,
            sleep=clock.sleep,
        )
        events = session.run(160)

        assert source.calls == 10
        assert [e.percentage for e in events] == [30.0, 60.0]
        assert session.is_tracking is True

    def test_run_reuses_running_session(
        self, config: ThresholdSet, clock: FakeClock
    ) -> None:
        """A second run continues without resetting history."""
        session = _session([30.0], config, clock)
        session.run(32)
        assert session.run(32) == []
        assert len(session.get_event_history()) == 1

    def test_run_flushes_after_loop(self, config: ThresholdSet, clock: FakeClock) -> None:
        """Events from the whole run are flushed once, after sampling."""
        sink = BufferingSink()
        session = _session([10.0, 30.0, 60.0], config, clock, sink=sink)
        events = session.run(64)

        assert len(events) == 2
        assert sink.flushed == [events]
        assert sink.pending == []

    def test_stop_flushes_final_event(self, config: ThresholdSet, clock: FakeClock) -> None:
        """stop delivers the closing moving-out event."""
        sink = BufferingSink()
        session = _session([60.0], config, clock, sink=sink)
        session.run(32)
        clock.now += 16
        final = session.stop()

        assert sink.flushed[-1] == [final]

    def test_flush_without_sink(self, config: ThresholdSet, clock: FakeClock) -> None:
        """flush_sink is a no-op without a sink."""
        assert _session([0.0], config, clock).flush_sink() == 0


def test_wall_clock_ms_is_integer_milliseconds() -> None:
    """The default clock returns an int near current epoch ms."""
    now = wall_clock_ms()
    assert isinstance(now, int)
    assert now > 1_600_000_000_000


def test_repr(config: ThresholdSet, clock: FakeClock) -> None:
    """repr shows the element id and tracking flag."""
    text = repr(_session([0.0], config, clock))
    assert "card-9" in text
    assert "tracking=False" in text
