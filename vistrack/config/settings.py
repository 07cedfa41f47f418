"""Configuration defaults for the visibility tracker.

Provides the ``Settings`` dataclass that holds every tunable parameter
for the sampling loop, throttling, event history, the HTTP analytics
sink, and the debug overlay.

Typical usage::

    from vistrack.config.settings import get_default_settings

    settings = get_default_settings()
    print(settings.sample_interval_ms)
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any


@dataclass(frozen=True)
class Settings:
    """Immutable configuration for a tracking session.

    Attributes:
        sample_interval_ms: Milliseconds between visibility samples.
            16 ms matches one animation frame at 60 Hz.
        throttle_ms: Minimum milliseconds between two emitted events
            for the same element.  0 disables throttling.
        history_maxlen: Maximum number of emitted events a session
            keeps in its in-memory history.
        sink_endpoint: URL the HTTP sink posts events to.  Empty
            disables HTTP forwarding in the CLI.
        sink_timeout_seconds: HTTP timeout for one analytics request.
        sink_max_retries: Maximum number of attempts for one event.
        sink_backoff_base_seconds: Base delay for exponential back-off
            between attempts.
        overlay_enabled: When True, the CLI renders a debug overlay
            frame for every emitted event.
        overlay_dir: Directory where overlay PNG frames are written.
        default_preset: Name of the threshold preset used when no
            explicit configuration is given.
    """

    # -- Sampling -------------------------------------------------------------
    sample_interval_ms: int = 16
    throttle_ms: int = 0

    # -- History --------------------------------------------------------------
    history_maxlen: int = 1000

    # -- Analytics sink -------------------------------------------------------
    sink_endpoint: str = ""
    sink_timeout_seconds: float = 5.0
    sink_max_retries: int = 3
    sink_backoff_base_seconds: float = 0.5

    # -- Debug overlay --------------------------------------------------------
    overlay_enabled: bool = False
    overlay_dir: str = "overlays"

    # -- Thresholds -----------------------------------------------------------
    default_preset: str = "shorts"

    def __post_init__(self) -> None:
        """Validate numeric ranges."""
        if self.sample_interval_ms <= 0:
            raise ValueError(
                f"sample_interval_ms must be > 0, got {self.sample_interval_ms}"
            )
        if self.throttle_ms < 0:
            raise ValueError(f"throttle_ms must be >= 0, got {self.throttle_ms}")
        if self.sink_max_retries < 1:
            raise ValueError(
                f"sink_max_retries must be >= 1, got {self.sink_max_retries}"
            )

    # -- Factory & serialisation ----------------------------------------------

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Settings:
        """Create a ``Settings`` instance from a plain dictionary.

        Unknown keys are silently ignored so that forward-compatible
        config files do not break older versions.

        Args:
            data: Dictionary whose keys correspond to ``Settings``
                field names.

        Returns:
            A new ``Settings`` instance populated from *data*, with
            defaults filling any missing keys.
        """
        known_names = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in known_names}
        return cls(**filtered)

    def to_dict(self) -> dict[str, Any]:
        """Serialise the settings to a plain dictionary."""
        return asdict(self)


def get_default_settings() -> Settings:
    """Return a ``Settings`` instance with all default values."""
    return Settings()
