"""Named visibility presets for media feed cards.

Each preset maps playback stages to the visibility percentage at which
the stage begins.  Moving in, a card starts prefetching at 5 %, mounts
a paused player at 25 % and plays once "active".  Moving out, it
pauses, unmounts and finally releases its resources.
"""

from __future__ import annotations

from vistrack.models.events import Direction, VisibilityEvent
from vistrack.models.thresholds import ThresholdSet

PresetConfig = dict[str, dict[str, float]]

SHORTS_VISIBILITY_CONFIG: PresetConfig = {
    "movingIn": {
        "prefetch": 5,
        "prepareToBeActive": 25,
        "isActive": 50,
    },
    "movingOut": {
        "willResignActive": 90,
        "notActive": 20,
        "released": 5,
    },
}

# Carousel cards only play once almost fully on screen.
CAROUSEL_CARDS_VISIBILITY_CONFIG: PresetConfig = {
    "movingIn": {
        "prefetch": 5,
        "prepareToBeActive": 25,
        "isActive": 90,
    },
    "movingOut": {
        "willResignActive": 70,
        "notActive": 10,
        "released": 5,
    },
}

PRESETS: dict[str, PresetConfig] = {
    "shorts": SHORTS_VISIBILITY_CONFIG,
    "carousel": CAROUSEL_CARDS_VISIBILITY_CONFIG,
}


def get_preset(name: str) -> ThresholdSet:
    """Return the sorted ThresholdSet for a named preset.

    Raises:
        KeyError: If *name* is not a known preset.
    """
    try:
        config = PRESETS[name]
    except KeyError:
        known = ", ".join(sorted(PRESETS))
        raise KeyError(f"Unknown preset {name!r} (known: {known})") from None
    return ThresholdSet.from_dict(config)


def stage_for(event: VisibilityEvent, preset: PresetConfig) -> str | None:
    """Name the stage an emitted event has reached.

    Applies the tracker's crossing rule to the event's percentage and
    returns the stage whose threshold is the furthest one crossed.  When
    several stages share that value, the first declared wins.

    Args:
        event: An event emitted by the tracker.
        preset: A stage-name configuration such as
            ``SHORTS_VISIBILITY_CONFIG``.

    Returns:
        The stage name, or ``None`` if no threshold was crossed.
    """
    thresholds = ThresholdSet.from_dict(preset)
    crossed = thresholds.crossed(event.percentage, event.direction)
    if crossed is None:
        return None

    key = "movingIn" if event.direction is Direction.MOVING_IN else "movingOut"
    for stage, value in preset[key].items():
        if float(value) == crossed:
            return stage
    return None
