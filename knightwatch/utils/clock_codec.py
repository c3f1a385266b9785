# ==============================================================================
# clock_codec.py  –  Chess clock strings ↔ seconds
#
# Handles the `H:MM:SS` values carried by PGN `[%clk …]` annotations and the
# short `M:SS` form shown on the overlay.
# ==============================================================================

from __future__ import annotations

from typing import Final, Tuple

CLOCK_PARTS_FULL: Final[int] = 3
CLOCK_PARTS_SHORT: Final[int] = 2


def _clock_parts(clock: str) -> Tuple[str, str, str]:
    parts = clock.strip().split(":")
    if len(parts) == CLOCK_PARTS_FULL:
        return parts[0], parts[1], parts[2]
    if len(parts) == CLOCK_PARTS_SHORT:
        return "0", parts[0], parts[1]
    raise ValueError(f"Invalid clock value: {clock!r}")


def clock_to_seconds(clock: str) -> int:
    """
    Convert `H:MM:SS` (or `M:SS`) to whole seconds.

    Fractional seconds (`0:04:58.3`) are truncated.

    Raises
    ------
    ValueError
        If the value is not a clock string or a field is out of range.
    """
    hours, minutes, seconds = _clock_parts(clock)
    try:
        h = int(hours)
        m = int(minutes)
        s = int(float(seconds))
    except ValueError as exc:
        raise ValueError(f"Invalid clock value: {clock!r}") from exc

    if h < 0 or not 0 <= m < 60 or not 0 <= s < 60:
        raise ValueError(f"Clock field out of range: {clock!r}")
    return h * 3600 + m * 60 + s


def seconds_to_clock(seconds: int) -> str:
    """Canonical `H:MM:SS` for a non-negative number of seconds."""
    total = max(0, int(seconds))
    h, rest = divmod(total, 3600)
    m, s = divmod(rest, 60)
    return f"{h}:{m:02d}:{s:02d}"


def format_clock(seconds: int) -> str:
    """Overlay text: `M:SS` under an hour, `H:MM:SS` otherwise, `0:00` when out."""
    if seconds <= 0:
        return "0:00"
    h, rest = divmod(int(seconds), 3600)
    m, s = divmod(rest, 60)
    if h > 0:
        return f"{h}:{m:02d}:{s:02d}"
    return f"{m}:{s:02d}"
