from __future__ import annotations

from datetime import timedelta

_UNITS = (("day", 86400), ("hour", 3600), ("minute", 60), ("second", 1))
_UNIT_NAMES = [name for name, _ in _UNITS]


def duration_to_human(value: timedelta | int | float, *, max_unit: str = "day") -> str:
    """Render a duration as ``"1 hour, 30 minutes"``.

    ``max_unit`` caps the largest unit used, so 90 minutes with
    ``max_unit="minute"`` renders as ``"90 minutes"``. Zero-valued parts are
    omitted; a zero duration renders as an empty string.
    """
    if max_unit not in _UNIT_NAMES:
        raise ValueError(f"Unknown duration unit: {max_unit}")
    seconds = int(value.total_seconds() if isinstance(value, timedelta) else value)
    seconds = max(seconds, 0)

    parts: list[str] = []
    for name, size in _UNITS[_UNIT_NAMES.index(max_unit) :]:
        amount, seconds = divmod(seconds, size)
        if amount:
            parts.append(f"{amount} {name}" if amount == 1 else f"{amount} {name}s")
    return ", ".join(parts)
