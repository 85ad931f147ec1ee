"""Human duration strings: "30s", "5m", "2h", "7d"."""

from __future__ import annotations

from datetime import timedelta

from .result import Err, Ok, Result

__all__ = ["format_duration", "parse_duration"]

_UNITS: dict[str, str] = {
    "s": "seconds",
    "sec": "seconds",
    "second": "seconds",
    "seconds": "seconds",
    "m": "minutes",
    "min": "minutes",
    "minute": "minutes",
    "minutes": "minutes",
    "h": "hours",
    "hr": "hours",
    "hour": "hours",
    "hours": "hours",
    "d": "days",
    "day": "days",
    "days": "days",
}


def parse_duration(text: str) -> Result[timedelta, str]:
    """Parse ``<number><unit>`` into a timedelta.

    Examples: "30s", "5min", "24h", "7d", "2 days".
    """
    s = text.strip()
    if not s:
        return Err("Duration string cannot be empty")

    pos = next((i for i, ch in enumerate(s) if ch.isalpha()), None)
    if pos is None:
        return Err("Duration must include a unit (d, h, m, s)")

    number_part, unit_part = s[:pos].strip(), s[pos:].strip().lower()
    if not number_part.isdigit():
        return Err(f"Invalid number in duration: {number_part!r}")

    unit = _UNITS.get(unit_part)
    if unit is None:
        return Err(f"Invalid duration unit: {unit_part}. Use s, m, h, or d")

    return Ok(timedelta(**{unit: int(number_part)}))


def format_duration(delta: timedelta) -> str:
    """Render an age using its largest whole unit."""
    total = int(delta.total_seconds())
    if total < 60:
        return f"{total}s"
    if total < 3600:
        return f"{total // 60}m"
    if total < 86400:
        return f"{total // 3600}h"
    return f"{total // 86400}d"
