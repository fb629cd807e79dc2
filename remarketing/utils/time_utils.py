"""
Time and date utilities.

Key concepts:
  - Clock: every time-dependent component receives a ``Clock`` (a zero-arg
    callable returning an aware UTC datetime) instead of reading the system
    time, so expiry and retention logic is deterministic in tests.
  - Month keys and seasons: calendar bucketing used by behavior analysis.
  - Interval strings: ``"30s"``, ``"15m"``, ``"6h"``, ``"2d"`` schedule specs.
  - DB timestamps: fixed-width ``YYYY-MM-DDTHH:MM:SS.ffffffZ`` text.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

from remarketing.taxonomy.recommendation_taxonomy import Season

Clock = Callable[[], datetime]

_SECONDS_PER_DAY = 86_400
_DAYS_PER_MONTH = 30

_SEASON_BY_MONTH: dict[int, Season] = {
    3: Season.SPRING, 4: Season.SPRING, 5: Season.SPRING,
    6: Season.SUMMER, 7: Season.SUMMER, 8: Season.SUMMER,
    9: Season.FALL, 10: Season.FALL, 11: Season.FALL,
    12: Season.WINTER, 1: Season.WINTER, 2: Season.WINTER,
}

_INTERVAL_UNITS: dict[str, int] = {"s": 1, "m": 60, "h": 3600, "d": _SECONDS_PER_DAY}


def utcnow() -> datetime:
    """Return the current UTC datetime with timezone info.

    Prefer this over ``datetime.utcnow()`` (which returns naive datetimes).
    """
    return datetime.now(tz=timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def days_between(earlier: datetime, later: datetime) -> float:
    """Fractional days from ``earlier`` to ``later`` (negative if reversed)."""
    return (ensure_utc(later) - ensure_utc(earlier)).total_seconds() / _SECONDS_PER_DAY


def months_between(earlier: datetime, later: datetime) -> float:
    """Fractional 30-day months from ``earlier`` to ``later``."""
    return days_between(earlier, later) / _DAYS_PER_MONTH


def month_key(value: datetime) -> str:
    """Return the ``YYYY-MM`` bucket key for a datetime."""
    return f"{value.year:04d}-{value.month:02d}"


def season_of(value: datetime) -> Season:
    """Return the 3-month season containing ``value``."""
    return _SEASON_BY_MONTH[value.month]


def parse_interval_seconds(spec: str) -> float:
    """Parse an interval string like ``"6h"`` into seconds.

    Supported units: ``s`` (seconds), ``m`` (minutes), ``h`` (hours),
    ``d`` (days).  The numeric part may be fractional (``"0.5s"``).

    Args:
        spec: Interval string.

    Returns:
        Interval length in seconds (always > 0).

    Raises:
        ValueError: If the format is unrecognized or the value is not positive.
    """
    text = spec.strip().lower()
    if len(text) < 2 or text[-1] not in _INTERVAL_UNITS:
        raise ValueError(
            f"Cannot parse interval '{spec}'. "
            "Expected format: N followed by s, m, h, or d."
        )
    try:
        amount = float(text[:-1])
    except ValueError as exc:
        raise ValueError(f"Cannot parse interval '{spec}': {exc}") from exc
    if amount <= 0:
        raise ValueError(f"Interval must be positive, got '{spec}'.")
    return amount * _INTERVAL_UNITS[text[-1]]


def add_days(value: datetime, days: float) -> datetime:
    """Return ``value`` shifted by ``days`` (may be fractional or negative)."""
    return value + timedelta(days=days)


_DB_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def to_db_timestamp(value: datetime) -> str:
    """Fixed-width UTC text form so SQLite string comparison orders correctly."""
    return ensure_utc(value).strftime(_DB_TS_FORMAT)


def from_db_timestamp(text: str) -> datetime:
    """Inverse of ``to_db_timestamp``; also accepts plain ISO-8601 strings."""
    try:
        return datetime.strptime(text, _DB_TS_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return ensure_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
