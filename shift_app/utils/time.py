"""
Time helpers for shift windows, staleness checks and ISO8601 round-trips.

Every component receives ``now`` from its caller. Wall-clock time is only
read at the outermost layer (CLI / engine) through ``utc_now``.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current wall-clock time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(ts: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def format_timestamp(ts: Optional[datetime]) -> Optional[str]:
    """Serialize a timestamp as ISO8601, passing ``None`` through."""
    if ts is None:
        return None
    return ensure_utc(ts).isoformat()


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO8601 string into an aware UTC datetime.

    Accepts a trailing ``Z``. Returns ``None`` for ``None`` or empty input.

    Raises:
        ValueError: If the string is not a valid ISO8601 timestamp
    """
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValueError(f"Timestamp must be a string, got {type(value).__name__}")
    return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def parse_clock(value: str) -> time:
    """Parse an ``HH:MM`` wall-clock string."""
    try:
        hours, minutes = value.split(":")
        return time(hour=int(hours), minute=int(minutes))
    except (ValueError, AttributeError) as e:
        raise ValueError(f"Invalid clock time {value!r}, expected HH:MM") from e


def resolve_window(
    shift_date: date,
    start: str,
    end: str
) -> tuple[datetime, datetime]:
    """
    Resolve a shift's declared ``HH:MM`` window on a given date.

    A window whose end is not after its start (e.g. 22:00-06:00) ends on
    the following day.

    Returns:
        Tuple of (window_start, window_end) as aware UTC datetimes
    """
    window_start = datetime.combine(shift_date, parse_clock(start), tzinfo=timezone.utc)
    window_end = datetime.combine(shift_date, parse_clock(end), tzinfo=timezone.utc)
    if window_end <= window_start:
        window_end += timedelta(days=1)
    return window_start, window_end


def elapsed_seconds(start: datetime, end: datetime) -> float:
    """Seconds from ``start`` to ``end`` (negative if ``end`` is earlier)."""
    return (ensure_utc(end) - ensure_utc(start)).total_seconds()


def is_stale(claimed_at: Optional[datetime], now: datetime, staleness_minutes: float) -> bool:
    """
    Check whether a claim has outlived the staleness window.

    A claim exactly at the threshold is still live; only claims strictly
    older than ``staleness_minutes`` are stale.
    """
    if claimed_at is None:
        return False
    return elapsed_seconds(claimed_at, now) > staleness_minutes * 60


def locate_window(now: datetime, start: str, end: str) -> tuple[date, datetime, datetime]:
    """
    Find the occurrence of a daily window that contains ``now``, or else the
    next one to start.

    A window that wraps past midnight and contains ``now`` belongs to the
    previous calendar date.

    Returns:
        Tuple of (shift_date, window_start, window_end)
    """
    now = ensure_utc(now)
    candidates = []
    for offset in (-1, 0, 1):
        shift_date = now.date() + timedelta(days=offset)
        window_start, window_end = resolve_window(shift_date, start, end)
        if window_start <= now < window_end:
            return shift_date, window_start, window_end
        if window_start > now:
            candidates.append((window_start, shift_date, window_end))

    window_start, shift_date, window_end = min(candidates)
    return shift_date, window_start, window_end


def shift_id_for(shift_date: date, shift_name: str) -> str:
    """Stable shift identifier, ``<YYYY-MM-DD>-<name>``."""
    return f"{shift_date.isoformat()}-{shift_name}"
