from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from worklog.core.clock import as_utc, utcnow
from worklog.models.time_entry import TimeEntry


def elapsed_seconds(entry: TimeEntry, now: Optional[datetime] = None) -> int:
    """
    Whole seconds on the clock for an entry. Running entries are measured
    from their stored start_time, so a reconnecting client gets the same
    figure as one that never went away.
    """
    end = entry.end_time if entry.end_time is not None else (as_utc(now) or utcnow())
    seconds = (as_utc(end) - as_utc(entry.start_time)).total_seconds()
    return max(0, int(seconds))


def format_duration(total_seconds: int) -> str:
    """HH:MM:SS; hours are not wrapped at 24."""
    total_seconds = max(0, int(total_seconds))
    hours, rest = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def round_hours(hours: Decimal) -> Decimal:
    return Decimal(hours).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
