from datetime import datetime, timedelta, timezone
from decimal import Decimal

from worklog.models.time_entry import TimeEntry
from worklog.services.display import elapsed_seconds, format_duration, round_hours


def test_format_duration():
    assert format_duration(0) == "00:00:00"
    assert format_duration(3661) == "01:01:01"
    assert format_duration(25 * 3600 + 59) == "25:00:59"
    assert format_duration(-5) == "00:00:00"


def test_elapsed_seconds_of_running_entry_uses_stored_start():
    start = datetime(2026, 9, 1, 12, 0, tzinfo=timezone.utc)
    entry = TimeEntry(start_time=start, end_time=None)

    assert elapsed_seconds(entry, now=start + timedelta(minutes=90)) == 5400


def test_elapsed_seconds_of_closed_entry_ignores_now():
    start = datetime(2026, 9, 1, 12, 0, tzinfo=timezone.utc)
    entry = TimeEntry(start_time=start, end_time=start + timedelta(seconds=61))

    assert elapsed_seconds(entry, now=start + timedelta(days=3)) == 61


def test_round_hours():
    assert round_hours(Decimal("4.25")) == Decimal("4.3")
    assert round_hours(Decimal("0.04")) == Decimal("0.0")
