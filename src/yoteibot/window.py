from __future__ import annotations
from datetime import datetime, time, timedelta

from .models import Mode, TimeWindow


def upcoming_window(now: datetime) -> TimeWindow:
    # Open-ended; the caller caps the query with a result count instead.
    return TimeWindow(start=now, end=None)


def next_day_window(now: datetime) -> TimeWindow:
    """Tomorrow from local 00:00:00 through 23:59:59 in ``now``'s timezone; each end gets its own UTC offset."""
    tomorrow = now.date() + timedelta(days=1)
    start = datetime.combine(tomorrow, time(0, 0, 0), tzinfo=now.tzinfo)
    end = datetime.combine(tomorrow, time(23, 59, 59), tzinfo=now.tzinfo)
    return TimeWindow(start=start, end=end)


def window_for(mode: Mode, now: datetime) -> TimeWindow:
    if mode is Mode.NEXT_DAY:
        return next_day_window(now)
    return upcoming_window(now)
