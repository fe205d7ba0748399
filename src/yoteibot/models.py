from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class Mode(str, Enum):
    UPCOMING = "upcoming"     # on-demand command
    NEXT_DAY = "next-day"     # daily scheduled job


class FetchErrorPolicy(str, Enum):
    ABORT = "abort"
    LOG_AND_SKIP = "log-and-skip"


@dataclass(frozen=True)
class Event:
    summary: str = ""
    start_date_time: str = ""   # RFC 3339, empty for all-day events
    start_date: str = ""        # YYYY-MM-DD, only for all-day events
    link: str = ""

    @property
    def display_start(self) -> str:
        return self.start_date_time or self.start_date

    @classmethod
    def from_api(cls, item: Dict[str, Any]) -> "Event":
        start = item.get("start") or {}
        return cls(
            summary=item.get("summary") or "",
            start_date_time=start.get("dateTime") or "",
            start_date=start.get("date") or "",
            link=item.get("htmlLink") or "",
        )


@dataclass(frozen=True)
class TimeWindow:
    start: datetime             # timezone-aware
    end: Optional[datetime]     # None means unbounded
