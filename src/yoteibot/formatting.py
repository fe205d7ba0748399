from __future__ import annotations

from .models import Event, Mode

NO_EVENTS_UPCOMING = "現在、カレンダーに予定は登録されていません。"
NO_EVENTS_NEXT_DAY = "次の日に予定はありません。"

_LABELS = {
    Mode.UPCOMING: "予定",
    Mode.NEXT_DAY: "明日の予定",
}


def format_event(event: Event, mode: Mode) -> str:
    return f"{_LABELS[mode]}: {event.summary}\n開始時刻: {event.display_start}\nリンク: {event.link}"


def placeholder_for(mode: Mode) -> str:
    if mode is Mode.NEXT_DAY:
        return NO_EVENTS_NEXT_DAY
    return NO_EVENTS_UPCOMING
