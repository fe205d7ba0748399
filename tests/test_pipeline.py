import asyncio
import logging
from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from yoteibot.errors import CalendarFetchError, MessageSendError
from yoteibot.models import Event, FetchErrorPolicy, Mode
from yoteibot.pipeline import NotificationPipeline

TZ = ZoneInfo("Asia/Tokyo")
NOW = datetime(2024, 1, 1, 21, 0, tzinfo=TZ)


class FakeCalendar:
    def __init__(self, events=None, error=None):
        self.events = events or []
        self.error = error
        self.calls = []

    def list_events(self, calendar_id, time_min, time_max=None, max_results=None):
        self.calls.append(
            {"calendar_id": calendar_id, "time_min": time_min, "time_max": time_max, "max_results": max_results}
        )
        if self.error is not None:
            raise self.error
        return list(self.events)


class FakeChat:
    def __init__(self, fail_on=()):
        self.sent = []
        self.fail_on = set(fail_on)

    async def send_message(self, channel_id, text):
        index = len(self.sent)
        self.sent.append((channel_id, text))
        if index in self.fail_on:
            raise MessageSendError("boom")


def _pipeline(calendar, chat, **kwargs):
    return NotificationPipeline(
        calendar=calendar,
        chat=chat,
        calendar_id="primary",
        channel_id=1234,
        tz=TZ,
        clock=lambda tz: NOW,
        **kwargs,
    )


def test_next_day_without_events_sends_one_placeholder():
    chat = FakeChat()

    asyncio.run(_pipeline(FakeCalendar(), chat).run(Mode.NEXT_DAY))

    assert chat.sent == [(1234, "次の日に予定はありません。")]


def test_upcoming_without_events_sends_one_placeholder():
    chat = FakeChat()

    asyncio.run(_pipeline(FakeCalendar(), chat).run(Mode.UPCOMING))

    assert chat.sent == [(1234, "現在、カレンダーに予定は登録されていません。")]


def test_upcoming_sends_formatted_event():
    calendar = FakeCalendar(
        [Event(summary="Standup", start_date_time="2024-01-02T09:00:00+09:00", link="http://x/1")]
    )
    chat = FakeChat()

    asyncio.run(_pipeline(calendar, chat).run(Mode.UPCOMING))

    assert chat.sent == [(1234, "予定: Standup\n開始時刻: 2024-01-02T09:00:00+09:00\nリンク: http://x/1")]


def test_next_day_all_day_event_displays_date():
    calendar = FakeCalendar([Event(summary="Trip", start_date="2024-01-03", link="http://x/2")])
    chat = FakeChat()

    asyncio.run(_pipeline(calendar, chat).run(Mode.NEXT_DAY))

    assert chat.sent == [(1234, "明日の予定: Trip\n開始時刻: 2024-01-03\nリンク: http://x/2")]


def test_sends_one_message_per_event_in_provider_order():
    events = [
        Event(summary=f"E{i}", start_date_time=f"2024-01-02T0{i}:00:00+09:00", link=f"http://x/{i}")
        for i in (3, 1, 2)
    ]
    chat = FakeChat()

    asyncio.run(_pipeline(FakeCalendar(events), chat).run(Mode.NEXT_DAY))

    assert [text.split("\n")[0] for _, text in chat.sent] == ["明日の予定: E3", "明日の予定: E1", "明日の予定: E2"]


def test_upcoming_queries_from_now_with_result_limit():
    calendar = FakeCalendar()

    asyncio.run(_pipeline(calendar, FakeChat(), upcoming_limit=5).run(Mode.UPCOMING))

    assert calendar.calls == [{"calendar_id": "primary", "time_min": NOW, "time_max": None, "max_results": 5}]


def test_next_day_queries_tomorrow_window_without_limit():
    calendar = FakeCalendar()

    asyncio.run(_pipeline(calendar, FakeChat()).run(Mode.NEXT_DAY))

    (call,) = calendar.calls
    assert call["time_min"] == datetime(2024, 1, 2, 0, 0, 0, tzinfo=TZ)
    assert call["time_max"] == datetime(2024, 1, 2, 23, 59, 59, tzinfo=TZ)
    assert call["max_results"] is None


def test_upcoming_fetch_failure_is_raised_by_default():
    chat = FakeChat()
    pipeline = _pipeline(FakeCalendar(error=CalendarFetchError("invalid_grant")), chat)

    with pytest.raises(CalendarFetchError):
        asyncio.run(pipeline.run(Mode.UPCOMING))

    assert chat.sent == []


def test_next_day_fetch_failure_is_logged_and_skipped_by_default(caplog):
    chat = FakeChat()
    pipeline = _pipeline(FakeCalendar(error=CalendarFetchError("invalid_grant")), chat)

    asyncio.run(pipeline.run(Mode.NEXT_DAY))

    assert chat.sent == []
    assert "Unable to retrieve next-day events" in caplog.text


def test_fetch_error_policy_can_be_overridden_per_mode():
    chat = FakeChat()
    pipeline = _pipeline(
        FakeCalendar(error=CalendarFetchError("down")),
        chat,
        fetch_error_policy={Mode.UPCOMING: FetchErrorPolicy.LOG_AND_SKIP, Mode.NEXT_DAY: FetchErrorPolicy.ABORT},
    )

    asyncio.run(pipeline.run(Mode.UPCOMING))
    with pytest.raises(CalendarFetchError):
        asyncio.run(pipeline.run(Mode.NEXT_DAY))

    assert chat.sent == []


def test_send_failure_does_not_stop_remaining_messages(caplog):
    events = [Event(summary=name, start_date="2024-01-02") for name in ("A", "B", "C")]
    chat = FakeChat(fail_on={0})

    asyncio.run(_pipeline(FakeCalendar(events), chat).run(Mode.NEXT_DAY))

    assert len(chat.sent) == 3
    assert chat.sent[2][1].startswith("明日の予定: C")
    assert "was not delivered" in caplog.text


def test_placeholder_send_is_logged(caplog):
    caplog.set_level(logging.INFO, logger="yoteibot.pipeline")

    asyncio.run(_pipeline(FakeCalendar(), FakeChat()).run(Mode.UPCOMING))

    assert "No upcoming events; sending placeholder" in caplog.text
