from __future__ import annotations

import asyncio
import logging
from datetime import datetime, tzinfo
from typing import Callable, Dict, List, Mapping, Optional, Protocol

from tzlocal import get_localzone

from .errors import CalendarFetchError, MessageSendError
from .formatting import format_event, placeholder_for
from .models import Event, FetchErrorPolicy, Mode
from .window import window_for

logger = logging.getLogger(__name__)

DEFAULT_FETCH_ERROR_POLICY: Dict[Mode, FetchErrorPolicy] = {
    Mode.UPCOMING: FetchErrorPolicy.ABORT,
    Mode.NEXT_DAY: FetchErrorPolicy.LOG_AND_SKIP,
}


class CalendarSource(Protocol):
    def list_events(
        self,
        calendar_id: str,
        time_min: datetime,
        time_max: Optional[datetime] = None,
        max_results: Optional[int] = None,
    ) -> List[Event]:
        ...


class ChatSink(Protocol):
    async def send_message(self, channel_id: int, text: str) -> None:
        ...


class NotificationPipeline:
    """Fetches events for a mode and posts one chat message per event.

    Both capabilities are injected; the pipeline keeps no state between runs,
    so the command and the scheduled job may call ``run`` concurrently.
    """

    def __init__(
        self,
        calendar: CalendarSource,
        chat: ChatSink,
        calendar_id: str,
        channel_id: int,
        tz: Optional[tzinfo] = None,
        upcoming_limit: int = 5,
        fetch_error_policy: Optional[Mapping[Mode, FetchErrorPolicy]] = None,
        clock: Optional[Callable[[Optional[tzinfo]], datetime]] = None,
    ) -> None:
        self.calendar = calendar
        self.chat = chat
        self.calendar_id = calendar_id
        self.channel_id = channel_id
        self.tz = tz
        self.upcoming_limit = upcoming_limit
        self.fetch_error_policy = dict(DEFAULT_FETCH_ERROR_POLICY)
        if fetch_error_policy:
            self.fetch_error_policy.update(fetch_error_policy)
        self._clock = clock or _local_now

    async def run(self, mode: Mode) -> None:
        now = self._clock(self.tz)
        window = window_for(mode, now)
        max_results = self.upcoming_limit if mode is Mode.UPCOMING else None

        try:
            events = await asyncio.to_thread(
                self.calendar.list_events,
                self.calendar_id,
                time_min=window.start,
                time_max=window.end,
                max_results=max_results,
            )
        except CalendarFetchError as exc:
            if self.fetch_error_policy[mode] is FetchErrorPolicy.ABORT:
                raise
            logger.error("Unable to retrieve %s events; nothing sent: %s", mode.value, exc)
            return

        logger.info("Fetched %d %s event(s) from %s", len(events), mode.value, self.calendar_id)

        if not events:
            logger.info("No %s events; sending placeholder", mode.value)
            await self._send(placeholder_for(mode))
            return

        for event in events:
            await self._send(format_event(event, mode))

    async def _send(self, text: str) -> None:
        # One failed message must not stop the rest of the burst.
        try:
            await self.chat.send_message(self.channel_id, text)
        except MessageSendError as exc:
            logger.warning("Message to channel %s was not delivered: %s", self.channel_id, exc)


def _local_now(tz: Optional[tzinfo]) -> datetime:
    # A named zone, not a fixed offset, so tomorrow gets its own DST offset.
    return datetime.now(tz=tz if tz is not None else get_localzone())
