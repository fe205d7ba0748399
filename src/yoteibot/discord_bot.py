from __future__ import annotations

import asyncio
import logging
import signal
from datetime import tzinfo
from typing import Any, Optional

import aiohttp
import discord
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from .errors import CalendarFetchError, MessageSendError
from .models import Mode
from .pipeline import NotificationPipeline

logger = logging.getLogger(__name__)

NEXT_DAY_JOB_ID = "next-day-events"


def is_command(message: Any, bot_user_id: Optional[int], command: str) -> bool:
    """True when ``message`` is exactly ``command`` and was not written by the bot itself."""
    if bot_user_id is not None and message.author.id == bot_user_id:
        return False
    return message.content == command


class DiscordChat:
    """Chat sink that posts plain text into a Discord channel by id."""

    def __init__(self, client: discord.Client) -> None:
        self._client = client

    async def send_message(self, channel_id: int, text: str) -> None:
        try:
            channel = self._client.get_channel(channel_id)
            if channel is None:
                channel = await self._client.fetch_channel(channel_id)
            await channel.send(text)
        except (discord.DiscordException, aiohttp.ClientError, OSError, asyncio.TimeoutError) as exc:
            raise MessageSendError(f"channel {channel_id}: {exc}") from exc


class CalendarBot(discord.Client):
    """Discord client wiring the command and the daily job to the notification pipeline."""

    def __init__(
        self,
        command: str = "!events",
        schedule: str = "0 21 * * *",
        tz: Optional[tzinfo] = None,
        pipeline: Optional[NotificationPipeline] = None,
        **options: Any,
    ) -> None:
        intents = discord.Intents.default()
        intents.message_content = True
        super().__init__(intents=intents, **options)
        self.command = command
        self.schedule = schedule
        self.tz = tz
        self.pipeline = pipeline
        self.scheduler = AsyncIOScheduler(timezone=tz) if tz is not None else AsyncIOScheduler()
        self.exit_code = 0
        self._shutdown_task: Optional[asyncio.Task] = None

    async def setup_hook(self) -> None:
        trigger = CronTrigger.from_crontab(self.schedule, timezone=self.tz)
        self.scheduler.add_job(
            self.run_scheduled,
            trigger,
            id=NEXT_DAY_JOB_ID,
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info("Scheduled next-day notification at '%s'", self.schedule)

        try:
            asyncio.get_running_loop().add_signal_handler(signal.SIGTERM, self.request_shutdown)
        except (NotImplementedError, RuntimeError):
            # No loop signal handlers on Windows or outside the main thread.
            logger.debug("SIGTERM handler not installed")

    def request_shutdown(self) -> None:
        logger.info("SIGTERM received; closing Discord session")
        self._shutdown_task = asyncio.ensure_future(self.close())

    async def on_ready(self) -> None:
        logger.info("Logged in as %s; waiting for '%s'", self.user, self.command)

    async def on_message(self, message: discord.Message) -> None:
        bot_user_id = self.user.id if self.user is not None else None
        if not is_command(message, bot_user_id, self.command):
            return
        logger.info("Command %s from %s", self.command, message.author)
        await self.run_pipeline(Mode.UPCOMING)

    async def run_scheduled(self) -> None:
        logger.info("Scheduled %s run fired", Mode.NEXT_DAY.value)
        await self.run_pipeline(Mode.NEXT_DAY)

    async def run_pipeline(self, mode: Mode) -> None:
        if self.pipeline is None:
            raise RuntimeError("CalendarBot.pipeline is not configured")
        try:
            await self.pipeline.run(mode)
        except CalendarFetchError as exc:
            logger.critical("Unable to retrieve events (%s); shutting down: %s", mode.value, exc)
            self.exit_code = 1
            await self.close()

    async def close(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        await super().close()
