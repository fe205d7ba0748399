from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from dotenv import load_dotenv

from .calendar_google import GoogleCalendar, get_credentials
from .config import AppConfig, Secrets, load_config, load_google_paths, load_secrets
from .discord_bot import CalendarBot, DiscordChat
from .errors import ConfigError
from .pipeline import NotificationPipeline

CONFIG_PATH_DEFAULT = "config.yaml"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

logger = logging.getLogger(__name__)


def build_bot(cfg: AppConfig, secrets: Secrets, calendar: GoogleCalendar) -> CalendarBot:
    tz = cfg.zone()
    bot = CalendarBot(command=cfg.command, schedule=cfg.schedule, tz=tz)
    bot.pipeline = NotificationPipeline(
        calendar=calendar,
        chat=DiscordChat(bot),
        calendar_id=cfg.calendar_id,
        channel_id=secrets.discord_channel_id,
        tz=tz,
        upcoming_limit=cfg.upcoming_limit,
        fetch_error_policy=cfg.fetch_error_policy.as_mapping(),
    )
    return bot


def run(config_path: str = CONFIG_PATH_DEFAULT, authorize_only: bool = False) -> int:
    load_dotenv()
    try:
        cfg = load_config(config_path)
    except ConfigError as e:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
        logger.error("Invalid configuration in %s: %s", config_path, e)
        return 2

    logging.basicConfig(level=getattr(logging, cfg.log_level, logging.INFO), format=LOG_FORMAT)
    logger.info("Loaded configuration from %s", config_path)

    if authorize_only:
        get_credentials(*load_google_paths())
        logger.info("Google authorization complete")
        return 0

    try:
        secrets = load_secrets()
    except ConfigError as e:
        logger.error("%s", e)
        return 2

    calendar = GoogleCalendar.from_files(secrets.google_credentials_path, secrets.google_token_path)
    bot = build_bot(cfg, secrets, calendar)
    bot.run(secrets.discord_token, log_handler=None)
    return bot.exit_code


def main(argv: Optional[List[str]] = None) -> None:
    ap = argparse.ArgumentParser(description="Post Google Calendar events to a Discord channel")
    ap.add_argument("--config", default=CONFIG_PATH_DEFAULT)
    ap.add_argument(
        "--authorize",
        action="store_true",
        help="run the Google OAuth flow, save the token and exit",
    )
    args = ap.parse_args(argv)

    sys.exit(run(config_path=args.config, authorize_only=args.authorize))


if __name__ == "__main__":
    main()
