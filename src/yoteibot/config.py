from __future__ import annotations
from dataclasses import dataclass, field
from datetime import tzinfo
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import os

import yaml

from .errors import ConfigError
from .models import FetchErrorPolicy, Mode

@dataclass
class FetchErrorPolicyConfig:
    upcoming: FetchErrorPolicy = FetchErrorPolicy.ABORT
    next_day: FetchErrorPolicy = FetchErrorPolicy.LOG_AND_SKIP

    def as_mapping(self) -> Dict[Mode, FetchErrorPolicy]:
        return {Mode.UPCOMING: self.upcoming, Mode.NEXT_DAY: self.next_day}

@dataclass
class AppConfig:
    timezone: str = ""          # empty: process local timezone
    calendar_id: str = "primary"
    command: str = "!events"
    upcoming_limit: int = 5
    schedule: str = "0 21 * * *"
    log_level: str = "INFO"
    fetch_error_policy: FetchErrorPolicyConfig = field(default_factory=FetchErrorPolicyConfig)

    def zone(self) -> Optional[tzinfo]:
        if not self.timezone:
            return None
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ConfigError(f"Unknown timezone: {self.timezone}") from exc

@dataclass
class Secrets:
    discord_token: str
    discord_channel_id: int
    google_credentials_path: str = "credentials.json"
    google_token_path: str = "token.json"

def _policy(value: Any, default: FetchErrorPolicy) -> FetchErrorPolicy:
    if value is None:
        return default
    try:
        return FetchErrorPolicy(str(value).strip().lower())
    except ValueError as exc:
        allowed = ", ".join(p.value for p in FetchErrorPolicy)
        raise ConfigError(f"Invalid fetch_error_policy '{value}' (expected one of: {allowed})") from exc

def load_config(path: str) -> AppConfig:
    p = Path(path)
    data: Dict[str, Any] = {}
    if p.exists():
        data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")

    policy = data.get("fetch_error_policy") or {}

    upcoming_limit = int(data.get("upcoming_limit", 5))
    if upcoming_limit < 1:
        raise ConfigError("upcoming_limit must be at least 1")

    cfg = AppConfig(
        timezone=str(data.get("timezone") or ""),
        calendar_id=str(data.get("calendar_id", "primary")),
        command=str(data.get("command", "!events")),
        upcoming_limit=upcoming_limit,
        schedule=str(data.get("schedule", "0 21 * * *")),
        log_level=str(data.get("log_level", "INFO")).upper(),
        fetch_error_policy=FetchErrorPolicyConfig(
            upcoming=_policy(policy.get("upcoming"), FetchErrorPolicy.ABORT),
            next_day=_policy(policy.get("next_day"), FetchErrorPolicy.LOG_AND_SKIP),
        ),
    )
    cfg.zone()
    return cfg

def load_google_paths(environ: Optional[Mapping[str, str]] = None) -> Tuple[str, str]:
    env = os.environ if environ is None else environ
    return (
        env.get("GOOGLE_CREDENTIALS_JSON") or "credentials.json",
        env.get("GOOGLE_TOKEN_JSON") or "token.json",
    )

def load_secrets(environ: Optional[Mapping[str, str]] = None) -> Secrets:
    env = os.environ if environ is None else environ

    token = env.get("DISCORD_BOT_TOKEN", "").strip()
    if not token:
        raise ConfigError("DISCORD_BOT_TOKEN is not set")

    raw_channel = env.get("DISCORD_CHANNEL_ID", "").strip()
    if not raw_channel:
        raise ConfigError("DISCORD_CHANNEL_ID is not set")
    try:
        channel_id = int(raw_channel)
    except ValueError as exc:
        raise ConfigError(f"DISCORD_CHANNEL_ID must be numeric, got '{raw_channel}'") from exc

    credentials_path, token_path = load_google_paths(env)
    return Secrets(
        discord_token=token,
        discord_channel_id=channel_id,
        google_credentials_path=credentials_path,
        google_token_path=token_path,
    )
