from __future__ import annotations


class ConfigError(RuntimeError):
    """Raised when configuration or required environment secrets are invalid."""


class CalendarFetchError(RuntimeError):
    """Raised when the calendar provider cannot list events."""


class MessageSendError(RuntimeError):
    """Raised when a single chat message could not be delivered."""
