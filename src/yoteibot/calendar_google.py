from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging
import os
import threading

from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
import httplib2

from .errors import CalendarFetchError
from .models import Event

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/calendar.readonly"]


def get_credentials(credentials_path: str, token_path: str) -> Credentials:
    """Load the cached OAuth token, refreshing it or running the browser flow as needed."""
    creds: Optional[Credentials] = None
    if os.path.exists(token_path):
        creds = Credentials.from_authorized_user_file(token_path, SCOPES)
        if creds.valid:
            return creds

    if creds and creds.expired and creds.refresh_token:
        logger.info("Refreshing expired Google token %s", token_path)
        creds.refresh(Request())
    else:
        if not os.path.exists(credentials_path):
            raise FileNotFoundError(f"Google client secret file not found: {credentials_path}")
        flow = InstalledAppFlow.from_client_secrets_file(credentials_path, SCOPES)
        creds = flow.run_local_server(port=0)

    token_dir = os.path.dirname(token_path)
    if token_dir:
        os.makedirs(token_dir, exist_ok=True)
    with open(token_path, "w", encoding="utf-8") as f:
        f.write(creds.to_json())
    logger.info("Saved Google token to %s", token_path)
    return creds


class GoogleCalendar:
    """Calendar source backed by the Google Calendar v3 events API."""

    def __init__(self, service: Any) -> None:
        self._service = service
        # httplib2 connections are not thread-safe; the bot calls from worker threads.
        self._lock = threading.Lock()

    @classmethod
    def from_files(cls, credentials_path: str, token_path: str) -> "GoogleCalendar":
        creds = get_credentials(credentials_path, token_path)
        return cls(build("calendar", "v3", credentials=creds, cache_discovery=False))

    def list_events(
        self,
        calendar_id: str,
        time_min: datetime,
        time_max: Optional[datetime] = None,
        max_results: Optional[int] = None,
    ) -> List[Event]:
        params: Dict[str, Any] = {
            "calendarId": calendar_id,
            "showDeleted": False,
            "singleEvents": True,
            "timeMin": time_min.isoformat(),
            "orderBy": "startTime",
        }
        if time_max is not None:
            params["timeMax"] = time_max.isoformat()
        if max_results is not None:
            params["maxResults"] = max_results

        try:
            with self._lock:
                resp = self._service.events().list(**params).execute()
        except (HttpError, httplib2.HttpLib2Error, GoogleAuthError, OSError) as exc:
            raise CalendarFetchError(f"Unable to retrieve events from {calendar_id}: {exc}") from exc

        return [Event.from_api(item) for item in resp.get("items", [])]
