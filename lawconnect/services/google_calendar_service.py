"""
Google Calendar Service
Handles calendar event listing, creation, updates, and deletion
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from ..errors import CalendarAPIError

logger = logging.getLogger(__name__)

GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"

SYNC_WINDOW = timedelta(days=30)
MAX_RESULTS = 250


def _rfc3339(value: datetime) -> str:
    return value.replace(microsecond=0).isoformat() + "Z"


class GoogleCalendarAPI:
    def __init__(
        self,
        calendar_id: str = "primary",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.calendar_id = calendar_id
        self._transport = transport

    def _client(self, access_token: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=GOOGLE_CALENDAR_API,
            headers={"Authorization": f"Bearer {access_token}"},
            transport=self._transport,
            timeout=30.0,
        )

    def _events_path(self, event_id: Optional[str] = None) -> str:
        path = f"/calendars/{quote(self.calendar_id, safe='')}/events"
        if event_id:
            path += f"/{quote(event_id, safe='')}"
        return path

    async def list_events(self, access_token: str, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Events of the next 30 days, expanded and ordered by start time"""
        time_min = now or datetime.utcnow()
        params = {
            "timeMin": _rfc3339(time_min),
            "timeMax": _rfc3339(time_min + SYNC_WINDOW),
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": MAX_RESULTS,
        }
        async with self._client(access_token) as client:
            response = await client.get(self._events_path(), params=params)

        if response.status_code != 200:
            logger.error(f"❌ Failed to fetch calendar events: HTTP {response.status_code} {response.text}")
            raise CalendarAPIError(response.status_code, response.text, "fetch events from")

        items = response.json().get("items", [])
        logger.info(f"📅 Fetched {len(items)} Google Calendar events")
        return items

    async def create_event(self, access_token: str, body: Dict[str, Any]) -> Dict[str, Any]:
        async with self._client(access_token) as client:
            response = await client.post(self._events_path(), json=body)

        if response.status_code not in [200, 201]:
            logger.error(f"❌ Failed to create calendar event: {response.text}")
            raise CalendarAPIError(response.status_code, response.text, "create event in")

        event = response.json()
        logger.info(f"✅ Google Calendar event created: {event.get('id')}")
        return event

    async def update_event(self, access_token: str, event_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        async with self._client(access_token) as client:
            response = await client.put(self._events_path(event_id), json=body)

        if response.status_code != 200:
            logger.error(f"❌ Failed to update calendar event: {response.text}")
            raise CalendarAPIError(response.status_code, response.text, "update event in")

        logger.info(f"✅ Google Calendar event updated: {event_id}")
        return response.json()

    async def delete_event(self, access_token: str, event_id: str) -> None:
        async with self._client(access_token) as client:
            response = await client.delete(self._events_path(event_id))

        # 410: already deleted on Google's side
        if response.status_code not in [200, 204, 410]:
            logger.error(f"❌ Failed to delete calendar event: {response.text}")
            raise CalendarAPIError(response.status_code, response.text, "delete event from")

        logger.info(f"✅ Google Calendar event deleted: {event_id}")

    async def revoke_token(self, token: str) -> bool:
        async with httpx.AsyncClient(transport=self._transport, timeout=15.0) as client:
            response = await client.post(GOOGLE_REVOKE_URL, params={"token": token})
        return response.status_code == 200
