"""
Calendar Sync Coordinator
Merges live Google events with locally stored case/client/tag associations
and writes changes through to both stores.

Ordering: remote write, then local association write, then a fresh fetch.
There is no atomicity across the two stores; a failed local write is logged
and left for the next successful edit to repair.
"""
import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from ..errors import CalendarAPIError, TransientFetchError
from ..schemas import CalendarEvent, EventInput
from .event_associations import EventAssociationRepository
from .google_calendar_service import GoogleCalendarAPI
from .google_oauth_service import GoogleOAuthClient

logger = logging.getLogger(__name__)


class CalendarSyncCoordinator:
    def __init__(
        self,
        db: Session,
        user_id: str,
        oauth_client: GoogleOAuthClient,
        calendar_api: Optional[GoogleCalendarAPI] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.db = db
        self.user_id = user_id
        self.oauth = oauth_client
        self.token_store = oauth_client.token_store
        self.api = calendar_api or GoogleCalendarAPI()
        self.repo = EventAssociationRepository()
        self._clock = clock
        self.events: List[CalendarEvent] = []

    def is_connected(self) -> bool:
        return self.token_store.get(self.user_id) is not None

    async def fetch_events(self) -> List[CalendarEvent]:
        access_token = await self.oauth.ensure_valid_token(self.user_id)

        try:
            items = await self.api.list_events(access_token, now=self._clock())
        except CalendarAPIError as e:
            if e.upstream_status == 401:
                logger.warning(f"🔌 Google rejected the token for user {self.user_id}, disconnecting")
                self.token_store.delete(self.user_id)
                raise TransientFetchError() from e
            raise

        associations = self.repo.get_for_user(self.db, self.user_id)
        merged = []
        for item in items:
            event = CalendarEvent.from_google(item)
            association = associations.get(event.id)
            if association is not None:
                event.case_id = association.case_id
                event.client_id = association.client_id
                event.tags = list(association.tags or [])
            merged.append(event)

        self.events = merged
        return merged

    def _save_association(self, remote_event_id: str, data: EventInput) -> None:
        try:
            self.repo.upsert(
                self.db,
                self.user_id,
                remote_event_id,
                case_id=data.case_id,
                client_id=data.client_id,
                tags=data.tags,
            )
        except Exception as e:
            logger.error(f"❌ Failed to save association for event {remote_event_id}: {str(e)}", exc_info=True)

    def _find(self, remote_event_id: str, fallback: dict) -> CalendarEvent:
        for event in self.events:
            if event.id == remote_event_id:
                return event
        # Outside the 30-day window: return the remote copy without associations
        return CalendarEvent.from_google(fallback)

    async def create_event(self, data: EventInput) -> CalendarEvent:
        logger.info(f"➕ Creating calendar event: {data.summary}")
        access_token = await self.oauth.ensure_valid_token(self.user_id)
        created = await self.api.create_event(access_token, data.google_body())

        self._save_association(created["id"], data)
        await self.fetch_events()
        return self._find(created["id"], created)

    async def update_event(self, event_id: str, data: EventInput) -> CalendarEvent:
        logger.info(f"✏️ Updating calendar event: {event_id}")
        access_token = await self.oauth.ensure_valid_token(self.user_id)
        updated = await self.api.update_event(access_token, event_id, data.google_body())

        self._save_association(event_id, data)
        await self.fetch_events()
        return self._find(event_id, updated)

    async def delete_event(self, event_id: str) -> None:
        logger.info(f"🗑️ Deleting calendar event: {event_id}")
        access_token = await self.oauth.ensure_valid_token(self.user_id)
        await self.api.delete_event(access_token, event_id)

        try:
            self.repo.delete(self.db, self.user_id, event_id)
        except Exception as e:
            logger.error(f"❌ Failed to delete association for event {event_id}: {str(e)}", exc_info=True)
        await self.fetch_events()

    async def disconnect(self) -> bool:
        """Revoke at Google (best effort) and drop the token record"""
        record = self.token_store.get(self.user_id)
        if record is None:
            return False

        try:
            await self.api.revoke_token(record.refresh_token)
        except Exception as e:
            logger.warning(f"Failed to revoke Google tokens: {str(e)}")

        self.events = []
        return self.token_store.delete(self.user_id)
