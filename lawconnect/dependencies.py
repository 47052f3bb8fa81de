"""FastAPI dependencies wiring the calendar integration per request"""

import logging
import uuid
from typing import Optional

import httpx
from fastapi import Depends, Request, Response
from sqlalchemy.orm import Session

from .auth import SupabaseAuthClient, get_auth_client, get_current_identity, get_optional_identity
from .cache import Cache, browser_storage
from .config import DEVICE_COOKIE_NAME, DEVICE_COOKIE_SECURE
from .database import get_db, set_rls_context
from .schemas import Credential, Identity
from .services.calendar_sync import CalendarSyncCoordinator
from .services.google_calendar_service import GoogleCalendarAPI
from .services.google_oauth_service import GoogleOAuthClient
from .services.token_store import TokenStore
from .session_store import SESSION_STORAGE_KEY, SessionStore

logger = logging.getLogger(__name__)

DEVICE_COOKIE_MAX_AGE = 365 * 24 * 3600


def get_http_transport() -> Optional[httpx.AsyncBaseTransport]:
    """Transport for outgoing Google calls; None means the real network"""
    return None


def get_device_id(request: Request, response: Response) -> str:
    """Browser profile id from the device cookie, issuing one when missing"""
    device_id = request.cookies.get(DEVICE_COOKIE_NAME)
    if not device_id:
        device_id = uuid.uuid4().hex
        response.set_cookie(
            DEVICE_COOKIE_NAME,
            device_id,
            max_age=DEVICE_COOKIE_MAX_AGE,
            httponly=True,
            secure=DEVICE_COOKIE_SECURE,
            samesite="lax",
        )
    return device_id


def get_browser_storage(device_id: str = Depends(get_device_id)) -> Cache:
    return browser_storage(device_id)


def _with_persisted_refresh_token(identity: Identity, storage: Cache) -> Identity:
    """A bearer only carries the access token; pick up the refresh token stored at sign-in"""
    persisted = storage.get(SESSION_STORAGE_KEY)
    if not isinstance(persisted, dict):
        return identity
    user = persisted.get("user") or {}
    if user.get("id") != identity.user_id or not persisted.get("refresh_token"):
        return identity
    return identity.model_copy(
        update={
            "credential": Credential(
                access_token=identity.credential.access_token,
                refresh_token=persisted["refresh_token"],
            )
        }
    )


def get_session_store(
    storage: Cache = Depends(get_browser_storage),
    auth_client: SupabaseAuthClient = Depends(get_auth_client),
    identity: Optional[Identity] = Depends(get_optional_identity),
) -> SessionStore:
    if identity is not None:
        identity = _with_persisted_refresh_token(identity, storage)
    return SessionStore(auth_client, storage, identity=identity)


def get_token_store(db: Session = Depends(get_db)) -> TokenStore:
    return TokenStore(db)


def get_oauth_client(
    token_store: TokenStore = Depends(get_token_store),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_http_transport),
) -> GoogleOAuthClient:
    return GoogleOAuthClient(token_store, transport=transport)


def get_calendar_api(
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_http_transport),
) -> GoogleCalendarAPI:
    return GoogleCalendarAPI(transport=transport)


def get_calendar_sync(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
    oauth_client: GoogleOAuthClient = Depends(get_oauth_client),
    calendar_api: GoogleCalendarAPI = Depends(get_calendar_api),
) -> CalendarSyncCoordinator:
    set_rls_context(db, identity.user_id)
    return CalendarSyncCoordinator(db, identity.user_id, oauth_client, calendar_api)
