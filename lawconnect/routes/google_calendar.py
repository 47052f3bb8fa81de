"""
Google Calendar Integration Routes
Handles OAuth connection, the consent callback and event syncing
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from ..auth import get_current_identity
from ..cache import Cache
from ..config import FRONTEND_URL, GOOGLE_CLIENT_ID
from ..dependencies import (
    get_browser_storage,
    get_calendar_sync,
    get_oauth_client,
    get_session_store,
    get_token_store,
)
from ..schemas import (
    AuthorizationUrlResponse,
    CalendarEvent,
    CallbackResponse,
    ConnectionStatus,
    EventInput,
    Identity,
    MessageResponse,
)
from ..services.calendar_sync import CalendarSyncCoordinator
from ..services.callback_reconciler import CallbackReconciler, CallbackStatus, ReconciliationState
from ..services.google_oauth_service import GoogleOAuthClient
from ..services.session_preservation import SessionPreservationCache
from ..services.token_store import TokenStore
from ..session_store import SessionStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/google-calendar", tags=["google-calendar"])


@router.get("/status", response_model=ConnectionStatus)
async def get_google_calendar_status(
    identity: Identity = Depends(get_current_identity),
    token_store: TokenStore = Depends(get_token_store),
):
    """Get Google Calendar connection status"""
    record = token_store.get(identity.user_id)
    if record is None:
        return ConnectionStatus(connected=False)
    return ConnectionStatus(connected=True, expires_at=record.expires_at, scope=record.scope)


@router.get("/connect", response_model=AuthorizationUrlResponse)
async def initiate_google_calendar_oauth(
    identity: Identity = Depends(get_current_identity),
    session_store: SessionStore = Depends(get_session_store),
    storage: Cache = Depends(get_browser_storage),
    oauth_client: GoogleOAuthClient = Depends(get_oauth_client),
):
    """Preserve the session for the redirect and hand back Google's consent URL"""
    if not GOOGLE_CLIENT_ID:
        raise HTTPException(status_code=500, detail="Google Calendar not configured")

    preserved = SessionPreservationCache(storage, session_store).preserve()
    if not preserved:
        logger.warning(f"⚠️ Could not preserve session for user {identity.user_id}, continuing anyway")

    logger.info(f"🚀 Google Calendar OAuth initiated for user: {identity.user_id}")
    return AuthorizationUrlResponse(
        authorization_url=oauth_client.get_authorization_url(),
        session_preserved=preserved,
    )


@router.get("/callback", response_model=CallbackResponse)
async def handle_google_calendar_callback(
    request: Request,
    response: Response,
    session_store: SessionStore = Depends(get_session_store),
    storage: Cache = Depends(get_browser_storage),
    oauth_client: GoogleOAuthClient = Depends(get_oauth_client),
):
    """Handle the browser's return from Google's consent screen"""
    reconciler = CallbackReconciler(
        session_store,
        SessionPreservationCache(storage, session_store),
        oauth_client,
    )
    state = await reconciler.reconcile(ReconciliationState(), request.query_params)

    if state.status is CallbackStatus.SUCCESS:
        response.headers["Refresh"] = f"{state.redirect_after:g}; url={FRONTEND_URL}{state.redirect_to}"
    elif state.error is not None:
        response.status_code = state.error.status_code

    return CallbackResponse(
        status=state.status.value,
        message=state.message,
        error=state.error.code if state.error else None,
        redirect_to=state.redirect_to,
        redirect_after=state.redirect_after,
    )


@router.post("/disconnect", response_model=MessageResponse)
async def disconnect_google_calendar(sync: CalendarSyncCoordinator = Depends(get_calendar_sync)):
    """Disconnect Google Calendar integration"""
    if not await sync.disconnect():
        raise HTTPException(status_code=404, detail="Google Calendar not connected")

    logger.info(f"✅ Google Calendar disconnected for user: {sync.user_id}")
    return MessageResponse(message="Google Calendar disconnected")


@router.get("/events", response_model=List[CalendarEvent])
async def list_events(sync: CalendarSyncCoordinator = Depends(get_calendar_sync)):
    """Upcoming events (next 30 days) with their case/client/tag links"""
    return await sync.fetch_events()


@router.post("/events", response_model=CalendarEvent, status_code=201)
async def create_event(body: EventInput, sync: CalendarSyncCoordinator = Depends(get_calendar_sync)):
    return await sync.create_event(body)


@router.put("/events/{event_id}", response_model=CalendarEvent)
async def update_event(
    event_id: str, body: EventInput, sync: CalendarSyncCoordinator = Depends(get_calendar_sync)
):
    return await sync.update_event(event_id, body)


@router.delete("/events/{event_id}", response_model=MessageResponse)
async def delete_event(event_id: str, sync: CalendarSyncCoordinator = Depends(get_calendar_sync)):
    await sync.delete_event(event_id)
    return MessageResponse(message="Event deleted")
