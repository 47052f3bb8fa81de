import logging

from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import get_session_store
from ..errors import AuthenticationError
from ..schemas import Identity, LoginRequest, MessageResponse, SessionResponse
from ..session_store import SessionStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _session_response(identity: Identity) -> SessionResponse:
    return SessionResponse(
        authenticated=True,
        user_id=identity.user_id,
        email=identity.email,
        access_token=identity.credential.access_token,
        expires_at=identity.credential.expires_at,
    )


@router.post("/login", response_model=SessionResponse)
async def login(body: LoginRequest, session_store: SessionStore = Depends(get_session_store)):
    """Password sign-in; the session is kept in this browser's storage"""
    try:
        identity = await session_store.sign_in_with_password(body.email, body.password)
    except AuthenticationError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e
    return _session_response(identity)


@router.post("/logout", response_model=MessageResponse)
async def logout(session_store: SessionStore = Depends(get_session_store)):
    if session_store.identity is None:
        # Needed to revoke the persisted session remotely
        await session_store.recover()
    await session_store.sign_out()
    return MessageResponse(message="Signed out")


@router.get("/session", response_model=SessionResponse)
async def get_session(session_store: SessionStore = Depends(get_session_store)):
    """Current identity: the bearer token if sent, otherwise the persisted session"""
    identity = session_store.identity or await session_store.recover()
    if identity is None:
        return SessionResponse(authenticated=False)
    return _session_response(identity)
