"""
Trusted intermediary for Google OAuth
Performs the code exchange and token refresh server-side so the client secret
never leaves this service.
"""

import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from ..config import GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET, SUPABASE_ANON_KEY
from ..database import get_db, set_rls_context
from ..schemas import ExchangeRequest, RefreshRequest, TokenGrant
from ..services.token_store import TokenStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/functions/v1", tags=["oauth-functions"])

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"  # noqa: S105 - OAuth endpoint URL


def get_google_transport() -> Optional[httpx.AsyncBaseTransport]:
    """Overridden in tests to stub Google's token endpoint"""
    return None


def require_api_key(apikey: Optional[str] = Header(default=None)) -> None:
    if not SUPABASE_ANON_KEY or apikey != SUPABASE_ANON_KEY:
        raise HTTPException(status_code=401, detail="Invalid API key")


def _require_google_credentials() -> None:
    if not GOOGLE_CLIENT_ID or not GOOGLE_CLIENT_SECRET:
        logger.error("❌ Google OAuth credentials are not configured")
        raise HTTPException(status_code=500, detail="Google Calendar not configured")


@router.post("/google-oauth", dependencies=[Depends(require_api_key)])
async def exchange_code(
    body: ExchangeRequest,
    db: Session = Depends(get_db),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_google_transport),
):
    """Exchange an authorization code and store the resulting tokens"""
    _require_google_credentials()

    async with httpx.AsyncClient(transport=transport, timeout=30.0) as client:
        token_response = await client.post(
            GOOGLE_TOKEN_URL,
            data={
                "code": body.code,
                "client_id": GOOGLE_CLIENT_ID,
                "client_secret": GOOGLE_CLIENT_SECRET,
                "redirect_uri": body.redirect_uri,
                "grant_type": "authorization_code",
            },
        )

    if token_response.status_code != 200:
        logger.error(f"Token exchange failed: {token_response.text}")
        raise HTTPException(
            status_code=400,
            detail={"error": "Failed to exchange code for tokens", "details": token_response.text},
        )

    grant = TokenGrant.model_validate(token_response.json())
    if not grant.refresh_token:
        raise HTTPException(status_code=400, detail="Google did not issue a refresh token")

    try:
        set_rls_context(db, body.user_id)
        TokenStore(db).save(body.user_id, grant)
    except Exception as e:
        logger.error(f"❌ Failed to store Google tokens: {str(e)}")
        db.rollback()
        raise HTTPException(
            status_code=500, detail={"error": "Failed to store tokens", "details": str(e)}
        ) from e

    logger.info(f"✅ Google Calendar tokens exchanged for user: {body.user_id}")
    return {
        "success": True,
        "message": "Google Calendar connected successfully",
        **grant.model_dump(),
    }


@router.post("/google-oauth-refresh", dependencies=[Depends(require_api_key)])
async def refresh_token(
    body: RefreshRequest,
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_google_transport),
):
    """Trade a refresh token for a new access token; storage is the caller's job"""
    _require_google_credentials()

    async with httpx.AsyncClient(transport=transport, timeout=30.0) as client:
        refresh_response = await client.post(
            GOOGLE_TOKEN_URL,
            data={
                "client_id": GOOGLE_CLIENT_ID,
                "client_secret": GOOGLE_CLIENT_SECRET,
                "refresh_token": body.refresh_token,
                "grant_type": "refresh_token",
            },
        )

    if refresh_response.status_code != 200:
        logger.error(f"❌ Token refresh failed: {refresh_response.text}")
        raise HTTPException(
            status_code=400,
            detail={"error": "Failed to refresh tokens", "details": refresh_response.text},
        )

    tokens = refresh_response.json()
    if not tokens.get("access_token"):
        raise HTTPException(status_code=400, detail="No access token in refresh response")

    return {
        "success": True,
        "access_token": tokens["access_token"],
        "expires_in": tokens.get("expires_in", 3600),
        "scope": tokens.get("scope"),
    }
