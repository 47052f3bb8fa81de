"""
Google OAuth Service
Builds the consent URL and talks to the trusted intermediary that holds the
client secret. The secret never reaches this client.
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from ..config import GOOGLE_CLIENT_ID, GOOGLE_REDIRECT_URI, OAUTH_FUNCTIONS_URL, SUPABASE_ANON_KEY
from ..errors import ExchangeError, NoTokenError, RefreshError
from ..schemas import TokenGrant
from .token_store import TokenStore

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar"

EXCHANGE_FUNCTION = "google-oauth"
REFRESH_FUNCTION = "google-oauth-refresh"

# Refresh when the access token expires within this window
REFRESH_MARGIN = timedelta(minutes=5)


def _json_object(response: httpx.Response) -> Optional[dict]:
    """Decoded JSON object body, or None when the body is not one"""
    try:
        body = response.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def _upstream_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if not isinstance(body, dict):
        return response.text
    # FastAPI nests the payload under "detail"; edge functions return it flat
    detail = body.get("detail", body)
    if isinstance(detail, dict):
        return detail.get("details") or detail.get("error") or response.text
    return str(detail)


class GoogleOAuthClient:
    def __init__(
        self,
        token_store: TokenStore,
        client_id: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        functions_url: Optional[str] = None,
        functions_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.token_store = token_store
        self.client_id = client_id or GOOGLE_CLIENT_ID
        self.redirect_uri = redirect_uri or GOOGLE_REDIRECT_URI
        self.functions_url = (functions_url or OAUTH_FUNCTIONS_URL or "").rstrip("/")
        self.functions_key = functions_key or SUPABASE_ANON_KEY or ""
        self._transport = transport
        self._clock = clock

    def get_authorization_url(self) -> str:
        """Consent URL; offline access plus forced consent so a refresh token is always issued"""
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": GOOGLE_CALENDAR_SCOPE,
            "access_type": "offline",
            "prompt": "consent",
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def _invoke(self, function: str, payload: dict) -> httpx.Response:
        async with httpx.AsyncClient(transport=self._transport, timeout=30.0) as client:
            return await client.post(
                f"{self.functions_url}/{function}",
                headers={
                    "apikey": self.functions_key,
                    "Authorization": f"Bearer {self.functions_key}",
                },
                json=payload,
            )

    async def exchange_code_for_tokens(self, code: str, user_id: str) -> TokenGrant:
        logger.info(f"🔄 Exchanging authorization code for user: {user_id}")
        try:
            response = await self._invoke(
                EXCHANGE_FUNCTION,
                {"code": code, "userId": user_id, "redirectUri": self.redirect_uri},
            )
        except httpx.HTTPError as e:
            logger.error(f"❌ Token exchange request failed: {str(e)}")
            raise ExchangeError(f"Token exchange request failed: {str(e)}") from e

        if response.status_code == 404:
            raise ExchangeError("The OAuth exchange function is not deployed")
        if not response.is_success:
            detail = _upstream_detail(response)
            logger.error(f"❌ Token exchange failed: HTTP {response.status_code} {detail}")
            raise ExchangeError(f"Failed to exchange authorization code: {detail}")

        data = _json_object(response)
        if data is None:
            logger.error(f"❌ Token exchange returned an unreadable body: {response.text[:200]}")
            raise ExchangeError("Token exchange returned an unreadable response")
        if not data.get("success") or not data.get("access_token"):
            logger.error(f"❌ Token exchange did not report success: {data.get('error')}")
            raise ExchangeError("Token exchange did not complete successfully")

        try:
            grant = TokenGrant.model_validate(data)
        except ValidationError as e:
            raise ExchangeError(f"Token exchange returned an invalid grant: {e.error_count()} field error(s)") from e
        logger.info("✅ Token exchange completed")
        return grant

    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        logger.info("🔄 Refreshing Google access token...")
        try:
            response = await self._invoke(REFRESH_FUNCTION, {"refresh_token": refresh_token})
        except httpx.HTTPError as e:
            logger.error(f"❌ Token refresh request failed: {str(e)}")
            raise RefreshError(f"Token refresh request failed: {str(e)}") from e

        if not response.is_success:
            detail = _upstream_detail(response)
            logger.error(f"❌ Token refresh failed: HTTP {response.status_code} {detail}")
            raise RefreshError(f"Failed to refresh tokens: {detail}")

        data = _json_object(response)
        if data is None:
            logger.error(f"❌ Token refresh returned an unreadable body: {response.text[:200]}")
            raise RefreshError("Token refresh returned an unreadable response")
        if not data.get("access_token"):
            raise RefreshError("Could not renew the access token")
        try:
            return TokenGrant.model_validate(data)
        except ValidationError as e:
            raise RefreshError(f"Token refresh returned an invalid grant: {e.error_count()} field error(s)") from e

    async def ensure_valid_token(self, user_id: str) -> str:
        """Access token that stays valid for at least REFRESH_MARGIN, refreshing if needed"""
        record = self.token_store.get(user_id)
        if record is None:
            raise NoTokenError()

        now = self._clock()
        if record.expires_at - now >= REFRESH_MARGIN:
            return record.access_token

        logger.info(f"🔄 Google Calendar token expires at {record.expires_at.isoformat()}, refreshing...")
        grant = await self.refresh_access_token(record.refresh_token)
        self.token_store.update_access_token(
            user_id, grant.access_token, now + timedelta(seconds=grant.expires_in)
        )
        logger.info("✅ Google Calendar token refreshed successfully")
        return grant.access_token
