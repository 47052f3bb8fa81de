import logging
from datetime import datetime, timedelta
from typing import Optional

import httpx
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import SUPABASE_ANON_KEY, SUPABASE_URL
from .errors import AuthenticationError
from .schemas import Credential, Identity

logger = logging.getLogger(__name__)

security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)

AUTH_TIMEOUT_SECONDS = 15.0


class SupabaseAuthClient:
    """Thin client for the Supabase auth (GoTrue) REST API"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or SUPABASE_URL or "").rstrip("/")
        self.api_key = api_key or SUPABASE_ANON_KEY or ""
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=f"{self.base_url}/auth/v1",
            headers={"apikey": self.api_key},
            transport=self._transport,
            timeout=AUTH_TIMEOUT_SECONDS,
        )

    @staticmethod
    def _identity_from_session(payload: dict) -> Identity:
        user = payload.get("user") or {}
        if not payload.get("access_token") or not user.get("id"):
            raise AuthenticationError("Invalid session response from auth server")
        expires_in = payload.get("expires_in")
        expires_at = datetime.utcnow() + timedelta(seconds=int(expires_in)) if expires_in else None
        return Identity(
            user_id=user["id"],
            email=user.get("email"),
            credential=Credential(
                access_token=payload["access_token"],
                refresh_token=payload.get("refresh_token"),
                expires_at=expires_at,
            ),
        )

    async def sign_in_with_password(self, email: str, password: str) -> Identity:
        async with self._client() as client:
            response = await client.post(
                "/token", params={"grant_type": "password"}, json={"email": email, "password": password}
            )
        if response.status_code != 200:
            logger.warning(f"⚠️ Sign in failed for {email}: HTTP {response.status_code}")
            raise AuthenticationError("Invalid login credentials")
        identity = self._identity_from_session(response.json())
        logger.info(f"✅ Signed in user: {identity.user_id}")
        return identity

    async def refresh_session(self, refresh_token: str) -> Identity:
        async with self._client() as client:
            response = await client.post(
                "/token", params={"grant_type": "refresh_token"}, json={"refresh_token": refresh_token}
            )
        if response.status_code != 200:
            logger.warning(f"⚠️ Session refresh failed: HTTP {response.status_code}")
            raise AuthenticationError("Session refresh failed")
        return self._identity_from_session(response.json())

    async def get_user(self, access_token: str) -> Optional[dict]:
        """Return the user for an access token, or None when the token is rejected"""
        async with self._client() as client:
            response = await client.get("/user", headers={"Authorization": f"Bearer {access_token}"})
        if response.status_code in (401, 403):
            return None
        if response.status_code != 200:
            logger.error(f"❌ Auth server error fetching user: HTTP {response.status_code}")
            raise AuthenticationError(f"Auth server error: {response.status_code}")
        return response.json()

    async def sign_out(self, access_token: str) -> None:
        async with self._client() as client:
            response = await client.post("/logout", headers={"Authorization": f"Bearer {access_token}"})
        if response.status_code not in (200, 204, 401):
            logger.warning(f"⚠️ Sign out returned HTTP {response.status_code}")


def get_auth_client() -> SupabaseAuthClient:
    return SupabaseAuthClient()


async def identity_from_access_token(auth_client: SupabaseAuthClient, access_token: str) -> Optional[Identity]:
    user = await auth_client.get_user(access_token)
    if not user or not user.get("id"):
        return None
    return Identity(
        user_id=user["id"],
        email=user.get("email"),
        credential=Credential(access_token=access_token),
    )


async def get_current_identity(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    auth_client: SupabaseAuthClient = Depends(get_auth_client),
) -> Identity:
    """Resolve the bearer token to an Identity or reject the request"""
    try:
        identity = await identity_from_access_token(auth_client, credentials.credentials)
    except AuthenticationError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e
    except httpx.HTTPError as e:
        logger.error(f"❌ Auth server unreachable: {str(e)}")
        raise HTTPException(status_code=503, detail="Authentication service unavailable") from e

    if identity is None:
        raise HTTPException(
            status_code=401,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity


async def get_optional_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security),
    auth_client: SupabaseAuthClient = Depends(get_auth_client),
) -> Optional[Identity]:
    """Bearer identity if one was sent and is valid; never rejects the request"""
    if credentials is None:
        return None
    try:
        return await identity_from_access_token(auth_client, credentials.credentials)
    except (AuthenticationError, httpx.HTTPError) as e:
        logger.warning(f"⚠️ Ignoring unusable bearer token: {str(e)}")
        return None
