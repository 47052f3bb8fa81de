"""
Session store for one browser profile.

Holds the current Identity, notifies subscribers when it changes and persists
the session in browser storage so later requests from the same profile can
recover it. Initialization resolves a one-shot readiness signal that callers
await instead of polling.
"""
import asyncio
import logging
from typing import Callable, List, Optional

import httpx

from .auth import SupabaseAuthClient
from .cache import Cache
from .errors import AuthenticationError
from .schemas import Credential, Identity

logger = logging.getLogger(__name__)

SESSION_STORAGE_KEY = "lawconnect-auth-token"
SESSION_STORAGE_TTL = 30 * 24 * 3600

Listener = Callable[[Optional[Identity]], None]


class SessionStore:
    def __init__(
        self,
        auth_client: SupabaseAuthClient,
        storage: Cache,
        identity: Optional[Identity] = None,
    ):
        self._auth = auth_client
        self._storage = storage
        self._identity = identity
        self._listeners: List[Listener] = []
        self._ready = asyncio.Event()
        self._init_task: Optional[asyncio.Task] = None
        if identity is not None:
            self._ready.set()

    @property
    def identity(self) -> Optional[Identity]:
        return self._identity

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns the matching unsubscribe callable"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._identity)
            except Exception as e:
                logger.error(f"❌ Session listener failed: {e}")

    def _set_identity(self, identity: Optional[Identity]) -> None:
        self._identity = identity
        if identity is None:
            self._storage.delete(SESSION_STORAGE_KEY)
        else:
            self._persist(identity)
            self._ready.set()
        self._notify()

    def _persist(self, identity: Identity) -> None:
        credential = identity.credential
        self._storage.set(
            SESSION_STORAGE_KEY,
            {
                "access_token": credential.access_token,
                "refresh_token": credential.refresh_token,
                "expires_at": credential.expires_at.isoformat() if credential.expires_at else None,
                "user": {"id": identity.user_id, "email": identity.email},
            },
            ttl=SESSION_STORAGE_TTL,
        )

    async def sign_in_with_password(self, email: str, password: str) -> Identity:
        identity = await self._auth.sign_in_with_password(email, password)
        self._set_identity(identity)
        return identity

    async def sign_out(self) -> None:
        if self._identity is not None:
            try:
                await self._auth.sign_out(self._identity.credential.access_token)
            except httpx.HTTPError as e:
                logger.warning(f"⚠️ Remote sign out failed, clearing local session anyway: {e}")
        self._set_identity(None)

    async def set_session(self, access_token: str, refresh_token: Optional[str]) -> Identity:
        """
        Re-establish a session from a token pair.

        A still-valid access token is kept as is; otherwise the refresh token is
        exchanged for a new pair. Raises AuthenticationError when neither works.
        """
        user = await self._auth.get_user(access_token)
        if user and user.get("id"):
            identity = Identity(
                user_id=user["id"],
                email=user.get("email"),
                credential=Credential(access_token=access_token, refresh_token=refresh_token),
            )
        elif refresh_token:
            identity = await self._auth.refresh_session(refresh_token)
        else:
            raise AuthenticationError("Session expired and no refresh token is available")

        self._set_identity(identity)
        return identity

    async def recover(self) -> Optional[Identity]:
        """
        Recover the session persisted for this browser profile, if any.

        Either outcome completes initialization, so waiting afterwards never
        repeats the recovery.
        """
        try:
            persisted = self._storage.get(SESSION_STORAGE_KEY)
            if not isinstance(persisted, dict) or not persisted.get("access_token"):
                return None

            try:
                identity = await self.set_session(persisted["access_token"], persisted.get("refresh_token"))
            except (AuthenticationError, httpx.HTTPError) as e:
                logger.warning(f"⚠️ Persisted session could not be recovered: {e}")
                self._storage.delete(SESSION_STORAGE_KEY)
                return None

            logger.info(f"✅ Session recovered for user: {identity.user_id}")
            return identity
        finally:
            self._ready.set()

    async def initialize(self) -> None:
        try:
            if self._identity is None:
                await self.recover()
        finally:
            self._ready.set()

    def start(self) -> None:
        """Kick off initialization once; safe to call repeatedly"""
        if self._ready.is_set() or self._init_task is not None:
            return
        self._init_task = asyncio.ensure_future(self.initialize())

    async def wait_until_ready(self, timeout: float) -> Optional[Identity]:
        """Wait (bounded) for initialization, then return whatever Identity exists"""
        self.start()
        try:
            await asyncio.wait_for(self._ready.wait(), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"⚠️ Session store not ready after {timeout:.0f}s")
        return self._identity
