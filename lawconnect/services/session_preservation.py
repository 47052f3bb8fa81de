"""
Session Preservation Cache
Carries the user's session across the full-page redirect to Google and back.

The slot is single-consumption: any restore() that finds it deletes it, so a
stale credential can never be replayed.
"""
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import httpx
from pydantic import ValidationError

from ..cache import Cache
from ..errors import AuthenticationError
from ..schemas import Identity, PreservedSessionSnapshot
from ..session_store import SessionStore

logger = logging.getLogger(__name__)

PRESERVED_SESSION_KEY = "oauth-session"
MAX_SNAPSHOT_AGE_MS = 10 * 60 * 1000


def now_ms() -> int:
    return int(time.time() * 1000)


class RestoreOutcome(str, Enum):
    RESTORED = "restored"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    FAILED = "failed"


@dataclass
class RestoreResult:
    outcome: RestoreOutcome
    identity: Optional[Identity] = None
    error: Optional[Exception] = None

    def __bool__(self) -> bool:
        return self.outcome is RestoreOutcome.RESTORED


class SessionPreservationCache:
    def __init__(
        self,
        storage: Cache,
        session_store: SessionStore,
        clock: Callable[[], int] = now_ms,
    ):
        self.storage = storage
        self.session_store = session_store
        self._clock = clock

    def preserve(self) -> bool:
        """Snapshot the current credential before redirecting to Google"""
        identity = self.session_store.identity
        if identity is None:
            logger.warning("⚠️ No active session to preserve before OAuth redirect")
            return False

        snapshot = PreservedSessionSnapshot(
            access_token=identity.credential.access_token,
            refresh_token=identity.credential.refresh_token,
            user_id=identity.user_id,
            timestamp=self._clock(),
        )
        saved = self.storage.set(
            PRESERVED_SESSION_KEY, snapshot.model_dump(), ttl=MAX_SNAPSHOT_AGE_MS // 1000
        )
        if saved:
            logger.info(f"💾 Session preserved for OAuth redirect (user: {identity.user_id})")
        return saved

    async def restore(self) -> RestoreResult:
        """Consume the preserved snapshot and re-establish the session from it"""
        raw = self.storage.get_raw(PRESERVED_SESSION_KEY)
        if raw is None:
            return RestoreResult(RestoreOutcome.NOT_FOUND)
        self.storage.delete(PRESERVED_SESSION_KEY)

        try:
            snapshot = PreservedSessionSnapshot.model_validate_json(raw)
        except ValidationError:
            logger.warning("⚠️ Preserved session is corrupt, discarding it")
            return RestoreResult(RestoreOutcome.NOT_FOUND)

        age_ms = self._clock() - snapshot.timestamp
        if age_ms > MAX_SNAPSHOT_AGE_MS:
            logger.info(f"⌛ Preserved session expired ({age_ms // 1000}s old)")
            return RestoreResult(RestoreOutcome.EXPIRED)

        try:
            identity = await self.session_store.set_session(snapshot.access_token, snapshot.refresh_token)
        except (AuthenticationError, httpx.HTTPError) as e:
            logger.error(f"❌ Failed to restore preserved session: {str(e)}")
            return RestoreResult(RestoreOutcome.FAILED, error=e)

        logger.info(f"✅ Session restored from preserved snapshot (user: {identity.user_id})")
        return RestoreResult(RestoreOutcome.RESTORED, identity=identity)
