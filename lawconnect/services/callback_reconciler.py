"""
Callback Reconciler
Runs when the browser comes back from Google's consent screen.

    awaiting_params -> restoring_session -> exchanging_code -> success | error

All progress lives in a ReconciliationState owned by the caller; success and
error are terminal for that state object.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

from ..config import CALENDAR_VIEW_PATH
from ..errors import (
    AuthorizationDeniedError,
    CalendarIntegrationError,
    MissingAuthorizationError,
    PersistenceVerificationError,
    SessionRestorationError,
)
from ..schemas import Identity
from ..session_store import SessionStore
from .google_oauth_service import GoogleOAuthClient
from .session_preservation import SessionPreservationCache

logger = logging.getLogger(__name__)

# Same overall budget as five attempts two seconds apart
SESSION_READY_TIMEOUT = 10.0
SUCCESS_REDIRECT_DELAY = 2.0


class CallbackStatus(str, Enum):
    AWAITING_PARAMS = "awaiting_params"
    RESTORING_SESSION = "restoring_session"
    EXCHANGING_CODE = "exchanging_code"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class ReconciliationState:
    status: CallbackStatus = CallbackStatus.AWAITING_PARAMS
    in_flight: bool = False
    cache_restore_attempted: bool = False
    store_recovery_attempted: bool = False
    user_id: Optional[str] = None
    message: Optional[str] = None
    error: Optional[CalendarIntegrationError] = None
    redirect_to: Optional[str] = None
    redirect_after: Optional[float] = None

    @property
    def terminal(self) -> bool:
        return self.status in (CallbackStatus.SUCCESS, CallbackStatus.ERROR)


class CallbackReconciler:
    def __init__(
        self,
        session_store: SessionStore,
        preservation_cache: SessionPreservationCache,
        oauth_client: GoogleOAuthClient,
        ready_timeout: float = SESSION_READY_TIMEOUT,
        redirect_to: str = CALENDAR_VIEW_PATH,
        redirect_delay: float = SUCCESS_REDIRECT_DELAY,
    ):
        self.session_store = session_store
        self.preservation_cache = preservation_cache
        self.oauth = oauth_client
        self.ready_timeout = ready_timeout
        self.redirect_to = redirect_to
        self.redirect_delay = redirect_delay

    async def reconcile(self, state: ReconciliationState, params: Mapping[str, str]) -> ReconciliationState:
        if state.in_flight or state.terminal:
            return state

        state.in_flight = True
        try:
            code = self._check_params(params)

            state.status = CallbackStatus.RESTORING_SESSION
            identity = await self.restore_session(state)
            state.user_id = identity.user_id

            state.status = CallbackStatus.EXCHANGING_CODE
            await self._exchange(code, identity.user_id)

            state.status = CallbackStatus.SUCCESS
            state.message = "Google Calendar connected successfully"
            state.redirect_to = self.redirect_to
            state.redirect_after = self.redirect_delay
            logger.info(f"✅ Google Calendar connected for user: {identity.user_id}")
        except CalendarIntegrationError as e:
            logger.error(f"❌ Google Calendar callback failed ({state.status.value}): {e.message}")
            state.status = CallbackStatus.ERROR
            state.error = e
            state.message = e.message
        except Exception as e:
            logger.exception(f"❌ Unexpected Google Calendar callback failure ({state.status.value})")
            error = CalendarIntegrationError(str(e) or e.__class__.__name__)
            error.__cause__ = e
            state.status = CallbackStatus.ERROR
            state.error = error
            state.message = error.message
        finally:
            state.in_flight = False

        return state

    @staticmethod
    def _check_params(params: Mapping[str, str]) -> str:
        error = params.get("error")
        if error:
            raise AuthorizationDeniedError(error)
        code = params.get("code")
        if not code:
            raise MissingAuthorizationError()
        return code

    async def restore_session(self, state: ReconciliationState) -> Identity:
        """Find an Identity, trying each strategy at most once per state"""
        identity = self.session_store.identity
        if identity is not None:
            return identity

        if not state.cache_restore_attempted:
            state.cache_restore_attempted = True
            result = await self.preservation_cache.restore()
            logger.info(f"🔍 Preserved session restore: {result.outcome.value}")
            if result:
                return result.identity

        if not state.store_recovery_attempted:
            state.store_recovery_attempted = True
            identity = await self.session_store.recover()
            if identity is not None:
                return identity

        identity = await self.session_store.wait_until_ready(self.ready_timeout)
        if identity is None:
            raise SessionRestorationError()
        return identity

    async def _exchange(self, code: str, user_id: str) -> None:
        await self.oauth.exchange_code_for_tokens(code, user_id)

        if self.oauth.token_store.get(user_id) is None:
            raise PersistenceVerificationError()
