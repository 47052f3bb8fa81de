"""
Calendar integration error taxonomy.

Every error carries the HTTP status the API layer renders it with and a short
machine-readable code. Messages are shown to the user verbatim.
"""
from typing import Optional


class CalendarIntegrationError(Exception):
    status_code = 400
    code = "calendar_integration_error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message())

    @classmethod
    def default_message(cls) -> str:
        return "Google Calendar integration error"

    @property
    def message(self) -> str:
        return str(self)


class MissingAuthorizationError(CalendarIntegrationError):
    code = "missing_authorization"

    @classmethod
    def default_message(cls) -> str:
        return "Missing authorization parameters"


class AuthorizationDeniedError(CalendarIntegrationError):
    code = "authorization_denied"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Authorization error: {reason}")


class SessionRestorationError(CalendarIntegrationError):
    status_code = 401
    code = "session_restoration_failed"

    @classmethod
    def default_message(cls) -> str:
        return "Could not restore session"


class ExchangeError(CalendarIntegrationError):
    status_code = 502
    code = "exchange_failed"

    @classmethod
    def default_message(cls) -> str:
        return "Failed to exchange authorization code for tokens"


class RefreshError(CalendarIntegrationError):
    status_code = 502
    code = "refresh_failed"

    @classmethod
    def default_message(cls) -> str:
        return "Failed to refresh Google access token"


class NoTokenError(CalendarIntegrationError):
    status_code = 409
    code = "not_connected"

    @classmethod
    def default_message(cls) -> str:
        return "Google Calendar is not connected"


class PersistenceVerificationError(CalendarIntegrationError):
    status_code = 500
    code = "tokens_not_persisted"

    @classmethod
    def default_message(cls) -> str:
        return "Tokens did not save correctly"


class TransientFetchError(CalendarIntegrationError):
    """Google answered 401; the stored tokens were dropped"""

    status_code = 401
    code = "calendar_disconnected"

    @classmethod
    def default_message(cls) -> str:
        return "Google Calendar authorization expired, please reconnect"


class CalendarAPIError(CalendarIntegrationError):
    status_code = 502
    code = "calendar_api_error"

    def __init__(self, upstream_status: int, detail: str, operation: str = "call"):
        self.upstream_status = upstream_status
        self.detail = detail
        super().__init__(f"Failed to {operation} Google Calendar: {upstream_status} - {detail}")


class AuthenticationError(CalendarIntegrationError):
    status_code = 401
    code = "authentication_failed"

    @classmethod
    def default_message(cls) -> str:
        return "Could not validate credentials"
