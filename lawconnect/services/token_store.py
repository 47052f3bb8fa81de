"""
Google Calendar token storage
One encrypted token record per user.
"""
import base64
import hashlib
import logging
from datetime import datetime, timedelta
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy.orm import Session

from ..config import SECRET_KEY, TOKEN_ENCRYPTION_KEY
from ..models_google_calendar import GoogleCalendarToken
from ..schemas import TokenGrant, TokenRecord

logger = logging.getLogger(__name__)


def get_fernet_key() -> bytes:
    if TOKEN_ENCRYPTION_KEY:
        return TOKEN_ENCRYPTION_KEY.encode()
    # Derive a valid Fernet key from SECRET_KEY
    key = hashlib.sha256(SECRET_KEY.encode()).digest()
    return base64.urlsafe_b64encode(key)


class TokenStore:
    def __init__(self, db: Session, cipher: Optional[Fernet] = None):
        self.db = db
        self.cipher = cipher or Fernet(get_fernet_key())

    def _encrypt(self, value: str) -> str:
        return self.cipher.encrypt(value.encode()).decode()

    def _decrypt(self, value: str) -> str:
        return self.cipher.decrypt(value.encode()).decode()

    def _row(self, user_id: str) -> Optional[GoogleCalendarToken]:
        return (
            self.db.query(GoogleCalendarToken)
            .filter(GoogleCalendarToken.user_id == user_id)
            .first()
        )

    def get(self, user_id: str) -> Optional[TokenRecord]:
        row = self._row(user_id)
        if row is None:
            return None
        try:
            return TokenRecord(
                user_id=row.user_id,
                access_token=self._decrypt(row.access_token),
                refresh_token=self._decrypt(row.refresh_token),
                expires_at=row.expires_at,
                scope=row.scope,
            )
        except InvalidToken:
            # Encrypted with a rotated key; unusable, so the user must reconnect
            logger.error(f"❌ Stored Google tokens for user {user_id} cannot be decrypted")
            return None

    def save(self, user_id: str, grant: TokenGrant) -> TokenRecord:
        """Insert or overwrite the user's record after a code exchange"""
        expires_at = datetime.utcnow() + timedelta(seconds=grant.expires_in)
        row = self._row(user_id)

        if row is None:
            if not grant.refresh_token:
                raise ValueError("A refresh token is required for the first connection")
            row = GoogleCalendarToken(
                user_id=user_id,
                access_token=self._encrypt(grant.access_token),
                refresh_token=self._encrypt(grant.refresh_token),
                expires_at=expires_at,
                scope=grant.scope,
            )
            self.db.add(row)
        else:
            row.access_token = self._encrypt(grant.access_token)
            # Google omits the refresh token when consent was not re-prompted
            if grant.refresh_token:
                row.refresh_token = self._encrypt(grant.refresh_token)
            row.expires_at = expires_at
            row.scope = grant.scope or row.scope
            row.updated_at = datetime.utcnow()

        self.db.commit()
        logger.info(f"✅ Google Calendar tokens stored for user: {user_id}")
        return self.get(user_id)

    def update_access_token(self, user_id: str, access_token: str, expires_at: datetime) -> bool:
        """
        Write back a refreshed access token; the refresh token is kept.

        Update-only: returns False when the record was deleted meanwhile (a
        disconnect won the race) instead of recreating it.
        """
        updated = (
            self.db.query(GoogleCalendarToken)
            .filter(GoogleCalendarToken.user_id == user_id)
            .update(
                {
                    GoogleCalendarToken.access_token: self._encrypt(access_token),
                    GoogleCalendarToken.expires_at: expires_at,
                    GoogleCalendarToken.updated_at: datetime.utcnow(),
                },
                synchronize_session=False,
            )
        )
        self.db.commit()
        if not updated:
            logger.warning(f"⚠️ Token record for user {user_id} vanished during refresh, not recreating it")
        return bool(updated)

    def delete(self, user_id: str) -> bool:
        deleted = (
            self.db.query(GoogleCalendarToken)
            .filter(GoogleCalendarToken.user_id == user_id)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        if deleted:
            logger.info(f"🔌 Google Calendar tokens deleted for user: {user_id}")
        return bool(deleted)
