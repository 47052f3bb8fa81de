"""
Google Calendar Integration Models
"""
from sqlalchemy import JSON, Column, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.sql import func

from .database import Base


class GoogleCalendarToken(Base):
    """Third-party token record: at most one row per user"""

    __tablename__ = "google_calendar_tokens"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, unique=True, index=True)

    # OAuth tokens (encrypted)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    scope = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class CalendarEventAssociation(Base):
    """Case/client/tag links joined to a Google event by its remote id"""

    __tablename__ = "calendar_event_associations"
    __table_args__ = (
        UniqueConstraint("user_id", "remote_event_id", name="uq_event_association_user_event"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    remote_event_id = Column(String(1024), nullable=False)

    case_id = Column(String(64), nullable=True)
    client_id = Column(String(64), nullable=True)
    tags = Column(JSON, default=list, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
