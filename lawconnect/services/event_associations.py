"""Event association repository - Database operations for case/client/tag links"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..models_google_calendar import CalendarEventAssociation


class EventAssociationRepository:
    """Repository for calendar event association database operations"""

    @staticmethod
    def get_for_user(db: Session, user_id: str) -> dict[str, CalendarEventAssociation]:
        """All associations for a user, keyed by remote event id"""
        rows = (
            db.query(CalendarEventAssociation)
            .filter(CalendarEventAssociation.user_id == user_id)
            .all()
        )
        return {row.remote_event_id: row for row in rows}

    @staticmethod
    def get(db: Session, user_id: str, remote_event_id: str) -> Optional[CalendarEventAssociation]:
        return (
            db.query(CalendarEventAssociation)
            .filter(
                CalendarEventAssociation.user_id == user_id,
                CalendarEventAssociation.remote_event_id == remote_event_id,
            )
            .first()
        )

    @staticmethod
    def upsert(
        db: Session,
        user_id: str,
        remote_event_id: str,
        case_id: Optional[str] = None,
        client_id: Optional[str] = None,
        tags: Optional[list[str]] = None,
    ) -> CalendarEventAssociation:
        """Create or replace the association for a remote event"""
        row = EventAssociationRepository.get(db, user_id, remote_event_id)
        if row is None:
            row = CalendarEventAssociation(user_id=user_id, remote_event_id=remote_event_id)
            db.add(row)
        row.case_id = case_id
        row.client_id = client_id
        row.tags = list(tags or [])
        row.updated_at = datetime.utcnow()

        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(row)
        return row

    @staticmethod
    def delete(db: Session, user_id: str, remote_event_id: str) -> bool:
        try:
            deleted = (
                db.query(CalendarEventAssociation)
                .filter(
                    CalendarEventAssociation.user_id == user_id,
                    CalendarEventAssociation.remote_event_id == remote_event_id,
                )
                .delete(synchronize_session=False)
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        return bool(deleted)
