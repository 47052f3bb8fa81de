from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# Identity / session
class Credential(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None


class Identity(BaseModel):
    user_id: str
    email: Optional[str] = None
    credential: Credential


class PreservedSessionSnapshot(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    user_id: str
    timestamp: int  # epoch milliseconds


class LoginRequest(BaseModel):
    email: str
    password: str


class SessionResponse(BaseModel):
    authenticated: bool
    user_id: Optional[str] = None
    email: Optional[str] = None
    access_token: Optional[str] = None
    expires_at: Optional[datetime] = None


# Google tokens
class TokenGrant(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: int = 3600
    scope: Optional[str] = None


class TokenRecord(BaseModel):
    user_id: str
    access_token: str
    refresh_token: str
    expires_at: datetime
    scope: Optional[str] = None


# Calendar events
class EventTime(BaseModel):
    date_time: Optional[str] = Field(default=None, alias="dateTime")
    date: Optional[str] = None
    time_zone: Optional[str] = Field(default=None, alias="timeZone")

    class Config:
        populate_by_name = True


class ReminderOverride(BaseModel):
    method: str = Field(..., pattern="^(email|popup)$")
    minutes: int


class Reminders(BaseModel):
    use_default: Optional[bool] = Field(default=None, alias="useDefault")
    overrides: List[ReminderOverride] = []

    class Config:
        populate_by_name = True


class Attendee(BaseModel):
    email: str
    display_name: Optional[str] = Field(default=None, alias="displayName")
    response_status: Optional[str] = Field(default=None, alias="responseStatus")

    class Config:
        populate_by_name = True


GOOGLE_EVENT_FIELDS = {"summary", "description", "start", "end", "location", "reminders", "attendees"}


class EventInput(BaseModel):
    """Event payload accepted from the calendar view"""

    summary: str
    description: Optional[str] = None
    start: EventTime
    end: EventTime
    location: Optional[str] = None
    reminders: Optional[Reminders] = None
    attendees: Optional[List[Attendee]] = None

    # LawConnect associations, stored locally only
    case_id: Optional[str] = None
    client_id: Optional[str] = None
    tags: List[str] = []

    def google_body(self) -> Dict[str, Any]:
        """Body for the Google Calendar events endpoint (camelCase, no local fields)"""
        return self.model_dump(by_alias=True, exclude_none=True, include=GOOGLE_EVENT_FIELDS)


class CalendarEvent(BaseModel):
    """Google event merged with its local association"""

    id: str
    summary: str = ""
    description: Optional[str] = None
    start: EventTime
    end: EventTime
    location: Optional[str] = None
    reminders: Optional[Reminders] = None
    attendees: Optional[List[Attendee]] = None
    status: Optional[str] = None
    html_link: Optional[str] = Field(default=None, alias="htmlLink")

    case_id: Optional[str] = None
    client_id: Optional[str] = None
    tags: List[str] = []

    class Config:
        populate_by_name = True

    @classmethod
    def from_google(cls, item: Dict[str, Any]) -> "CalendarEvent":
        return cls(
            id=item["id"],
            summary=item.get("summary", ""),
            description=item.get("description"),
            start=item.get("start") or {},
            end=item.get("end") or {},
            location=item.get("location"),
            reminders=item.get("reminders"),
            attendees=item.get("attendees"),
            status=item.get("status"),
            htmlLink=item.get("htmlLink"),
        )


# API responses
class ConnectionStatus(BaseModel):
    connected: bool
    expires_at: Optional[datetime] = None
    scope: Optional[str] = None


class AuthorizationUrlResponse(BaseModel):
    authorization_url: str
    session_preserved: bool


class CallbackResponse(BaseModel):
    status: str
    message: Optional[str] = None
    error: Optional[str] = None
    redirect_to: Optional[str] = None
    redirect_after: Optional[float] = None


class MessageResponse(BaseModel):
    success: bool = True
    message: str


# Trusted intermediary payloads
class ExchangeRequest(BaseModel):
    code: str
    user_id: str = Field(..., alias="userId")
    redirect_uri: str = Field(..., alias="redirectUri")

    class Config:
        populate_by_name = True


class RefreshRequest(BaseModel):
    refresh_token: str
