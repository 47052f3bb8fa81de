"""
Test doubles for the remote services the calendar integration talks to.

FakeBackend answers Supabase auth, the OAuth intermediary functions, Google's
token/revoke endpoints and the Calendar v3 events API through a single
httpx.MockTransport, and records every request it sees.
"""

import json
import uuid
from typing import Callable, Dict, List, Optional
from urllib.parse import parse_qs

import httpx

SUPABASE_URL = "https://lawconnect-test.supabase.co"
ANON_KEY = "anon-test-key"
USER_ID = "8b0c6a52-4a4e-4c7e-9a55-0f1f2d7c1a11"
USER_EMAIL = "abogada@lawconnect.test"

CALENDAR_EVENTS_URL = "https://www.googleapis.com/calendar/v3/calendars/primary/events"


class FakeRedis:
    """In-memory stand-in for the handful of redis.Redis calls the cache makes"""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.deletes: List[str] = []

    def ping(self):
        return True

    def get(self, key):
        return self.data.get(key)

    def setex(self, key, ttl, value):
        self.data[key] = value
        return True

    def delete(self, *keys):
        removed = 0
        for key in keys:
            self.deletes.append(key)
            if self.data.pop(key, None) is not None:
                removed += 1
        return removed

    def info(self):
        return {"used_memory_human": "1K", "connected_clients": 1}


class FakeBackend:
    def __init__(self):
        self.calls: List[httpx.Request] = []

        # Supabase auth
        self.access_tokens: Dict[str, dict] = {}
        self.refresh_tokens: Dict[str, dict] = {}
        self.passwords: Dict[str, str] = {}

        # Intermediary
        self.exchange_status = 200
        self.exchange_error = "invalid_grant"
        self.refresh_status = 200
        self.on_exchange: Optional[Callable[[dict], None]] = None
        self.refreshed_access_token = "ya29.refreshed"
        # Raw 200 bodies, for intermediaries answering with something other than JSON
        self.exchange_raw_body: Optional[str] = None
        self.refresh_raw_body: Optional[str] = None

        # Google
        self.google_token_status = 200
        self.events: List[dict] = []
        self.list_status = 200
        self.revoked: List[str] = []

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def add_user(self, access_token: str, refresh_token: Optional[str] = None,
                 user_id: str = USER_ID, email: str = USER_EMAIL, password: Optional[str] = None):
        user = {"id": user_id, "email": email}
        self.access_tokens[access_token] = user
        if refresh_token:
            self.refresh_tokens[refresh_token] = user
        if password:
            self.passwords[email] = password
        return user

    def calls_to(self, method: str, prefix: str) -> List[httpx.Request]:
        return [c for c in self.calls if c.method == method and str(c.url).startswith(prefix)]

    def count(self, method: str, prefix: str) -> int:
        return len(self.calls_to(method, prefix))

    # Dispatch

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        url = str(request.url)

        if url.startswith(f"{SUPABASE_URL}/auth/v1"):
            return self._auth(request, request.url.path.rsplit("/", 1)[-1])
        if url.startswith(f"{SUPABASE_URL}/functions/v1/google-oauth-refresh"):
            return self._refresh_function(request)
        if url.startswith(f"{SUPABASE_URL}/functions/v1/google-oauth"):
            return self._exchange_function(request)
        if url.startswith("https://oauth2.googleapis.com/token"):
            return self._google_token(request)
        if url.startswith("https://oauth2.googleapis.com/revoke"):
            self.revoked.append(request.url.params.get("token"))
            return httpx.Response(200, json={})
        if url.startswith(CALENDAR_EVENTS_URL):
            return self._events(request)
        return httpx.Response(404, json={"error": f"no fake route for {request.method} {url}"})

    # Supabase auth

    def _session(self, user: dict) -> dict:
        access = f"access-{uuid.uuid4().hex[:8]}"
        refresh = f"refresh-{uuid.uuid4().hex[:8]}"
        self.access_tokens[access] = user
        self.refresh_tokens[refresh] = user
        return {"access_token": access, "refresh_token": refresh, "expires_in": 3600, "user": user}

    def _auth(self, request: httpx.Request, endpoint: str) -> httpx.Response:
        if endpoint == "user":
            token = request.headers.get("Authorization", "").removeprefix("Bearer ")
            user = self.access_tokens.get(token)
            if user is None:
                return httpx.Response(401, json={"msg": "invalid JWT"})
            return httpx.Response(200, json=user)

        if endpoint == "token":
            body = json.loads(request.content)
            grant_type = request.url.params.get("grant_type")
            if grant_type == "password":
                if self.passwords.get(body["email"]) != body["password"]:
                    return httpx.Response(400, json={"error": "invalid_grant"})
                user = next(u for u in self.access_tokens.values() if u["email"] == body["email"])
                return httpx.Response(200, json=self._session(user))
            if grant_type == "refresh_token":
                user = self.refresh_tokens.pop(body["refresh_token"], None)
                if user is None:
                    return httpx.Response(400, json={"error": "invalid_grant"})
                return httpx.Response(200, json=self._session(user))

        if endpoint == "logout":
            return httpx.Response(204)
        return httpx.Response(404)

    # Intermediary

    def _exchange_function(self, request: httpx.Request) -> httpx.Response:
        if self.exchange_raw_body is not None:
            return httpx.Response(200, text=self.exchange_raw_body)
        body = json.loads(request.content)
        if self.exchange_status != 200:
            return httpx.Response(
                self.exchange_status,
                json={"error": "Failed to exchange code for tokens", "details": self.exchange_error},
            )
        if self.on_exchange:
            self.on_exchange(body)
        return httpx.Response(
            200,
            json={
                "success": True,
                "access_token": "ya29.exchanged",
                "refresh_token": "1//refresh",
                "expires_in": 3599,
                "scope": "https://www.googleapis.com/auth/calendar",
            },
        )

    def _refresh_function(self, request: httpx.Request) -> httpx.Response:
        if self.refresh_raw_body is not None:
            return httpx.Response(200, text=self.refresh_raw_body)
        if self.refresh_status != 200:
            return httpx.Response(self.refresh_status, json={"error": "Failed to refresh tokens",
                                                             "details": "invalid_grant"})
        return httpx.Response(
            200, json={"success": True, "access_token": self.refreshed_access_token, "expires_in": 3600}
        )

    # Google

    def _google_token(self, request: httpx.Request) -> httpx.Response:
        form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        if self.google_token_status != 200:
            return httpx.Response(self.google_token_status, text='{"error": "invalid_grant"}')
        payload = {"access_token": "ya29.google", "expires_in": 3599, "scope": "https://www.googleapis.com/auth/calendar"}
        if form.get("grant_type") == "authorization_code":
            payload["refresh_token"] = "1//google-refresh"
        return httpx.Response(200, json=payload)

    def _events(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        event_id = path.rsplit("/events", 1)[-1].lstrip("/")

        if request.method == "GET" and not event_id:
            if self.list_status != 200:
                return httpx.Response(self.list_status, json={"error": {"code": self.list_status}})
            items = sorted(self.events, key=lambda e: e["start"].get("dateTime") or e["start"].get("date"))
            return httpx.Response(200, json={"items": items})

        if request.method == "POST":
            event = json.loads(request.content)
            event["id"] = f"evt{uuid.uuid4().hex[:10]}"
            event["htmlLink"] = f"https://calendar.google.com/event?eid={event['id']}"
            self.events.append(event)
            return httpx.Response(200, json=event)

        existing = next((e for e in self.events if e["id"] == event_id), None)
        if existing is None:
            return httpx.Response(404, json={"error": {"code": 404}})

        if request.method == "PUT":
            event = json.loads(request.content)
            event["id"] = event_id
            self.events[self.events.index(existing)] = event
            return httpx.Response(200, json=event)

        if request.method == "DELETE":
            self.events.remove(existing)
            return httpx.Response(204)
        return httpx.Response(405)


def google_event(event_id: str, summary: str, start: str, end: str) -> dict:
    return {
        "id": event_id,
        "summary": summary,
        "start": {"dateTime": start, "timeZone": "UTC"},
        "end": {"dateTime": end, "timeZone": "UTC"},
        "status": "confirmed",
    }
