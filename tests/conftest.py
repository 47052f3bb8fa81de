import os
from datetime import datetime
from typing import Optional

import pytest

from helpers import ANON_KEY, SUPABASE_URL, USER_EMAIL, USER_ID, FakeBackend, FakeRedis

# Settings are read at import time, so they must be in place before lawconnect loads
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
os.environ["SUPABASE_URL"] = SUPABASE_URL
os.environ["SUPABASE_ANON_KEY"] = ANON_KEY
os.environ["GOOGLE_CLIENT_ID"] = "test-client-id.apps.googleusercontent.com"
os.environ["GOOGLE_CLIENT_SECRET"] = "test-client-secret"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["FRONTEND_URL"] = "http://localhost:5173"

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from lawconnect import models_google_calendar  # noqa: E402, F401
from lawconnect.auth import SupabaseAuthClient  # noqa: E402
from lawconnect.cache import Cache  # noqa: E402
from lawconnect.database import Base  # noqa: E402
from lawconnect.models_google_calendar import GoogleCalendarToken  # noqa: E402
from lawconnect.schemas import Credential, Identity, TokenGrant  # noqa: E402
from lawconnect.services.google_calendar_service import GoogleCalendarAPI  # noqa: E402
from lawconnect.services.google_oauth_service import GoogleOAuthClient  # noqa: E402
from lawconnect.services.token_store import TokenStore  # noqa: E402
from lawconnect.session_store import SessionStore  # noqa: E402


@pytest.fixture
def engine():
    # One shared connection so the in-memory database survives across sessions and threads
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def storage(fake_redis):
    return Cache(namespace="device-test", client=fake_redis)


@pytest.fixture
def auth_client(backend):
    return SupabaseAuthClient(transport=backend.transport)


@pytest.fixture
def session_store(auth_client, storage):
    return SessionStore(auth_client, storage)


@pytest.fixture
def token_store(db):
    return TokenStore(db)


@pytest.fixture
def oauth_client(token_store, backend):
    return GoogleOAuthClient(token_store, transport=backend.transport)


@pytest.fixture
def calendar_api(backend):
    return GoogleCalendarAPI(transport=backend.transport)


@pytest.fixture
def identity(backend):
    """A signed-in lawyer whose tokens the fake auth server accepts"""
    backend.add_user("access-valid", "refresh-valid")
    return Identity(
        user_id=USER_ID,
        email=USER_EMAIL,
        credential=Credential(access_token="access-valid", refresh_token="refresh-valid"),
    )


@pytest.fixture
def connect_calendar(db, token_store):
    """Store a Google token record, optionally forcing its expiry"""

    def _connect(expires_at: Optional[datetime] = None, user_id: str = USER_ID):
        token_store.save(
            user_id,
            TokenGrant(access_token="ya29.stored", refresh_token="1//stored", expires_in=3600),
        )
        if expires_at is not None:
            db.query(GoogleCalendarToken).filter(GoogleCalendarToken.user_id == user_id).update(
                {GoogleCalendarToken.expires_at: expires_at}, synchronize_session=False
            )
            db.commit()
        return token_store.get(user_id)

    return _connect
