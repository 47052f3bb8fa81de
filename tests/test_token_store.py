"""Tests for encrypted Google token storage"""

from datetime import datetime, timedelta

import pytest
from cryptography.fernet import Fernet

from helpers import USER_ID
from lawconnect.models_google_calendar import GoogleCalendarToken
from lawconnect.schemas import TokenGrant
from lawconnect.services.token_store import TokenStore


def test_save_encrypts_tokens_at_rest(db, token_store):
    token_store.save(USER_ID, TokenGrant(access_token="ya29.plain", refresh_token="1//plain", scope="calendar"))

    row = db.query(GoogleCalendarToken).filter_by(user_id=USER_ID).one()
    assert row.access_token != "ya29.plain"
    assert row.refresh_token != "1//plain"

    record = token_store.get(USER_ID)
    assert record.access_token == "ya29.plain"
    assert record.refresh_token == "1//plain"
    assert record.scope == "calendar"


def test_first_connection_requires_refresh_token(token_store):
    with pytest.raises(ValueError):
        token_store.save(USER_ID, TokenGrant(access_token="ya29.only"))
    assert token_store.get(USER_ID) is None


def test_reconnect_overwrites_single_record_and_keeps_refresh_token(db, token_store):
    token_store.save(USER_ID, TokenGrant(access_token="ya29.first", refresh_token="1//first"))
    token_store.save(USER_ID, TokenGrant(access_token="ya29.second"))

    assert db.query(GoogleCalendarToken).filter_by(user_id=USER_ID).count() == 1
    record = token_store.get(USER_ID)
    assert record.access_token == "ya29.second"
    assert record.refresh_token == "1//first"


def test_update_access_token_keeps_refresh_token(token_store, connect_calendar):
    connect_calendar()
    new_expiry = datetime.utcnow() + timedelta(hours=1)

    assert token_store.update_access_token(USER_ID, "ya29.new", new_expiry) is True

    record = token_store.get(USER_ID)
    assert record.access_token == "ya29.new"
    assert record.refresh_token == "1//stored"
    assert record.expires_at == new_expiry


def test_update_after_disconnect_does_not_recreate_record(token_store, connect_calendar):
    connect_calendar()
    token_store.delete(USER_ID)

    assert token_store.update_access_token(USER_ID, "ya29.late", datetime.utcnow()) is False
    assert token_store.get(USER_ID) is None


def test_delete_reports_whether_a_record_existed(token_store, connect_calendar):
    assert token_store.delete(USER_ID) is False
    connect_calendar()
    assert token_store.delete(USER_ID) is True


def test_record_encrypted_with_other_key_reads_as_missing(db, connect_calendar):
    connect_calendar()

    assert TokenStore(db, cipher=Fernet(Fernet.generate_key())).get(USER_ID) is None
