"""
Unit tests for SessionRecord and session identifiers.
"""

import re
from datetime import datetime, timedelta, timezone

import pytest

from sessionstores.session.identifier import SESSION_ID_LENGTH, generate_session_id
from sessionstores.session.record import SessionRecord, utc_now

NOW = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)


class TestSessionRecord:
    """Tests for record construction and expiry."""

    def test_new_with_ttl(self):
        record = SessionRecord.new({"counter": 0}, ttl=timedelta(minutes=30), now=NOW)

        assert record.id is None
        assert record.data == {"counter": 0}
        assert record.expiry_date == NOW + timedelta(minutes=30)

    def test_new_with_expiry_date(self):
        expiry = NOW + timedelta(days=1)

        record = SessionRecord.new(expiry_date=expiry)

        assert record.expiry_date == expiry
        assert record.data == {}

    def test_new_copies_data(self):
        data = {"counter": 0}

        record = SessionRecord.new(data, ttl=timedelta(minutes=1))
        record.data["counter"] = 5

        assert data == {"counter": 0}

    @pytest.mark.parametrize("kwargs", [
        {},
        {"ttl": timedelta(minutes=1), "expiry_date": NOW},
    ])
    def test_new_requires_exactly_one_expiry(self, kwargs):
        with pytest.raises(ValueError, match="exactly one"):
            SessionRecord.new(**kwargs)

    def test_naive_expiry_rejected(self):
        with pytest.raises(ValueError, match="timezone-aware"):
            SessionRecord(expiry_date=datetime(2030, 1, 1))

    def test_is_expired_boundary(self):
        record = SessionRecord(expiry_date=NOW)

        assert record.is_expired(NOW)
        assert record.is_expired(NOW + timedelta(microseconds=1))
        assert not record.is_expired(NOW - timedelta(microseconds=1))

    def test_equality_compares_instants(self):
        local = NOW.astimezone(timezone(timedelta(hours=-5)))

        assert SessionRecord(id="a", expiry_date=NOW) == SessionRecord(id="a", expiry_date=local)

    def test_utc_now_is_aware(self):
        assert utc_now().utcoffset() == timedelta(0)


class TestGenerateSessionId:
    """Tests for identifier generation."""

    def test_format(self):
        session_id = generate_session_id()

        assert len(session_id) == SESSION_ID_LENGTH
        assert re.fullmatch(r"[A-Za-z0-9_-]+", session_id)

    def test_identifiers_are_unique(self):
        ids = {generate_session_id() for _ in range(1000)}

        assert len(ids) == 1000
