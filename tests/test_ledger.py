"""
tests/test_ledger.py
Idempotent ledger: conditional insert, duplicate handling, storage faults.
"""

import sqlite3
from unittest.mock import MagicMock

import pytest

from homeops.errors import StorageFailure
from homeops.store.db import connect
from homeops.store.ledger import Ledger, build_raw_record

from tests.helpers import make_message

NOW = 1_770_000_000


class TestRecordIfNew:

    def test_first_insert_then_duplicate(self, ledger):
        rec = build_raw_record(make_message(), now=NOW)
        assert ledger.record_if_new(rec).inserted is True
        assert ledger.record_if_new(rec).inserted is False

    def test_duplicate_with_different_payload_keeps_original(self, ledger):
        first  = build_raw_record(make_message(text="Jag diskade"), now=NOW)
        second = build_raw_record(make_message(text="Något helt annat", sender_id=99), now=NOW + 5)

        assert ledger.record_if_new(first).inserted is True
        assert ledger.record_if_new(second).inserted is False

        stored = ledger.get_message("C1", 42)
        assert stored.text == "Jag diskade"
        assert stored.sender_id == 7

    def test_same_message_id_other_conversation_is_new(self, ledger):
        assert ledger.record_if_new(build_raw_record(make_message("C1"), now=NOW)).inserted
        assert ledger.record_if_new(build_raw_record(make_message("C2"), now=NOW)).inserted

    def test_two_connections_one_winner(self, db_path):
        a, b = Ledger(connect(db_path)), Ledger(connect(db_path))
        rec  = build_raw_record(make_message(), now=NOW)
        try:
            results = [a.record_if_new(rec).inserted, b.record_if_new(rec).inserted]
        finally:
            a.conn.close()
            b.conn.close()
        assert sorted(results) == [False, True]

    def test_retention_sets_expiry(self, ledger):
        rec = build_raw_record(make_message(), now=NOW)
        assert rec.expires_at == NOW + 90 * 24 * 60 * 60

    def test_constraint_violation_is_storage_failure(self, ledger):
        rec = build_raw_record(make_message(), now=NOW)
        rec.text = None   # NOT NULL column
        with pytest.raises(StorageFailure):
            ledger.record_if_new(rec)

    def test_sqlite_fault_is_storage_failure(self):
        conn = MagicMock()
        conn.execute.side_effect = sqlite3.OperationalError("database is locked")
        with pytest.raises(StorageFailure):
            Ledger(conn).record_if_new(build_raw_record(make_message(), now=NOW))


class TestQueries:

    def test_recent_messages_newest_first(self, ledger):
        for i in range(5):
            ledger.record_if_new(build_raw_record(
                make_message(message_id=i, sent_at=NOW + i), now=NOW))
        recent = ledger.recent_messages("C1", limit=3)
        assert [r.message_id for r in recent] == [4, 3, 2]

    def test_recent_messages_bounded_before_limit(self, ledger):
        for i in range(3):
            ledger.record_if_new(build_raw_record(
                make_message(message_id=i, sent_at=NOW + i), now=NOW))
        for i in range(10):
            ledger.record_if_new(build_raw_record(
                make_message(message_id=100 + i, sent_at=NOW + 500 + i), now=NOW))

        window = ledger.recent_messages("C1", limit=10, since=NOW, until=NOW + 60)
        assert [r.message_id for r in window] == [2, 1, 0]

    def test_list_messages_filters_by_sender(self, ledger):
        ledger.record_if_new(build_raw_record(make_message(message_id=1, sender_id=1), now=NOW))
        ledger.record_if_new(build_raw_record(make_message(message_id=2, sender_id=2), now=NOW))
        rows = ledger.list_messages(conversation_id="C1", sender_id=2)
        assert [r.message_id for r in rows] == [2]

    def test_purge_expired(self, ledger):
        ledger.record_if_new(build_raw_record(make_message(message_id=1), now=NOW, retention_days=1))
        ledger.record_if_new(build_raw_record(make_message(message_id=2), now=NOW, retention_days=90))
        assert ledger.purge_expired(now=NOW + 2 * 24 * 60 * 60) == 1
        assert ledger.get_message("C1", 1) is None
        assert ledger.get_message("C1", 2) is not None
