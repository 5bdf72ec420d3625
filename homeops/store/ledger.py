"""
homeops/store/ledger.py
Idempotent activity ledger — the append-only store of raw inbound messages.

record_if_new() is the system's only at-most-once gate. A key collision on
(conversation_id, message_id) is what a redelivered message looks like and
is reported as inserted=False; it is never an error. Any other SQLite
fault is a StorageFailure and must reach the delivery channel so the
message gets redelivered.
"""

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from homeops.errors import StorageFailure
from homeops.models.record import InboundMessage, RawMessageRecord

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 90
_DAY_SEC = 24 * 60 * 60


@dataclass(frozen=True)
class LedgerResult:
    inserted: bool


def build_raw_record(
    message:        InboundMessage,
    raw:            str           = '',
    now:            Optional[int] = None,
    retention_days: int           = DEFAULT_RETENTION_DAYS,
) -> RawMessageRecord:
    now = int(now if now is not None else datetime.now(timezone.utc).timestamp())
    return RawMessageRecord(
        conversation_id = message.conversation_id,
        message_id      = message.message_id,
        sender_id       = message.sender_id,
        sender_name     = message.sender_name,
        text            = message.text,
        sent_at         = message.sent_at,
        recorded_at     = datetime.fromtimestamp(now, tz=timezone.utc).isoformat(),
        expires_at      = now + retention_days * _DAY_SEC,
        raw             = raw,
    )


class Ledger:

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    # ── WRITE ────────────────────────────────────────────────

    def record_if_new(self, record: RawMessageRecord) -> LedgerResult:
        """
        Conditional insert. Succeeds only if the key is absent.
        ON CONFLICT DO NOTHING covers the primary key only, so NOT NULL or
        other constraint violations still raise and become StorageFailure.
        """
        try:
            cur = self.conn.execute("""
                INSERT INTO raw_messages
                (conversation_id, message_id, sender_id, sender_name, text,
                 sent_at, recorded_at, expires_at, raw)
                VALUES (?,?,?,?,?,?,?,?,?)
                ON CONFLICT(conversation_id, message_id) DO NOTHING
            """, (
                record.conversation_id, record.message_id, record.sender_id,
                record.sender_name, record.text, record.sent_at,
                record.recorded_at, record.expires_at, record.raw,
            ))
        except sqlite3.Error as e:
            raise StorageFailure(
                f"Ledger insert failed for {record.conversation_id}/{record.message_id}: {e}"
            ) from e

        inserted = cur.rowcount == 1
        if not inserted:
            logger.info(
                f"Duplicate delivery: {record.conversation_id}/{record.message_id} "
                f"already recorded"
            )
        return LedgerResult(inserted=inserted)

    def purge_expired(self, now: Optional[int] = None) -> int:
        now = int(now if now is not None else datetime.now(timezone.utc).timestamp())
        try:
            cur = self.conn.execute("DELETE FROM raw_messages WHERE expires_at <= ?", (now,))
        except sqlite3.Error as e:
            raise StorageFailure(f"Ledger purge failed: {e}") from e
        if cur.rowcount:
            logger.info(f"Purged {cur.rowcount} expired ledger row(s)")
        return cur.rowcount

    # ── READ ─────────────────────────────────────────────────

    def recent_messages(
        self,
        conversation_id: str,
        limit:           int           = 10,
        since:           Optional[int] = None,
        until:           Optional[int] = None,
    ) -> List[RawMessageRecord]:
        """
        Newest first, optionally bounded to since <= sent_at <= until.
        The bounds apply before LIMIT, so later rows never crowd out the window.
        Raises sqlite3.Error; the policy engine decides what that means.
        """
        sql = "SELECT * FROM raw_messages WHERE conversation_id = ?"
        params: List[Any] = [conversation_id]

        if since is not None:
            sql += " AND sent_at >= ?"
            params.append(int(since))
        if until is not None:
            sql += " AND sent_at <= ?"
            params.append(int(until))

        sql += " ORDER BY sent_at DESC, message_id DESC LIMIT ?"
        params.append(int(limit))

        rows = self.conn.execute(sql, params).fetchall()
        return [_row_to_record(r) for r in rows]

    def get_message(self, conversation_id: str, message_id: int) -> Optional[RawMessageRecord]:
        row = self.conn.execute(
            "SELECT * FROM raw_messages WHERE conversation_id = ? AND message_id = ?",
            (conversation_id, int(message_id)),
        ).fetchone()
        return _row_to_record(row) if row else None

    def list_messages(
        self,
        conversation_id: Optional[str] = None,
        sender_id:       Optional[int] = None,
        limit:           int           = 50,
        offset:          int           = 0,
    ) -> List[RawMessageRecord]:
        sql = "SELECT * FROM raw_messages WHERE 1=1"
        params: List[Any] = []

        if conversation_id:
            sql += " AND conversation_id = ?"
            params.append(conversation_id)
        if sender_id is not None:
            sql += " AND sender_id = ?"
            params.append(int(sender_id))

        sql += " ORDER BY sent_at DESC, message_id DESC LIMIT ? OFFSET ?"
        params += [int(limit), max(int(offset), 0)]

        rows = self.conn.execute(sql, params).fetchall()
        return [_row_to_record(r) for r in rows]


def _row_to_record(row: sqlite3.Row) -> RawMessageRecord:
    d: Dict[str, Any] = {k: row[k] for k in row.keys()}
    return RawMessageRecord(
        conversation_id = d['conversation_id'],
        message_id      = d['message_id'],
        sender_id       = d['sender_id'],
        sender_name     = d['sender_name'] or '',
        text            = d['text'],
        sent_at         = d['sent_at'],
        recorded_at     = d['recorded_at'],
        expires_at      = d['expires_at'],
        raw             = d['raw'] or '',
    )
