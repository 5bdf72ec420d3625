"""
homeops/store/activity_store.py
Classified activity records. Written once when a message classifies as
chore or recovery, then touched exactly once more to attach the id of
the reply that acknowledged it.
"""

import logging
import secrets
import sqlite3
from datetime import datetime, timezone
from typing import Any, List, Optional

from homeops.errors import StorageFailure
from homeops.models.record import ActivityRecord, ClassificationResult, InboundMessage

logger = logging.getLogger(__name__)


def make_activity_id(occurred_at: int) -> str:
    """
    Time-ordered unique id: 12 hex digits of milliseconds, then 16 random.
    Lexicographic order follows occurred_at, ties broken randomly.
    """
    return f"{int(occurred_at) * 1000:012x}{secrets.token_hex(8)}"


class ActivityStore:

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def save_activity(
        self,
        message:        InboundMessage,
        classification: ClassificationResult,
    ) -> ActivityRecord:
        if classification.kind == 'none':
            raise ValueError("Activities are only recorded for chore/recovery")

        record = ActivityRecord(
            conversation_id = message.conversation_id,
            activity_id     = make_activity_id(message.sent_at),
            message_id      = message.message_id,
            sender_id       = message.sender_id,
            sender_name     = message.sender_name,
            kind            = classification.kind,
            activity_label  = classification.activity_label,
            effort_level    = classification.effort_level,
            confidence      = float(classification.confidence),
            occurred_at     = message.sent_at,
            created_at      = datetime.now(timezone.utc).isoformat(),
        )
        try:
            self.conn.execute("""
                INSERT INTO activities
                (conversation_id, activity_id, message_id, sender_id, sender_name,
                 kind, activity_label, effort_level, confidence, occurred_at, created_at)
                VALUES (?,?,?,?,?,?,?,?,?,?,?)
            """, (
                record.conversation_id, record.activity_id, record.message_id,
                record.sender_id, record.sender_name, record.kind,
                record.activity_label, record.effort_level, record.confidence,
                record.occurred_at, record.created_at,
            ))
        except sqlite3.Error as e:
            raise StorageFailure(f"Activity insert failed: {e}") from e

        logger.debug(
            f"Activity {record.activity_id} saved for "
            f"{record.conversation_id}/{record.message_id} ({record.kind})"
        )
        return record

    def attach_reply_id(
        self,
        conversation_id:  str,
        activity_id:      str,
        reply_message_id: int,
    ) -> bool:
        """Set reply_message_id once. Returns False if already set or unknown."""
        try:
            cur = self.conn.execute("""
                UPDATE activities SET reply_message_id = ?
                WHERE conversation_id = ? AND activity_id = ?
                  AND reply_message_id IS NULL
            """, (int(reply_message_id), conversation_id, activity_id))
        except sqlite3.Error as e:
            raise StorageFailure(f"Reply id attach failed: {e}") from e
        return cur.rowcount == 1

    # ── READ ─────────────────────────────────────────────────

    def get_activity(self, conversation_id: str, activity_id: str) -> Optional[ActivityRecord]:
        row = self.conn.execute(
            "SELECT * FROM activities WHERE conversation_id = ? AND activity_id = ?",
            (conversation_id, activity_id),
        ).fetchone()
        return _row_to_activity(row) if row else None

    def list_activities(
        self,
        conversation_id: Optional[str] = None,
        sender_id:       Optional[int] = None,
        kind:            Optional[str] = None,
        limit:           int           = 50,
        offset:          int           = 0,
    ) -> List[ActivityRecord]:
        sql = "SELECT * FROM activities WHERE 1=1"
        params: List[Any] = []

        if conversation_id:
            sql += " AND conversation_id = ?"
            params.append(conversation_id)
        if sender_id is not None:
            sql += " AND sender_id = ?"
            params.append(int(sender_id))
        if kind:
            sql += " AND kind = ?"
            params.append(kind.lower())

        sql += " ORDER BY activity_id DESC LIMIT ? OFFSET ?"
        params += [int(limit), max(int(offset), 0)]

        rows = self.conn.execute(sql, params).fetchall()
        return [_row_to_activity(r) for r in rows]


def _row_to_activity(row: sqlite3.Row) -> ActivityRecord:
    return ActivityRecord(
        conversation_id  = row['conversation_id'],
        activity_id      = row['activity_id'],
        message_id       = row['message_id'],
        sender_id        = row['sender_id'],
        sender_name      = row['sender_name'] or '',
        kind             = row['kind'],
        activity_label   = row['activity_label'],
        effort_level     = row['effort_level'],
        confidence       = row['confidence'],
        occurred_at      = row['occurred_at'],
        created_at       = row['created_at'],
        reply_message_id = row['reply_message_id'],
    )
