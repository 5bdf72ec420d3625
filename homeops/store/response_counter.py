"""
homeops/store/response_counter.py
Per-conversation, per-local-day count of dispatched replies.

There is no atomic increment-with-initialization for this access pattern,
so increment() is an optimistic compare-and-swap:

  read count (absent = 0)
  → absent:  INSERT ... ON CONFLICT DO NOTHING      (guard: still absent)
  → present: UPDATE ... WHERE count = <read value>  (guard: unchanged)

A lost race shows up as zero affected rows. One retry with a fresh read,
then give up and log. The counter is a soft rate-limit aid; the reply it
counts has already gone out.
"""

import logging
import sqlite3
from datetime import datetime, timezone
from typing import Optional

from homeops.models.record import ResponseCounterRecord

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 7
MAX_CAS_ATTEMPTS       = 2     # first try + one retry
_DAY_SEC = 24 * 60 * 60


def _now() -> int:
    return int(datetime.now(timezone.utc).timestamp())


class ResponseCounter:

    def __init__(
        self,
        conn:           sqlite3.Connection,
        retention_days: int = DEFAULT_RETENTION_DAYS,
    ):
        self.conn           = conn
        self.retention_days = retention_days

    # ── READ ─────────────────────────────────────────────────
    # Reads raise sqlite3.Error untouched; the policy engine fails closed on it.

    def get(self, conversation_id: str, day: str) -> Optional[ResponseCounterRecord]:
        row = self.conn.execute("""
            SELECT conversation_id, calendar_day, count, last_response_at, expires_at
            FROM response_counters
            WHERE conversation_id = ? AND calendar_day = ?
        """, (conversation_id, day)).fetchone()
        if row is None:
            return None
        return ResponseCounterRecord(
            conversation_id  = row['conversation_id'],
            calendar_day     = row['calendar_day'],
            count            = row['count'],
            last_response_at = row['last_response_at'],
            expires_at       = row['expires_at'],
        )

    def read(self, conversation_id: str, day: str) -> int:
        rec = self.get(conversation_id, day)
        return rec.count if rec else 0

    def last_response_at(self, conversation_id: str, day: str) -> Optional[int]:
        rec = self.get(conversation_id, day)
        return rec.last_response_at if rec else None

    # ── WRITE ────────────────────────────────────────────────

    def increment(
        self,
        conversation_id: str,
        day:             str,
        responded_at:    Optional[int] = None,
    ) -> Optional[int]:
        """
        Returns the new count, or None if both CAS attempts lost their race.
        responded_at is stored as last_response_at; the pipeline passes the
        replied-to message's timestamp so cooldowns compare chat time with
        chat time. sqlite3.Error other than a lost race propagates.
        """
        responded_at = int(responded_at if responded_at is not None else _now())

        for attempt in range(1, MAX_CAS_ATTEMPTS + 1):
            current = self.get(conversation_id, day)
            if current is None:
                won = self._insert_first(conversation_id, day, responded_at)
                new_count = 1
            else:
                won = self._compare_and_set(conversation_id, day, current.count, responded_at)
                new_count = current.count + 1

            if won:
                logger.debug(f"Counter {conversation_id}/{day} → {new_count}")
                return new_count

            logger.debug(
                f"Counter CAS conflict on {conversation_id}/{day} "
                f"(attempt {attempt}/{MAX_CAS_ATTEMPTS})"
            )

        logger.warning(
            f"Counter increment for {conversation_id}/{day} abandoned after "
            f"{MAX_CAS_ATTEMPTS} conflicting attempts — reply stays uncounted"
        )
        return None

    def _insert_first(self, conversation_id: str, day: str, responded_at: int) -> bool:
        now = _now()
        cur = self.conn.execute("""
            INSERT INTO response_counters
            (conversation_id, calendar_day, count, last_response_at, updated_at, expires_at)
            VALUES (?, ?, 1, ?, ?, ?)
            ON CONFLICT(conversation_id, calendar_day) DO NOTHING
        """, (
            conversation_id, day, responded_at,
            datetime.fromtimestamp(now, tz=timezone.utc).isoformat(),
            now + self.retention_days * _DAY_SEC,
        ))
        return cur.rowcount == 1

    def _compare_and_set(self, conversation_id: str, day: str, expected: int, responded_at: int) -> bool:
        now = _now()
        cur = self.conn.execute("""
            UPDATE response_counters
            SET count = ?, last_response_at = MAX(COALESCE(last_response_at, 0), ?),
                updated_at = ?, expires_at = ?
            WHERE conversation_id = ? AND calendar_day = ? AND count = ?
        """, (
            expected + 1, responded_at,
            datetime.fromtimestamp(now, tz=timezone.utc).isoformat(),
            now + self.retention_days * _DAY_SEC,
            conversation_id, day, expected,
        ))
        return cur.rowcount == 1

    def purge_expired(self, now: Optional[int] = None) -> int:
        now = int(now if now is not None else _now())
        cur = self.conn.execute("DELETE FROM response_counters WHERE expires_at <= ?", (now,))
        if cur.rowcount:
            logger.info(f"Purged {cur.rowcount} expired counter row(s)")
        return cur.rowcount
