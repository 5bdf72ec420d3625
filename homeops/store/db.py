"""
homeops/store/db.py
SQLite connection and schema for the ledger, activities and counters.

SCHEMA DESIGN NOTES:
- raw_messages is the ledger: PRIMARY KEY (conversation_id, message_id)
  is the only dedup point in the system
- activities hold classified events; reply_message_id is the only
  column ever written after insert
- response_counters has one row per conversation per local day
- All chat timestamps are INTEGER unix seconds, bookkeeping timestamps
  (recorded_at, created_at) are ISO-8601 UTC text
- expires_at is enforced by purge sweeps; SQLite has no native TTL

Each execution context opens its own connection. Connections run in
autocommit mode so every conditional statement is its own atomic write;
cross-process exclusion comes from SQLite's file locking, not from locks
in this process.
"""

import logging
import sqlite3
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)

SCHEMA_VERSION   = '1.0'
BUSY_TIMEOUT_SEC = 5.0


def connect(db_path: Union[str, Path], timeout: float = BUSY_TIMEOUT_SEC) -> sqlite3.Connection:
    conn = sqlite3.connect(str(db_path), timeout=timeout, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")   # Safe concurrent reads
    conn.execute(f"PRAGMA busy_timeout={int(timeout * 1000)}")
    create_schema(conn)
    return conn


def create_schema(conn: sqlite3.Connection) -> None:
    conn.executescript("""
        CREATE TABLE IF NOT EXISTS homeops_meta (
            key             TEXT PRIMARY KEY,
            value           TEXT
        );

        CREATE TABLE IF NOT EXISTS raw_messages (
            conversation_id TEXT    NOT NULL,
            message_id      INTEGER NOT NULL,
            sender_id       INTEGER NOT NULL,
            sender_name     TEXT,
            text            TEXT    NOT NULL,
            sent_at         INTEGER NOT NULL,
            recorded_at     TEXT    NOT NULL,
            expires_at      INTEGER NOT NULL,
            raw             TEXT,
            PRIMARY KEY (conversation_id, message_id)
        );

        CREATE TABLE IF NOT EXISTS activities (
            conversation_id  TEXT    NOT NULL,
            activity_id      TEXT    NOT NULL,
            message_id       INTEGER NOT NULL,
            sender_id        INTEGER NOT NULL,
            sender_name      TEXT,
            kind             TEXT    NOT NULL CHECK (kind IN ('chore', 'recovery', 'none')),
            activity_label   TEXT    NOT NULL,
            effort_level     TEXT    NOT NULL CHECK (effort_level IN ('low', 'medium', 'high')),
            confidence       REAL    NOT NULL CHECK (confidence >= 0 AND confidence <= 1),
            occurred_at      INTEGER NOT NULL,
            created_at       TEXT    NOT NULL,
            reply_message_id INTEGER,
            PRIMARY KEY (conversation_id, activity_id)
        );

        CREATE TABLE IF NOT EXISTS response_counters (
            conversation_id  TEXT    NOT NULL,
            calendar_day     TEXT    NOT NULL,
            count            INTEGER NOT NULL DEFAULT 0,
            last_response_at INTEGER,
            updated_at       TEXT,
            expires_at       INTEGER NOT NULL,
            PRIMARY KEY (conversation_id, calendar_day)
        );

        -- Query patterns: by conversation (newest first) and by sender
        CREATE INDEX IF NOT EXISTS idx_raw_sent      ON raw_messages(conversation_id, sent_at DESC);
        CREATE INDEX IF NOT EXISTS idx_raw_sender    ON raw_messages(sender_id);
        CREATE INDEX IF NOT EXISTS idx_raw_expiry    ON raw_messages(expires_at);
        CREATE INDEX IF NOT EXISTS idx_act_sender    ON activities(sender_id);
        CREATE INDEX IF NOT EXISTS idx_act_message   ON activities(conversation_id, message_id);
        CREATE INDEX IF NOT EXISTS idx_ctr_expiry    ON response_counters(expires_at);
    """)
    conn.execute(
        "INSERT OR IGNORE INTO homeops_meta (key, value) VALUES ('schema_version', ?)",
        (SCHEMA_VERSION,),
    )
