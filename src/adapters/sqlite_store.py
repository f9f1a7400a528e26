"""SQLite thread store adapter.

Implements the core ThreadStorePort using a simple SQLite database.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional

from core.errors import DuplicateMapping
from core.models import InboundMessage, ThreadMapping

LOGGER = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_mapping(row: sqlite3.Row) -> ThreadMapping:
    return ThreadMapping(
        source_thread_id=row["source_thread_id"],
        destination_topic_id=int(row["destination_topic_id"]),
        display_name=row["display_name"],
        created_at=datetime.fromisoformat(row["created_at"]),
        last_activity_at=datetime.fromisoformat(row["last_activity_at"]),
        message_count=int(row["message_count"]),
    )


class SQLiteThreadStore:
    """Thin SQLite wrapper that satisfies the ThreadStorePort contract."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._db_path, timeout=10)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - thread_mappings: one row per bridged Instagram thread
        - messages: append-only log of accepted inbound messages
        """

        with self._connect() as conn:
            # thread_mappings is the only state routing depends on. Both ids
            # are UNIQUE so the thread <-> topic relation stays a bijection
            # even if two writers race on the same thread.
            # Fields:
            # - source_thread_id: Instagram thread id
            # - destination_topic_id: Telegram forum topic id
            # - display_name: Instagram handle used for the topic title
            # - created_at / last_activity_at: ISO-8601 UTC timestamps
            # - message_count: incremented on every forwarded message
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS thread_mappings (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    source_thread_id TEXT NOT NULL UNIQUE,
                    destination_topic_id INTEGER NOT NULL UNIQUE,
                    display_name TEXT NOT NULL,
                    created_at TIMESTAMP NOT NULL,
                    last_activity_at TIMESTAMP NOT NULL,
                    message_count INTEGER NOT NULL DEFAULT 0
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_thread_mappings_activity
                ON thread_mappings (last_activity_at)
                """
            )
            # messages is an append-only history for auditing. Routing never
            # reads it back.
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    platform TEXT NOT NULL,
                    external_id TEXT NOT NULL,
                    thread_id TEXT,
                    sender_id TEXT,
                    sender TEXT,
                    date TIMESTAMP,
                    text TEXT,
                    attachments TEXT,
                    recorded_at TIMESTAMP NOT NULL
                )
                """
            )

    def find(self, source_thread_id: str) -> Optional[ThreadMapping]:
        """Return the mapping for an Instagram thread, if any."""

        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM thread_mappings WHERE source_thread_id = ?",
                (source_thread_id,),
            ).fetchone()
        return _row_to_mapping(row) if row else None

    def find_by_destination(self, destination_topic_id: int) -> Optional[ThreadMapping]:
        """Return the mapping for a Telegram topic, if any."""

        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM thread_mappings WHERE destination_topic_id = ?",
                (int(destination_topic_id),),
            ).fetchone()
        return _row_to_mapping(row) if row else None

    def create(
        self, source_thread_id: str, destination_topic_id: int, display_name: str
    ) -> ThreadMapping:
        """Insert a new mapping; the UNIQUE constraint makes this insert-if-absent."""

        now = _now()
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO thread_mappings (
                        source_thread_id,
                        destination_topic_id,
                        display_name,
                        created_at,
                        last_activity_at,
                        message_count
                    ) VALUES (?, ?, ?, ?, ?, 0)
                    """,
                    (source_thread_id, int(destination_topic_id), display_name, now, now),
                )
        except sqlite3.IntegrityError:
            if self.find(source_thread_id) is not None:
                raise DuplicateMapping(source_thread_id) from None
            raise
        LOGGER.debug("Saved thread mapping: %s -> %s", source_thread_id, destination_topic_id)
        created = datetime.fromisoformat(now)
        return ThreadMapping(
            source_thread_id=source_thread_id,
            destination_topic_id=int(destination_topic_id),
            display_name=display_name,
            created_at=created,
            last_activity_at=created,
            message_count=0,
        )

    def touch(self, source_thread_id: str) -> None:
        """Bump last activity and the message counter in one statement."""

        with self._connect() as conn:
            cur = conn.execute(
                """
                UPDATE thread_mappings
                SET last_activity_at = ?, message_count = message_count + 1
                WHERE source_thread_id = ?
                """,
                (_now(), source_thread_id),
            )
        if cur.rowcount == 0:
            LOGGER.warning("touch() on unmapped thread %s ignored", source_thread_id)

    def list(self) -> list[ThreadMapping]:
        """Return all mappings, most recently active first."""

        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM thread_mappings ORDER BY last_activity_at DESC, id DESC"
            ).fetchall()
        return [_row_to_mapping(row) for row in rows]

    def log_message(self, message: InboundMessage) -> None:
        """Append an inbound message to the history table."""

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO messages (
                    platform,
                    external_id,
                    thread_id,
                    sender_id,
                    sender,
                    date,
                    text,
                    attachments,
                    recorded_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    message.platform.value,
                    message.external_id,
                    message.thread_id,
                    message.sender.id,
                    message.sender.handle,
                    message.timestamp.isoformat(),
                    message.text,
                    json.dumps([item.kind.value for item in message.attachments]),
                    _now(),
                ),
            )

    def count_messages(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) AS total FROM messages").fetchone()
        return int(row["total"])
