"""SQLite storage adapter.

Implements the core IdentityStorePort using a simple SQLite database, so
edits can still be propagated for messages relayed before a restart.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Optional


class SQLiteIdentityStore:
    """Thin SQLite wrapper that satisfies the IdentityStorePort contract."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - message_map: source message id -> destination message id, per bridge
        """

        with self._connect() as conn:
            # Fields:
            # - bridge: bridge name the message was relayed through
            # - source_id: Telegram message id
            # - dest_id: Discord message id produced by the relay
            # - created_at: insertion time, used for TTL cleanup
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS message_map (
                    bridge TEXT NOT NULL,
                    source_id INTEGER NOT NULL,
                    dest_id INTEGER NOT NULL,
                    created_at TIMESTAMP NOT NULL,
                    PRIMARY KEY (bridge, source_id)
                )
                """
            )

    def record(self, bridge_name: str, source_id: int, dest_id: int) -> None:
        """Upsert the destination id for a relayed message."""

        now = datetime.now(timezone.utc)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO message_map (bridge, source_id, dest_id, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(bridge, source_id) DO UPDATE SET
                    dest_id = excluded.dest_id,
                    created_at = excluded.created_at
                """,
                (bridge_name, source_id, dest_id, now.isoformat()),
            )

    def lookup(self, bridge_name: str, source_id: int) -> Optional[int]:
        """Return the destination id for a relayed message, if any."""

        with self._connect() as conn:
            row = conn.execute(
                "SELECT dest_id FROM message_map WHERE bridge = ? AND source_id = ?",
                (bridge_name, source_id),
            ).fetchone()
        return int(row["dest_id"]) if row else None

    def cleanup(self, ttl_days: int) -> int:
        """Delete mappings older than ``ttl_days`` and return the number removed."""

        cutoff = datetime.now(timezone.utc) - timedelta(days=ttl_days)
        with self._connect() as conn:
            cur = conn.execute(
                "DELETE FROM message_map WHERE created_at < ?",
                (cutoff.isoformat(),),
            )
            return cur.rowcount
