from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone

from adapters.sqlite_storage import SQLiteIdentityStore


def _store(tmp_path) -> SQLiteIdentityStore:
    store = SQLiteIdentityStore(str(tmp_path / "skybridge.db"))
    store.init_db()
    return store


def test_record_and_lookup_survive_a_new_instance(tmp_path) -> None:
    _store(tmp_path).record("main", 5, 9001)

    reopened = _store(tmp_path)

    assert reopened.lookup("main", 5) == 9001
    assert reopened.lookup("other", 5) is None


def test_record_overwrites_existing_mapping(tmp_path) -> None:
    store = _store(tmp_path)
    store.record("main", 5, 1)
    store.record("main", 5, 2)

    assert store.lookup("main", 5) == 2


def test_cleanup_removes_only_expired_rows(tmp_path) -> None:
    store = _store(tmp_path)
    store.record("main", 1, 101)
    old = (datetime.now(timezone.utc) - timedelta(days=30)).isoformat()
    conn = sqlite3.connect(str(tmp_path / "skybridge.db"))
    with conn:
        conn.execute(
            "INSERT INTO message_map (bridge, source_id, dest_id, created_at) VALUES (?, ?, ?, ?)",
            ("main", 2, 102, old),
        )
    conn.close()

    removed = store.cleanup(ttl_days=7)

    assert removed == 1
    assert store.lookup("main", 1) == 101
    assert store.lookup("main", 2) is None
