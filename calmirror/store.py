"""
SQLite persistence for id mappings and sync state.

One database file can back any number of mirror pipelines: every row is keyed
by the (source, target) pair identity. Each write commits immediately, so a
process interrupted mid-pass leaves either the previous state or the new one.
"""

import logging
import sqlite3
import time
from pathlib import Path

from calmirror.models import SyncState

logger = logging.getLogger(__name__)


class StateDatabase:
    """Manages the SQLite state database shared by all mirror pipelines."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.conn: sqlite3.Connection | None = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def connect(self):
        """Initialize and connect to the state database."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.db_path))
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS id_mapping (
                pair_key TEXT NOT NULL,
                source_id TEXT NOT NULL,
                target_id TEXT NOT NULL,
                created_at INTEGER NOT NULL,
                PRIMARY KEY (pair_key, source_id)
            );
            CREATE TABLE IF NOT EXISTS sync_state (
                pair_key TEXT PRIMARY KEY,
                sync_token TEXT,
                error_count INTEGER NOT NULL DEFAULT 0,
                updated_at INTEGER NOT NULL
            );
        """)
        self.conn.commit()

    def close(self):
        if self.conn:
            self.conn.close()
            self.conn = None

    def mapping_store(self, pair_key: str) -> "MappingStore":
        return MappingStore(self, pair_key)

    def sync_state_store(self, pair_key: str) -> "SyncStateStore":
        return SyncStateStore(self, pair_key)


class MappingStore:
    """Source-event-id to target-event-id associations for one pair."""

    def __init__(self, db: StateDatabase, pair_key: str):
        self.db = db
        self.pair_key = pair_key

    def get_target_id(self, source_id: str) -> str | None:
        row = self.db.conn.execute(
            "SELECT target_id FROM id_mapping WHERE pair_key = ? AND source_id = ?",
            (self.pair_key, source_id),
        ).fetchone()
        return row["target_id"] if row else None

    def set_mapping(self, source_id: str, target_id: str):
        self.db.conn.execute(
            """
            INSERT INTO id_mapping (pair_key, source_id, target_id, created_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(pair_key, source_id) DO UPDATE SET
                target_id = excluded.target_id
            """,
            (self.pair_key, source_id, target_id, int(time.time())),
        )
        self.db.conn.commit()

    def delete_mapping(self, source_id: str):
        self.db.conn.execute(
            "DELETE FROM id_mapping WHERE pair_key = ? AND source_id = ?",
            (self.pair_key, source_id),
        )
        self.db.conn.commit()

    def clear_all(self):
        cursor = self.db.conn.execute(
            "DELETE FROM id_mapping WHERE pair_key = ?", (self.pair_key,)
        )
        self.db.conn.commit()
        logger.debug(f"Cleared {cursor.rowcount} mapping(s) for {self.pair_key}")

    def count(self) -> int:
        return self.db.conn.execute(
            "SELECT COUNT(*) FROM id_mapping WHERE pair_key = ?", (self.pair_key,)
        ).fetchone()[0]

    def all_mappings(self) -> dict[str, str]:
        """Return {source_id: target_id} for every mirrored event of this pair."""
        rows = self.db.conn.execute(
            "SELECT source_id, target_id FROM id_mapping WHERE pair_key = ?",
            (self.pair_key,),
        ).fetchall()
        return {row["source_id"]: row["target_id"] for row in rows}


class SyncStateStore:
    """Sync token and consecutive-error counter for one pair."""

    def __init__(self, db: StateDatabase, pair_key: str):
        self.db = db
        self.pair_key = pair_key

    def get_sync_state(self) -> SyncState:
        row = self.db.conn.execute(
            "SELECT sync_token, error_count FROM sync_state WHERE pair_key = ?",
            (self.pair_key,),
        ).fetchone()
        if row is None:
            return SyncState()
        return SyncState(sync_token=row["sync_token"], error_count=row["error_count"])

    def _upsert(self, assignments: str, params: tuple):
        # Ensure the row exists, then apply the column assignments.
        self.db.conn.execute(
            """
            INSERT INTO sync_state (pair_key, sync_token, error_count, updated_at)
            VALUES (?, NULL, 0, ?)
            ON CONFLICT(pair_key) DO NOTHING
            """,
            (self.pair_key, int(time.time())),
        )
        self.db.conn.execute(
            f"UPDATE sync_state SET {assignments}, updated_at = ? WHERE pair_key = ?",
            (*params, int(time.time()), self.pair_key),
        )
        self.db.conn.commit()

    def set_sync_token(self, token: str):
        self._upsert("sync_token = ?", (token,))

    def clear_sync_token(self):
        self._upsert("sync_token = NULL", ())

    def increment_error_count(self) -> int:
        self._upsert("error_count = error_count + 1", ())
        return self.get_sync_state().error_count

    def reset_error_count(self):
        self._upsert("error_count = 0", ())

    def clear_all(self):
        self.db.conn.execute(
            "DELETE FROM sync_state WHERE pair_key = ?", (self.pair_key,)
        )
        self.db.conn.commit()
