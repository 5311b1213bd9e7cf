"""
SQLite-backed ledger store.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from src.tracking.ledger import LedgerState, LedgerStatus, LedgerStore


class SqliteLedgerStore(LedgerStore):
    """
    Stores one row per entity with its latest outcome.

    The full state is rewritten in a single transaction on save, which is
    cheap at catalog scale (hundreds of entities).
    """

    def __init__(self, db_path: Optional[Path] = None):
        """
        Initialize the store.

        Args:
            db_path: Path to the SQLite database file. Defaults to data/progress.db
        """
        if db_path is None:
            db_path = Path(__file__).parent.parent.parent / "data" / "progress.db"

        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @contextmanager
    def _get_connection(self):
        """Context manager for database connections."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize the database schema."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS ledger_entries (
                    entity_id TEXT PRIMARY KEY,
                    status TEXT NOT NULL,
                    reason TEXT,
                    position INTEGER NOT NULL
                )
            """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS ledger_meta (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            """
            )
            cursor.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_status ON ledger_entries(status)
            """
            )
            conn.commit()

    def load(self) -> LedgerState:
        state = LedgerState()
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM ledger_entries ORDER BY position")
            for row in cursor.fetchall():
                state.mark(row["entity_id"], LedgerStatus(row["status"]), row["reason"])
            cursor.execute("SELECT value FROM ledger_meta WHERE key = 'lastUpdate'")
            meta = cursor.fetchone()
        state.last_update = meta["value"] if meta else None
        return state

    def save(self, state: LedgerState) -> None:
        rows = []
        for position, entity_id in enumerate(state.processed_ids):
            status = state.status(entity_id) or LedgerStatus.PROCESSED
            rows.append((entity_id, status.value, state.failure_reason(entity_id), position))
        # Failures recorded without a processed entry still need a row
        offset = len(rows)
        for i, entry in enumerate(state.failed_ids):
            if entry.id not in state.processed_ids:
                rows.append((entry.id, LedgerStatus.FAILED.value, entry.reason, offset + i))

        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM ledger_entries")
            cursor.executemany(
                "INSERT INTO ledger_entries (entity_id, status, reason, position) VALUES (?, ?, ?, ?)",
                rows,
            )
            cursor.execute(
                """
                INSERT INTO ledger_meta (key, value) VALUES ('lastUpdate', ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
            """,
                (state.last_update,),
            )
            conn.commit()

    def clear(self) -> None:
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM ledger_entries")
            cursor.execute("DELETE FROM ledger_meta")
            conn.commit()
