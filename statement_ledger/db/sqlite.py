"""SQLite persistence for session state that survives restarts."""

import sqlite3
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from statement_ledger.config import settings

# SQL schema
SCHEMA = """
CREATE TABLE IF NOT EXISTS session_state (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);
"""

STATEMENT_CONTENT_KEY = "statement_content"
FILE_NAME_KEY = "file_name"


@dataclass
class SessionState:
    """Raw statement text and uploaded file name(s); the ledger itself is never persisted."""

    statement_content: str = ""
    file_name: str = ""


class SessionStateStore:
    """Load/save hooks for the persisted part of the workspace."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path or settings.state_db_path
        if db_path is None:
            settings.ensure_directories()
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the database schema."""
        with self._get_connection() as conn:
            conn.executescript(SCHEMA)
            conn.commit()

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a database connection."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def load(self) -> SessionState:
        """Read the persisted state, falling back to empty values."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT key, value FROM session_state WHERE key IN (?, ?)",
                (STATEMENT_CONTENT_KEY, FILE_NAME_KEY),
            )
            values = {row["key"]: row["value"] for row in cursor.fetchall()}

        return SessionState(
            statement_content=values.get(STATEMENT_CONTENT_KEY, ""),
            file_name=values.get(FILE_NAME_KEY, ""),
        )

    def save(self, state: SessionState) -> None:
        with self._get_connection() as conn:
            conn.executemany(
                """
                INSERT INTO session_state (key, value, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                [
                    (STATEMENT_CONTENT_KEY, state.statement_content),
                    (FILE_NAME_KEY, state.file_name),
                ],
            )
            conn.commit()

    def clear(self) -> None:
        with self._get_connection() as conn:
            conn.execute("DELETE FROM session_state")
            conn.commit()


# Global state store instance
state_store = SessionStateStore()
