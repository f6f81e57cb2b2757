"""
CRM Sync — Preference Database.

Durable, user-scoped client preferences (e.g. whether notification toasts are
shown). Small key/value rows in SQLite that survive restarts; everything the
server owns stays on the server.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)


class PreferenceDB:
    """SQLite-backed key/value storage, one namespace per user."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from crmsync.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Create the preferences table if it doesn't exist."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS preferences (
                    user_id    TEXT NOT NULL,
                    key        TEXT NOT NULL,
                    value      TEXT NOT NULL,
                    updated_at TEXT NOT NULL DEFAULT (datetime('now')),
                    PRIMARY KEY (user_id, key)
                )
            """)
        logger.debug("Preferences table initialized at %s", self._db_path)

    def get(self, user_id: str, key: str) -> str | None:
        """Return the stored value, or None if the key was never set."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT value FROM preferences WHERE user_id = ? AND key = ?",
                (user_id, key),
            ).fetchone()
        if row is None:
            return None
        return row["value"]

    def set(self, user_id: str, key: str, value: str) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO preferences (user_id, key, value)
                VALUES (?, ?, ?)
                ON CONFLICT(user_id, key)
                DO UPDATE SET value = excluded.value, updated_at = datetime('now')
                """,
                (user_id, key, value),
            )
        logger.info("Preference '%s' for user %s set to %s", key, user_id, value)

