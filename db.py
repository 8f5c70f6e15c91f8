"""
db.py
SQLite-backed local fallback cache (a synchronous key -> JSON text mapping).
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path


class LocalCache:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._create_tables()

    @contextmanager
    def get_conn(self):
        conn = sqlite3.connect(self.path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def execute(self, sql: str, params: tuple = ()) -> None:
        with self.get_conn() as conn:
            conn.execute(sql, params)

    def fetch_one(self, sql: str, params: tuple = ()):
        with self.get_conn() as conn:
            cur = conn.execute(sql, params)
            return cur.fetchone()

    def fetch_all(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self.get_conn() as conn:
            cur = conn.execute(sql, params)
            return cur.fetchall()

    def _create_tables(self) -> None:
        self.execute(
            """
            CREATE TABLE IF NOT EXISTS cache (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )

    def get(self, key: str) -> str | None:
        row = self.fetch_one("SELECT value FROM cache WHERE key = ?", (key,))
        if row:
            return str(row["value"])
        return None

    def set(self, key: str, value: str) -> None:
        now = datetime.now(timezone.utc).isoformat(timespec="seconds")
        self.execute(
            """
            INSERT INTO cache(key, value, updated_at) VALUES(?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at
            """,
            (key, value, now),
        )

    def delete(self, key: str) -> None:
        self.execute("DELETE FROM cache WHERE key = ?", (key,))

    def keys(self, prefix: str = "") -> list[str]:
        rows = self.fetch_all(
            "SELECT key FROM cache WHERE key LIKE ? ESCAPE '\\' ORDER BY key ASC",
            (prefix.replace("\\", "\\\\").replace("%", r"\%").replace("_", r"\_") + "%",),
        )
        return [str(r["key"]) for r in rows]
