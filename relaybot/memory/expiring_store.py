"""Key/value store whose entries read as absent once their TTL elapses."""

from __future__ import annotations

import sqlite3
import time
from typing import Callable, Protocol


class SessionStore(Protocol):
    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str, ttl_seconds: float | None = None) -> None:
        ...


class ExpiringStore:
    """SQLite-backed implementation of SessionStore."""

    def __init__(self, conn: sqlite3.Connection, *, clock: Callable[[], float] = time.time) -> None:
        self._conn = conn
        self._clock = clock

    def set(self, key: str, value: str, ttl_seconds: float | None = None) -> None:
        expires_at = None if ttl_seconds is None else self._clock() + float(ttl_seconds)
        self._conn.execute(
            """
            INSERT INTO expiring_store (key, value, expires_at, updated_at)
            VALUES (?, ?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(key) DO UPDATE SET
                value=excluded.value,
                expires_at=excluded.expires_at,
                updated_at=CURRENT_TIMESTAMP
            """,
            (key, value, expires_at),
        )
        self._conn.commit()

    def get(self, key: str) -> str | None:
        row = self._conn.execute(
            "SELECT value, expires_at FROM expiring_store WHERE key = ?",
            (key,),
        ).fetchone()
        if row is None:
            return None
        expires_at = row["expires_at"]
        if expires_at is not None and expires_at <= self._clock():
            return None
        return str(row["value"])

    def purge_expired(self) -> int:
        cursor = self._conn.execute(
            "DELETE FROM expiring_store WHERE expires_at IS NOT NULL AND expires_at <= ?",
            (self._clock(),),
        )
        self._conn.commit()
        return cursor.rowcount
