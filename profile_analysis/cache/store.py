"""SQLite-based TTL cache for normalized profile data."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timedelta

from profile_analysis.models import ProfileData

logger = logging.getLogger(__name__)


class ProfileCache:
    """Single-table SQLite cache of scraped profiles, keyed by username.

    Every operation is best-effort: a broken cache degrades to a miss and
    never fails the caller.
    """

    def __init__(self, db_path: str = ".profile_cache.db", ttl_hours: int = 24):
        self.db_path = db_path
        self.ttl_hours = ttl_hours
        self.conn: sqlite3.Connection | None = None
        self._init_db()

    def _init_db(self) -> None:
        try:
            self.conn = sqlite3.connect(self.db_path, timeout=10, check_same_thread=False)
            self.conn.execute("PRAGMA journal_mode=WAL")
            self.conn.executescript("""
                CREATE TABLE IF NOT EXISTS profile_cache (
                    username TEXT PRIMARY KEY,
                    profile_json TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );
            """)
            self.conn.commit()
        except sqlite3.Error as e:
            logger.warning("Cache init failed: %s — running without cache", e)
            self.conn = None

    def _ensure_connection(self) -> bool:
        """Verify the SQLite connection is alive, reconnect if needed."""
        if self.conn is None:
            self._init_db()
            return self.conn is not None
        try:
            self.conn.execute("SELECT 1")
            return True
        except sqlite3.Error:
            logger.warning("SQLite connection lost — reconnecting")
            self.close()
            self._init_db()
            return self.conn is not None

    def close(self) -> None:
        if self.conn:
            try:
                self.conn.close()
            except sqlite3.Error as e:
                logger.debug("Cache close error: %s", e)
            self.conn = None

    def get(self, username: str) -> ProfileData | None:
        """Return the cached profile, or None if missing, expired or unreadable."""
        if not self._ensure_connection():
            return None
        try:
            row = self.conn.execute(
                "SELECT profile_json, created_at FROM profile_cache WHERE username = ?",
                (username.lower(),),
            ).fetchone()
        except sqlite3.Error as e:
            logger.debug("Cache read error for @%s: %s", username, e)
            return None
        if not row or _is_expired(row[1], self.ttl_hours):
            return None
        try:
            return ProfileData.model_validate_json(row[0])
        except ValueError as e:
            logger.debug("Discarding unreadable cache entry for @%s: %s", username, e)
            return None

    def set(self, profile: ProfileData) -> None:
        if not self._ensure_connection():
            return
        try:
            self.conn.execute(
                "INSERT OR REPLACE INTO profile_cache (username, profile_json, created_at) "
                "VALUES (?, ?, ?)",
                (profile.username.lower(), profile.model_dump_json(), datetime.now().isoformat()),
            )
            self.conn.commit()
        except sqlite3.Error as e:
            logger.debug("Cache write error for @%s: %s", profile.username, e)

    def stats(self) -> dict:
        """Return entry counts and date range."""
        if not self._ensure_connection():
            return {}
        try:
            count, oldest, newest = self.conn.execute(
                "SELECT COUNT(*), MIN(created_at), MAX(created_at) FROM profile_cache"
            ).fetchone()
        except sqlite3.Error:
            return {"count": 0, "oldest": None, "newest": None, "ttl_hours": self.ttl_hours}
        return {"count": count, "oldest": oldest, "newest": newest, "ttl_hours": self.ttl_hours}

    def purge_expired(self) -> int:
        """Delete expired entries. Returns the number removed."""
        if not self._ensure_connection():
            return 0
        cutoff = (datetime.now() - timedelta(hours=self.ttl_hours)).isoformat()
        try:
            cur = self.conn.execute("DELETE FROM profile_cache WHERE created_at < ?", (cutoff,))
            self.conn.commit()
            return cur.rowcount
        except sqlite3.Error as e:
            logger.warning("Cache purge failed: %s", e)
            return 0

    def clear_all(self) -> None:
        if not self._ensure_connection():
            return
        try:
            self.conn.execute("DELETE FROM profile_cache")
            self.conn.commit()
        except sqlite3.Error as e:
            logger.warning("Cache clear failed: %s", e)


def _is_expired(created_at_str: str, ttl_hours: int) -> bool:
    try:
        created = datetime.fromisoformat(created_at_str)
    except ValueError:
        return True
    return datetime.now() - created > timedelta(hours=ttl_hours)
