"""SQLite-backed hash cache keyed by cheap file metadata."""

import logging
import sqlite3
from collections.abc import Iterable
from pathlib import Path
from typing import Optional

from .models import MetadataHint

_log = logging.getLogger(__name__)

_log_info = _log.info


class HashCache:
    """
    Durable map of (root, relative_path) to the last computed digest.

    A cached digest is only returned when the file's size and mtime_ns
    still match the values recorded alongside it.
    """

    def __init__(self, db_path: Path, digest_algorithm: str):
        self.db_path = Path(db_path)
        self.digest_algorithm = digest_algorithm
        self.conn = sqlite3.connect(str(self.db_path), isolation_level=None)
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._init_schema()
        self._check_algorithm()

    def _init_schema(self) -> None:
        """Initialize database schema."""
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS metadata (
                key TEXT PRIMARY KEY,
                value TEXT
            );

            CREATE TABLE IF NOT EXISTS file_hashes (
                root TEXT NOT NULL,
                relative_path TEXT NOT NULL,
                size INTEGER NOT NULL,
                mtime_ns INTEGER NOT NULL,
                digest TEXT NOT NULL,
                PRIMARY KEY (root, relative_path)
            );
        """)

    def _check_algorithm(self) -> None:
        """Reset cached digests computed with a different algorithm."""
        stored = self.get_metadata("digest_algorithm")
        if stored is not None and stored != self.digest_algorithm:
            _log_info(
                "Hash cache %s uses %s, resetting for %s",
                self.db_path, stored, self.digest_algorithm,
            )
            self.conn.execute("DELETE FROM file_hashes")
        self.set_metadata("digest_algorithm", self.digest_algorithm)

    def close(self) -> None:
        """Close the database connection."""
        self.conn.close()

    def __enter__(self) -> "HashCache":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def get_metadata(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Get a metadata value."""
        cursor = self.conn.execute(
            "SELECT value FROM metadata WHERE key = ?", (key,)
        )
        row = cursor.fetchone()
        return row[0] if row else default

    def set_metadata(self, key: str, value: str) -> None:
        """Set a metadata value."""
        self.conn.execute(
            "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
            (key, value)
        )

    def lookup(self, root: str, relative_path: str, hint: Optional[MetadataHint]) -> Optional[str]:
        """Return the cached digest if the metadata hint still matches."""
        if hint is None:
            return None
        cursor = self.conn.execute(
            """SELECT digest FROM file_hashes
               WHERE root = ? AND relative_path = ? AND size = ? AND mtime_ns = ?""",
            (root, relative_path, hint.size, hint.mtime_ns)
        )
        row = cursor.fetchone()
        return row[0] if row else None

    def store_batch(self, root: str, rows: Iterable[tuple[str, MetadataHint, str]]) -> None:
        """Save (relative_path, hint, digest) rows in a single transaction."""
        self.conn.execute("BEGIN")
        try:
            for relative_path, hint, digest in rows:
                self.conn.execute(
                    """INSERT OR REPLACE INTO file_hashes
                       (root, relative_path, size, mtime_ns, digest)
                       VALUES (?, ?, ?, ?, ?)""",
                    (root, relative_path, hint.size, hint.mtime_ns, digest)
                )
            self.conn.execute("COMMIT")
        except Exception:
            self.conn.execute("ROLLBACK")
            raise

    def prune(self, root: str, keep: Iterable[str]) -> int:
        """Drop cached rows for paths under ``root`` not in ``keep``."""
        keep_set = set(keep)
        cursor = self.conn.execute(
            "SELECT relative_path FROM file_hashes WHERE root = ?", (root,)
        )
        stale = [row[0] for row in cursor if row[0] not in keep_set]
        if stale:
            self.conn.execute("BEGIN")
            try:
                self.conn.executemany(
                    "DELETE FROM file_hashes WHERE root = ? AND relative_path = ?",
                    [(root, path) for path in stale]
                )
                self.conn.execute("COMMIT")
            except Exception:
                self.conn.execute("ROLLBACK")
                raise
        return len(stale)

    def count(self, root: Optional[str] = None) -> int:
        """Get the number of cached digests, optionally for one root."""
        if root is None:
            cursor = self.conn.execute("SELECT COUNT(*) FROM file_hashes")
        else:
            cursor = self.conn.execute(
                "SELECT COUNT(*) FROM file_hashes WHERE root = ?", (root,)
            )
        return cursor.fetchone()[0]
