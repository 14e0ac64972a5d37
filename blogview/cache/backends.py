"""
Storage backends for the cache store.

Backends hold raw records (``{"data", "timestamp", "expiry"}``) and know nothing
about expiry. Every failure is reported as StorageError.
"""
import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from .core import StorageError

logger = logging.getLogger("cache.backends")


class MemoryBackend:
    """In-process record map. Thread-safe."""

    def __init__(self):
        self._records: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self._records.get(key)

    def set(self, key: str, record: Dict[str, Any]) -> None:
        with self._lock:
            self._records[key] = record

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._records.pop(key, None) is not None

    def items(self, prefix: str) -> List[Tuple[str, Dict[str, Any]]]:
        with self._lock:
            return [(k, v) for k, v in self._records.items() if k.startswith(prefix)]

    def clear(self, prefix: str) -> int:
        with self._lock:
            doomed = [k for k in self._records if k.startswith(prefix)]
            for key in doomed:
                del self._records[key]
            return len(doomed)


SCHEMA = """
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""


def _is_locked(error: BaseException) -> bool:
    """True for the transient lock contention SQLite reports under concurrent writers."""
    return isinstance(error, sqlite3.OperationalError) and "locked" in str(error).lower()


class SQLiteBackend:
    """
    Durable key/value store on a SQLite file.

    The table may be shared with other components, so every bulk operation is
    restricted to a key prefix.

    Args:
        db_path: Location of the database file
        max_value_bytes: Optional per-record size quota; larger records are
            rejected with StorageError
    """

    def __init__(self, db_path: Path, max_value_bytes: Optional[int] = None):
        self.db_path = Path(db_path)
        self.max_value_bytes = max_value_bytes
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            with self._get_connection() as conn:
                conn.executescript(SCHEMA)
                conn.commit()
        except (OSError, sqlite3.Error) as e:
            raise StorageError(f"Cannot open durable cache at {self.db_path}: {e}") from e

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Get a database connection."""
        conn = sqlite3.connect(str(self.db_path), timeout=5)
        try:
            yield conn
        finally:
            conn.close()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.05, min=0.05, max=0.5),
        retry=retry_if_exception(_is_locked),
        reraise=True,
    )
    def _write(self, sql: str, params: Tuple[Any, ...]) -> int:
        """Run one write statement; retried while the database is locked."""
        with self._get_connection() as conn:
            cursor = conn.execute(sql, params)
            conn.commit()
            return cursor.rowcount

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            with self._get_connection() as conn:
                row = conn.execute(
                    "SELECT value FROM kv_store WHERE key = ?", (key,)
                ).fetchone()
            return json.loads(row[0]) if row else None
        except (sqlite3.Error, ValueError) as e:
            raise StorageError(f"Durable read failed for {key}: {e}") from e

    def set(self, key: str, record: Dict[str, Any]) -> None:
        try:
            payload = json.dumps(record)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Record for {key} is not serialisable: {e}") from e

        if self.max_value_bytes is not None and len(payload.encode()) > self.max_value_bytes:
            raise StorageError(
                f"Quota exceeded for {key}: {len(payload)} > {self.max_value_bytes} bytes"
            )

        try:
            self._write(
                "INSERT OR REPLACE INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)",
                (key, payload, datetime.utcnow().isoformat() + "Z"),
            )
        except sqlite3.Error as e:
            raise StorageError(f"Durable write failed for {key}: {e}") from e

    def delete(self, key: str) -> bool:
        try:
            return self._write("DELETE FROM kv_store WHERE key = ?", (key,)) > 0
        except sqlite3.Error as e:
            raise StorageError(f"Durable delete failed for {key}: {e}") from e

    def items(self, prefix: str) -> List[Tuple[str, Dict[str, Any]]]:
        try:
            with self._get_connection() as conn:
                rows = conn.execute(
                    "SELECT key, value FROM kv_store WHERE substr(key, 1, ?) = ?",
                    (len(prefix), prefix),
                ).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Durable scan failed: {e}") from e

        result = []
        for key, value in rows:
            try:
                result.append((key, json.loads(value)))
            except ValueError:
                logger.warning(f"Skipping unreadable durable record: {key}")
        return result

    def clear(self, prefix: str) -> int:
        try:
            return self._write(
                "DELETE FROM kv_store WHERE substr(key, 1, ?) = ?",
                (len(prefix), prefix),
            )
        except sqlite3.Error as e:
            raise StorageError(f"Durable clear failed: {e}") from e
