"""Durable key-value store for kernel state.

Each key holds one whole JSON-encoded value. The contract is narrow:

- load(key, default) returns the stored value, or `default` when the key
  is missing or cannot be read/decoded
- save_many(values, delete) writes several keys (and removes others) in
  one transaction, so an operation touching the ledger and the pulse log
  lands together or not at all
- failures are logged and absorbed; callers never see StorageError

Concurrency Handling:
    Reads use DEFERRED isolation so WAL readers do not block. Writes use
    IMMEDIATE isolation and retry with exponential backoff on
    "database is locked". Retry parameters come from the storage config
    section (retry_max, retry_base, retry_max_delay).

Usage:
    store = SQLiteStore(Path("kernel.db"))
    store.save("xhe_kernel_meta", {"version": "1.0.0"})
    meta = store.load("xhe_kernel_meta", {})
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, Mapping, Protocol, TypeVar, runtime_checkable

from ..config_schema import StorageConfig
from .errors import StorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@runtime_checkable
class KeyValueStore(Protocol):
    """Load-or-default / save contract used by the kernel."""

    def load(self, key: str, default: Any = None) -> Any: ...

    def save(self, key: str, value: Any) -> bool: ...

    def save_many(self, values: Mapping[str, Any], delete: Iterable[str] = ()) -> bool: ...

    def delete(self, key: str) -> bool: ...

    def keys(self) -> list[str]: ...

    def close(self) -> None: ...


def _with_retry(
    func: Callable[[], T],
    max_retries: int,
    base_delay: float,
    max_delay: float,
) -> T:
    """Execute a function with retry logic for SQLite lock errors.

    Args:
        func: Callable to execute
        max_retries: Maximum attempts
        base_delay: Initial backoff delay in seconds
        max_delay: Maximum backoff delay cap

    Raises:
        sqlite3.OperationalError: If func raises a non-lock error or
            exceeds max_retries with lock errors
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return func()
        except sqlite3.OperationalError as e:
            if "database is locked" not in str(e):
                raise

            if attempt >= max_retries:
                logger.warning(
                    "SQLite lock error after %d attempts, giving up: %s",
                    attempt,
                    e,
                )
                raise

            delay = min(base_delay * (2 ** (attempt - 1)), max_delay)
            logger.debug(
                "SQLite lock error (attempt %d/%d), retrying in %.2fs: %s",
                attempt,
                max_retries,
                delay,
                e,
            )
            time.sleep(delay)


def _encode(key: str, value: Any) -> str:
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise StorageError(key, "encode", e) from e


class SQLiteStore:
    """SQLite-backed key-value store.

    One table `kv(key, value, updated_at)`. WAL mode, one connection per
    operation; the store holds no open handle between calls.
    """

    def __init__(self, db_path: Path | str, settings: StorageConfig | None = None) -> None:
        """Initialize the store, creating the database file and table if needed.

        Args:
            db_path: Path to SQLite database file
            settings: Retry and timeout parameters (defaults if omitted)
        """
        self.db_path = Path(db_path)
        self.settings = settings or StorageConfig()
        self._closed = False
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_db()

    def _ensure_db(self) -> None:
        with self._connect_write() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.commit()

    def _open(self, isolation_level: str | None) -> sqlite3.Connection:
        if self._closed:
            raise sqlite3.ProgrammingError(f"Store {self.db_path} is closed")
        if isolation_level is None:
            conn = sqlite3.connect(str(self.db_path))
        else:
            conn = sqlite3.connect(str(self.db_path), isolation_level=isolation_level)
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    @contextmanager
    def _connect_read(self) -> Iterator[sqlite3.Connection]:
        """Read connection with DEFERRED isolation (concurrent readers via WAL)."""
        conn = self._open(None)
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _connect_write(self) -> Iterator[sqlite3.Connection]:
        """Write connection with IMMEDIATE isolation (write lock taken early)."""
        conn = self._open("IMMEDIATE")
        try:
            yield conn
        finally:
            conn.close()

    def _retry(self, func: Callable[[], T]) -> T:
        return _with_retry(
            func,
            self.settings.retry_max,
            self.settings.retry_base,
            self.settings.retry_max_delay,
        )

    def _read(self, key: str) -> str | None:
        def do_read() -> str | None:
            with self._connect_read() as conn:
                row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
                return row[0] if row is not None else None

        try:
            return self._retry(do_read)
        except sqlite3.Error as e:
            raise StorageError(key, "read", e) from e

    def _write(self, values: Mapping[str, str], delete: Iterable[str]) -> None:
        deletions = list(delete)

        def do_write() -> None:
            with self._connect_write() as conn:
                try:
                    conn.executemany(
                        """
                        INSERT OR REPLACE INTO kv (key, value, updated_at)
                        VALUES (?, ?, CURRENT_TIMESTAMP)
                        """,
                        list(values.items()),
                    )
                    conn.executemany("DELETE FROM kv WHERE key = ?", [(k,) for k in deletions])
                    conn.commit()
                except Exception:
                    conn.rollback()
                    raise

        label = ",".join(list(values) + deletions)
        try:
            self._retry(do_write)
        except sqlite3.Error as e:
            raise StorageError(label, "write", e) from e

    def load(self, key: str, default: Any = None) -> Any:
        """Load a value, or `default` if missing or unreadable."""
        try:
            raw = self._read(key)
        except StorageError as e:
            logger.error("%s; using default", e)
            return default
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError as e:
            logger.error("Corrupt JSON under %r (%s); using default", key, e)
            return default

    def save(self, key: str, value: Any) -> bool:
        return self.save_many({key: value})

    def save_many(self, values: Mapping[str, Any], delete: Iterable[str] = ()) -> bool:
        """Write and delete keys in one transaction.

        Returns:
            True if committed, False if the write failed (already logged).
        """
        try:
            encoded = {key: _encode(key, value) for key, value in values.items()}
            self._write(encoded, delete)
        except StorageError as e:
            logger.error("%s; in-memory state kept, durable copy is stale", e)
            return False
        return True

    def delete(self, key: str) -> bool:
        return self.save_many({}, delete=[key])

    def keys(self) -> list[str]:
        def do_list() -> list[str]:
            with self._connect_read() as conn:
                return [row[0] for row in conn.execute("SELECT key FROM kv ORDER BY key")]

        try:
            return self._retry(do_list)
        except sqlite3.Error as e:
            logger.error("Storage list failed: %s", e)
            return []

    def close(self) -> None:
        self._closed = True


class MemoryStore:
    """In-process store with the same contract as SQLiteStore.

    Values are kept JSON-encoded, so callers never share references with
    the stored copy.
    """

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def load(self, key: str, default: Any = None) -> Any:
        raw = self._data.get(key)
        if raw is None:
            return default
        return json.loads(raw)

    def save(self, key: str, value: Any) -> bool:
        return self.save_many({key: value})

    def save_many(self, values: Mapping[str, Any], delete: Iterable[str] = ()) -> bool:
        try:
            encoded = {key: _encode(key, value) for key, value in values.items()}
        except StorageError as e:
            logger.error("%s; nothing written", e)
            return False
        self._data.update(encoded)
        for key in delete:
            self._data.pop(key, None)
        return True

    def delete(self, key: str) -> bool:
        return self.save_many({}, delete=[key])

    def keys(self) -> list[str]:
        return sorted(self._data)

    def close(self) -> None:
        pass
