"""
SQLite Key-Value Backend

Single-table store for running a node with durable state. Transactions map
to SAVEPOINTs so nesting (engine operation → sandbox batch) rolls back
correctly.
"""
import os
import sqlite3
from contextlib import contextmanager
from typing import Iterator, List, Optional, Tuple

from ..exceptions import StorageError
from ..logger import get_logger
from .kv import KeyValueStore

logger = get_logger(__name__)


class SQLiteStore(KeyValueStore):
    """sqlite3-backed ordered key-value store."""

    def __init__(self, db_path: str, wal_mode: bool = True):
        self.db_path = db_path
        self._depth = 0

        if db_path != ":memory:":
            directory = os.path.dirname(db_path)
            if directory:
                os.makedirs(directory, exist_ok=True)

        try:
            # isolation_level=None: we issue SAVEPOINT/RELEASE ourselves.
            # The node serializes all access on its event loop thread, which
            # need not be the thread that opened the store.
            self.connection = sqlite3.connect(
                db_path, isolation_level=None, check_same_thread=False
            )
            if wal_mode and db_path != ":memory:":
                self.connection.execute("PRAGMA journal_mode=WAL")
                self.connection.execute("PRAGMA synchronous=NORMAL")
            self.connection.execute(
                "CREATE TABLE IF NOT EXISTS kv ("
                "  key TEXT PRIMARY KEY,"
                "  value TEXT NOT NULL"
                ") WITHOUT ROWID"
            )
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open SQLite store at {db_path}: {e}") from e

        logger.info(f"SQLite store initialized: {db_path}")

    def get(self, key: str) -> Optional[str]:
        row = self._execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise StorageError(f"Values must be str, got {type(value).__name__}")
        self._execute(
            "INSERT INTO kv (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, value),
        )

    def remove(self, key: str) -> None:
        self._execute("DELETE FROM kv WHERE key = ?", (key,))

    def scan(
        self,
        prefix: str,
        start_after: Optional[str] = None,
        end_before: Optional[str] = None,
        limit: Optional[int] = None,
        reverse: bool = False,
    ) -> List[Tuple[str, str]]:
        clauses = ["substr(key, 1, ?) = ?"]
        args: list = [len(prefix), prefix]
        if start_after is not None:
            clauses.append("key > ?")
            args.append(start_after)
        if end_before is not None:
            clauses.append("key < ?")
            args.append(end_before)
        query = (
            f"SELECT key, value FROM kv WHERE {' AND '.join(clauses)} "
            f"ORDER BY key {'DESC' if reverse else 'ASC'}"
        )
        if limit is not None:
            query += " LIMIT ?"
            args.append(limit)
        return [(k, v) for k, v in self._execute(query, tuple(args)).fetchall()]

    @contextmanager
    def transaction(self) -> Iterator["SQLiteStore"]:
        name = f"sp_{self._depth}"
        self._execute(f"SAVEPOINT {name}")
        self._depth += 1
        try:
            yield self
        except BaseException:
            self._depth -= 1
            self._execute(f"ROLLBACK TO SAVEPOINT {name}")
            self._execute(f"RELEASE SAVEPOINT {name}")
            raise
        else:
            self._depth -= 1
            self._execute(f"RELEASE SAVEPOINT {name}")

    def close(self) -> None:
        self.connection.close()
        logger.info(f"SQLite store closed: {self.db_path}")

    def _execute(self, query: str, args: tuple = ()) -> sqlite3.Cursor:
        try:
            return self.connection.execute(query, args)
        except sqlite3.Error as e:
            raise StorageError(f"SQLite error: {e}") from e

    def __repr__(self) -> str:
        return f"<SQLiteStore path={self.db_path!r}>"
