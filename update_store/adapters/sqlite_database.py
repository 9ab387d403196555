"""SQLite executor for local storage and tests.

A fresh connection is opened per statement, so one instance can be shared
across threads.
"""

import sqlite3
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Literal

from update_store.config.logging_config import get_logger
from update_store.domain.exceptions import StorageError

logger = get_logger(__name__)


def to_qmark(sql: str) -> str:
    """Translate ``%s`` placeholders to SQLite's ``?`` style."""
    return sql.replace("%s", "?")


def _unicode_lower(value: Any) -> Any:
    return value.lower() if isinstance(value, str) else value


class SQLiteDatabase:
    """SQLite-based implementation of DatabaseProtocol."""

    dialect: Literal["sqlite"] = "sqlite"

    def __init__(self, db_path: str, *, timeout_seconds: float = 30.0) -> None:
        """Initialize executor.

        Args:
            db_path: Path to SQLite database file
            timeout_seconds: How long to wait on a locked database
        """
        self.db_path = db_path
        self._timeout_seconds = timeout_seconds

        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        logger.info("sqlite_database_opened", db_path=str(db_path))

    def _get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.Connection(self.db_path, timeout=self._timeout_seconds)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        # Built-in LOWER() folds ASCII only
        conn.create_function("lower", 1, _unicode_lower, deterministic=True)
        return conn

    @contextmanager
    def _cursor(self, sql: str) -> Iterator[sqlite3.Cursor]:
        try:
            conn = self._get_connection()
        except sqlite3.Error as exc:
            raise StorageError(f"SQLite connection error: {exc}", exc) from exc

        try:
            cursor = conn.cursor()
            yield cursor
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            logger.warning("sqlite_statement_failed", error=str(exc), sql=sql[:200])
            raise StorageError(f"SQLite statement failed: {exc}", exc) from exc
        finally:
            conn.close()

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        with self._cursor(sql) as cursor:
            cursor.execute(to_qmark(sql), tuple(params))
            return cursor.rowcount

    def insert_returning_id(self, sql: str, params: Sequence[Any] = ()) -> int:
        with self._cursor(sql) as cursor:
            cursor.execute(to_qmark(sql), tuple(params))
            if cursor.lastrowid is None:
                raise StorageError("SQLite did not report an inserted row id")
            return cursor.lastrowid

    def fetch_one(
        self, sql: str, params: Sequence[Any] = ()
    ) -> dict[str, Any] | None:
        with self._cursor(sql) as cursor:
            cursor.execute(to_qmark(sql), tuple(params))
            row = cursor.fetchone()
            return dict(row) if row is not None else None

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        with self._cursor(sql) as cursor:
            cursor.execute(to_qmark(sql), tuple(params))
            return [dict(row) for row in cursor.fetchall()]

    def close(self) -> None:
        """Nothing to release; connections are per statement."""
        logger.debug("sqlite_database_closed", db_path=str(self.db_path))
