"""PostgreSQL executor using psycopg2 with connection pooling."""

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from threading import Lock
from time import sleep
from typing import Any, Final, Literal

from psycopg2 import Error as PsycopgError
from psycopg2 import extensions
from psycopg2 import pool as psycopg2_pool
from psycopg2.extras import RealDictCursor

from update_store.config.logging_config import get_logger
from update_store.domain.exceptions import ConfigurationError, StorageError

DEFAULT_POOL_MIN_CONNECTIONS: Final[int] = 1
DEFAULT_POOL_MAX_CONNECTIONS: Final[int] = 10
POOL_ACQUIRE_MAX_ATTEMPTS_DEFAULT: Final[int] = 5
POOL_ACQUIRE_BASE_DELAY_SECONDS: Final[float] = 0.1
POOL_ACQUIRE_MAX_DELAY_SECONDS: Final[float] = 2.0
POOL_USAGE_WARNING_THRESHOLD: Final[float] = 0.8

logger = get_logger(__name__)


class PostgresDatabase:
    """PostgreSQL implementation of DatabaseProtocol backed by a connection pool."""

    dialect: Literal["postgres"] = "postgres"

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
        *,
        min_connections: int = DEFAULT_POOL_MIN_CONNECTIONS,
        max_connections: int = DEFAULT_POOL_MAX_CONNECTIONS,
        statement_timeout_ms: int = 10_000,
        connect_timeout_seconds: int = 10,
        application_name: str = "update_store",
        ssl_mode: str | None = None,
    ):
        """Initialize PostgreSQL executor with pooled connections."""
        if min_connections <= 0:
            raise ConfigurationError("postgres_min_connections must be positive")
        if max_connections < min_connections:
            raise ConfigurationError(
                "postgres_max_connections must be greater than or equal to postgres_min_connections"
            )

        self._host = host
        self._port = port
        self._database = database
        self._user = user
        self._password = password
        self._pool_min_connections = min_connections
        self._pool_max_connections = max_connections
        self._statement_timeout_ms = statement_timeout_ms
        self._connect_timeout_seconds = connect_timeout_seconds
        self._application_name = application_name
        self._ssl_mode = ssl_mode

        self._pool_acquire_max_attempts = POOL_ACQUIRE_MAX_ATTEMPTS_DEFAULT
        self._pool_in_use_count = 0
        self._pool_high_watermark = 0
        self._pool_usage_warning_emitted = False
        self._pool_lock = Lock()

        self._pool = self._create_pool()

    def _create_pool(self) -> psycopg2_pool.ThreadedConnectionPool:
        """Create a PostgreSQL connection pool with validation."""
        options = " ".join(
            [
                f"-c statement_timeout={self._statement_timeout_ms}",
                f"-c application_name={self._application_name}",
            ]
        )

        conn_kwargs: dict[str, Any] = {
            "host": self._host,
            "port": self._port,
            "database": self._database,
            "user": self._user,
            "password": self._password,
            "connect_timeout": self._connect_timeout_seconds,
            "options": options,
        }
        if self._ssl_mode:
            conn_kwargs["sslmode"] = self._ssl_mode

        try:
            pool = psycopg2_pool.ThreadedConnectionPool(
                self._pool_min_connections,
                self._pool_max_connections,
                **conn_kwargs,
            )
        except PsycopgError as exc:
            raise StorageError(
                f"Failed to initialize PostgreSQL pool: {exc}", exc
            ) from exc

        try:
            conn = pool.getconn()
            try:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
            finally:
                pool.putconn(conn)
        except PsycopgError as exc:
            pool.closeall()
            raise StorageError(
                f"PostgreSQL validation query failed: {exc}", exc
            ) from exc

        logger.info(
            "postgres_pool_initialized",
            host=self._host,
            port=self._port,
            database=self._database,
            min_connections=self._pool_min_connections,
            max_connections=self._pool_max_connections,
            statement_timeout_ms=self._statement_timeout_ms,
        )
        return pool

    def _acquire_connection_with_retry(self) -> extensions.connection:
        """Acquire a connection from the pool with exponential backoff."""
        attempt = 0
        delay = POOL_ACQUIRE_BASE_DELAY_SECONDS
        while True:
            attempt += 1
            try:
                conn = self._pool.getconn()
            except psycopg2_pool.PoolError as exc:
                if attempt >= self._pool_acquire_max_attempts:
                    logger.error(
                        "postgres_pool_acquire_failed",
                        attempts=attempt,
                        max_connections=self._pool_max_connections,
                        in_use=self._pool_in_use_count,
                    )
                    raise StorageError(
                        "Failed to acquire PostgreSQL connection from pool", exc
                    ) from exc

                logger.warning(
                    "postgres_pool_exhausted_retry",
                    attempt=attempt,
                    wait_seconds=delay,
                    in_use=self._pool_in_use_count,
                )
                sleep(delay)
                delay = min(delay * 2, POOL_ACQUIRE_MAX_DELAY_SECONDS)
                continue

            self._register_connection_checkout()
            return conn

    def _register_connection_checkout(self) -> None:
        """Update pool usage counters after a checkout."""
        with self._pool_lock:
            self._pool_in_use_count += 1
            if self._pool_in_use_count > self._pool_high_watermark:
                self._pool_high_watermark = self._pool_in_use_count

            usage_ratio = self._pool_in_use_count / self._pool_max_connections
            if (
                usage_ratio >= POOL_USAGE_WARNING_THRESHOLD
                and not self._pool_usage_warning_emitted
            ):
                self._pool_usage_warning_emitted = True
                logger.warning(
                    "postgres_pool_usage_high",
                    in_use=self._pool_in_use_count,
                    max_connections=self._pool_max_connections,
                )

    def _release_connection(self, conn: extensions.connection, *, close: bool) -> None:
        """Return a connection to the pool and update usage counters."""
        try:
            self._pool.putconn(conn, close=close)
        except PsycopgError:
            logger.warning(
                "postgres_putconn_failed",
                database=self._database,
                close=close,
                exc_info=True,
            )
        finally:
            with self._pool_lock:
                if self._pool_in_use_count > 0:
                    self._pool_in_use_count -= 1
                usage_ratio = self._pool_in_use_count / self._pool_max_connections
                if usage_ratio < POOL_USAGE_WARNING_THRESHOLD:
                    self._pool_usage_warning_emitted = False

    @contextmanager
    def _cursor(self, sql: str) -> Iterator[Any]:
        """Borrow a connection, yield a dict cursor and commit on success."""
        conn = self._acquire_connection_with_retry()
        close = False
        try:
            conn.autocommit = False
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                yield cur
            conn.commit()
        except PsycopgError as exc:
            try:
                conn.rollback()
            except PsycopgError:
                close = True
                logger.warning(
                    "postgres_connection_rollback_failed",
                    database=self._database,
                    exc_info=True,
                )
            logger.warning("postgres_statement_failed", error=str(exc), sql=sql[:200])
            raise StorageError(f"PostgreSQL statement failed: {exc}", exc) from exc
        finally:
            self._release_connection(conn, close=close or bool(conn.closed))

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        with self._cursor(sql) as cur:
            cur.execute(sql, tuple(params))
            return int(cur.rowcount)

    def insert_returning_id(self, sql: str, params: Sequence[Any] = ()) -> int:
        statement = f"{sql.rstrip().rstrip(';')} RETURNING id"
        with self._cursor(statement) as cur:
            cur.execute(statement, tuple(params))
            row = cur.fetchone()
            if row is None:
                raise StorageError("PostgreSQL did not return an inserted row id")
            return int(row["id"])

    def fetch_one(
        self, sql: str, params: Sequence[Any] = ()
    ) -> dict[str, Any] | None:
        with self._cursor(sql) as cur:
            cur.execute(sql, tuple(params))
            row = cur.fetchone()
            return dict(row) if row is not None else None

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        with self._cursor(sql) as cur:
            cur.execute(sql, tuple(params))
            return [dict(row) for row in cur.fetchall()]

    def close(self) -> None:
        """Close all connections in the pool."""
        self._pool.closeall()
        with self._pool_lock:
            self._pool_in_use_count = 0
            self._pool_usage_warning_emitted = False
        logger.info(
            "postgres_pool_closed",
            database=self._database,
            high_watermark=self._pool_high_watermark,
        )
