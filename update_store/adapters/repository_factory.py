"""Factory for wiring settings into a storage context and its components."""

from dataclasses import dataclass

from update_store.adapters.postgres_database import PostgresDatabase
from update_store.adapters.report_repository import ReportRepository
from update_store.adapters.schema import create_tables
from update_store.adapters.sqlite_database import SQLiteDatabase
from update_store.adapters.upsert_engine import UpsertEngine
from update_store.config.logging_config import get_logger
from update_store.config.settings import Settings
from update_store.domain.exceptions import ConfigurationError
from update_store.domain.protocols import DatabaseProtocol
from update_store.domain.storage import StorageContext, TableNames
from update_store.use_cases.normalize_update import UpdateNormalizer

logger = get_logger(__name__)


def create_database(settings: Settings) -> DatabaseProtocol:
    """Create the executor selected by settings.

    Args:
        settings: Application settings

    Returns:
        Executor instance (SQLite or PostgreSQL)

    Raises:
        ConfigurationError: If database_type is not supported or the
            PostgreSQL password is missing
        StorageError: On connection errors
    """
    if settings.database_type == "sqlite":
        logger.info("database_sqlite_selected", path=settings.db_path)
        return SQLiteDatabase(db_path=settings.db_path)

    elif settings.database_type == "postgres":
        if not settings.postgres_password:
            raise ConfigurationError(
                "POSTGRES_PASSWORD environment variable must be set when using PostgreSQL"
            )

        logger.info(
            "database_postgres_selected",
            host=settings.postgres_host,
            port=settings.postgres_port,
            database=settings.postgres_database,
            user=settings.postgres_user,
        )
        return PostgresDatabase(
            host=settings.postgres_host,
            port=settings.postgres_port,
            database=settings.postgres_database,
            user=settings.postgres_user,
            password=settings.postgres_password.get_secret_value(),
            min_connections=settings.postgres_min_connections,
            max_connections=settings.postgres_max_connections,
            statement_timeout_ms=settings.postgres_statement_timeout_ms,
            connect_timeout_seconds=settings.postgres_connect_timeout_seconds,
            application_name=settings.postgres_application_name,
            ssl_mode=settings.postgres_ssl_mode,
        )

    else:
        raise ConfigurationError(
            f"Unsupported database type: {settings.database_type}. "
            f"Must be 'sqlite' or 'postgres'"
        )


def create_storage_context(
    settings: Settings, database: DatabaseProtocol | None = None
) -> StorageContext:
    """Build the storage context for the configured bot.

    Args:
        settings: Application settings
        database: Executor to use instead of creating one from settings

    Returns:
        StorageContext with tables provisioned when ``create_schema`` is on
    """
    if database is None:
        database = create_database(settings)
    tables = TableNames.with_prefix(settings.table_prefix)
    if settings.create_schema:
        create_tables(database, tables)
    return StorageContext(database=database, bot_id=settings.bot_id, tables=tables)


@dataclass(frozen=True)
class UpdateStore:
    """Ready-to-use components sharing one storage context."""

    context: StorageContext
    engine: UpsertEngine
    normalizer: UpdateNormalizer
    reports: ReportRepository

    def close(self) -> None:
        if self.context.database is not None:
            self.context.database.close()


def create_update_store(
    settings: Settings, database: DatabaseProtocol | None = None
) -> UpdateStore:
    """Create the storage context and every component on top of it."""
    context = create_storage_context(settings, database)
    engine = UpsertEngine(context)
    store = UpdateStore(
        context=context,
        engine=engine,
        normalizer=UpdateNormalizer(engine),
        reports=ReportRepository(context),
    )
    logger.info(
        "update_store_ready",
        bot_id=context.bot_id,
        dialect=context.database.dialect if context.database else None,
        table_prefix=settings.table_prefix,
    )
    return store
