"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import os
import uuid
from collections.abc import Callable, Generator
from dataclasses import astuple
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
import pytz

from update_store.adapters.repository_factory import create_database
from update_store.adapters.report_repository import ReportRepository
from update_store.adapters.schema import create_tables
from update_store.adapters.upsert_engine import UpsertEngine
from update_store.config.settings import Settings
from update_store.domain.models import Chat, ChatType, Message, User
from update_store.domain.protocols import DatabaseProtocol
from update_store.domain.storage import StorageContext, TableNames
from update_store.use_cases.normalize_update import UpdateNormalizer

FIXED_NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=pytz.UTC)
TEST_BOT_ID = 42


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current = self.current + timedelta(seconds=seconds)


@pytest.fixture
def settings(
    tmp_path_factory: pytest.TempPathFactory, request: pytest.FixtureRequest
) -> Settings:
    """Create settings configured for the requested database backend."""

    base_settings = Settings()

    if request.node.get_closest_marker("postgres"):
        if os.environ.get("TEST_POSTGRES", "0") != "1":
            pytest.skip("PostgreSQL tests disabled (TEST_POSTGRES!=1)")
        if not os.environ.get("POSTGRES_PASSWORD"):
            pytest.skip("POSTGRES_PASSWORD not set for PostgreSQL tests")
        return base_settings.model_copy(
            update={
                "database_type": "postgres",
                "bot_id": TEST_BOT_ID,
                "table_prefix": f"test_{uuid.uuid4().hex[:8]}_",
            }
        )

    temp_dir = tmp_path_factory.mktemp("db")
    db_path = temp_dir / "test.sqlite"
    return base_settings.model_copy(
        update={
            "database_type": "sqlite",
            "db_path": str(db_path),
            "bot_id": TEST_BOT_ID,
            "table_prefix": "",
        }
    )


@pytest.fixture
def database(settings: Settings) -> Generator[DatabaseProtocol, None, None]:
    """Provide an executor for the configured backend."""

    db = create_database(settings)
    tables = TableNames.with_prefix(settings.table_prefix)

    try:
        yield db
    finally:
        if settings.database_type == "postgres":
            for name in astuple(tables.quoted()):
                db.execute(f"DROP TABLE IF EXISTS {name} CASCADE")
        db.close()

        if settings.database_type == "sqlite":
            db_path = Path(settings.db_path)
            if db_path.exists():
                try:
                    db_path.unlink()
                except OSError:
                    pass


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def context(
    settings: Settings, database: DatabaseProtocol, clock: FixedClock
) -> StorageContext:
    """Storage context with provisioned tables and a fixed clock."""
    tables = TableNames.with_prefix(settings.table_prefix)
    create_tables(database, tables)
    return StorageContext(
        database=database, bot_id=settings.bot_id, tables=tables, clock=clock
    )


@pytest.fixture
def disconnected_context(clock: FixedClock) -> StorageContext:
    return StorageContext(database=None, bot_id=TEST_BOT_ID, clock=clock)


@pytest.fixture
def engine(context: StorageContext) -> UpsertEngine:
    return UpsertEngine(context)


@pytest.fixture
def normalizer(engine: UpsertEngine) -> UpdateNormalizer:
    return UpdateNormalizer(engine)


@pytest.fixture
def reports(context: StorageContext) -> ReportRepository:
    return ReportRepository(context)


@pytest.fixture
def fetch_rows(
    context: StorageContext,
) -> Callable[..., list[dict[str, Any]]]:
    """Return a helper that reads raw rows of one table for the test bot."""

    def _fetch(
        table: str, where: str = "1=1", params: tuple[Any, ...] = ()
    ) -> list[dict[str, Any]]:
        assert context.database is not None
        name = getattr(context.tables.quoted(), table)
        return context.database.fetch_all(
            f"SELECT * FROM {name} WHERE bot_id = %s AND {where}",
            (context.bot_id, *params),
        )

    return _fetch


@pytest.fixture
def sample_user() -> User:
    return User(
        id=1001,
        is_bot=False,
        first_name="Alice",
        last_name="Liddell",
        username="alice",
        language_code="en",
    )


@pytest.fixture
def sample_group() -> Chat:
    return Chat(id=-10, type=ChatType.GROUP, title="Dev Team")


@pytest.fixture
def message_payload() -> dict[str, Any]:
    """Bot API JSON for a plain text message in a group."""
    return {
        "message_id": 5,
        "from": {
            "id": 1001,
            "is_bot": False,
            "first_name": "Alice",
            "last_name": "Liddell",
            "username": "alice",
            "language_code": "en",
        },
        "chat": {"id": -10, "type": "group", "title": "Dev Team"},
        "date": 1714564800,
        "text": "/deploy now",
        "entities": [{"type": "bot_command", "offset": 0, "length": 7}],
    }


@pytest.fixture
def sample_message(message_payload: dict[str, Any]) -> Message:
    return Message.model_validate(message_payload)
