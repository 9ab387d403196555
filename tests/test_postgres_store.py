"""End-to-end tests against PostgreSQL.

These tests are skipped unless:
- POSTGRES_PASSWORD environment variable is set
- TEST_POSTGRES=1 environment variable is set
- PostgreSQL is reachable with the configured host/port/user

Run with: TEST_POSTGRES=1 POSTGRES_PASSWORD=password pytest tests/test_postgres_store.py
"""

from typing import Any

import pytest

from update_store.adapters.query_builders import ChatQueryCriteria
from update_store.adapters.report_repository import ReportRepository
from update_store.adapters.upsert_engine import UpsertEngine
from update_store.domain.models import Chat, ChatType, Update
from update_store.use_cases.normalize_update import UpdateNormalizer

pytestmark = pytest.mark.postgres


def test_postgres_message_update_scenario(
    normalizer: UpdateNormalizer, fetch_rows, message_payload: dict[str, Any]
) -> None:
    update = Update.model_validate({"update_id": 100, "message": message_payload})

    assert normalizer.process(update) is True
    assert normalizer.process(update) is True

    assert len(fetch_rows("message")) == 1
    stored = fetch_rows("telegram_update")
    assert [(row["id"], row["chat_id"], row["message_id"]) for row in stored] == [
        (100, -10, 5)
    ]


def test_postgres_migration_and_edits(
    engine: UpsertEngine, fetch_rows, message_payload: dict[str, Any]
) -> None:
    engine.upsert_chat(Chat(id=-10, type=ChatType.GROUP, title="Original"), 1714564740)
    migration = dict(message_payload, message_id=6, migrate_to_chat_id=-1001234)

    engine.insert_message(Update.model_validate({"update_id": 1, "message": migration}).message)
    first = engine.append_edited_message(
        Update.model_validate({"update_id": 2, "message": message_payload}).message
    )

    target = fetch_rows("chat", "id = %s", (-1001234,))[0]
    assert (target["type"], target["old_id"]) == ("supergroup", -10)
    assert fetch_rows("chat", "id = %s", (-10,))[0]["title"] == "Original"
    assert first is not None


def test_postgres_reports(
    engine: UpsertEngine, reports: ReportRepository
) -> None:
    engine.upsert_chat(Chat(id=-10, type=ChatType.GROUP, title="Dev Team"))
    engine.upsert_chat(Chat(id=-300, type=ChatType.CHANNEL, title="News"))
    reports.record_request("sendMessage", chat_id=-10)

    rows = reports.select_chats(ChatQueryCriteria(text="dev"))
    counters = reports.get_request_counters(chat_id=-10)

    assert rows is not None
    assert [row["chat_id"] for row in rows] == [-10]
    assert counters == {"limit_per_sec_all": 1, "limit_per_sec": 1, "limit_per_minute": 1}
