"""Tests for reporting queries and the request log."""

from typing import Any

import pytest

from update_store.adapters.query_builders import ChatQueryCriteria
from update_store.adapters.report_repository import ReportRepository
from update_store.adapters.upsert_engine import UpsertEngine
from update_store.domain.models import Chat, ChatType, Update, User
from update_store.domain.storage import StorageContext
from update_store.use_cases.normalize_update import UpdateNormalizer

T0 = 1714564800  # 2024-05-01 12:00:00 UTC


@pytest.fixture
def stored_chats(engine: UpsertEngine) -> None:
    """One chat of every type, updated one minute apart."""
    alice = User(id=1001, first_name="Alice", last_name="Liddell", username="alice")
    engine.upsert_chat(
        Chat(id=1001, type=ChatType.PRIVATE, first_name="Alice", username="alice"), T0
    )
    engine.upsert_user(alice, T0)
    engine.upsert_chat(Chat(id=-10, type=ChatType.GROUP, title="Dev Team"), T0 + 60)
    engine.upsert_chat(
        Chat(id=-1001, type=ChatType.SUPERGROUP, title="Ops Room"), T0 + 120
    )
    engine.upsert_chat(Chat(id=-1002, type=ChatType.CHANNEL, title="News"), T0 + 180)


# Chat listings


@pytest.mark.usefixtures("stored_chats")
def test_select_chats_returns_all_types_by_update_time(
    reports: ReportRepository,
) -> None:
    rows = reports.select_chats(ChatQueryCriteria())

    assert rows is not None
    assert [row["chat_id"] for row in rows] == [1001, -10, -1001, -1002]
    private = rows[0]
    assert private["user_id"] == 1001
    assert private["first_name"] == "Alice"
    assert private["chat_username"] == "alice"
    assert private["chat_created_at"] == "2024-05-01 12:00:00"
    assert rows[1]["user_id"] is None


@pytest.mark.usefixtures("stored_chats")
def test_select_chats_without_users_skips_join(reports: ReportRepository) -> None:
    rows = reports.select_chats(ChatQueryCriteria(users=False))

    assert rows is not None
    assert [row["type"] for row in rows] == ["group", "supergroup", "channel"]
    assert "user_id" not in rows[0]


@pytest.mark.usefixtures("stored_chats")
def test_select_chats_with_no_types_returns_empty_list(
    reports: ReportRepository,
) -> None:
    criteria = ChatQueryCriteria(
        groups=False, supergroups=False, channels=False, users=False
    )

    assert reports.select_chats(criteria) == []


@pytest.mark.usefixtures("stored_chats")
@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("dev", [-10]),
        ("ROOM", [-1001]),
        ("lidd", [1001]),
        ("nothing-matches", []),
    ],
)
def test_select_chats_text_search(
    reports: ReportRepository, text: str, expected: list[int]
) -> None:
    rows = reports.select_chats(ChatQueryCriteria(text=text))

    assert rows is not None
    assert [row["chat_id"] for row in rows] == expected


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("Привет", [-20]),
        ("привет КОМАНДА", [-20]),
        ("Équipe", [-21]),
        ("équipe", [-21]),
        ("борис", [2002]),
    ],
)
def test_select_chats_text_search_folds_non_ascii_case(
    engine: UpsertEngine, reports: ReportRepository, text: str, expected: list[int]
) -> None:
    engine.upsert_chat(Chat(id=-20, type=ChatType.GROUP, title="Привет Команда"), T0)
    engine.upsert_chat(Chat(id=-21, type=ChatType.SUPERGROUP, title="Équipe Dev"), T0 + 60)
    engine.upsert_chat(Chat(id=2002, type=ChatType.PRIVATE, first_name="Борис"), T0 + 120)
    engine.upsert_user(User(id=2002, first_name="Борис"), T0 + 120)

    rows = reports.select_chats(ChatQueryCriteria(text=text))

    assert rows is not None
    assert [row["chat_id"] for row in rows] == expected


@pytest.mark.usefixtures("stored_chats")
def test_select_chats_by_date_and_id(reports: ReportRepository) -> None:
    recent = reports.select_chats(
        ChatQueryCriteria(date_from="2024-05-01 12:02:00", order_desc=True)
    )
    single = reports.select_chats(ChatQueryCriteria(chat_id=-10))

    assert recent is not None and single is not None
    assert [row["chat_id"] for row in recent] == [-1002, -1001]
    assert [row["title"] for row in single] == ["Dev Team"]


@pytest.mark.usefixtures("stored_chats")
def test_select_chats_limit(reports: ReportRepository) -> None:
    rows = reports.select_chats(ChatQueryCriteria(limit=2))

    assert rows is not None
    assert len(rows) == 2


# Request log


def test_request_counters_for_chat(reports: ReportRepository) -> None:
    reports.record_request("sendMessage", chat_id=-10)
    reports.record_request("sendMessage", chat_id=-20)
    reports.record_request("editMessageText", inline_message_id="im-1")

    counters = reports.get_request_counters(chat_id=-10)

    assert counters == {
        "limit_per_sec_all": 2,
        "limit_per_sec": 1,
        "limit_per_minute": 1,
    }


def test_request_counters_for_inline_message(reports: ReportRepository) -> None:
    reports.record_request("editMessageText", inline_message_id="im-1")

    counters = reports.get_request_counters(inline_message_id="im-1")

    assert counters is not None
    assert counters["limit_per_sec"] == 1
    assert counters["limit_per_minute"] == 0


def test_request_counters_expire_with_time(reports: ReportRepository, clock) -> None:
    reports.record_request("sendMessage", chat_id=-10)
    clock.advance(30)
    reports.record_request("sendMessage", chat_id=-10)

    at_thirty = reports.get_request_counters(chat_id=-10)
    clock.advance(31)
    after_a_minute = reports.get_request_counters(chat_id=-10)

    assert at_thirty == {
        "limit_per_sec_all": 1,
        "limit_per_sec": 1,
        "limit_per_minute": 2,
    }
    assert after_a_minute == {
        "limit_per_sec_all": 0,
        "limit_per_sec": 0,
        "limit_per_minute": 1,
    }


def test_record_request_stores_chat_id_as_text(
    reports: ReportRepository, fetch_rows
) -> None:
    assert reports.record_request("sendPhoto", chat_id=-10) is True

    row = fetch_rows("request_limiter")[0]
    assert (row["method"], row["chat_id"]) == ("sendPhoto", "-10")
    assert row["created_at"] == "2024-05-01 12:00:00"


# Recent rows


def test_select_updates_and_messages(
    normalizer: UpdateNormalizer,
    reports: ReportRepository,
    message_payload: dict[str, Any],
) -> None:
    for update_id, message_id in ((100, 5), (101, 6)):
        update = Update.model_validate(
            {"update_id": update_id, "message": dict(message_payload, message_id=message_id)}
        )
        normalizer.process(update)

    assert reports.select_updates() == [{"id": 101}, {"id": 100}]
    assert reports.select_updates(limit=1) == [{"id": 101}]
    assert reports.select_updates(update_id=100) == [{"id": 100}]
    messages = reports.select_messages(limit=1)
    assert messages is not None
    assert [message["id"] for message in messages] == [6]


def test_not_connected_reports_return_none(
    disconnected_context: StorageContext,
) -> None:
    reports = ReportRepository(disconnected_context)

    assert reports.select_chats(ChatQueryCriteria()) is None
    assert reports.get_request_counters(chat_id=1) is None
    assert reports.record_request("sendMessage", chat_id=1) is False
    assert reports.select_updates() is None
    assert reports.select_messages() is None
