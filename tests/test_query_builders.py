"""Tests for chat query criteria."""

from datetime import datetime

import pytest
import pytz

from update_store.adapters.query_builders import (
    ChatQueryCriteria,
    group_chats_criteria,
    recently_active_chats_criteria,
)
from update_store.domain.exceptions import ValidationError
from update_store.domain.models import ChatType
from update_store.domain.storage import TableNames

TABLES = TableNames.with_prefix().quoted()


def test_default_criteria_has_no_conditions() -> None:
    where, params = ChatQueryCriteria().to_where_clause(TABLES)

    assert where == "1=1"
    assert params == []


def test_type_filter_uses_placeholders() -> None:
    criteria = ChatQueryCriteria(users=False, chat_id=-10)

    where, params = criteria.to_where_clause(TABLES)

    assert where == '"chat".type IN (%s, %s, %s) AND "chat".id = %s'
    assert params == ["group", "supergroup", "channel", -10]


def test_no_chat_type_raises() -> None:
    criteria = ChatQueryCriteria(
        groups=False, supergroups=False, channels=False, users=False
    )

    assert criteria.has_chat_types() is False
    with pytest.raises(ValidationError):
        criteria.to_where_clause(TABLES)


def test_chat_types_follow_flags() -> None:
    criteria = ChatQueryCriteria(groups=False, channels=False)

    assert criteria.chat_types() == [ChatType.PRIVATE, ChatType.SUPERGROUP]


def test_date_range_formats_datetimes() -> None:
    criteria = ChatQueryCriteria(
        date_from=datetime(2024, 5, 1, tzinfo=pytz.UTC),
        date_to="2024-05-31 23:59:59",
    )

    where, params = criteria.to_where_clause(TABLES)

    assert where == '"chat".updated_at >= %s AND "chat".updated_at <= %s'
    assert params == ["2024-05-01 00:00:00", "2024-05-31 23:59:59"]


def test_text_search_covers_user_names_when_users_included() -> None:
    where, params = ChatQueryCriteria(text="Dev").to_where_clause(TABLES)

    assert 'LOWER("chat".title)' in where
    assert 'LOWER("user".first_name)' in where
    assert 'LOWER("user".last_name)' in where
    assert 'LOWER("user".username)' in where
    assert params == ["%dev%"] * 4


def test_text_search_on_title_only_without_users() -> None:
    where, params = ChatQueryCriteria(users=False, text="ops").to_where_clause(TABLES)

    assert '"user"' not in where
    assert params[-1] == "%ops%"


def test_text_search_escapes_wildcards() -> None:
    _, params = ChatQueryCriteria(users=False, text="100%_done").to_where_clause(TABLES)

    assert params[-1] == "%100\\%\\_done%"


def test_text_is_never_inlined_into_sql() -> None:
    where, _ = ChatQueryCriteria(text="'; DROP TABLE chat; --").to_where_clause(TABLES)

    assert "DROP" not in where


def test_order_and_limit_clauses() -> None:
    assert ChatQueryCriteria().to_order_clause(TABLES) == '"chat".updated_at ASC'
    assert (
        ChatQueryCriteria(order_desc=True).to_order_clause(TABLES)
        == '"chat".updated_at DESC'
    )
    assert ChatQueryCriteria().to_limit_clause() == ("", [])
    assert ChatQueryCriteria(limit=5).to_limit_clause() == ("LIMIT %s", [5])


def test_prefixed_table_names_are_used() -> None:
    tables = TableNames.with_prefix("bot1_").quoted()

    where, _ = ChatQueryCriteria(chat_id=1).to_where_clause(tables)

    assert where == '"bot1_chat".id = %s'


def test_group_chats_criteria() -> None:
    criteria = group_chats_criteria(text="team")

    assert criteria.chat_types() == [ChatType.GROUP, ChatType.SUPERGROUP]
    assert criteria.text == "team"


def test_recently_active_chats_criteria() -> None:
    criteria = recently_active_chats_criteria(hours=6)

    assert isinstance(criteria.date_from, datetime)
    assert criteria.order_desc is True
    assert criteria.has_chat_types()
