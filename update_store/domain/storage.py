"""Storage context shared by every persistence component."""

from collections.abc import Callable
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from typing import Final

import pytz

from update_store.domain.protocols import DatabaseProtocol

TABLE_BASE_NAMES: Final[tuple[str, ...]] = (
    "user",
    "chat",
    "user_chat",
    "message",
    "edited_message",
    "inline_query",
    "chosen_inline_result",
    "callback_query",
    "telegram_update",
    "request_limiter",
)

TABLE_COLUMNS: Final[dict[str, frozenset[str]]] = {
    "user": frozenset(
        (
            "bot_id", "id", "is_bot", "first_name", "last_name", "username",
            "language_code", "created_at", "updated_at",
        )
    ),
    "chat": frozenset(
        (
            "bot_id", "id", "type", "title", "username",
            "all_members_are_administrators", "created_at", "updated_at", "old_id",
        )
    ),
    "user_chat": frozenset(("bot_id", "user_id", "chat_id")),
    "message": frozenset(
        (
            "bot_id", "chat_id", "id", "user_id", "date", "forward_from",
            "forward_from_chat", "forward_from_message_id", "forward_date",
            "reply_to_chat", "reply_to_message", "media_group_id", "text",
            "entities", "audio", "document", "photo", "sticker", "video", "voice",
            "video_note", "caption", "contact", "location", "venue",
            "new_chat_members", "left_chat_member", "new_chat_title",
            "new_chat_photo", "delete_chat_photo", "group_chat_created",
            "supergroup_chat_created", "channel_chat_created",
            "migrate_to_chat_id", "migrate_from_chat_id", "pinned_message",
            "connected_website",
        )
    ),
    "edited_message": frozenset(
        (
            "id", "bot_id", "chat_id", "message_id", "user_id", "edit_date",
            "text", "entities", "caption",
        )
    ),
    "inline_query": frozenset(
        ("bot_id", "id", "user_id", "location", "query", "offset", "created_at")
    ),
    "chosen_inline_result": frozenset(
        (
            "id", "bot_id", "result_id", "user_id", "location",
            "inline_message_id", "query", "created_at",
        )
    ),
    "callback_query": frozenset(
        (
            "bot_id", "id", "user_id", "chat_id", "message_id",
            "inline_message_id", "data", "created_at",
        )
    ),
    "telegram_update": frozenset(
        (
            "bot_id", "id", "chat_id", "message_id", "inline_query_id",
            "chosen_inline_result_id", "callback_query_id", "edited_message_id",
        )
    ),
    "request_limiter": frozenset(
        ("id", "bot_id", "chat_id", "inline_message_id", "method", "created_at")
    ),
}
"""Writable columns per base table name, matching the provisioned schema."""


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(tz=pytz.UTC)


@dataclass(frozen=True)
class TableNames:
    """Resolved table names for one storage context."""

    user: str
    chat: str
    user_chat: str
    message: str
    edited_message: str
    inline_query: str
    chosen_inline_result: str
    callback_query: str
    telegram_update: str
    request_limiter: str

    @classmethod
    def with_prefix(cls, prefix: str = "") -> "TableNames":
        """Build table names with a plain string prefix.

        Example:
            >>> TableNames.with_prefix("tb_").user
            'tb_user'
        """
        return cls(**{name: f"{prefix}{name}" for name in TABLE_BASE_NAMES})

    def quoted(self) -> "TableNames":
        """Return a copy with every name quoted as an SQL identifier."""
        return replace(
            self,
            **{
                item.name: '"' + getattr(self, item.name).replace('"', '""') + '"'
                for item in fields(self)
            },
        )


@dataclass(frozen=True)
class StorageContext:
    """Everything an operation needs to reach storage for one bot.

    ``database`` is ``None`` when no connection has been configured; components
    then report "not connected" instead of raising.
    """

    database: DatabaseProtocol | None
    bot_id: int = 0
    tables: TableNames = field(default_factory=TableNames.with_prefix)
    clock: Callable[[], datetime] = utc_now

    @property
    def is_connected(self) -> bool:
        return self.database is not None

    def now(self) -> datetime:
        return self.clock()
