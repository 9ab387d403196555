"""Query builders for the reporting queries.

Criteria objects render parameterized SQL fragments (``%s`` placeholders)
so that callers never splice user input into statements.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from update_store.domain.exceptions import ValidationError
from update_store.domain.models import ChatType
from update_store.domain.storage import TableNames, utc_now
from update_store.services.encoding import format_timestamp


def _like_pattern(text: str) -> str:
    escaped = text.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _timestamp_param(value: datetime | str) -> str:
    if isinstance(value, datetime):
        return format_timestamp(value)
    return value


@dataclass
class ChatQueryCriteria:
    """Criteria for listing stored chats.

    Example:
        >>> criteria = ChatQueryCriteria(channels=False, users=False, text="dev")
        >>> where, params = criteria.to_where_clause(TableNames.with_prefix().quoted())
        >>> # Use in SQL: SELECT ... FROM "chat" WHERE {where}
    """

    # Chat type filters
    groups: bool = True
    """Include basic groups"""

    supergroups: bool = True
    """Include supergroups"""

    channels: bool = True
    """Include channels"""

    users: bool = True
    """Include private chats (and join their user rows)"""

    # Date filters (on chat updated_at)
    date_from: datetime | str | None = None
    """Chats updated at or after this moment"""

    date_to: datetime | str | None = None
    """Chats updated at or before this moment"""

    # Identity and text filters
    chat_id: int | None = None
    """Restrict to a single chat"""

    text: str | None = None
    """Case-insensitive substring on title (and user names for private chats)"""

    # Limits
    limit: int | None = None
    """Maximum number of results"""

    # Ordering
    order_desc: bool = False
    """Order descending (default: False for least recently updated first)"""

    def chat_types(self) -> list[ChatType]:
        """Chat types selected by the boolean flags."""
        selected = [
            (self.users, ChatType.PRIVATE),
            (self.groups, ChatType.GROUP),
            (self.supergroups, ChatType.SUPERGROUP),
            (self.channels, ChatType.CHANNEL),
        ]
        return [chat_type for enabled, chat_type in selected if enabled]

    def has_chat_types(self) -> bool:
        return bool(self.chat_types())

    def to_where_clause(self, tables: TableNames) -> tuple[str, list[Any]]:
        """Build SQL WHERE clause with parameters.

        Args:
            tables: Quoted table names used to qualify columns

        Returns:
            Tuple of (where_clause, parameters)

        Raises:
            ValidationError: If no chat type is selected

        Example:
            >>> criteria = ChatQueryCriteria(users=False, chat_id=-10)
            >>> criteria.to_where_clause(TableNames.with_prefix().quoted())
            ('"chat".type IN (%s, %s, %s) AND "chat".id = %s', ['group', 'supergroup', 'channel', -10])
        """
        chat_types = self.chat_types()
        if not chat_types:
            raise ValidationError("Chat criteria must select at least one chat type")

        chat = tables.chat
        conditions: list[str] = []
        params: list[Any] = []

        # Type filter; all four selected means no restriction
        if len(chat_types) < len(ChatType):
            placeholders = ", ".join("%s" for _ in chat_types)
            conditions.append(f"{chat}.type IN ({placeholders})")
            params.extend(chat_type.value for chat_type in chat_types)

        if self.date_from is not None:
            conditions.append(f"{chat}.updated_at >= %s")
            params.append(_timestamp_param(self.date_from))

        if self.date_to is not None:
            conditions.append(f"{chat}.updated_at <= %s")
            params.append(_timestamp_param(self.date_to))

        if self.chat_id is not None:
            conditions.append(f"{chat}.id = %s")
            params.append(self.chat_id)

        if self.text:
            pattern = _like_pattern(self.text)
            columns = [f"LOWER({chat}.title)"]
            if self.users:
                user = tables.user
                columns += [
                    f"LOWER({user}.first_name)",
                    f"LOWER({user}.last_name)",
                    f"LOWER({user}.username)",
                ]
            text_conditions = [f"{column} LIKE %s ESCAPE '\\'" for column in columns]
            conditions.append(f"({' OR '.join(text_conditions)})")
            params.extend(pattern for _ in columns)

        where = " AND ".join(conditions) if conditions else "1=1"
        return where, params

    def to_order_clause(self, tables: TableNames) -> str:
        """Build SQL ORDER BY clause.

        Example:
            >>> ChatQueryCriteria().to_order_clause(TableNames.with_prefix().quoted())
            '"chat".updated_at ASC'
        """
        direction = "DESC" if self.order_desc else "ASC"
        return f"{tables.chat}.updated_at {direction}"

    def to_limit_clause(self) -> tuple[str, list[Any]]:
        """Build SQL LIMIT clause."""
        if self.limit is None:
            return "", []
        return "LIMIT %s", [self.limit]


# Helper functions for common queries


def group_chats_criteria(text: str | None = None) -> ChatQueryCriteria:
    """Create criteria for groups and supergroups only.

    Args:
        text: Optional title search

    Returns:
        ChatQueryCriteria without private chats and channels
    """
    return ChatQueryCriteria(channels=False, users=False, text=text)


def recently_active_chats_criteria(hours: int = 24) -> ChatQueryCriteria:
    """Create criteria for chats updated within the last N hours, newest first.

    Args:
        hours: Number of hours to look back

    Returns:
        ChatQueryCriteria configured for recent activity
    """
    return ChatQueryCriteria(
        date_from=utc_now() - timedelta(hours=hours),
        order_desc=True,
    )
