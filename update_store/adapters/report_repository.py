"""Read paths for reporting: chat listings, request counters, recent rows."""

from datetime import timedelta
from typing import Any

from update_store.adapters.query_builders import ChatQueryCriteria
from update_store.adapters.upsert_engine import insert_statement
from update_store.config.logging_config import get_logger
from update_store.domain.exceptions import StorageError
from update_store.domain.protocols import DatabaseProtocol
from update_store.domain.storage import StorageContext
from update_store.services.encoding import format_timestamp

logger = get_logger(__name__)


class ReportRepository:
    """Reporting queries scoped to one bot partition.

    Besides reads it owns the append-only request log used for outbound
    rate limiting.
    """

    def __init__(self, context: StorageContext) -> None:
        self._context = context
        self._bot_id = context.bot_id
        self._t = context.tables.quoted()

    def _connected(self, operation: str) -> bool:
        if self._context.is_connected:
            return True
        logger.warning("storage_not_connected", operation=operation)
        return False

    @property
    def _db(self) -> DatabaseProtocol:
        database = self._context.database
        if database is None:
            raise StorageError("Storage is not connected")
        return database

    def select_chats(self, criteria: ChatQueryCriteria) -> list[dict[str, Any]] | None:
        """List chats matching the criteria, least recently updated first.

        Args:
            criteria: Chat filters

        Returns:
            Flat rows with chat columns plus ``chat_id``, ``chat_username``,
            ``chat_created_at``, ``chat_updated_at`` and, when private chats
            are included, ``user_id`` and the user's columns. Empty list when
            no chat type is selected, None when not connected.

        Raises:
            StorageError: On storage errors
        """
        if not self._connected("select_chats"):
            return None

        if not criteria.has_chat_types():
            logger.debug("chat_selection_empty", reason="no_chat_types_selected")
            return []

        chat, user = self._t.chat, self._t.user
        columns = [
            f"{chat}.*",
            f"{chat}.id AS chat_id",
            f"{chat}.username AS chat_username",
            f"{chat}.created_at AS chat_created_at",
            f"{chat}.updated_at AS chat_updated_at",
        ]
        source = chat
        if criteria.users:
            columns += [
                f"{user}.id AS user_id",
                f"{user}.is_bot",
                f"{user}.first_name",
                f"{user}.last_name",
                f"{user}.username AS user_username",
                f"{user}.language_code",
            ]
            source = (
                f"{chat} LEFT JOIN {user} "
                f"ON {chat}.bot_id = {user}.bot_id AND {chat}.id = {user}.id"
            )

        where, params = criteria.to_where_clause(self._t)
        limit, limit_params = criteria.to_limit_clause()
        query = f"""
            SELECT {", ".join(columns)}
            FROM {source}
            WHERE {chat}.bot_id = %s AND {where}
            ORDER BY {criteria.to_order_clause(self._t)}
            {limit}
        """
        rows = self._db.fetch_all(query, [self._bot_id, *params, *limit_params])
        logger.debug("chats_selected", count=len(rows))
        return rows

    def get_request_counters(
        self, chat_id: int | str | None = None, inline_message_id: str | None = None
    ) -> dict[str, int] | None:
        """Count recent outbound requests for rate limiting.

        Args:
            chat_id: Target chat of the pending request
            inline_message_id: Target inline message of the pending request

        Returns:
            ``limit_per_sec_all``: distinct chats with a request in the last second;
            ``limit_per_sec``: requests in the last second to this chat (without
            inline message) or to this inline message (without chat);
            ``limit_per_minute``: requests to this chat in the last minute.
            None when not connected.
        """
        if not self._connected("get_request_counters"):
            return None

        now = self._context.now()
        second_ago = format_timestamp(now - timedelta(seconds=1))
        minute_ago = format_timestamp(now - timedelta(minutes=1))
        target_chat = str(chat_id) if chat_id is not None else None
        log = self._t.request_limiter

        row = self._db.fetch_one(
            f"""
            SELECT
                (SELECT COUNT(DISTINCT chat_id) FROM {log}
                 WHERE bot_id = %s AND created_at > %s) AS limit_per_sec_all,
                (SELECT COUNT(*) FROM {log}
                 WHERE bot_id = %s AND created_at > %s
                   AND ((chat_id = %s AND inline_message_id IS NULL)
                        OR (inline_message_id = %s AND chat_id IS NULL))) AS limit_per_sec,
                (SELECT COUNT(*) FROM {log}
                 WHERE bot_id = %s AND created_at >= %s AND chat_id = %s) AS limit_per_minute
            """,
            (
                self._bot_id,
                second_ago,
                self._bot_id,
                second_ago,
                target_chat,
                inline_message_id,
                self._bot_id,
                minute_ago,
                target_chat,
            ),
        )
        row = row or {}
        return {
            key: int(row.get(key) or 0)
            for key in ("limit_per_sec_all", "limit_per_sec", "limit_per_minute")
        }

    def record_request(
        self,
        method: str,
        chat_id: int | str | None = None,
        inline_message_id: str | None = None,
    ) -> bool:
        """Append an outbound API call to the request log."""
        if not self._connected("record_request"):
            return False

        row = {
            "bot_id": self._bot_id,
            "method": method,
            "chat_id": str(chat_id) if chat_id is not None else None,
            "inline_message_id": inline_message_id,
            "created_at": format_timestamp(clock=self._context.clock),
        }
        self._db.execute(
            insert_statement(self._t.request_limiter, row), list(row.values())
        )
        return True

    def select_updates(
        self, limit: int | None = None, update_id: int | None = None
    ) -> list[dict[str, Any]] | None:
        """List stored update ids, newest first, or look up a single one."""
        if not self._connected("select_updates"):
            return None

        query = f"SELECT id FROM {self._t.telegram_update} WHERE bot_id = %s"
        params: list[Any] = [self._bot_id]
        if update_id is not None:
            query += " AND id = %s"
            params.append(update_id)
        query += " ORDER BY id DESC"
        if limit is not None:
            query += " LIMIT %s"
            params.append(limit)
        return self._db.fetch_all(query, params)

    def select_messages(self, limit: int | None = None) -> list[dict[str, Any]] | None:
        """List stored messages, highest message id first."""
        if not self._connected("select_messages"):
            return None

        query = f"SELECT * FROM {self._t.message} WHERE bot_id = %s ORDER BY id DESC"
        params: list[Any] = [self._bot_id]
        if limit is not None:
            query += " LIMIT %s"
            params.append(limit)
        return self._db.fetch_all(query, params)
