"""Insert-or-update operations for every stored Telegram entity.

Each public method guarantees the rows it references exist before writing
its own row (chat, then user, then message). Every statement commits on its
own: a failure part way through a chain leaves earlier writes in place and
surfaces as StorageError.
"""

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from update_store.config.logging_config import get_logger
from update_store.domain.exceptions import StorageError, ValidationError
from update_store.domain.models import (
    CallbackQuery,
    Chat,
    ChatType,
    ChosenInlineResult,
    InlineQuery,
    Message,
    User,
)
from update_store.domain.protocols import DatabaseProtocol
from update_store.domain.storage import TABLE_COLUMNS, StorageContext
from update_store.services.encoding import (
    blob_to_json,
    entities_to_json,
    format_timestamp,
    ids_to_csv,
)

logger = get_logger(__name__)

TimestampLike = int | float | datetime | str | None


def insert_statement(table: str, row: Mapping[str, Any], suffix: str = "") -> str:
    """Build a parameterized INSERT for the columns of ``row``.

    Example:
        >>> insert_statement('"chat"', {"bot_id": 1, "id": 2}, "ON CONFLICT DO NOTHING")
        'INSERT INTO "chat" ("bot_id", "id") VALUES (%s, %s) ON CONFLICT DO NOTHING'
    """
    columns = ", ".join(f'"{column}"' for column in row)
    placeholders = ", ".join("%s" for _ in row)
    statement = f"INSERT INTO {table} ({columns}) VALUES ({placeholders})"
    return f"{statement} {suffix}" if suffix else statement


class UpsertEngine:
    """Per-entity writes scoped to one bot partition."""

    def __init__(self, context: StorageContext) -> None:
        self._context = context
        self._bot_id = context.bot_id
        self._t = context.tables.quoted()

    @property
    def context(self) -> StorageContext:
        return self._context

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

    def _timestamp(self, value: TimestampLike = None) -> str:
        if isinstance(value, str):
            return value
        return format_timestamp(value, clock=self._context.clock)

    # Users and chats

    def upsert_user(
        self,
        user: User,
        observed_at: TimestampLike = None,
        chat: Chat | None = None,
    ) -> bool:
        """Insert a user or refresh its mutable fields.

        ``created_at`` is only written on first insert. When ``chat`` is given
        the user/chat membership is recorded as well (insert-if-absent).

        Args:
            user: Telegram user
            observed_at: When the user was seen (defaults to now)
            chat: Chat the user was seen in

        Returns:
            True on success, False when not connected

        Raises:
            StorageError: On storage errors
        """
        if not self._connected("upsert_user"):
            return False

        date = self._timestamp(observed_at)
        row = {
            "bot_id": self._bot_id,
            "id": user.id,
            "is_bot": user.is_bot,
            "username": user.username,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "language_code": user.language_code,
            "created_at": date,
            "updated_at": date,
        }
        self._db.execute(
            insert_statement(
                self._t.user,
                row,
                """ON CONFLICT (bot_id, id) DO UPDATE SET
                    is_bot = excluded.is_bot,
                    username = excluded.username,
                    first_name = excluded.first_name,
                    last_name = excluded.last_name,
                    language_code = excluded.language_code,
                    updated_at = excluded.updated_at""",
            ),
            list(row.values()),
        )

        if chat is not None:
            self._db.execute(
                f"""
                INSERT INTO {self._t.user_chat} (bot_id, user_id, chat_id)
                VALUES (%s, %s, %s)
                ON CONFLICT DO NOTHING
                """,
                (self._bot_id, user.id, chat.id),
            )

        logger.debug("user_upserted", user_id=user.id, chat_id=chat.id if chat else None)
        return True

    def upsert_chat(
        self,
        chat: Chat,
        observed_at: TimestampLike = None,
        migrate_to_chat_id: int | None = None,
    ) -> bool:
        """Insert a chat or refresh its mutable fields.

        With ``migrate_to_chat_id`` the row is written under the new id as a
        supergroup that remembers the original id in ``old_id``; the original
        row is not touched.

        Args:
            chat: Telegram chat
            observed_at: When the chat was seen (defaults to now)
            migrate_to_chat_id: Supergroup id the group migrated to

        Returns:
            True on success, False when not connected

        Raises:
            StorageError: On storage errors
        """
        if not self._connected("upsert_chat"):
            return False

        chat_id, chat_type, old_id = chat.id, chat.type.value, None
        if migrate_to_chat_id is not None:
            chat_id = migrate_to_chat_id
            chat_type = ChatType.SUPERGROUP.value
            old_id = chat.id

        date = self._timestamp(observed_at)
        row = self._chat_row(chat, date)
        row.update({"id": chat_id, "type": chat_type, "old_id": old_id})
        self._db.execute(
            insert_statement(
                self._t.chat,
                row,
                f"""ON CONFLICT (bot_id, id) DO UPDATE SET
                    type = excluded.type,
                    title = excluded.title,
                    username = excluded.username,
                    all_members_are_administrators = excluded.all_members_are_administrators,
                    updated_at = excluded.updated_at,
                    old_id = COALESCE(excluded.old_id, {self._t.chat}.old_id)""",
            ),
            list(row.values()),
        )

        logger.debug("chat_upserted", chat_id=chat_id, old_id=old_id, type=chat_type)
        return True

    def ensure_chat(self, chat: Chat, observed_at: TimestampLike = None) -> bool:
        """Insert a chat only if it is not stored yet; never modifies an existing row."""
        if not self._connected("ensure_chat"):
            return False

        row = self._chat_row(chat, self._timestamp(observed_at))
        self._db.execute(
            insert_statement(self._t.chat, row, "ON CONFLICT DO NOTHING"),
            list(row.values()),
        )
        return True

    def _chat_row(self, chat: Chat, date: str) -> dict[str, Any]:
        return {
            "bot_id": self._bot_id,
            "id": chat.id,
            "type": chat.type.value,
            "title": chat.title,
            "username": chat.username,
            "all_members_are_administrators": chat.all_members_are_administrators,
            "created_at": date,
            "updated_at": date,
            "old_id": None,
        }

    # Messages

    def insert_message(self, message: Message) -> bool:
        """Store a message once; later deliveries of the same message are no-ops.

        Chat, sender, forwarded origin, joined/left members and the replied-to
        message are written first so every reference is satisfiable.

        Returns:
            True on success, False when not connected

        Raises:
            StorageError: On storage errors
        """
        return self._insert_message(message, expand_reply=True)

    def _insert_message(self, message: Message, *, expand_reply: bool) -> bool:
        if not self._connected("insert_message"):
            return False

        date = self._timestamp(message.date)
        chat = message.chat

        if message.migrate_to_chat_id is not None:
            # the message itself still belongs to the old group
            self.ensure_chat(chat, date)
        self.upsert_chat(chat, date, message.migrate_to_chat_id)

        user = message.from_user
        if user is not None:
            self.upsert_user(user, date, chat)

        if message.forward_from is not None:
            self.upsert_user(message.forward_from, date)
        if message.forward_from_chat is not None:
            self.upsert_chat(message.forward_from_chat, date)
        forward_date = (
            self._timestamp(message.forward_date) if message.forward_date else None
        )

        new_member_ids: list[int] = []
        for member in message.new_chat_members or []:
            self.upsert_user(member, date, chat)
            new_member_ids.append(member.id)
        if message.left_chat_member is not None:
            self.upsert_user(message.left_chat_member, date, chat)

        reply_to_chat: int | None = None
        reply_to_message: int | None = None
        reply = message.reply_to_message
        if expand_reply and reply is not None:
            # replies are only followed one level deep
            self._insert_message(reply, expand_reply=False)
            reply_to_chat = reply.chat.id
            reply_to_message = reply.message_id

        row = {
            "bot_id": self._bot_id,
            "id": message.message_id,
            "user_id": user.id if user is not None else None,
            "chat_id": chat.id,
            "date": date,
            "forward_from": message.forward_from.id if message.forward_from else None,
            "forward_from_chat": (
                message.forward_from_chat.id if message.forward_from_chat else None
            ),
            "forward_from_message_id": message.forward_from_message_id,
            "forward_date": forward_date,
            "reply_to_chat": reply_to_chat,
            "reply_to_message": reply_to_message,
            "media_group_id": message.media_group_id,
            "text": message.text,
            "entities": entities_to_json(message.entities),
            "audio": blob_to_json(message.audio),
            "document": blob_to_json(message.document),
            "photo": entities_to_json(message.photo),
            "sticker": blob_to_json(message.sticker),
            "video": blob_to_json(message.video),
            "voice": blob_to_json(message.voice),
            "video_note": blob_to_json(message.video_note),
            "caption": message.caption,
            "contact": blob_to_json(message.contact),
            "location": blob_to_json(message.location),
            "venue": blob_to_json(message.venue),
            "new_chat_members": ids_to_csv(new_member_ids),
            "left_chat_member": (
                message.left_chat_member.id if message.left_chat_member else None
            ),
            "new_chat_title": message.new_chat_title,
            "new_chat_photo": entities_to_json(message.new_chat_photo),
            "delete_chat_photo": message.delete_chat_photo,
            "group_chat_created": message.group_chat_created,
            "supergroup_chat_created": message.supergroup_chat_created,
            "channel_chat_created": message.channel_chat_created,
            "migrate_to_chat_id": message.migrate_to_chat_id,
            "migrate_from_chat_id": message.migrate_from_chat_id,
            "pinned_message": blob_to_json(message.pinned_message),
            "connected_website": message.connected_website,
        }
        inserted = self._db.execute(
            insert_statement(
                self._t.message, row, "ON CONFLICT (bot_id, chat_id, id) DO NOTHING"
            ),
            list(row.values()),
        )

        logger.debug(
            "message_stored",
            chat_id=chat.id,
            message_id=message.message_id,
            duplicate=inserted == 0,
        )
        return True

    def append_edited_message(
        self, message: Message, edited_at: TimestampLike = None
    ) -> int | None:
        """Record one edit of a message (one row per edit event).

        Args:
            message: The edited message as delivered by Telegram
            edited_at: Edit time; defaults to the message's ``edit_date`` or now

        Returns:
            Local id of the new edit row, or None when not connected

        Raises:
            StorageError: On storage errors
        """
        if not self._connected("append_edited_message"):
            return None

        edit_date = self._timestamp(
            edited_at if edited_at is not None else message.edit_date
        )
        chat = message.chat
        self.upsert_chat(chat, edit_date)

        user = message.from_user
        if user is not None:
            self.upsert_user(user, edit_date, chat)

        row = {
            "bot_id": self._bot_id,
            "chat_id": chat.id,
            "message_id": message.message_id,
            "user_id": user.id if user is not None else None,
            "edit_date": edit_date,
            "text": message.text,
            "entities": entities_to_json(message.entities),
            "caption": message.caption,
        }
        local_id = self._db.insert_returning_id(
            insert_statement(self._t.edited_message, row), list(row.values())
        )
        logger.debug(
            "edited_message_appended",
            chat_id=chat.id,
            message_id=message.message_id,
            local_id=local_id,
        )
        return local_id

    def message_exists(self, chat_id: int, message_id: int) -> bool:
        """Check whether a message is already stored."""
        if not self._connected("message_exists"):
            return False

        row = self._db.fetch_one(
            f"""
            SELECT 1 AS found FROM {self._t.message}
            WHERE bot_id = %s AND chat_id = %s AND id = %s
            LIMIT 1
            """,
            (self._bot_id, chat_id, message_id),
        )
        return row is not None

    # Inline mode and callbacks

    def insert_inline_query(self, inline_query: InlineQuery) -> bool:
        """Store an inline query once, after its sender."""
        if not self._connected("insert_inline_query"):
            return False

        date = self._timestamp()
        user = inline_query.from_user
        if user is not None:
            self.upsert_user(user, date)

        row = {
            "bot_id": self._bot_id,
            "id": inline_query.id,
            "user_id": user.id if user is not None else None,
            "location": blob_to_json(inline_query.location),
            "query": inline_query.query,
            "offset": inline_query.offset,
            "created_at": date,
        }
        self._db.execute(
            insert_statement(
                self._t.inline_query, row, "ON CONFLICT (bot_id, id) DO NOTHING"
            ),
            list(row.values()),
        )
        return True

    def insert_chosen_inline_result(self, result: ChosenInlineResult) -> int | None:
        """Append a chosen inline result.

        Returns:
            Local id of the new row, or None when not connected
        """
        if not self._connected("insert_chosen_inline_result"):
            return None

        date = self._timestamp()
        user = result.from_user
        if user is not None:
            self.upsert_user(user, date)

        row = {
            "bot_id": self._bot_id,
            "result_id": result.result_id,
            "user_id": user.id if user is not None else None,
            "location": blob_to_json(result.location),
            "inline_message_id": result.inline_message_id,
            "query": result.query,
            "created_at": date,
        }
        return self._db.insert_returning_id(
            insert_statement(self._t.chosen_inline_result, row), list(row.values())
        )

    def insert_callback_query(self, callback_query: CallbackQuery) -> bool:
        """Store a callback query and the message its button belongs to.

        If that message is already stored the callback counts as an edit of
        it, otherwise the message is inserted. The lookup and the write are
        separate statements; two concurrent callbacks for the same message may
        both append an edit row.
        """
        if not self._connected("insert_callback_query"):
            return False

        date = self._timestamp()
        user = callback_query.from_user
        if user is not None:
            self.upsert_user(user, date)

        chat_id: int | None = None
        message_id: int | None = None
        message = callback_query.message
        if message is not None:
            chat_id = message.chat.id
            message_id = message.message_id
            if self.message_exists(chat_id, message_id):
                self.append_edited_message(message)
            else:
                self.insert_message(message)

        row = {
            "bot_id": self._bot_id,
            "id": callback_query.id,
            "user_id": user.id if user is not None else None,
            "chat_id": chat_id,
            "message_id": message_id,
            "inline_message_id": callback_query.inline_message_id,
            "data": callback_query.data,
            "created_at": date,
        }
        self._db.execute(
            insert_statement(
                self._t.callback_query, row, "ON CONFLICT (bot_id, id) DO NOTHING"
            ),
            list(row.values()),
        )
        return True

    # Updates

    def insert_update(
        self,
        update_id: int,
        chat_id: int | None = None,
        message_id: int | None = None,
        inline_query_id: str | None = None,
        chosen_inline_result_id: int | None = None,
        callback_query_id: str | None = None,
        edited_message_id: int | None = None,
    ) -> bool:
        """Record a processed update; replays of the same id are ignored.

        Raises:
            ValidationError: If no sub-entity reference is given
            StorageError: On storage errors
        """
        references = (
            message_id,
            inline_query_id,
            chosen_inline_result_id,
            callback_query_id,
            edited_message_id,
        )
        if all(reference is None for reference in references):
            raise ValidationError(
                f"Update {update_id} references no message, edited message, "
                "inline query, chosen inline result or callback query"
            )

        if not self._connected("insert_update"):
            return False

        row = {
            "bot_id": self._bot_id,
            "id": update_id,
            "chat_id": chat_id,
            "message_id": message_id,
            "inline_query_id": inline_query_id,
            "chosen_inline_result_id": chosen_inline_result_id,
            "callback_query_id": callback_query_id,
            "edited_message_id": edited_message_id,
        }
        inserted = self._db.execute(
            insert_statement(
                self._t.telegram_update, row, "ON CONFLICT (bot_id, id) DO NOTHING"
            ),
            list(row.values()),
        )
        if inserted == 0:
            logger.info("update_replay_ignored", update_id=update_id)
        return True

    # Bulk maintenance

    def update_rows(
        self,
        table: str,
        fields: Mapping[str, Any],
        where: Mapping[str, Any] | None = None,
    ) -> bool:
        """Update rows of one table within this bot's partition.

        Column names are checked against the provisioned schema; values are
        always bound as parameters. ``bot_id`` is always part of the filter
        and cannot be rewritten.

        Example:
            >>> engine.update_rows("chat", {"title": "Renamed"}, {"id": -10})

        Args:
            table: Base table name (without prefix), e.g. ``"chat"``
            fields: Column values to set
            where: Additional equality filters

        Returns:
            False when there is nothing to set or storage is not connected

        Raises:
            ValidationError: On an unknown table or column, or an attempt to
                set ``bot_id``
            StorageError: On storage errors
        """
        where = where or {}
        columns = TABLE_COLUMNS.get(table)
        if columns is None:
            raise ValidationError(f"Unknown table: {table}")
        unknown = sorted((set(fields) | set(where)) - columns)
        if unknown:
            raise ValidationError(
                f"Unknown columns for table {table}: {', '.join(unknown)}"
            )
        if "bot_id" in fields:
            raise ValidationError("bot_id cannot be updated")

        if not fields or not self._connected("update_rows"):
            return False

        assignments = ", ".join(f'"{column}" = %s' for column in fields)
        conditions = ["bot_id = %s"]
        conditions.extend(f'"{column}" = %s' for column in where)
        statement = (
            f"UPDATE {getattr(self._t, table)} SET {assignments} "
            f"WHERE {' AND '.join(conditions)}"
        )
        params = [*fields.values(), self._bot_id, *where.values()]
        updated = self._db.execute(statement, params)
        logger.info("rows_updated", table=table, row_count=updated)
        return True
