"""Table provisioning for the SQLite and PostgreSQL backends.

Every key is prefixed by ``bot_id`` so that uniqueness and foreign keys hold
within one bot's partition. Auto ids (edited messages, chosen inline
results, request log) are global.
"""

from typing import Final

from update_store.config.logging_config import get_logger
from update_store.domain.protocols import DatabaseProtocol, Dialect
from update_store.domain.storage import TableNames

logger = get_logger(__name__)

_TYPES: Final[dict[Dialect, dict[str, str]]] = {
    "sqlite": {
        "big": "INTEGER",
        "auto_id": "INTEGER PRIMARY KEY AUTOINCREMENT",
        "bool": "INTEGER",
        "false": "0",
        "ts": "TEXT",
    },
    "postgres": {
        "big": "BIGINT",
        "auto_id": "BIGSERIAL PRIMARY KEY",
        "bool": "BOOLEAN",
        "false": "FALSE",
        "ts": "TIMESTAMP",
    },
}


def schema_statements(dialect: Dialect, tables: TableNames) -> list[str]:
    """Build CREATE TABLE / CREATE INDEX statements for a dialect.

    Args:
        dialect: Target backend
        tables: Unquoted table names (prefix already applied)

    Returns:
        Statements in dependency order
    """
    ty = _TYPES[dialect]
    big, auto_id, boolean, false, ts = (
        ty["big"],
        ty["auto_id"],
        ty["bool"],
        ty["false"],
        ty["ts"],
    )
    t = tables.quoted()

    return [
        f"""
        CREATE TABLE IF NOT EXISTS {t.user} (
            bot_id {big} NOT NULL,
            id {big} NOT NULL,
            is_bot {boolean} DEFAULT {false},
            first_name TEXT NOT NULL DEFAULT '',
            last_name TEXT,
            username TEXT,
            language_code TEXT,
            created_at {ts},
            updated_at {ts},
            PRIMARY KEY (bot_id, id)
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS {t.chat} (
            bot_id {big} NOT NULL,
            id {big} NOT NULL,
            type TEXT NOT NULL CHECK (type IN ('private', 'group', 'supergroup', 'channel')),
            title TEXT DEFAULT '',
            username TEXT,
            all_members_are_administrators {boolean} DEFAULT {false},
            created_at {ts},
            updated_at {ts},
            old_id {big},
            PRIMARY KEY (bot_id, id)
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS {t.user_chat} (
            bot_id {big} NOT NULL,
            user_id {big} NOT NULL,
            chat_id {big} NOT NULL,
            PRIMARY KEY (bot_id, user_id, chat_id),
            FOREIGN KEY (bot_id, user_id) REFERENCES {t.user} (bot_id, id),
            FOREIGN KEY (bot_id, chat_id) REFERENCES {t.chat} (bot_id, id)
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS {t.inline_query} (
            bot_id {big} NOT NULL,
            id TEXT NOT NULL,
            user_id {big},
            location TEXT,
            query TEXT NOT NULL,
            "offset" TEXT,
            created_at {ts},
            PRIMARY KEY (bot_id, id),
            FOREIGN KEY (bot_id, user_id) REFERENCES {t.user} (bot_id, id)
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS {t.chosen_inline_result} (
            id {auto_id},
            bot_id {big} NOT NULL,
            result_id TEXT NOT NULL DEFAULT '',
            user_id {big},
            location TEXT,
            inline_message_id TEXT,
            query TEXT NOT NULL,
            created_at {ts},
            FOREIGN KEY (bot_id, user_id) REFERENCES {t.user} (bot_id, id)
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS {t.message} (
            bot_id {big} NOT NULL,
            chat_id {big} NOT NULL,
            id {big} NOT NULL,
            user_id {big},
            date {ts},
            forward_from {big},
            forward_from_chat {big},
            forward_from_message_id {big},
            forward_date {ts},
            reply_to_chat {big},
            reply_to_message {big},
            media_group_id TEXT,
            text TEXT,
            entities TEXT,
            audio TEXT,
            document TEXT,
            photo TEXT,
            sticker TEXT,
            video TEXT,
            voice TEXT,
            video_note TEXT,
            caption TEXT,
            contact TEXT,
            location TEXT,
            venue TEXT,
            new_chat_members TEXT,
            left_chat_member {big},
            new_chat_title TEXT,
            new_chat_photo TEXT,
            delete_chat_photo {boolean} DEFAULT {false},
            group_chat_created {boolean} DEFAULT {false},
            supergroup_chat_created {boolean} DEFAULT {false},
            channel_chat_created {boolean} DEFAULT {false},
            migrate_to_chat_id {big},
            migrate_from_chat_id {big},
            pinned_message TEXT,
            connected_website TEXT,
            PRIMARY KEY (bot_id, chat_id, id),
            FOREIGN KEY (bot_id, user_id) REFERENCES {t.user} (bot_id, id),
            FOREIGN KEY (bot_id, chat_id) REFERENCES {t.chat} (bot_id, id),
            FOREIGN KEY (bot_id, forward_from) REFERENCES {t.user} (bot_id, id),
            FOREIGN KEY (bot_id, forward_from_chat) REFERENCES {t.chat} (bot_id, id),
            FOREIGN KEY (bot_id, reply_to_chat, reply_to_message)
                REFERENCES {t.message} (bot_id, chat_id, id),
            FOREIGN KEY (bot_id, left_chat_member) REFERENCES {t.user} (bot_id, id)
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS {t.callback_query} (
            bot_id {big} NOT NULL,
            id TEXT NOT NULL,
            user_id {big},
            chat_id {big},
            message_id {big},
            inline_message_id TEXT,
            data TEXT NOT NULL DEFAULT '',
            created_at {ts},
            PRIMARY KEY (bot_id, id),
            FOREIGN KEY (bot_id, user_id) REFERENCES {t.user} (bot_id, id),
            FOREIGN KEY (bot_id, chat_id, message_id)
                REFERENCES {t.message} (bot_id, chat_id, id)
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS {t.edited_message} (
            id {auto_id},
            bot_id {big} NOT NULL,
            chat_id {big} NOT NULL,
            message_id {big} NOT NULL,
            user_id {big},
            edit_date {ts},
            text TEXT,
            entities TEXT,
            caption TEXT,
            FOREIGN KEY (bot_id, chat_id) REFERENCES {t.chat} (bot_id, id),
            FOREIGN KEY (bot_id, user_id) REFERENCES {t.user} (bot_id, id)
        )
        """,
        f"""
        CREATE INDEX IF NOT EXISTS "ix_{tables.edited_message}_message"
            ON {t.edited_message} (bot_id, chat_id, message_id)
        """,
        f"""
        CREATE TABLE IF NOT EXISTS {t.telegram_update} (
            bot_id {big} NOT NULL,
            id {big} NOT NULL,
            chat_id {big},
            message_id {big},
            inline_query_id TEXT,
            chosen_inline_result_id {big},
            callback_query_id TEXT,
            edited_message_id {big},
            PRIMARY KEY (bot_id, id),
            FOREIGN KEY (bot_id, chat_id, message_id)
                REFERENCES {t.message} (bot_id, chat_id, id),
            FOREIGN KEY (bot_id, inline_query_id) REFERENCES {t.inline_query} (bot_id, id),
            FOREIGN KEY (chosen_inline_result_id) REFERENCES {t.chosen_inline_result} (id),
            FOREIGN KEY (bot_id, callback_query_id) REFERENCES {t.callback_query} (bot_id, id),
            FOREIGN KEY (edited_message_id) REFERENCES {t.edited_message} (id)
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS {t.request_limiter} (
            id {auto_id},
            bot_id {big} NOT NULL,
            chat_id TEXT,
            inline_message_id TEXT,
            method TEXT,
            created_at {ts}
        )
        """,
        f"""
        CREATE INDEX IF NOT EXISTS "ix_{tables.request_limiter}_created"
            ON {t.request_limiter} (bot_id, created_at)
        """,
    ]


def create_tables(database: DatabaseProtocol, tables: TableNames) -> None:
    """Create all tables for the given names if they do not exist.

    Raises:
        StorageError: On any DDL failure
    """
    statements = schema_statements(database.dialect, tables)
    for statement in statements:
        database.execute(statement)
    logger.info(
        "schema_ensured",
        dialect=database.dialect,
        table_count=len(tables.__dataclass_fields__),
    )
