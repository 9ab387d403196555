"""Provision the update store tables for the configured bot."""

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from update_store.adapters.repository_factory import create_storage_context
from update_store.config.logging_config import get_logger, setup_logging
from update_store.config.settings import get_settings
from update_store.domain.exceptions import UpdateStoreError

logger = get_logger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create missing update store tables")
    parser.add_argument(
        "--table-prefix",
        default=None,
        help="Override the configured table prefix",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit logs in JSON format",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    settings = get_settings()
    setup_logging(
        log_level=settings.log_level,
        json_logs=args.json_logs or settings.log_json,
        bot_id=settings.bot_id,
    )

    update: dict[str, object] = {"create_schema": True}
    if args.table_prefix is not None:
        update["table_prefix"] = args.table_prefix
    settings = settings.model_copy(update=update)

    try:
        context = create_storage_context(settings)
    except UpdateStoreError as exc:
        logger.error("database_init_failed", error=str(exc))
        return 1

    if context.database is not None:
        context.database.close()
    logger.info(
        "database_initialized",
        database_type=settings.database_type,
        bot_id=settings.bot_id,
        table_prefix=settings.table_prefix,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
