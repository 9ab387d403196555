from __future__ import annotations

from update_store.config.settings import Settings
from update_store.domain.exceptions import StorageError


def test_init_database_creates_prefixed_tables(mocker, settings: Settings) -> None:
    module = __import__("scripts.init_database", fromlist=["main"])
    mocker.patch.object(module, "get_settings", return_value=settings)
    setup_logging = mocker.patch.object(module, "setup_logging")

    assert module.main(["--table-prefix", "cli_"]) == 0

    setup_logging.assert_called_once_with(
        log_level=settings.log_level, json_logs=False, bot_id=settings.bot_id
    )
    database = module.create_storage_context(
        settings.model_copy(update={"create_schema": False})
    ).database
    names = {
        row["name"]
        for row in database.fetch_all(
            "SELECT name FROM sqlite_master WHERE type = 'table'"
        )
    }
    assert "cli_telegram_update" in names


def test_init_database_reports_failure(mocker, settings: Settings) -> None:
    module = __import__("scripts.init_database", fromlist=["main"])
    mocker.patch.object(module, "get_settings", return_value=settings)
    mocker.patch.object(module, "setup_logging")
    mocker.patch.object(
        module, "create_storage_context", side_effect=StorageError("unreachable")
    )

    assert module.main(["--json-logs"]) == 1
