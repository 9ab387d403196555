"""Normalize update use case.

Routes each incoming update to the upsert engine according to its kind and
records the update itself once its payload has been stored.
"""

from collections.abc import Callable, Mapping
from dataclasses import asdict, dataclass
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from update_store.adapters.upsert_engine import UpsertEngine
from update_store.config.logging_config import bind_context, get_logger, unbind_context
from update_store.domain.exceptions import ConfigurationError, ValidationError
from update_store.domain.models import (
    CallbackQuery,
    ChosenInlineResult,
    InlineQuery,
    Message,
    Update,
    UpdateKind,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class UpdateReference:
    """Sub-entity identifiers stored on the update row."""

    chat_id: int | None = None
    message_id: int | None = None
    inline_query_id: str | None = None
    chosen_inline_result_id: int | None = None
    callback_query_id: str | None = None
    edited_message_id: int | None = None


PayloadHandler = Callable[[Any], UpdateReference | None]


class UpdateNormalizer:
    """Persist updates in dependency order: payload entities first, then the update."""

    def __init__(self, engine: UpsertEngine) -> None:
        self._engine = engine
        self._handlers: dict[UpdateKind, PayloadHandler] = {
            UpdateKind.MESSAGE: self._store_message,
            UpdateKind.CHANNEL_POST: self._store_message,
            UpdateKind.EDITED_MESSAGE: self._store_edited_message,
            UpdateKind.EDITED_CHANNEL_POST: self._store_edited_message,
            UpdateKind.INLINE_QUERY: self._store_inline_query,
            UpdateKind.CHOSEN_INLINE_RESULT: self._store_chosen_inline_result,
            UpdateKind.CALLBACK_QUERY: self._store_callback_query,
        }
        missing = set(UpdateKind) - set(self._handlers)
        if missing:
            names = ", ".join(sorted(kind.value for kind in missing))
            raise ConfigurationError(f"No handler for update kinds: {names}")

    def process(self, update: Update) -> bool:
        """Store one update and everything it references.

        Args:
            update: Parsed update

        Returns:
            True if the payload and the update row were stored, False when the
            payload step produced nothing (e.g. storage not connected)

        Raises:
            ValidationError: If the update carries no payload or several
            StorageError: On storage errors
        """
        kind = update.kind
        bind_context(update_id=update.update_id, update_kind=kind.value)
        try:
            reference = self._handlers[kind](update.payload)
            if reference is None:
                logger.warning("update_skipped", reason="payload_not_stored")
                return False

            stored = self._engine.insert_update(update.update_id, **asdict(reference))
            if stored:
                logger.info("update_persisted")
            return stored
        finally:
            unbind_context("update_id", "update_kind")

    def process_raw(self, payload: Mapping[str, Any]) -> bool:
        """Parse Bot API JSON into an Update and store it.

        Raises:
            ValidationError: If the payload does not describe a valid update
            StorageError: On storage errors
        """
        try:
            update = Update.model_validate(payload)
        except PydanticValidationError as exc:
            raise ValidationError(f"Malformed update payload: {exc}") from exc
        return self.process(update)

    def _store_message(self, message: Message) -> UpdateReference | None:
        if not self._engine.insert_message(message):
            return None
        return UpdateReference(chat_id=message.chat.id, message_id=message.message_id)

    def _store_edited_message(self, message: Message) -> UpdateReference | None:
        local_id = self._engine.append_edited_message(message)
        if local_id is None:
            return None
        return UpdateReference(chat_id=message.chat.id, edited_message_id=local_id)

    def _store_inline_query(self, inline_query: InlineQuery) -> UpdateReference | None:
        if not self._engine.insert_inline_query(inline_query):
            return None
        return UpdateReference(inline_query_id=inline_query.id)

    def _store_chosen_inline_result(
        self, result: ChosenInlineResult
    ) -> UpdateReference | None:
        local_id = self._engine.insert_chosen_inline_result(result)
        if local_id is None:
            return None
        return UpdateReference(chosen_inline_result_id=local_id)

    def _store_callback_query(
        self, callback_query: CallbackQuery
    ) -> UpdateReference | None:
        if not self._engine.insert_callback_query(callback_query):
            return None
        return UpdateReference(callback_query_id=callback_query.id)
