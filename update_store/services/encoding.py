"""Timestamp formatting and JSON encoding for stored columns.

Timestamps are stored as ``YYYY-MM-DD HH:MM:SS`` strings in UTC so that
lexicographic and chronological order agree on every backend.
"""

import json
from collections.abc import Callable
from datetime import datetime
from typing import Any, Final

import pytz
from pydantic import BaseModel

from update_store.domain.storage import utc_now

TIMESTAMP_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"


def format_timestamp(
    value: int | float | datetime | None = None,
    *,
    clock: Callable[[], datetime] = utc_now,
) -> str:
    """Format a unix time or datetime as a storage timestamp.

    Args:
        value: Unix time, datetime, or None/0 for "now"
        clock: Source of the current time

    Returns:
        UTC timestamp string

    Example:
        >>> format_timestamp(0.5e9)
        '1985-11-05 00:53:20'
    """
    if isinstance(value, datetime):
        moment = value if value.tzinfo else pytz.UTC.localize(value)
    elif value:
        moment = datetime.fromtimestamp(value, tz=pytz.UTC)
    else:
        moment = clock()
    return moment.astimezone(pytz.UTC).strftime(TIMESTAMP_FORMAT)


def _to_plain(item: Any) -> Any:
    if isinstance(item, BaseModel):
        return item.model_dump(mode="json", by_alias=True, exclude_none=True)
    return item


def entities_to_json(items: Any, default: str | None = None) -> str | None:
    """Encode a list of entities (or plain dicts) as a JSON array.

    Args:
        items: List of models or dictionaries
        default: Value returned when ``items`` is not a list

    Returns:
        JSON array text, or ``default``

    Example:
        >>> entities_to_json([{"type": "bold", "offset": 0, "length": 4}])
        '[{"type": "bold", "offset": 0, "length": 4}]'
        >>> entities_to_json(None, default="[]")
        '[]'
    """
    if not isinstance(items, (list, tuple)):
        return default
    return json.dumps([_to_plain(item) for item in items], ensure_ascii=False)


def blob_to_json(value: Any) -> str | None:
    """Encode an opaque nested object (location, venue, audio, ...) as JSON text."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return json.dumps(_to_plain(value), ensure_ascii=False)


def ids_to_csv(values: list[int] | None) -> str | None:
    """Join identifiers into the comma-separated form used for member lists."""
    if not values:
        return None
    return ",".join(str(value) for value in values)
