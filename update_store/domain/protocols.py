"""Protocol definitions for dependency inversion.

These abstract interfaces define contracts that adapters must implement.
"""

from collections.abc import Sequence
from typing import Any, Literal, Protocol

Dialect = Literal["sqlite", "postgres"]


class DatabaseProtocol(Protocol):
    """Parameterized query executor over a relational store.

    SQL passed to every method uses ``%s`` positional placeholders. Each call
    runs in its own transaction and is committed before returning.
    """

    dialect: Dialect

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Execute a write statement.

        Returns:
            Number of affected rows

        Raises:
            StorageError: On any driver error
        """
        ...

    def insert_returning_id(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Execute an INSERT into a table with an auto id column.

        Returns:
            Generated ``id`` of the inserted row

        Raises:
            StorageError: On any driver error
        """
        ...

    def fetch_one(
        self, sql: str, params: Sequence[Any] = ()
    ) -> dict[str, Any] | None:
        """Execute a query and return the first row as a mapping, if any."""
        ...

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """Execute a query and return all rows as mappings."""
        ...

    def close(self) -> None:
        """Release held connections."""
        ...
