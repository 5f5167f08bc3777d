"""Abstract relational query backend used by the catalog."""

from abc import ABC, abstractmethod
from typing import Any

from hobbly.models.query import Predicate, Query, QueryResult


class CatalogBackend(ABC):
    """
    Predicate list in, rows plus count out.

    Implementations raise BackendUnavailableError for timeouts and transport
    failures, and BackendError when the store rejects a request.
    """

    @abstractmethod
    async def select(self, table: str, query: Query) -> QueryResult:
        """Read rows matching the query."""

    @abstractmethod
    async def insert(self, table: str, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Insert rows, returning them as stored."""

    @abstractmethod
    async def update(
        self,
        table: str,
        values: dict[str, Any],
        predicates: list[Predicate],
    ) -> list[dict[str, Any]]:
        """Update matching rows, returning the updated rows."""

    @abstractmethod
    async def delete(self, table: str, predicates: list[Predicate]) -> list[dict[str, Any]]:
        """Delete matching rows, returning the deleted rows."""
