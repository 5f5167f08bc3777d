"""Supabase client wrapper and the PostgREST-backed catalog backend."""

import asyncio
from typing import Any, Awaitable, Optional

import httpx
from supabase import AsyncClient, acreate_client
from supabase.lib.client_options import AsyncClientOptions

from hobbly.models.query import Operator, Predicate, Query, QueryResult
from hobbly.services.backend import CatalogBackend
from hobbly.utils.catalog_config import CatalogConfig
from hobbly.utils.errors import BackendError, BackendUnavailableError
from hobbly.utils.logging import get_structured_logger, log_timing

logger = get_structured_logger(__name__)

# Global client instance (singleton pattern)
_client: Optional[AsyncClient] = None


async def get_supabase_client() -> AsyncClient:
    """Get or create the async Supabase client singleton."""
    global _client

    if _client is None:
        url = CatalogConfig.SUPABASE_URL
        key = CatalogConfig.SUPABASE_KEY

        if not url or not key:
            raise BackendError("SUPABASE_URL and SUPABASE_KEY must be set")

        options = AsyncClientOptions(
            auto_refresh_token=False,
            persist_session=False,
            postgrest_client_timeout=CatalogConfig.REQUEST_TIMEOUT_SECONDS,
            storage_client_timeout=int(CatalogConfig.REQUEST_TIMEOUT_SECONDS),
        )

        _client = await acreate_client(url, key, options=options)
        logger.info("Supabase client initialized", url=url)

    return _client


class SupabaseClient:
    """Async context manager for the Supabase client."""

    def __init__(self, client: Optional[AsyncClient] = None):
        self.client: Optional[AsyncClient] = client

    async def __aenter__(self) -> AsyncClient:
        if self.client is None:
            self.client = await get_supabase_client()
        return self.client

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            logger.error(
                "Supabase operation error",
                error=str(exc_val),
                type=exc_type.__name__
            )
        return False


async def execute(request: Awaitable[Any], operation: str, timeout: Optional[float] = None) -> Any:
    """
    Await one round trip to Supabase, bounded by a timeout.

    Timeouts and transport failures become BackendUnavailableError (retriable),
    anything else Supabase raises becomes BackendError. Cancelling the caller
    cancels the request.
    """
    timeout = timeout or CatalogConfig.REQUEST_TIMEOUT_SECONDS
    try:
        with log_timing(operation, logger=logger):
            return await asyncio.wait_for(request, timeout)
    except asyncio.TimeoutError as e:
        raise BackendUnavailableError(f"{operation} timed out after {timeout}s") from e
    except httpx.HTTPError as e:
        raise BackendUnavailableError(f"{operation} failed: {e}") from e
    except Exception as e:
        raise BackendError(f"{operation} failed: {e}") from e


def _literal(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def _escape_like(text: Any) -> str:
    """Escape LIKE wildcards so user text matches literally."""
    return str(text).replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _quote(value: Any) -> str:
    """Quote a value inside a PostgREST logic tree (commas, parentheses, dots)."""
    text = str(_literal(value)).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{text}"'


def or_filter(predicates: tuple[Predicate, ...]) -> str:
    """Render an OR-group in PostgREST's `or=(...)` syntax (without parentheses)."""
    parts = []
    for predicate in predicates:
        if predicate.op == Operator.ILIKE:
            # `*` is the wildcard inside a logic tree
            pattern = _escape_like(predicate.value).replace("*", "\\*")
            parts.append(f"{predicate.field}.ilike.{_quote(f'*{pattern}*')}")
        elif predicate.op == Operator.IN:
            values = ",".join(_quote(v) for v in predicate.value)
            parts.append(f"{predicate.field}.in.({values})")
        elif predicate.op == Operator.OR:
            parts.append(f"or({or_filter(predicate.value)})")
        else:
            parts.append(f"{predicate.field}.{predicate.op.value}.{_quote(predicate.value)}")
    return ",".join(parts)


def apply_predicates(builder: Any, predicates: list[Predicate]) -> Any:
    """Lower predicates onto a postgrest-py filter builder."""
    for predicate in predicates:
        if predicate.op == Operator.EQ:
            if predicate.value is None:
                builder = builder.is_(predicate.field, "null")
            else:
                builder = builder.eq(predicate.field, _literal(predicate.value))
        elif predicate.op == Operator.ILIKE:
            builder = builder.ilike(predicate.field, f"%{_escape_like(predicate.value)}%")
        elif predicate.op == Operator.GTE:
            builder = builder.gte(predicate.field, predicate.value)
        elif predicate.op == Operator.LTE:
            builder = builder.lte(predicate.field, predicate.value)
        elif predicate.op == Operator.IN:
            builder = builder.in_(predicate.field, list(predicate.value))
        elif predicate.op == Operator.OR:
            builder = builder.or_(or_filter(predicate.value))
        else:
            raise BackendError(f"Unsupported operator: {predicate.op}")
    return builder


class SupabaseBackend(CatalogBackend):
    """CatalogBackend over Supabase's auto-generated REST interface."""

    def __init__(self, client: Optional[AsyncClient] = None, timeout: Optional[float] = None):
        self._client = client
        self.timeout = timeout

    async def select(self, table: str, query: Query) -> QueryResult:
        async with SupabaseClient(self._client) as client:
            builder = client.table(table).select(query.columns, count="exact" if query.count else None)
            builder = apply_predicates(builder, query.predicates)
            if query.order is not None:
                builder = builder.order(query.order.field, desc=not query.order.ascending)
            if query.limit is not None:
                offset = query.offset or 0
                builder = builder.range(offset, offset + query.limit - 1)

            result = await execute(builder.execute(), f"select {table}", self.timeout)
            rows = result.data or []
            total = None
            if query.count:
                total = result.count if result.count is not None else len(rows)
            return QueryResult(rows=rows, total=total)

    async def insert(self, table: str, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        if not rows:
            return []
        async with SupabaseClient(self._client) as client:
            result = await execute(client.table(table).insert(rows).execute(), f"insert {table}", self.timeout)
            return result.data or []

    async def update(
        self,
        table: str,
        values: dict[str, Any],
        predicates: list[Predicate],
    ) -> list[dict[str, Any]]:
        if not predicates:
            raise BackendError(f"Refusing unfiltered update on {table}")
        async with SupabaseClient(self._client) as client:
            builder = apply_predicates(client.table(table).update(values), predicates)
            result = await execute(builder.execute(), f"update {table}", self.timeout)
            return result.data or []

    async def delete(self, table: str, predicates: list[Predicate]) -> list[dict[str, Any]]:
        if not predicates:
            raise BackendError(f"Refusing unfiltered delete on {table}")
        async with SupabaseClient(self._client) as client:
            builder = apply_predicates(client.table(table).delete(), predicates)
            result = await execute(builder.execute(), f"delete {table}", self.timeout)
            return result.data or []
