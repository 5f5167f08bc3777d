"""Read-through cache for categories and tags."""

import asyncio
import time
from typing import Callable, Optional

from hobbly.models.query import OrderBy, Query
from hobbly.models.reference import Category, Tag
from hobbly.services.activity_mapper import category_from_row, tag_from_row
from hobbly.services.backend import CatalogBackend
from hobbly.utils.catalog_config import CatalogConfig
from hobbly.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


class ReferenceDataCache:
    """
    Categories and tags are immutable reference data, so they are cached
    for REFERENCE_CACHE_TTL_SECONDS and shared across requests.

    The lock keeps concurrent misses down to one backend read.
    """

    def __init__(
        self,
        backend: CatalogBackend,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.backend = backend
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else CatalogConfig.REFERENCE_CACHE_TTL_SECONDS
        self._clock = clock
        self._lock = asyncio.Lock()
        self._entries: dict[str, tuple[float, list]] = {}

    def _fresh(self, key: str) -> Optional[list]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        loaded_at, items = entry
        if self._clock() - loaded_at > self.ttl_seconds:
            return None
        return items

    async def _load(self, key: str, table: str, convert: Callable) -> list:
        items = self._fresh(key)
        if items is not None:
            return list(items)

        async with self._lock:
            # Another task may have refilled while we waited
            items = self._fresh(key)
            if items is None:
                result = await self.backend.select(table, Query(order=OrderBy(field="name", ascending=True)))
                items = [convert(row) for row in result.rows]
                self._entries[key] = (self._clock(), items)
                logger.debug("Reference data loaded", table=table, count=len(items))
        return list(items)

    async def categories(self) -> list[Category]:
        return await self._load("categories", CatalogConfig.CATEGORIES_TABLE, category_from_row)

    async def tags(self) -> list[Tag]:
        return await self._load("tags", CatalogConfig.TAGS_TABLE, tag_from_row)
