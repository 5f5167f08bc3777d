"""Tag resolution - find activity ids carrying any of the requested tags."""

from enum import Enum
from typing import Iterable, Optional
from pydantic import BaseModel, Field

from hobbly.models.query import Predicate, Query
from hobbly.services.activity_mapper import COL_TAG_ACTIVITY, COL_TAG_ID, id_in_predicate
from hobbly.services.backend import CatalogBackend
from hobbly.utils.catalog_config import CatalogConfig
from hobbly.utils.errors import BackendError
from hobbly.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


class TagFailurePolicy(str, Enum):
    """What to do when the association lookup fails."""
    STRICT = "strict"  # propagate the error
    LENIENT = "lenient"  # list without the tag filter, page flagged as degraded


class ResolutionStatus(str, Enum):
    RESOLVED = "resolved"
    EMPTY = "empty"
    DEGRADED = "degraded"


class TagResolution(BaseModel):
    """Outcome of a tag lookup."""
    status: ResolutionStatus
    activity_ids: tuple[str, ...] = ()
    error: Optional[str] = Field(None, description="Lookup failure under the lenient policy")

    def as_predicate(self) -> Optional[Predicate]:
        """Inclusion filter for the main query, or None when nothing should be filtered."""
        if self.status != ResolutionStatus.RESOLVED:
            return None
        return id_in_predicate(self.activity_ids)


def policy_from_config() -> TagFailurePolicy:
    try:
        return TagFailurePolicy(CatalogConfig.TAG_RESOLUTION_POLICY)
    except ValueError:
        logger.warning(
            "Unknown TAG_RESOLUTION_POLICY, using strict",
            configured=CatalogConfig.TAG_RESOLUTION_POLICY
        )
        return TagFailurePolicy.STRICT


class TagResolver:
    """Read-only lookup against the activity/tag association table."""

    def __init__(self, backend: CatalogBackend, policy: Optional[TagFailurePolicy] = None):
        self.backend = backend
        self.policy = policy or policy_from_config()

    async def resolve(self, tag_ids: Iterable[str]) -> TagResolution:
        """
        Resolve activity ids tagged with at least one of `tag_ids` (OR semantics).

        One read, no writes. An empty id set tells the caller to return an
        empty page without running the main query.
        """
        requested = sorted(set(tag_ids))
        if not requested:
            raise ValueError("tag_ids must not be empty")

        query = Query(
            columns=COL_TAG_ACTIVITY,
            predicates=[Predicate.in_(COL_TAG_ID, requested)],
        )

        try:
            result = await self.backend.select(CatalogConfig.ACTIVITY_TAGS_TABLE, query)
        except BackendError as e:
            if self.policy == TagFailurePolicy.STRICT:
                logger.error("Tag resolution failed", tag_count=len(requested), error=str(e))
                raise
            logger.warning(
                "Tag resolution failed, listing without tag filter",
                tag_count=len(requested),
                error=str(e)
            )
            return TagResolution(status=ResolutionStatus.DEGRADED, error=str(e))

        activity_ids = tuple(sorted({str(row[COL_TAG_ACTIVITY]) for row in result.rows}))

        if not activity_ids:
            logger.info("No activities carry the requested tags", tag_count=len(requested))
            return TagResolution(status=ResolutionStatus.EMPTY)

        logger.debug(
            "Tags resolved",
            tag_count=len(requested),
            activity_count=len(activity_ids)
        )
        return TagResolution(status=ResolutionStatus.RESOLVED, activity_ids=activity_ids)
