"""Catalog access facade.

Every public operation takes the requester identity explicitly; nothing is
read from ambient session state, so one service can serve concurrent requests.
"""

from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Union
from pydantic import ValidationError
from ulid import ULID

from hobbly.models.access import Operation, RequesterIdentity, ViewKind
from hobbly.models.activity import (
    Activity,
    ActivityFilters,
    ActivityForm,
    ActivityPage,
    ActivityUpdate,
    MutationResult,
    PageRequest,
    PurgeResult,
)
from hobbly.models.query import Query
from hobbly.models.reference import Category, Tag
from hobbly.services.activity_mapper import (
    activity_from_row,
    form_to_row,
    id_predicate,
    moderation_values,
    soft_delete_values,
    tag_association_predicate,
    tag_association_rows,
    touch_values,
    update_to_row,
    version_predicates,
)
from hobbly.services.backend import CatalogBackend
from hobbly.services.blob_store import BlobStore
from hobbly.services.lifecycle import LifecycleAction, Transition, plan_for, plan_reject
from hobbly.services.query_builder import (
    build_filter_predicates,
    build_query,
    merge_predicates,
    normalize_page,
)
from hobbly.services.reference_data import ReferenceDataCache
from hobbly.services.tag_resolution import ResolutionStatus, TagFailurePolicy, TagResolver
from hobbly.services.visibility import VisibilityPolicy
from hobbly.utils.catalog_config import CatalogConfig
from hobbly.utils.errors import (
    BackendError,
    CatalogValidationError,
    ConcurrentModificationError,
    HobblyError,
    NotFoundError,
)
from hobbly.utils.logging import get_structured_logger, mask_user_id, sanitize_text

logger = get_structured_logger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(ULID())


def _subject(requester: Optional[RequesterIdentity]) -> Optional[str]:
    return mask_user_id(requester.subject_id) if requester else None


def _coerce(model, data: Any, subject: str):
    """Accept a model instance or raw mapping; convert pydantic errors."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data or {})
    except ValidationError as e:
        raise CatalogValidationError.from_pydantic(e, subject) from e


def _check_merged_ranges(current: Activity, changes: ActivityUpdate) -> None:
    """Range checks across supplied and untouched fields."""
    supplied = changes.supplied()
    start = changes.start_date if "start_date" in supplied else current.start_date
    end = changes.end_date if "end_date" in supplied else current.end_date
    min_age = changes.min_age if "min_age" in supplied else current.min_age
    max_age = changes.max_age if "max_age" in supplied else current.max_age

    errors = []
    if start and end and end < start:
        errors.append("end_date must not be before start_date")
    if min_age is not None and max_age is not None and min_age > max_age:
        errors.append("min_age must not be greater than max_age")
    if errors:
        raise CatalogValidationError("Invalid activity update", errors=errors)


class CatalogService:
    """Reads and lifecycle-aware writes for catalog activities."""

    def __init__(
        self,
        backend: CatalogBackend,
        blob_store: Optional[BlobStore] = None,
        tag_failure_policy: Optional[TagFailurePolicy] = None,
        max_page_size: Optional[int] = None,
        policy: Optional[VisibilityPolicy] = None,
        reference_cache: Optional[ReferenceDataCache] = None,
    ):
        self.backend = backend
        self.blob_store = blob_store
        self.tag_resolver = TagResolver(backend, tag_failure_policy)
        self.max_page_size = max_page_size or CatalogConfig.MAX_PAGE_SIZE
        self.policy = policy or VisibilityPolicy()
        self.reference = reference_cache or ReferenceDataCache(backend)

    # Reads

    async def list(
        self,
        filters: Union[ActivityFilters, dict, None] = None,
        pagination: Union[PageRequest, dict, None] = None,
        requester: Optional[RequesterIdentity] = None,
        view: Optional[ViewKind] = None,
    ) -> ActivityPage:
        """
        One page of activities visible to `requester` in `view`.

        Tag filters are resolved first; when no activity carries any of the
        requested tags, an empty page is returned without the main query.
        """
        filters = _coerce(ActivityFilters, filters, "filters")
        pagination = _coerce(PageRequest, pagination, "pagination")
        view = view or self.policy.default_view(requester)

        mandatory = self.policy.mandatory_predicates(requester, view)
        # Validates the sort field before any round trip
        query = build_query(
            merge_predicates(mandatory, build_filter_predicates(filters)),
            pagination,
            self.max_page_size,
        )
        page, page_size = normalize_page(pagination.page, pagination.page_size, self.max_page_size)

        degraded = False
        warnings: list[str] = []

        if filters.tags:
            resolution = await self.tag_resolver.resolve(filters.tags)
            if resolution.status == ResolutionStatus.EMPTY:
                return ActivityPage(data=[], total=0, page=page, page_size=page_size)
            if resolution.status == ResolutionStatus.DEGRADED:
                degraded = True
                warnings.append("Tag filter could not be applied")
            else:
                query.predicates = merge_predicates(query.predicates, [resolution.as_predicate()])

        result = await self.backend.select(CatalogConfig.ACTIVITIES_VIEW, query)
        activities = [activity_from_row(row) for row in result.rows]
        total = result.total if result.total is not None else len(activities)

        logger.info(
            "Activities listed",
            view=view.value,
            subject=_subject(requester),
            search=sanitize_text(filters.search),
            count=len(activities),
            total=total,
            degraded=degraded
        )

        return ActivityPage(
            data=activities,
            total=total,
            page=page,
            page_size=page_size,
            degraded=degraded,
            warnings=warnings,
        )

    async def get(
        self,
        activity_id: str,
        requester: Optional[RequesterIdentity] = None,
        view: Optional[ViewKind] = None,
    ) -> Activity:
        """Single activity. Existence is confirmed before ownership is checked."""
        view = view or self.policy.default_view(requester)
        self.policy.ensure_account(requester, Operation.READ, view)

        activity = await self._fetch(activity_id)
        self.policy.check_read(requester, activity, view)
        return activity

    async def list_categories(self) -> List[Category]:
        return await self.reference.categories()

    async def list_tags(self) -> List[Tag]:
        return await self.reference.tags()

    # Writes

    async def create(
        self,
        form: Union[ActivityForm, dict],
        requester: Optional[RequesterIdentity],
    ) -> MutationResult:
        """
        Create a pending, active activity owned by the requester.

        The image is uploaded before the row is written and an upload failure
        aborts the create. Tag associations are written after the row; if that
        fails the row stays and the result carries a warning.
        """
        self.policy.authorize_mutation(requester, Operation.CREATE)
        form = _coerce(ActivityForm, form, "activity")

        image_url = None
        if form.image is not None:
            image_url = await self._upload(form)

        now = _now()
        activity_id = _new_id()
        row = form_to_row(form, activity_id, requester.subject_id, now, image_url)

        try:
            await self.backend.insert(CatalogConfig.ACTIVITIES_TABLE, [row])
        except HobblyError:
            if image_url:
                await self._release_image(image_url)
            raise

        warnings: list[str] = []
        if form.tags:
            warnings.extend(await self._write_tags(activity_id, form.tags))

        logger.info(
            "Activity created",
            activity_id=activity_id,
            owner=_subject(requester),
            tag_count=len(form.tags),
            degraded=bool(warnings)
        )

        activity = await self._fetch(activity_id)
        return MutationResult(activity=activity, warnings=warnings)

    async def update(
        self,
        activity_id: str,
        changes: Union[ActivityUpdate, dict],
        requester: Optional[RequesterIdentity],
    ) -> MutationResult:
        """
        Apply a partial update. Only supplied fields change; a supplied tag
        list replaces all associations.
        """
        self.policy.authorize_mutation(requester, Operation.WRITE)
        changes = _coerce(ActivityUpdate, changes, "activity update")

        current = await self._fetch(activity_id)
        self.policy.authorize_mutation(requester, Operation.WRITE, current)
        _check_merged_ranges(current, changes)

        supplied = changes.supplied()
        if not supplied:
            return MutationResult(activity=current)

        replace_image = "image" in supplied
        image_url = None
        if replace_image and changes.image is not None:
            image_url = await self._upload(changes)

        values = update_to_row(changes, _now(), image_url=image_url, replace_image=replace_image)
        updated = await self.backend.update(
            CatalogConfig.ACTIVITIES_TABLE,
            values,
            version_predicates(current),
        )
        if not updated:
            if image_url:
                await self._release_image(image_url)
            raise ConcurrentModificationError(f"Activity {activity_id} changed since it was read")

        warnings: list[str] = []
        if "tags" in supplied:
            warnings.extend(await self._replace_tags(activity_id, changes.tags or []))
        if replace_image and current.image_url and current.image_url != image_url:
            warnings.extend(await self._release_image(current.image_url))

        logger.info(
            "Activity updated",
            activity_id=activity_id,
            subject=_subject(requester),
            fields=sorted(supplied),
            degraded=bool(warnings)
        )

        activity = await self._fetch(activity_id)
        return MutationResult(activity=activity, warnings=warnings)

    async def soft_delete(self, activity_id: str, requester: Optional[RequesterIdentity]) -> Activity:
        """Move to the trash. Trashing a trashed activity is a no-op."""
        return await self._transition(activity_id, LifecycleAction.SOFT_DELETE, requester)

    async def restore(self, activity_id: str, requester: Optional[RequesterIdentity]) -> Activity:
        """Bring back from the trash. Restoring an active activity is a no-op."""
        return await self._transition(activity_id, LifecycleAction.RESTORE, requester)

    async def approve(
        self,
        activity_id: str,
        approved: bool,
        requester: Optional[RequesterIdentity],
    ) -> Activity:
        """Set the moderation state. Admins only."""
        action = LifecycleAction.APPROVE if approved else LifecycleAction.UNAPPROVE
        return await self._transition(activity_id, action, requester)

    async def reject(self, activity_id: str, requester: Optional[RequesterIdentity]) -> Activity:
        """Reject a pending activity by moving it to the trash. Admins only."""
        return await self._transition(
            activity_id,
            LifecycleAction.SOFT_DELETE,
            requester,
            operation=Operation.APPROVE,
            planner=plan_reject,
        )

    async def purge(self, activity_id: str, requester: Optional[RequesterIdentity]) -> PurgeResult:
        """
        Permanently remove a trashed activity.

        The observed version is claimed first; tag associations are then
        removed and the image released before the row is deleted. Image release is best effort: a failure is reported in
        the result, the purge still completes.
        """
        self.policy.authorize_mutation(requester, Operation.PURGE)
        current = await self._fetch(activity_id)
        self.policy.authorize_mutation(requester, Operation.PURGE, current)
        plan_for(current, LifecycleAction.PURGE)

        # Claim the observed version before touching tags or storage
        now = _now()
        claimed = await self.backend.update(
            CatalogConfig.ACTIVITIES_TABLE,
            touch_values(now),
            version_predicates(current),
        )
        if not claimed:
            raise ConcurrentModificationError(f"Activity {activity_id} changed since it was read")
        current = current.model_copy(update={"updated_at": now})

        await self.backend.delete(
            CatalogConfig.ACTIVITY_TAGS_TABLE,
            [tag_association_predicate(activity_id)],
        )

        warnings: list[str] = []
        if current.image_url:
            warnings.extend(await self._release_image(current.image_url))

        deleted = await self.backend.delete(CatalogConfig.ACTIVITIES_TABLE, version_predicates(current))
        if not deleted:
            raise ConcurrentModificationError(f"Activity {activity_id} changed since it was read")

        logger.info(
            "Activity purged",
            activity_id=activity_id,
            subject=_subject(requester),
            image_released=not warnings
        )
        return PurgeResult(activity_id=activity_id, image_released=not warnings, warnings=warnings)

    # Internals

    async def _fetch(self, activity_id: str) -> Activity:
        result = await self.backend.select(
            CatalogConfig.ACTIVITIES_VIEW,
            Query(predicates=[id_predicate(activity_id)], limit=1),
        )
        if not result.rows:
            logger.debug("Activity does not exist", activity_id=activity_id)
            raise NotFoundError(f"Activity {activity_id} not found")
        return activity_from_row(result.rows[0])

    async def _transition(
        self,
        activity_id: str,
        action: LifecycleAction,
        requester: Optional[RequesterIdentity],
        operation: Optional[Operation] = None,
        planner: Optional[Callable[[Activity], Transition]] = None,
    ) -> Activity:
        operation = operation or action.operation
        self.policy.authorize_mutation(requester, operation)
        current = await self._fetch(activity_id)
        self.policy.authorize_mutation(requester, operation, current)

        transition = planner(current) if planner else plan_for(current, action)
        if not transition.changed:
            logger.debug(
                "Transition is a no-op",
                activity_id=activity_id,
                action=action.value,
                state=transition.source.value
            )
            return current

        now = _now()
        if action.is_moderation:
            values = moderation_values(transition.target, now)
            changed = {"moderation_state": transition.target, "updated_at": now}
        else:
            values = soft_delete_values(transition.target, now)
            changed = {"soft_delete_state": transition.target, "updated_at": now}

        updated = await self.backend.update(CatalogConfig.ACTIVITIES_TABLE, values, version_predicates(current))
        if not updated:
            raise ConcurrentModificationError(f"Activity {activity_id} changed since it was read")

        logger.info(
            "Activity state changed",
            activity_id=activity_id,
            action=operation.value if planner else action.value,
            source=transition.source.value,
            target=transition.target.value,
            subject=_subject(requester)
        )
        return current.model_copy(update=changed)

    async def _upload(self, data: Union[ActivityForm, ActivityUpdate]) -> str:
        if self.blob_store is None:
            raise BackendError("Image uploads are not configured")
        return await self.blob_store.upload(data.image)

    async def _release_image(self, image_url: str) -> List[str]:
        """Best-effort image removal. Returns warnings instead of raising."""
        if self.blob_store is None:
            logger.warning("No blob store configured, image left in storage", image_url=image_url)
            return ["Image could not be released: no blob store configured"]
        try:
            await self.blob_store.delete(image_url)
        except HobblyError as e:
            logger.warning("Image release failed", image_url=image_url, error=str(e))
            return [f"Image could not be released: {e}"]
        return []

    async def _write_tags(self, activity_id: str, tag_ids: List[str]) -> List[str]:
        try:
            await self.backend.insert(
                CatalogConfig.ACTIVITY_TAGS_TABLE,
                tag_association_rows(activity_id, tag_ids),
            )
        except BackendError as e:
            logger.warning("Tag associations not saved", activity_id=activity_id, error=str(e))
            return [f"Tags could not be saved: {e}"]
        return []

    async def _replace_tags(self, activity_id: str, tag_ids: List[str]) -> List[str]:
        try:
            await self.backend.delete(
                CatalogConfig.ACTIVITY_TAGS_TABLE,
                [tag_association_predicate(activity_id)],
            )
        except BackendError as e:
            logger.warning("Tag associations not replaced", activity_id=activity_id, error=str(e))
            return [f"Tags could not be saved: {e}"]
        if not tag_ids:
            return []
        return await self._write_tags(activity_id, tag_ids)
