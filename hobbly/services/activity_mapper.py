"""Mapping between Supabase rows and domain models.

This is the only module that knows storage column names. Everything else
works with `Activity`, `Tag`, `Category` and the predicate helpers below.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Optional

from hobbly.models.access import RequesterIdentity, Role
from hobbly.models.activity import (
    Activity,
    ActivityForm,
    ActivityUpdate,
    Coordinates,
    ModerationState,
    SoftDeleteState,
    derive_short_description,
)
from hobbly.models.query import Predicate
from hobbly.models.reference import Category, Tag
from hobbly.utils.catalog_config import CatalogConfig


COL_ID = "id"
COL_OWNER = "user_id"
COL_DELETED = "is_deleted"
COL_APPROVED = "isApproved"
COL_CREATED_AT = "created_at"
COL_UPDATED_AT = "updated_at"
COL_IMAGE_URL = "image_url"

COL_TAG_ACTIVITY = "activity_id"
COL_TAG_ID = "tag_id"

# Domain field -> storage column, for fields that are written as-is
WRITABLE_COLUMNS = {
    "title": "title",
    "description": "description",
    "short_description": "short_description",
    "type": "type",
    "category_id": "category_id",
    "location": "location",
    "address": "address",
    "coordinates": "coordinates",
    "price": "price",
    "currency": "currency",
    "start_date": "start_date",
    "end_date": "end_date",
    "max_participants": "max_participants",
    "min_age": "min_age",
    "max_age": "max_age",
    "contact_email": "contact_email",
    "contact_phone": "contact_phone",
    "external_link": "external_link",
}

SORTABLE_COLUMNS = {
    "created_at": "created_at",
    "updated_at": "updated_at",
    "title": "title",
    "price": "price",
    "start_date": "start_date",
}


# Predicate helpers

def soft_delete_predicate(state: SoftDeleteState) -> Predicate:
    return Predicate.eq(COL_DELETED, state == SoftDeleteState.TRASHED)


def moderation_predicate(state: ModerationState) -> Predicate:
    return Predicate.eq(COL_APPROVED, state == ModerationState.APPROVED)


def owner_predicate(subject_id: str) -> Predicate:
    return Predicate.eq(COL_OWNER, subject_id)


def id_predicate(activity_id: str) -> Predicate:
    return Predicate.eq(COL_ID, activity_id)


def id_in_predicate(activity_ids: Iterable[str]) -> Predicate:
    return Predicate.in_(COL_ID, activity_ids)


def version_predicates(activity: Activity) -> list[Predicate]:
    """Id plus the observed updated_at, so stale writes match nothing."""
    predicates = [id_predicate(activity.id)]
    if activity.updated_at is not None:
        predicates.append(Predicate.eq(COL_UPDATED_AT, _serialize(activity.updated_at)))
    return predicates


# Rows -> domain

def _tags_from_row(raw: Any) -> list[Tag]:
    tags = []
    for item in raw or []:
        if not isinstance(item, dict):
            continue
        # activity_tags(tag:tags(*)) embeds the tag one level down
        tag = item.get("tag") if "tag" in item else item
        if tag and tag.get("id") is not None:
            tags.append(tag_from_row(tag))
    return tags


def activity_from_row(row: dict[str, Any]) -> Activity:
    """Convert an `activities` / `activities_full` row to an Activity."""
    coordinates = row.get("coordinates")
    return Activity(
        id=str(row[COL_ID]),
        title=row.get("title") or "",
        description=row.get("description") or "",
        short_description=row.get("short_description"),
        type=row["type"],
        category_id=str(row.get("category_id") or ""),
        category_name=row.get("category_name"),
        category_icon=row.get("category_icon"),
        location=row.get("location") or "",
        address=row.get("address"),
        coordinates=Coordinates(**coordinates) if isinstance(coordinates, dict) else None,
        price=row.get("price"),
        currency=row.get("currency") or CatalogConfig.DEFAULT_CURRENCY,
        image_url=row.get(COL_IMAGE_URL),
        owner_id=str(row[COL_OWNER]),
        organizer_name=row.get("organizer_name"),
        organizer_organization=row.get("organizer_organization"),
        tags=_tags_from_row(row.get("tags")),
        start_date=row.get("start_date"),
        end_date=row.get("end_date"),
        max_participants=row.get("max_participants"),
        min_age=row.get("min_age"),
        max_age=row.get("max_age"),
        contact_email=row.get("contact_email"),
        contact_phone=row.get("contact_phone"),
        external_link=row.get("external_link"),
        soft_delete_state=SoftDeleteState.TRASHED if row.get(COL_DELETED) else SoftDeleteState.ACTIVE,
        moderation_state=ModerationState.APPROVED if row.get(COL_APPROVED) else ModerationState.PENDING,
        created_at=row.get(COL_CREATED_AT),
        updated_at=row.get(COL_UPDATED_AT),
    )


def tag_from_row(row: dict[str, Any]) -> Tag:
    return Tag(id=str(row["id"]), name=row.get("name") or "", color=row.get("color"))


def category_from_row(row: dict[str, Any]) -> Category:
    return Category(
        id=str(row["id"]),
        name=row.get("name") or "",
        icon=row.get("icon"),
        description=row.get("description"),
    )


# Domain -> rows

def _serialize(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Coordinates):
        return value.model_dump()
    if isinstance(value, Enum):
        return value.value
    return value


def form_to_row(
    form: ActivityForm,
    activity_id: str,
    owner_id: str,
    now: datetime,
    image_url: Optional[str] = None,
) -> dict[str, Any]:
    """Row for a new activity. Status columns are always pending/active."""
    row = {column: _serialize(getattr(form, field)) for field, column in WRITABLE_COLUMNS.items()}
    row.update({
        COL_ID: activity_id,
        COL_OWNER: owner_id,
        "short_description": form.short_description or derive_short_description(form.description),
        # Missing price is stored as free
        "price": form.price if form.price is not None else 0,
        "currency": form.currency or CatalogConfig.DEFAULT_CURRENCY,
        COL_IMAGE_URL: image_url,
        COL_DELETED: False,
        COL_APPROVED: False,
        COL_CREATED_AT: now.isoformat(),
        COL_UPDATED_AT: now.isoformat(),
    })
    return row


def update_to_row(
    changes: ActivityUpdate,
    now: datetime,
    image_url: Optional[str] = None,
    replace_image: bool = False,
) -> dict[str, Any]:
    """Columns for the fields the caller supplied, plus updated_at. Tags are handled separately."""
    supplied = changes.supplied()
    row = {
        column: _serialize(getattr(changes, field))
        for field, column in WRITABLE_COLUMNS.items()
        if field in supplied
    }
    if "description" in supplied and "short_description" not in supplied:
        row["short_description"] = derive_short_description(changes.description)
    if replace_image:
        row[COL_IMAGE_URL] = image_url
    row[COL_UPDATED_AT] = now.isoformat()
    return row


def touch_values(now: datetime) -> dict[str, Any]:
    return {COL_UPDATED_AT: now.isoformat()}


def soft_delete_values(state: SoftDeleteState, now: datetime) -> dict[str, Any]:
    return {COL_DELETED: state == SoftDeleteState.TRASHED, COL_UPDATED_AT: now.isoformat()}


def moderation_values(state: ModerationState, now: datetime) -> dict[str, Any]:
    return {COL_APPROVED: state == ModerationState.APPROVED, COL_UPDATED_AT: now.isoformat()}


def tag_association_predicate(activity_id: str) -> Predicate:
    return Predicate.eq(COL_TAG_ACTIVITY, activity_id)


def tag_association_rows(activity_id: str, tag_ids: list[str]) -> list[dict[str, Any]]:
    return [{COL_TAG_ACTIVITY: activity_id, COL_TAG_ID: tag_id} for tag_id in tag_ids]


def identity_from_profile(row: dict[str, Any]) -> RequesterIdentity:
    """Convert a `user_profiles` row to a RequesterIdentity. Unknown roles count as plain users."""
    try:
        role = Role(row.get("role") or Role.USER.value)
    except ValueError:
        role = Role.USER
    return RequesterIdentity(
        subject_id=str(row[COL_ID]),
        role=role,
        is_approved=bool(row.get(COL_APPROVED)),
        display_name=row.get("full_name") or row.get("organization_name"),
    )
