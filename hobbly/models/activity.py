"""Activity model - the central catalog listing (event, class, club, ...)."""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from hobbly.models.reference import Tag
from hobbly.utils.catalog_config import CatalogConfig


SHORT_DESCRIPTION_LIMIT = 100
ELLIPSIS = "..."

REQUIRED_FIELDS = ("title", "description", "type", "category_id", "location")


class ActivityType(str, Enum):
    """Kinds of listings."""
    ACTIVITY = "activity"
    EVENT = "event"
    HOBBY_OPPORTUNITY = "hobby_opportunity"
    CLUB = "club"
    COMPETITION = "competition"


class SoftDeleteState(str, Enum):
    """Soft-delete dimension. REMOVED is terminal and never stored."""
    ACTIVE = "active"
    TRASHED = "trashed"
    REMOVED = "removed"


class ModerationState(str, Enum):
    """Moderation dimension, independent of soft-delete."""
    PENDING = "pending"
    APPROVED = "approved"


class Coordinates(BaseModel):
    """Geocoordinate pair."""
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class ImageUpload(BaseModel):
    """Image file handed over by the form layer."""
    filename: str = Field(..., min_length=1)
    content: bytes
    content_type: Optional[str] = None


class Activity(BaseModel):
    """Activity as seen by the rest of the application."""
    id: str
    title: str
    description: str
    short_description: Optional[str] = None
    type: ActivityType
    category_id: str
    category_name: Optional[str] = None
    category_icon: Optional[str] = None
    location: str
    address: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    price: Optional[float] = Field(None, ge=0, description="Absent means free/unspecified")
    currency: str = "EUR"
    image_url: Optional[str] = None
    owner_id: str = Field(..., description="Creator's subject id, immutable")
    organizer_name: Optional[str] = None
    organizer_organization: Optional[str] = None
    tags: list[Tag] = Field(default_factory=list)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    max_participants: Optional[int] = None
    min_age: Optional[int] = None
    max_age: Optional[int] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    external_link: Optional[str] = None
    soft_delete_state: SoftDeleteState = SoftDeleteState.ACTIVE
    moderation_state: ModerationState = ModerationState.PENDING
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def tag_ids(self) -> list[str]:
        return [tag.id for tag in self.tags]

    @property
    def is_public(self) -> bool:
        """Visible in the public catalog."""
        return (
            self.soft_delete_state == SoftDeleteState.ACTIVE
            and self.moderation_state == ModerationState.APPROVED
        )


def derive_short_description(description: str) -> str:
    """Short form of a description, truncated with an ellipsis past the limit."""
    if len(description) <= SHORT_DESCRIPTION_LIMIT:
        return description
    return description[:SHORT_DESCRIPTION_LIMIT - len(ELLIPSIS)] + ELLIPSIS


class _ActivityFields(BaseModel):
    """Fields shared by the create form and partial updates."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    short_description: Optional[str] = Field(None, max_length=SHORT_DESCRIPTION_LIMIT)
    address: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    price: Optional[float] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    image: Optional[ImageUpload] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    max_participants: Optional[int] = Field(None, ge=1)
    min_age: Optional[int] = Field(None, ge=0)
    max_age: Optional[int] = Field(None, ge=0)
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    external_link: Optional[str] = None

    @model_validator(mode="after")
    def check_ranges(self):
        """End after start, min age not above max age."""
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        if self.min_age is not None and self.max_age is not None and self.min_age > self.max_age:
            raise ValueError("min_age must not be greater than max_age")
        return self


def _dedupe_tags(tags: Optional[list[str]]) -> Optional[list[str]]:
    if tags is None:
        return None
    seen: list[str] = []
    for tag_id in tags:
        if tag_id and tag_id not in seen:
            seen.append(tag_id)
    return seen


class ActivityForm(_ActivityFields):
    """Create form. Status fields supplied by callers are ignored."""
    model_config = ConfigDict(extra="ignore")

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    type: ActivityType
    category_id: str = Field(..., min_length=1)
    location: str = Field(..., min_length=1)
    tags: list[str] = Field(default_factory=list)

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, value):
        return _dedupe_tags(value)


class ActivityUpdate(_ActivityFields):
    """Partial update. Omitted fields stay untouched; explicit None clears."""
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, min_length=1)
    type: Optional[ActivityType] = None
    category_id: Optional[str] = Field(None, min_length=1)
    location: Optional[str] = Field(None, min_length=1)
    tags: Optional[list[str]] = None

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, value):
        return _dedupe_tags(value)

    @model_validator(mode="after")
    def check_required_not_cleared(self):
        """Required fields may be changed but never set to null."""
        cleared = [
            name for name in REQUIRED_FIELDS
            if name in self.model_fields_set and getattr(self, name) is None
        ]
        if cleared:
            raise ValueError(f"required fields cannot be cleared: {', '.join(cleared)}")
        return self

    def supplied(self) -> set[str]:
        """Names of the fields the caller actually sent."""
        return set(self.model_fields_set)


class ActivityFilters(BaseModel):
    """User-facing list filters."""
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    search: Optional[str] = None
    category_id: Optional[str] = None
    type: Optional[ActivityType] = None
    tags: tuple[str, ...] = ()
    location: Optional[str] = None
    min_price: Optional[float] = Field(None, ge=0)
    max_price: Optional[float] = Field(None, ge=0)
    free_only: bool = False


class PageRequest(BaseModel):
    """Pagination and ordering. Out-of-range sizes are clamped, not rejected."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    page: int = 1
    page_size: int = Field(default_factory=lambda: CatalogConfig.DEFAULT_PAGE_SIZE)
    order_by: str = "created_at"
    ascending: bool = False


class ActivityPage(BaseModel):
    """One page of activities."""
    data: list[Activity] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = CatalogConfig.DEFAULT_PAGE_SIZE
    degraded: bool = Field(default=False, description="A filter could not be applied")
    warnings: list[str] = Field(default_factory=list)


class MutationResult(BaseModel):
    """Outcome of create/update. Warnings mark a degraded success."""
    activity: Activity
    warnings: list[str] = Field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.warnings)


class PurgeResult(BaseModel):
    """Outcome of a permanent delete."""
    activity_id: str
    image_released: bool = True
    warnings: list[str] = Field(default_factory=list)
