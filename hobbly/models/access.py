"""Requester identity, roles, view kinds and operations."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    """User roles."""
    USER = "user"
    ORGANIZER = "organizer"
    ADMIN = "admin"


class ViewKind(str, Enum):
    """Screen/role context selecting the mandatory visibility predicates."""
    PUBLIC = "public"
    OWN = "own"
    ADMIN_CATALOG = "admin_catalog"
    MODERATION_QUEUE = "moderation_queue"
    TRASH = "trash"


class Operation(str, Enum):
    """Operations checked by the visibility policy."""
    LIST = "list"
    READ = "read"
    CREATE = "create"
    WRITE = "write"
    SOFT_DELETE = "soft_delete"
    RESTORE = "restore"
    PURGE = "purge"
    APPROVE = "approve"


class RequesterIdentity(BaseModel):
    """Identity handed to the access layer by the identity provider."""
    model_config = ConfigDict(frozen=True)

    subject_id: str = Field(..., min_length=1, description="Auth subject (user_profiles.id)")
    role: Role = Role.USER
    is_approved: bool = Field(default=False, description="Account approval, relevant for organizers")
    display_name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_organizer(self) -> bool:
        return self.role == Role.ORGANIZER
