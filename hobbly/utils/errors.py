"""Error taxonomy for the catalog access layer."""

from typing import Optional
from pydantic import ValidationError


class HobblyError(Exception):
    """Base exception for the Hobbly catalog backend."""
    pass


class CatalogValidationError(HobblyError):
    """Missing or malformed caller-supplied data."""

    def __init__(self, message: str, errors: Optional[list[str]] = None):
        super().__init__(message)
        self.errors = errors or [message]

    @classmethod
    def from_pydantic(cls, exc: ValidationError, subject: str = "input") -> "CatalogValidationError":
        """Flatten a pydantic ValidationError into field-prefixed messages."""
        errors = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ()))
            message = error.get("msg", "invalid value")
            errors.append(f"{location}: {message}" if location else message)
        return cls(f"Invalid {subject}", errors=errors)


class AuthorizationError(HobblyError):
    """Requester is not allowed to perform the operation."""

    reason = "forbidden"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.reason.replace("_", " "))


class NotAuthenticatedError(AuthorizationError):
    """No identity, or the bearer credential was rejected."""

    reason = "not_authenticated"


class AccountNotApprovedError(AuthorizationError):
    """Organizer account is still waiting for approval."""

    reason = "account_not_approved"


class NotOwnerError(AuthorizationError):
    """Organizer tried to act on an activity owned by someone else."""

    reason = "not_owner"


class InsufficientRoleError(AuthorizationError):
    """Role does not grant the requested view or operation."""

    reason = "insufficient_role"


class NotFoundError(HobblyError):
    """Record does not exist (or is not visible to the requester)."""
    pass


class IllegalTransitionError(HobblyError):
    """Lifecycle transition not permitted from the current state."""
    pass


class ConcurrentModificationError(HobblyError):
    """Record changed between the read and the write."""
    pass


class BackendError(HobblyError):
    """Supabase rejected the request."""
    pass


class BackendUnavailableError(BackendError):
    """Timeout or transport failure talking to Supabase. Retriable."""
    pass
