"""Visibility policy - who may see and change which activities."""

from typing import Optional

from hobbly.models.access import Operation, RequesterIdentity, Role, ViewKind
from hobbly.models.activity import Activity, ModerationState, SoftDeleteState
from hobbly.models.query import Predicate
from hobbly.services.activity_mapper import (
    moderation_predicate,
    owner_predicate,
    soft_delete_predicate,
)
from hobbly.utils.errors import (
    AccountNotApprovedError,
    InsufficientRoleError,
    NotAuthenticatedError,
    NotFoundError,
    NotOwnerError,
)
from hobbly.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)


ADMIN_VIEWS = frozenset({ViewKind.ADMIN_CATALOG, ViewKind.MODERATION_QUEUE, ViewKind.TRASH})

# Operations that change moderation state
MODERATION_OPERATIONS = frozenset({Operation.APPROVE})

PUBLIC_OPERATIONS = frozenset({Operation.LIST, Operation.READ})


class VisibilityPolicy:
    """
    Role x view x operation rules.

    Denials are raised as AuthorizationError subclasses so callers can tell
    "not authenticated", "account not approved", "not the owner" and
    "insufficient role" apart. Stateless; one instance can be shared.
    """

    def default_view(self, identity: Optional[RequesterIdentity]) -> ViewKind:
        """View used when the caller does not name one."""
        if identity is None or identity.role == Role.USER:
            return ViewKind.PUBLIC
        if identity.is_admin:
            return ViewKind.ADMIN_CATALOG
        return ViewKind.OWN

    def ensure_account(
        self,
        identity: Optional[RequesterIdentity],
        operation: Operation,
        view: Optional[ViewKind] = None,
    ) -> None:
        """Deny before any predicate is built: anonymous outside the public catalog, unapproved organizers."""
        if identity is None:
            if operation in PUBLIC_OPERATIONS and view in (None, ViewKind.PUBLIC):
                return
            logger.info("Anonymous request denied", operation=operation.value)
            raise NotAuthenticatedError("Sign in required")

        if identity.is_organizer and not identity.is_approved:
            logger.info(
                "Unapproved organizer denied",
                operation=operation.value,
                subject=mask_user_id(identity.subject_id)
            )
            raise AccountNotApprovedError("Organizer account is awaiting approval")

    def mandatory_predicates(
        self,
        identity: Optional[RequesterIdentity],
        view: ViewKind,
    ) -> list[Predicate]:
        """Predicates every list query for this view must carry."""
        self.ensure_account(identity, Operation.LIST, view)

        if view == ViewKind.PUBLIC:
            return [
                soft_delete_predicate(SoftDeleteState.ACTIVE),
                moderation_predicate(ModerationState.APPROVED),
            ]

        if view == ViewKind.OWN:
            if identity.role == Role.USER:
                raise InsufficientRoleError("Only organizers and admins own activities")
            # Own pending and trashed items stay visible to their owner
            return [owner_predicate(identity.subject_id)]

        if not identity.is_admin:
            logger.info(
                "Admin view denied",
                view=view.value,
                role=identity.role.value,
                subject=mask_user_id(identity.subject_id)
            )
            raise InsufficientRoleError(f"The {view.value} view requires the admin role")

        if view == ViewKind.ADMIN_CATALOG:
            return [soft_delete_predicate(SoftDeleteState.ACTIVE)]
        if view == ViewKind.MODERATION_QUEUE:
            return [
                soft_delete_predicate(SoftDeleteState.ACTIVE),
                moderation_predicate(ModerationState.PENDING),
            ]
        if view == ViewKind.TRASH:
            return [soft_delete_predicate(SoftDeleteState.TRASHED)]

        raise ValueError(f"Unknown view: {view}")

    def check_read(
        self,
        identity: Optional[RequesterIdentity],
        activity: Activity,
        view: Optional[ViewKind] = None,
    ) -> None:
        """
        Authorize reading an activity that is known to exist.

        Organizers reading someone else's activity through their own view, or a
        foreign activity that is not public, get NotOwnerError. Users and
        anonymous readers get NotFoundError so existence does not leak. Once
        ownership is settled the activity must still belong to the view, so a
        trashed activity only comes back through the trash or own view.
        """
        view = view or self.default_view(identity)
        self.ensure_account(identity, Operation.READ, view)

        if view in ADMIN_VIEWS and (identity is None or not identity.is_admin):
            raise InsufficientRoleError(f"The {view.value} view requires the admin role")
        if view == ViewKind.OWN and identity.role == Role.USER:
            raise InsufficientRoleError("Only organizers and admins own activities")

        is_owner = identity is not None and activity.owner_id == identity.subject_id
        if not is_owner and not (identity is not None and identity.is_admin):
            if identity is not None and identity.is_organizer:
                if not (view == ViewKind.PUBLIC and activity.is_public):
                    logger.info(
                        "Read of foreign activity denied",
                        activity_id=activity.id,
                        subject=mask_user_id(identity.subject_id)
                    )
                    raise NotOwnerError("Activity belongs to another organizer")
            elif not activity.is_public:
                logger.debug("Hidden activity requested", activity_id=activity.id)
                raise NotFoundError(f"Activity {activity.id} not found")

        if not self.in_view(identity, activity, view):
            logger.debug("Activity outside requested view", activity_id=activity.id, view=view.value)
            raise NotFoundError(f"Activity {activity.id} not found")

    def in_view(
        self,
        identity: Optional[RequesterIdentity],
        activity: Activity,
        view: ViewKind,
    ) -> bool:
        """Whether `activity` satisfies the same conditions as the view's list predicates."""
        if view == ViewKind.PUBLIC:
            return activity.is_public
        if view == ViewKind.OWN:
            return identity is not None and activity.owner_id == identity.subject_id
        if view == ViewKind.TRASH:
            return activity.soft_delete_state == SoftDeleteState.TRASHED

        active = activity.soft_delete_state == SoftDeleteState.ACTIVE
        if view == ViewKind.MODERATION_QUEUE:
            return active and activity.moderation_state == ModerationState.PENDING
        return active

    def authorize_mutation(
        self,
        identity: Optional[RequesterIdentity],
        operation: Operation,
        activity: Optional[Activity] = None,
    ) -> None:
        """
        Authorize a write. `activity` is the fetched target (None for create).

        Users never mutate. Organizers act only on their own activities and
        cannot moderate. Admins have no ownership restriction.
        """
        self.ensure_account(identity, operation)

        if identity.role == Role.USER:
            raise InsufficientRoleError(f"Role 'user' cannot {operation.value} activities")

        if identity.is_admin:
            return

        if operation in MODERATION_OPERATIONS:
            raise InsufficientRoleError("Only admins can moderate activities")

        if activity is not None and activity.owner_id != identity.subject_id:
            logger.info(
                "Mutation of foreign activity denied",
                operation=operation.value,
                activity_id=activity.id,
                subject=mask_user_id(identity.subject_id)
            )
            raise NotOwnerError("Activity belongs to another organizer")
