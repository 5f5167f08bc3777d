"""Lifecycle state machine for the two activity state dimensions.

Soft-delete: active -> trashed -> active ... and trashed -> removed (terminal).
Moderation: pending <-> approved. The dimensions never affect each other.
"""

from enum import Enum
from typing import Union
from pydantic import BaseModel, ConfigDict

from hobbly.models.access import Operation
from hobbly.models.activity import Activity, ModerationState, SoftDeleteState
from hobbly.utils.errors import IllegalTransitionError


State = Union[SoftDeleteState, ModerationState]


class LifecycleAction(str, Enum):
    """Actions that move an activity between states."""
    SOFT_DELETE = "soft_delete"
    RESTORE = "restore"
    PURGE = "purge"
    APPROVE = "approve"
    UNAPPROVE = "unapprove"

    @property
    def is_moderation(self) -> bool:
        return self in (LifecycleAction.APPROVE, LifecycleAction.UNAPPROVE)

    @property
    def operation(self) -> Operation:
        """Operation checked by the visibility policy for this action."""
        if self.is_moderation:
            return Operation.APPROVE
        return Operation(self.value)


class Transition(BaseModel):
    """A validated state change. `changed` is False for idempotent no-ops."""
    model_config = ConfigDict(frozen=True)

    action: LifecycleAction
    source: State
    target: State
    changed: bool


# (action, source) -> target, for every legal move
_SOFT_DELETE_TABLE = {
    (LifecycleAction.SOFT_DELETE, SoftDeleteState.ACTIVE): SoftDeleteState.TRASHED,
    (LifecycleAction.SOFT_DELETE, SoftDeleteState.TRASHED): SoftDeleteState.TRASHED,
    (LifecycleAction.RESTORE, SoftDeleteState.TRASHED): SoftDeleteState.ACTIVE,
    (LifecycleAction.RESTORE, SoftDeleteState.ACTIVE): SoftDeleteState.ACTIVE,
    (LifecycleAction.PURGE, SoftDeleteState.TRASHED): SoftDeleteState.REMOVED,
}

_MODERATION_TABLE = {
    (LifecycleAction.APPROVE, ModerationState.PENDING): ModerationState.APPROVED,
    (LifecycleAction.APPROVE, ModerationState.APPROVED): ModerationState.APPROVED,
    (LifecycleAction.UNAPPROVE, ModerationState.APPROVED): ModerationState.PENDING,
    (LifecycleAction.UNAPPROVE, ModerationState.PENDING): ModerationState.PENDING,
}


def plan_transition(state: State, action: LifecycleAction) -> Transition:
    """
    Validate `action` from `state` without side effects.

    Raises IllegalTransitionError for purge of an active activity, for any
    action on a removed one, and when the action targets the other dimension.
    """
    if state == SoftDeleteState.REMOVED:
        raise IllegalTransitionError(f"Cannot {action.value}: activity was purged")

    table = _MODERATION_TABLE if action.is_moderation else _SOFT_DELETE_TABLE
    target = table.get((action, state))
    if target is None:
        if action == LifecycleAction.PURGE:
            raise IllegalTransitionError("Only trashed activities can be purged; move it to the trash first")
        raise IllegalTransitionError(f"Cannot {action.value} from state '{state.value}'")

    return Transition(action=action, source=state, target=target, changed=target != state)


def plan_for(activity: Activity, action: LifecycleAction) -> Transition:
    """Plan `action` against the dimension of `activity` it acts on."""
    state = activity.moderation_state if action.is_moderation else activity.soft_delete_state
    return plan_transition(state, action)


def plan_reject(activity: Activity) -> Transition:
    """
    Rejection is a soft-delete of a still-pending activity.

    There is no separate "rejected" state, so rejecting an approved
    activity is refused instead of silently trashing live content.
    """
    if activity.moderation_state != ModerationState.PENDING:
        raise IllegalTransitionError("Only pending activities can be rejected")
    return plan_transition(activity.soft_delete_state, LifecycleAction.SOFT_DELETE)
