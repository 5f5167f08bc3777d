"""Tests for the lifecycle state machine."""

import pytest

from hobbly.models.access import Operation
from hobbly.models.activity import Activity, ModerationState, SoftDeleteState
from hobbly.services.lifecycle import LifecycleAction, plan_for, plan_reject, plan_transition
from hobbly.utils.errors import IllegalTransitionError


@pytest.mark.unit
@pytest.mark.parametrize("state,action,target,changed", [
    (SoftDeleteState.ACTIVE, LifecycleAction.SOFT_DELETE, SoftDeleteState.TRASHED, True),
    (SoftDeleteState.TRASHED, LifecycleAction.SOFT_DELETE, SoftDeleteState.TRASHED, False),
    (SoftDeleteState.TRASHED, LifecycleAction.RESTORE, SoftDeleteState.ACTIVE, True),
    (SoftDeleteState.ACTIVE, LifecycleAction.RESTORE, SoftDeleteState.ACTIVE, False),
    (SoftDeleteState.TRASHED, LifecycleAction.PURGE, SoftDeleteState.REMOVED, True),
    (ModerationState.PENDING, LifecycleAction.APPROVE, ModerationState.APPROVED, True),
    (ModerationState.APPROVED, LifecycleAction.APPROVE, ModerationState.APPROVED, False),
    (ModerationState.APPROVED, LifecycleAction.UNAPPROVE, ModerationState.PENDING, True),
    (ModerationState.PENDING, LifecycleAction.UNAPPROVE, ModerationState.PENDING, False),
])
def test_legal_transitions(state, action, target, changed):
    """Test every legal move and its no-op variants."""
    transition = plan_transition(state, action)

    assert transition.source == state
    assert transition.target == target
    assert transition.changed is changed


@pytest.mark.unit
def test_purge_from_active_is_illegal():
    """Test purge requires the trash first."""
    with pytest.raises(IllegalTransitionError, match="trash"):
        plan_transition(SoftDeleteState.ACTIVE, LifecycleAction.PURGE)


@pytest.mark.unit
@pytest.mark.parametrize("action", list(LifecycleAction))
def test_removed_is_terminal(action):
    """Test nothing leaves the removed state."""
    with pytest.raises(IllegalTransitionError):
        plan_transition(SoftDeleteState.REMOVED, action)


@pytest.mark.unit
def test_actions_stay_in_their_dimension():
    """Test moderation actions do not apply to soft-delete states and vice versa."""
    with pytest.raises(IllegalTransitionError):
        plan_transition(SoftDeleteState.ACTIVE, LifecycleAction.APPROVE)
    with pytest.raises(IllegalTransitionError):
        plan_transition(ModerationState.PENDING, LifecycleAction.SOFT_DELETE)


def _activity(approved: bool, trashed: bool = False) -> Activity:
    return Activity(
        id="a1", title="t", description="d", type="club", category_id="c", location="l", owner_id="o",
        moderation_state=ModerationState.APPROVED if approved else ModerationState.PENDING,
        soft_delete_state=SoftDeleteState.TRASHED if trashed else SoftDeleteState.ACTIVE,
    )


@pytest.mark.unit
def test_plan_for_picks_the_right_dimension():
    """Test the activity's matching state is used."""
    assert plan_for(_activity(approved=False), LifecycleAction.APPROVE).target == ModerationState.APPROVED
    assert plan_for(_activity(approved=False), LifecycleAction.SOFT_DELETE).target == SoftDeleteState.TRASHED


@pytest.mark.unit
def test_reject_is_soft_delete_of_pending():
    """Test rejection trashes a pending activity and leaves moderation alone."""
    transition = plan_reject(_activity(approved=False))

    assert transition.action == LifecycleAction.SOFT_DELETE
    assert transition.target == SoftDeleteState.TRASHED


@pytest.mark.unit
def test_reject_approved_is_illegal():
    """Test approved activities cannot be rejected."""
    with pytest.raises(IllegalTransitionError):
        plan_reject(_activity(approved=True))


@pytest.mark.unit
def test_action_operations():
    """Test actions map to the operations the visibility policy checks."""
    assert LifecycleAction.UNAPPROVE.operation == Operation.APPROVE
    assert LifecycleAction.PURGE.operation == Operation.PURGE
    assert LifecycleAction.SOFT_DELETE.operation == Operation.SOFT_DELETE
