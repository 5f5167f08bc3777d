"""Custom assertion helpers."""

from typing import Any, Dict

from hobbly.models.activity import Activity, ActivityPage, ModerationState, SoftDeleteState


def assert_valid_page(page: ActivityPage, expected_total: int = None) -> None:
    """Assert that a page is internally consistent."""
    assert page.page >= 1
    assert page.page_size >= 1
    assert len(page.data) <= page.page_size
    assert page.total >= len(page.data)
    if expected_total is not None:
        assert page.total == expected_total


def assert_new_activity(activity: Activity, owner_id: str) -> None:
    """Assert the forced status fields of a freshly created activity."""
    assert activity.owner_id == owner_id
    assert activity.moderation_state == ModerationState.PENDING
    assert activity.soft_delete_state == SoftDeleteState.ACTIVE
    assert activity.created_at is not None
    assert activity.updated_at is not None


def assert_rows_unchanged(before: list, after: list) -> None:
    """Assert that a table snapshot did not change."""
    assert sorted(before, key=lambda row: str(row.get("id"))) == sorted(after, key=lambda row: str(row.get("id")))


def assert_error_response(status: int, body: Dict[str, Any], expected_status: int, reason: str = None) -> None:
    """Assert the shape of an error response from the catalog endpoint."""
    assert status == expected_status
    assert "error" in body
    if reason is not None:
        assert body.get("reason") == reason
