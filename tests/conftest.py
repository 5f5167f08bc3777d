"""Shared pytest fixtures and configuration."""

import os
import pytest
from unittest.mock import AsyncMock
from freezegun import freeze_time

# Set test environment variables
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("TAG_RESOLUTION_POLICY", "strict")

from hobbly.models.access import RequesterIdentity, Role
from hobbly.services.catalog import CatalogService
from hobbly.services.tag_resolution import TagFailurePolicy
from tests.utils.factories import (
    create_activity_row,
    create_category_data,
    create_profile_data,
    create_tag_data,
    identity_for,
)
from tests.utils.fake_backend import FakeCatalogBackend


@pytest.fixture
def backend():
    """In-memory backend seeded with two categories and three tags."""
    fake = FakeCatalogBackend()
    fake.tables["categories"] = [create_category_data("Sports"), create_category_data("Music")]
    fake.tables["tags"] = [create_tag_data("outdoor"), create_tag_data("kids"), create_tag_data("free")]
    return fake


@pytest.fixture
def blob_store():
    """Blob store mock; upload returns a public URL."""
    store = AsyncMock()
    store.upload = AsyncMock(
        return_value="https://test.supabase.co/storage/v1/object/public/activities/activities/1-photo.jpg"
    )
    store.delete = AsyncMock(return_value=None)
    return store


@pytest.fixture
def service(backend, blob_store):
    return CatalogService(backend, blob_store=blob_store, tag_failure_policy=TagFailurePolicy.STRICT)


@pytest.fixture
def category_id(backend):
    return backend.tables["categories"][0]["id"]


@pytest.fixture
def tag_ids(backend):
    return [tag["id"] for tag in backend.tables["tags"]]


def _add_profile(backend, role, is_approved=True):
    profile = create_profile_data(role=role, is_approved=is_approved)
    backend.tables["user_profiles"].append(profile)
    return identity_for(profile)


@pytest.fixture
def organizer(backend) -> RequesterIdentity:
    return _add_profile(backend, "organizer")


@pytest.fixture
def other_organizer(backend) -> RequesterIdentity:
    return _add_profile(backend, "organizer")


@pytest.fixture
def unapproved_organizer(backend) -> RequesterIdentity:
    return _add_profile(backend, "organizer", is_approved=False)


@pytest.fixture
def admin(backend) -> RequesterIdentity:
    return _add_profile(backend, "admin")


@pytest.fixture
def user(backend) -> RequesterIdentity:
    return _add_profile(backend, "user", is_approved=False)


@pytest.fixture
def seed_activity(backend, category_id):
    """Insert an activity row directly and return it."""
    def _seed(owner: RequesterIdentity, tag_ids=(), **overrides):
        row = create_activity_row(owner.subject_id, category_id, **overrides)
        backend.tables["activities"].append(row)
        for tag_id in tag_ids:
            backend.tables["activity_tags"].append({"activity_id": row["id"], "tag_id": tag_id})
        return row
    return _seed


@pytest.fixture
def freeze_time_fixture():
    """Fixture for freezing time in tests."""
    with freeze_time("2024-12-09 12:00:00") as frozen_time:
        yield frozen_time


@pytest.fixture
def plain_admin_identity() -> RequesterIdentity:
    """Admin identity without a profile row (for policy-only tests)."""
    return RequesterIdentity(subject_id="admin-subject", role=Role.ADMIN, is_approved=True)
