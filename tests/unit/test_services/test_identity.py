"""Tests for the Supabase identity provider."""

import pytest
from unittest.mock import AsyncMock, MagicMock, Mock

from hobbly.models.access import Role
from hobbly.services.identity import SupabaseIdentityProvider, bearer_token
from hobbly.utils.errors import BackendUnavailableError, NotAuthenticatedError
from tests.utils.fake_backend import FakeCatalogBackend


def _auth_client(user_id=None, error=None):
    client = MagicMock()
    if error is not None:
        client.auth.get_user = AsyncMock(side_effect=error)
    else:
        user = Mock(id=user_id) if user_id else None
        client.auth.get_user = AsyncMock(return_value=Mock(user=user))
    return client


@pytest.fixture
def profiles():
    backend = FakeCatalogBackend()
    backend.tables["user_profiles"] = [
        {"id": "u-org", "role": "organizer", "isApproved": False, "full_name": "Olli Organizer"},
    ]
    return backend


@pytest.mark.unit
@pytest.mark.parametrize("header,expected", [
    ("Bearer abc.def", "abc.def"),
    ("bearer   tok  ", "tok"),
    ("Basic abc", None),
    ("Bearer ", None),
    ("", None),
    (None, None),
])
def test_bearer_token(header, expected):
    """Test Authorization header parsing."""
    assert bearer_token(header) == expected


@pytest.mark.unit
@pytest.mark.asyncio
async def test_resolve_builds_identity_from_profile(profiles):
    """Test a valid token resolves to the profile's role and approval."""
    client = _auth_client(user_id="u-org")
    provider = SupabaseIdentityProvider(client, backend=profiles)

    identity = await provider.resolve("token-123")

    client.auth.get_user.assert_awaited_once_with("token-123")
    assert identity.subject_id == "u-org"
    assert identity.role == Role.ORGANIZER
    assert identity.is_approved is False
    assert identity.display_name == "Olli Organizer"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_resolve_missing_token(profiles):
    """Test no token means not authenticated."""
    with pytest.raises(NotAuthenticatedError):
        await SupabaseIdentityProvider(_auth_client(), backend=profiles).resolve(None)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_resolve_rejected_token(profiles):
    """Test auth errors become NotAuthenticatedError."""
    provider = SupabaseIdentityProvider(_auth_client(error=ValueError("invalid JWT")), backend=profiles)

    with pytest.raises(NotAuthenticatedError):
        await provider.resolve("expired")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_resolve_no_user(profiles):
    """Test an auth response without a user is rejected."""
    with pytest.raises(NotAuthenticatedError):
        await SupabaseIdentityProvider(_auth_client(), backend=profiles).resolve("token")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_resolve_without_profile(profiles):
    """Test users without a profile row are not authenticated."""
    provider = SupabaseIdentityProvider(_auth_client(user_id="u-ghost"), backend=profiles)

    with pytest.raises(NotAuthenticatedError, match="profile"):
        await provider.resolve("token")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_resolve_transport_failure_stays_retriable(profiles):
    """Test an unreachable auth server is not reported as a bad token."""
    import httpx
    provider = SupabaseIdentityProvider(_auth_client(error=httpx.ConnectTimeout("timeout")), backend=profiles)

    with pytest.raises(BackendUnavailableError):
        await provider.resolve("token")
