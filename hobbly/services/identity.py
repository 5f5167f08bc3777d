"""Identity provider - bearer token to RequesterIdentity via Supabase Auth."""

from typing import Optional

from supabase import AsyncClient

from hobbly.models.access import RequesterIdentity
from hobbly.models.query import Predicate, Query
from hobbly.services.activity_mapper import COL_ID, identity_from_profile
from hobbly.services.backend import CatalogBackend
from hobbly.services.supabase_client import SupabaseBackend, SupabaseClient, execute
from hobbly.utils.catalog_config import CatalogConfig
from hobbly.utils.errors import BackendError, BackendUnavailableError, NotAuthenticatedError
from hobbly.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an `Authorization: Bearer <token>` header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class SupabaseIdentityProvider:
    """Validates access tokens with Supabase Auth and loads the user profile."""

    def __init__(
        self,
        client: Optional[AsyncClient] = None,
        backend: Optional[CatalogBackend] = None,
    ):
        self._client = client
        self.backend = backend or SupabaseBackend(client)

    async def resolve(self, token: Optional[str]) -> RequesterIdentity:
        """
        Resolve a bearer token to an identity.

        Raises NotAuthenticatedError for a missing or rejected token and for
        users without a profile row. Transport failures stay retriable.
        """
        if not token:
            raise NotAuthenticatedError("Missing bearer token")

        async with SupabaseClient(self._client) as client:
            try:
                response = await execute(client.auth.get_user(token), "auth get_user")
            except BackendUnavailableError:
                raise
            except BackendError as e:
                logger.info("Bearer token rejected", error=str(e))
                raise NotAuthenticatedError("Invalid or expired token") from e

        user = getattr(response, "user", None)
        if user is None or not getattr(user, "id", None):
            raise NotAuthenticatedError("Invalid or expired token")

        result = await self.backend.select(
            CatalogConfig.PROFILES_TABLE,
            Query(predicates=[Predicate.eq(COL_ID, str(user.id))], limit=1),
        )
        if not result.rows:
            logger.warning("Authenticated user has no profile", subject=mask_user_id(str(user.id)))
            raise NotAuthenticatedError("User profile not found")

        identity = identity_from_profile(result.rows[0])
        logger.debug(
            "Requester resolved",
            subject=mask_user_id(identity.subject_id),
            role=identity.role.value
        )
        return identity
