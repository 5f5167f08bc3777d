"""Activity catalog endpoint for Vercel.

GET    /api/activities                      list (filters in the query string)
GET    /api/activities?id=<id>              single activity
GET    /api/activities?resource=categories  reference data (also resource=tags)
POST   /api/activities                      create
POST   /api/activities?id=<id>&action=...   soft_delete | restore | purge | approve | unapprove | reject
PATCH  /api/activities?id=<id>              partial update
DELETE /api/activities?id=<id>              purge
"""

from http.server import BaseHTTPRequestHandler
from typing import Any, Optional
from urllib.parse import parse_qs, urlparse
import asyncio
import json

from hobbly.models.access import RequesterIdentity, ViewKind
from hobbly.services.catalog import CatalogService
from hobbly.services.identity import SupabaseIdentityProvider, bearer_token
from hobbly.utils.errors import (
    AuthorizationError,
    BackendUnavailableError,
    CatalogValidationError,
    ConcurrentModificationError,
    HobblyError,
    IllegalTransitionError,
    NotAuthenticatedError,
    NotFoundError,
)
from hobbly.utils.logging import bind_requester, correlation_context, get_structured_logger
from hobbly.utils.logging_config import LoggingConfig

LoggingConfig.setup_logging()
logger = get_structured_logger(__name__)

# Built lazily so a missing env var surfaces as a 5xx instead of an import error
_service: Optional[CatalogService] = None
_identity: Optional[SupabaseIdentityProvider] = None
_loop: Optional[asyncio.AbstractEventLoop] = None


class BadRequest(Exception):
    """Malformed request line, query string or body."""


LIST_PARAMS = {
    "search": "search",
    "categoryId": "category_id",
    "type": "type",
    "location": "location",
    "minPrice": "min_price",
    "maxPrice": "max_price",
    "freeOnly": "free_only",
}

PAGE_PARAMS = {
    "page": "page",
    "pageSize": "page_size",
    "orderBy": "order_by",
    "ascending": "ascending",
}


def _load_services() -> tuple[CatalogService, SupabaseIdentityProvider]:
    global _service, _identity
    if _service is None:
        from hobbly.services.blob_store import SupabaseBlobStore
        from hobbly.services.supabase_client import SupabaseBackend

        backend = SupabaseBackend()
        _service = CatalogService(backend, blob_store=SupabaseBlobStore())
        _identity = SupabaseIdentityProvider(backend=backend)
    return _service, _identity


def _get_loop() -> asyncio.AbstractEventLoop:
    """One loop per warm function instance, so the Supabase client stays usable."""
    global _loop
    if _loop is None or _loop.is_closed():
        _loop = asyncio.new_event_loop()
    return _loop


def error_status(error: Exception) -> int:
    """HTTP status for an exception raised by the catalog."""
    if isinstance(error, BadRequest):
        return 400
    if isinstance(error, NotAuthenticatedError):
        return 401
    if isinstance(error, AuthorizationError):
        return 403
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, (IllegalTransitionError, ConcurrentModificationError)):
        return 409
    if isinstance(error, CatalogValidationError):
        return 422
    if isinstance(error, BackendUnavailableError):
        return 503
    return 500


def error_body(error: Exception) -> dict[str, Any]:
    body: dict[str, Any] = {"error": str(error) or error.__class__.__name__}
    if isinstance(error, AuthorizationError):
        body["reason"] = error.reason
    if isinstance(error, CatalogValidationError):
        body["details"] = error.errors
    if isinstance(error, BackendUnavailableError):
        body["retriable"] = True
    return body


def _single(query: dict[str, list[str]], name: str) -> Optional[str]:
    values = query.get(name)
    return values[0] if values else None


def _list_arguments(query: dict[str, list[str]]) -> tuple[dict, dict]:
    filters = {field: _single(query, name) for name, field in LIST_PARAMS.items() if name in query}
    tags = [tag for value in query.get("tags", []) for tag in value.split(",") if tag]
    if tags:
        filters["tags"] = tuple(tags)
    pagination = {field: _single(query, name) for name, field in PAGE_PARAMS.items() if name in query}
    return filters, pagination


def _view(query: dict[str, list[str]]) -> Optional[ViewKind]:
    value = _single(query, "view")
    if value is None:
        return None
    try:
        return ViewKind(value)
    except ValueError:
        raise BadRequest(f"Unknown view '{value}'")


def _json_body(raw_body: str) -> dict[str, Any]:
    if not raw_body:
        return {}
    try:
        body = json.loads(raw_body)
    except json.JSONDecodeError as e:
        raise BadRequest(f"Invalid JSON body: {e.msg}")
    if not isinstance(body, dict):
        raise BadRequest("JSON body must be an object")
    return body


async def _requester(headers: dict[str, str]) -> Optional[RequesterIdentity]:
    token = bearer_token(headers.get("authorization") or headers.get("Authorization"))
    if token is None:
        return None
    _, identity = _load_services()
    requester = await identity.resolve(token)
    bind_requester(requester.subject_id)
    return requester


async def _get(query: dict[str, list[str]], requester) -> tuple[int, Any]:
    service, _ = _load_services()

    resource = _single(query, "resource")
    if resource == "categories":
        return 200, [category.model_dump() for category in await service.list_categories()]
    if resource == "tags":
        return 200, [tag.model_dump() for tag in await service.list_tags()]
    if resource is not None:
        raise BadRequest(f"Unknown resource '{resource}'")

    activity_id = _single(query, "id")
    if activity_id:
        activity = await service.get(activity_id, requester, _view(query))
        return 200, activity.model_dump(mode="json")

    filters, pagination = _list_arguments(query)
    page = await service.list(filters, pagination, requester, _view(query))
    return 200, page.model_dump(mode="json")


async def _post(query: dict[str, list[str]], body: dict, requester) -> tuple[int, Any]:
    service, _ = _load_services()
    activity_id = _single(query, "id")
    action = _single(query, "action")

    if not activity_id:
        if action:
            raise BadRequest("action requires an id")
        result = await service.create(body, requester)
        return 201, {"data": result.activity.model_dump(mode="json"), "warnings": result.warnings}

    if action == "soft_delete":
        activity = await service.soft_delete(activity_id, requester)
    elif action == "restore":
        activity = await service.restore(activity_id, requester)
    elif action == "approve":
        activity = await service.approve(activity_id, True, requester)
    elif action == "unapprove":
        activity = await service.approve(activity_id, False, requester)
    elif action == "reject":
        activity = await service.reject(activity_id, requester)
    elif action == "purge":
        return 200, (await service.purge(activity_id, requester)).model_dump()
    else:
        raise BadRequest(f"Unknown action '{action}'")
    return 200, {"data": activity.model_dump(mode="json"), "warnings": []}


async def dispatch(
    method: str,
    path: str,
    headers: dict[str, str],
    raw_body: str = "",
) -> tuple[int, Any]:
    """Route one request to the catalog. Returns (status, JSON-serializable payload)."""
    try:
        query = parse_qs(urlparse(path).query)
        requester = await _requester(headers)

        if method == "GET":
            return await _get(query, requester)

        service, _ = _load_services()
        if method == "POST":
            return await _post(query, _json_body(raw_body), requester)

        activity_id = _single(query, "id")
        if not activity_id:
            raise BadRequest(f"{method} requires an id")

        if method == "PATCH":
            result = await service.update(activity_id, _json_body(raw_body), requester)
            return 200, {"data": result.activity.model_dump(mode="json"), "warnings": result.warnings}
        if method == "DELETE":
            return 200, (await service.purge(activity_id, requester)).model_dump()

        return 405, {"error": f"Method {method} not allowed"}

    except (BadRequest, HobblyError) as e:
        status = error_status(e)
        if status >= 500:
            logger.error("Catalog request failed", method=method, status=status, error=str(e))
        else:
            logger.info("Catalog request rejected", method=method, status=status, error=str(e))
        return status, error_body(e)


class handler(BaseHTTPRequestHandler):
    """Vercel serverless function handler for the activity catalog."""

    def _handle(self, method: str):
        with correlation_context(self.headers.get("X-Correlation-ID")) as correlation_id:
            try:
                content_length = int(self.headers.get('Content-Length', 0))
                raw_body = self.rfile.read(content_length).decode('utf-8') if content_length > 0 else ""
                status, payload = _get_loop().run_until_complete(
                    dispatch(method, self.path, dict(self.headers), raw_body)
                )
            except Exception as e:
                logger.exception("Unhandled error in catalog request", method=method, error=str(e))
                status, payload = 500, {"error": "internal error"}

            self.send_response(status)
            self.send_header('Content-Type', 'application/json')
            self.send_header('X-Correlation-ID', correlation_id)
            self.end_headers()
            self.wfile.write(json.dumps(payload).encode('utf-8'))

    def do_GET(self):
        self._handle("GET")

    def do_POST(self):
        self._handle("POST")

    def do_PATCH(self):
        self._handle("PATCH")

    def do_DELETE(self):
        self._handle("DELETE")
