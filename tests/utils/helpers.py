"""Test helper functions."""

import json
from io import BytesIO
from typing import Any, Dict, Optional
from unittest.mock import AsyncMock, MagicMock, Mock


class MockSocket:
    """Just enough of a socket for BaseHTTPRequestHandler to parse a request."""

    def __init__(self, raw_request: bytes):
        self.raw_request = raw_request

    def makefile(self, *args, **kwargs):
        return BytesIO(self.raw_request)

    def sendall(self, data):
        pass

    def close(self):
        pass


def build_raw_request(
    method: str,
    path: str,
    body: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> bytes:
    """Serialize an HTTP/1.1 request for MockSocket."""
    payload = json.dumps(body).encode("utf-8") if body is not None else b""
    lines = [f"{method} {path} HTTP/1.1"]
    for name, value in (headers or {}).items():
        lines.append(f"{name}: {value}")
    if payload:
        lines.append("Content-Type: application/json")
        lines.append(f"Content-Length: {len(payload)}")
    return ("\r\n".join(lines) + "\r\n\r\n").encode("utf-8") + payload


def run_handler(handler_cls, method: str, path: str, body=None, headers=None):
    """
    Parse a request into a Vercel handler class and call its do_<METHOD> once.

    Returns (status, response_headers, parsed JSON body).
    """
    h = handler_cls.__new__(handler_cls)
    h.client_address = ("127.0.0.1", 8000)
    h.rfile = BytesIO(build_raw_request(method, path, body, headers))
    h.wfile = BytesIO()
    h.raw_requestline = h.rfile.readline(65537)
    assert h.parse_request()
    h.send_response = Mock()
    h.send_header = Mock()
    h.end_headers = Mock()

    getattr(h, f"do_{method}")()

    h.wfile.seek(0)
    response_headers = {call.args[0]: call.args[1] for call in h.send_header.call_args_list}
    return h.send_response.call_args[0][0], response_headers, json.loads(h.wfile.read().decode("utf-8"))


def postgrest_builder(data=None, count=None):
    """
    MagicMock standing in for a postgrest-py request builder.

    Filter methods return the same builder, execute() resolves to an
    APIResponse-like object.
    """
    builder = MagicMock()
    for method in ("select", "insert", "update", "delete", "eq", "is_", "ilike",
                   "gte", "lte", "in_", "or_", "order", "range", "limit"):
        getattr(builder, method).return_value = builder
    builder.execute = AsyncMock(return_value=Mock(data=data if data is not None else [], count=count))
    return builder


def supabase_client_with(builder) -> MagicMock:
    client = MagicMock()
    client.table = Mock(return_value=builder)
    return client
