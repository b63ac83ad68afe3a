"""
Read-only view of an ASGI HTTP request.
Gives the parser header and target access without touching the body.
"""

import re
from collections.abc import Mapping
from enum import Enum
from functools import cached_property

from reqparser.types import Receive, Scope

_BOUNDARY_RE = re.compile(r"boundary=(?:\"([^\"]+)\"|([^;]+))", re.IGNORECASE)


class BodyKind(Enum):
    """How a request body is decoded."""

    URLENCODED = "urlencoded"
    MULTIPART = "multipart"
    RAW = "raw"


class Request:
    """
    HTTP request wrapper over an ASGI ``scope`` and ``receive``.

    ``receive`` may be ``None`` for synthetic requests that carry no body
    stream at all.
    """

    def __init__(self, scope: Scope, receive: Receive | None = None) -> None:
        self._scope = scope
        self.receive = receive

    @property
    def scope(self) -> Scope:
        return self._scope

    @property
    def method(self) -> str:
        """HTTP method (GET, POST, etc.)."""
        return self._scope.get("method", "GET").upper()

    @property
    def path(self) -> str:
        """Request path."""
        return self._scope.get("path", "/") or "/"

    @property
    def query_string(self) -> str:
        """Raw query string."""
        return self._scope.get("query_string", b"").decode("latin-1")

    @property
    def target(self) -> str:
        """Request target as sent on the request line (path plus query)."""
        raw_path = self._scope.get("raw_path")
        path = raw_path.decode("latin-1") if raw_path else self.path
        if self.query_string:
            return f"{path}?{self.query_string}"
        return path

    @cached_property
    def headers(self) -> Mapping[str, str]:
        """Request headers with lower-case names."""
        headers: dict[str, str] = {}
        raw_headers = self._scope.get("headers", [])

        for name, value in raw_headers:
            header_name = name.decode("latin-1").lower()
            header_value = value.decode("latin-1")
            headers[header_name] = header_value

        return headers

    @property
    def content_type(self) -> str:
        """Content-Type header value."""
        return self.headers.get("content-type", "")

    @property
    def encrypted(self) -> bool:
        """True when the connection to this server is TLS."""
        return self._scope.get("scheme", "http") in ("https", "wss")

    @property
    def request_id(self) -> str | None:
        """Request id assigned by an upstream middleware, if any."""
        return self._scope.get("request_id")

    @property
    def boundary(self) -> str | None:
        """Multipart boundary from the Content-Type header."""
        match = _BOUNDARY_RE.search(self.content_type)
        if match is None:
            return None
        return (match.group(1) or match.group(2)).strip()

    @property
    def body_kind(self) -> BodyKind:
        """
        Classify the body by its declared Content-Type.

        ``multipart`` only counts when a boundary is declared. Everything
        that is not a form (JSON, octet-stream, no header) is kept raw.
        """
        ct = self.content_type.lower()
        if "urlencoded" in ct:
            return BodyKind.URLENCODED
        if "multipart" in ct and self.boundary:
            return BodyKind.MULTIPART
        return BodyKind.RAW

    def get_header(self, name: str, default: str | None = None) -> str | None:
        """Get a specific header value."""
        return self.headers.get(name.lower(), default)
