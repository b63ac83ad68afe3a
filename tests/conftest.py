"""
Helpers for building ASGI scope / receive / send in tests.
"""

from collections.abc import Callable, Awaitable
from typing import Any

import pytest

from reqparser.storage import FilesystemStorage, MemoryStorage


def make_scope(
    method: str = "GET",
    path: str = "/",
    headers: dict[str, str] | None = None,
    query_string: str = "",
    scheme: str = "http",
    extras: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build a minimal ASGI scope dict."""
    raw_headers: list[tuple[bytes, bytes]] = []
    for name, value in (headers or {}).items():
        raw_headers.append((name.lower().encode("latin-1"), value.encode("latin-1")))

    scope: dict[str, Any] = {
        "type": "http",
        "method": method,
        "path": path,
        "query_string": query_string.encode("utf-8"),
        "headers": raw_headers,
        "client": ("127.0.0.1", 12345),
        "scheme": scheme,
    }
    if extras:
        scope.update(extras)
    return scope


def make_receive(*chunks: bytes) -> Callable[[], Awaitable[dict[str, Any]]]:
    """
    Create an ASGI receive callable that yields ``chunks`` one message at a
    time, then ``http.disconnect``.
    """
    pending = list(chunks) or [b""]
    index = 0

    async def receive() -> dict[str, Any]:
        nonlocal index
        if index < len(pending):
            body = pending[index]
            index += 1
            return {
                "type": "http.request",
                "body": body,
                "more_body": index < len(pending),
            }
        return {"type": "http.disconnect"}

    return receive


def make_aborted_receive(*chunks: bytes) -> Callable[[], Awaitable[dict[str, Any]]]:
    """Receive callable whose client disconnects after ``chunks``."""
    pending = list(chunks)

    async def receive() -> dict[str, Any]:
        if pending:
            return {"type": "http.request", "body": pending.pop(0), "more_body": True}
        return {"type": "http.disconnect"}

    return receive


def make_failing_receive(
    error: Exception, *chunks: bytes
) -> Callable[[], Awaitable[dict[str, Any]]]:
    """Receive callable that raises ``error`` after ``chunks``."""
    pending = list(chunks)

    async def receive() -> dict[str, Any]:
        if pending:
            return {"type": "http.request", "body": pending.pop(0), "more_body": True}
        raise error

    return receive


async def iter_chunks(*chunks: bytes):
    """Async iterator over byte chunks, as a storage backend source."""
    for chunk in chunks:
        yield chunk


class ResponseCapture:
    """Captures ASGI send() messages for assertions."""

    def __init__(self) -> None:
        self.messages: list[dict[str, Any]] = []
        self.status: int = 0
        self.headers: dict[str, str] = {}
        self.body: bytes = b""

    async def __call__(self, message: dict[str, Any]) -> None:
        self.messages.append(message)
        if message["type"] == "http.response.start":
            self.status = message.get("status", 0)
            for name, value in message.get("headers", []):
                self.headers[name.decode("latin-1").lower()] = value.decode("latin-1")
        elif message["type"] == "http.response.body":
            self.body += message.get("body", b"")


# ---------------------------------------------------------------------------
# Multipart test helpers
# ---------------------------------------------------------------------------


def build_multipart_body(
    boundary: str,
    parts: list[dict[str, Any]],
) -> bytes:
    """
    Build a multipart/form-data body for testing.

    Args:
        boundary: The multipart boundary string
        parts: List of dicts with keys:
            - name: field name
            - data: field value (str or bytes)
            - filename: (optional) filename for file uploads
            - content_type: (optional) Content-Type for file uploads

    Example:
        body = build_multipart_body("boundary", [
            {"name": "field1", "data": "value1"},
            {"name": "file1", "data": b"content", "filename": "test.txt"},
        ])
    """
    lines: list[bytes] = []

    for part in parts:
        lines.append(f"--{boundary}".encode())

        # Content-Disposition header
        if "filename" in part:
            disposition = f'Content-Disposition: form-data; name="{part["name"]}"; filename="{part["filename"]}"'
        else:
            disposition = f'Content-Disposition: form-data; name="{part["name"]}"'
        lines.append(disposition.encode())

        # Content-Type header (for file uploads)
        if "content_type" in part:
            lines.append(f'Content-Type: {part["content_type"]}'.encode())

        # Empty line before body
        lines.append(b"")

        # Body data
        data = part["data"]
        if isinstance(data, str):
            lines.append(data.encode())
        else:
            lines.append(data)

    # Final boundary
    lines.append(f"--{boundary}--".encode())

    return b"\r\n".join(lines) + b"\r\n"


def multipart_headers(boundary: str) -> dict[str, str]:
    return {"Content-Type": f"multipart/form-data; boundary={boundary}"}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def storage_root(tmp_path) -> str:
    """A storage directory that does not exist yet."""
    return str(tmp_path / "storage")


@pytest.fixture
def memory_storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def fs_storage(storage_root) -> FilesystemStorage:
    return FilesystemStorage(storage_root)


@pytest.fixture(params=["memory", "filesystem"])
def storage(request, storage_root):
    """Every storage backend, for tests that must hold for both."""
    if request.param == "memory":
        return MemoryStorage()
    return FilesystemStorage(storage_root)
