"""
Base middleware class for reqparser.
"""

import json
from abc import ABC, abstractmethod
from typing import Any

from reqparser.types import ASGIApp, Receive, Scope, Send


class Middleware(ABC):
    """
    Abstract base ASGI middleware.

    Non-HTTP scopes (lifespan, websocket) are passed straight through;
    subclasses only implement :meth:`process` for HTTP requests.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI interface - called by the server."""
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        await self.process(scope, receive, send)

    @abstractmethod
    async def process(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Process the request. Must be implemented by subclasses."""
        ...


async def send_json(send: Send, content: Any, status_code: int = 200) -> None:
    """Send a complete JSON response."""
    body = json.dumps(content, separators=(",", ":")).encode("utf-8")

    await send({
        "type": "http.response.start",
        "status": status_code,
        "headers": [
            (b"content-type", b"application/json; charset=utf-8"),
            (b"content-length", str(len(body)).encode("latin-1")),
        ],
    })

    await send({
        "type": "http.response.body",
        "body": body,
    })
