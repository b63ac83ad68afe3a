"""
Form parsing middleware.
"""

import logging
from typing import Any

from reqparser.config import ParserConfig
from reqparser.exceptions import CaptureError, ClientDisconnected, DecodeError
from reqparser.middleware.base import Middleware, send_json
from reqparser.parser import ReqParser
from reqparser.storage import CapturedRef, StorageBackend
from reqparser.types import ASGIApp, Message, Receive, Scope, Send

SCOPE_KEY: str = "reqparser"


class ReplayReceive:
    """
    ``receive`` callable that serves the captured body again.

    Once the body has been replayed, calls go to the original ``receive``
    so the app still sees the client's disconnect. :meth:`aclose` releases
    the read-back stream when the app stops reading early.
    """

    def __init__(
        self,
        storage: StorageBackend,
        ref: CapturedRef | None,
        receive: Receive,
    ) -> None:
        self._receive = receive
        self._chunks = storage.read_back(ref) if ref is not None else None
        self._replayed = False

    async def __call__(self) -> Message:
        if self._replayed:
            return await self._receive()

        if self._chunks is not None:
            try:
                chunk = await self._chunks.__anext__()
            except StopAsyncIteration:
                pass
            else:
                return {"type": "http.request", "body": chunk, "more_body": True}

        self._replayed = True
        return {"type": "http.request", "body": b"", "more_body": False}

    async def aclose(self) -> None:
        self._replayed = True
        if self._chunks is not None:
            await self._chunks.aclose()


class FormParserMiddleware(Middleware):
    """
    Parses every HTTP request body before the app sees it.

    The :class:`~reqparser.context.RequestContext` is stored in
    ``scope["reqparser"]``, and the app can still read the body through
    ``receive``. With ``auto_clean`` the request's temporary files are
    removed once the app returns.

    Usage:
        app = FormParserMiddleware(app, storage="/tmp/uploads")
    """

    def __init__(
        self,
        app: ASGIApp,
        config: ParserConfig | None = None,
        auto_clean: bool = True,
        **options: Any,
    ) -> None:
        super().__init__(app)
        self.parser = ReqParser(config, **options)
        self.auto_clean = auto_clean
        self._logger = logging.getLogger("reqparser.middleware")

    async def process(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            context = await self.parser.parse(scope, receive)
        except ClientDisconnected as exc:
            self._logger.info(
                "Client went away request_id=%s",
                exc.context.id if exc.context else "-",
            )
            return
        except (CaptureError, DecodeError) as exc:
            request_id = exc.context.id if exc.context else "-"
            self._logger.warning(
                "Request body rejected request_id=%s detail=%s",
                request_id,
                exc.message,
            )
            await send_json(
                send,
                {
                    "error": exc.message,
                    "status_code": 400,
                    "request_id": request_id,
                },
                status_code=400,
            )
            return

        scope[SCOPE_KEY] = context
        replay = ReplayReceive(self.parser.storage, context.raw_ref, receive)
        try:
            await self.app(scope, replay, send)
        finally:
            await replay.aclose()
            if self.auto_clean:
                self.parser.clean(context)
