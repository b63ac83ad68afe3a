"""
Request parsing pipeline.
The single entry point that ties capture, URL parsing and decoding together.
"""

import asyncio
import logging
import uuid
from collections.abc import Callable
from typing import Any

from reqparser.capture import capture_raw_body
from reqparser.cleanup import clean
from reqparser.config import ParserConfig
from reqparser.context import RequestContext
from reqparser.exceptions import CaptureError, ConfigurationError, DecodeError
from reqparser.forms import decode_urlencoded
from reqparser.multipart import decode_multipart
from reqparser.request import BodyKind, Request
from reqparser.storage import CapturedRef, StorageBackend, create_storage
from reqparser.types import Receive, Scope
from reqparser.url import parse_url

logger = logging.getLogger("reqparser.parser")


class ReqParser:
    """
    Parses request bodies into raw bytes, form fields and files.

    Usage:
        parser = ReqParser(storage="/tmp/uploads")

        context = await parser.parse(scope, receive)
        ...
        parser.clean(context)

    One parser serves any number of concurrent requests. Its configuration
    is read-only once built.
    """

    def __init__(
        self,
        config: ParserConfig | None = None,
        **options: Any,
    ) -> None:
        if config is not None and options:
            raise ConfigurationError("Pass either a ParserConfig or options, not both")
        self.config = config or ParserConfig.from_options(options)
        self.storage: StorageBackend = create_storage(self.config)
        self._cleanups: set[asyncio.Task] = set()

    async def parse(self, scope: Scope, receive: Receive | None = None) -> RequestContext:
        """
        Capture and decode one request.

        ``receive`` is the ASGI receive callable. Pass ``None`` for requests
        that have no body stream.

        Raises:
            CaptureError: The body could not be captured.
            DecodeError: A URL-encoded body could not be read back.

        Both carry the partially populated context as ``exc.context``.
        """
        request = Request(scope, receive)
        context = RequestContext(
            id=request.request_id or uuid.uuid4().hex,
            method=request.method,
            content_type=request.content_type,
        )

        def on_captured(ref: CapturedRef | None, error: Exception | None) -> None:
            context.ended = True

        # Nothing else may read ``receive`` once capture has started
        capture = asyncio.ensure_future(
            capture_raw_body(
                receive,
                self.storage,
                request_id=context.id,
                on_complete=on_captured,
            )
        )

        context.url = parse_url(
            request.target,
            request.headers,
            request.encrypted,
            parameter_limit=self.config.parameter_limit,
        )

        try:
            ref = await capture
        except CaptureError as exc:
            exc.context = context
            context.error = exc
            raise
        context.set_raw_body(ref)

        if request.method not in self.config.methods:
            return context

        kind = request.body_kind
        if kind is BodyKind.URLENCODED:
            context.form_files = {}
            try:
                context.form_fields = await decode_urlencoded(
                    ref,
                    self.storage,
                    parameter_limit=self.config.parameter_limit,
                )
            except DecodeError as exc:
                context.form_fields = {}
                exc.context = context
                context.error = exc
                raise
        elif kind is BodyKind.MULTIPART:
            context.form_fields, context.form_files = await decode_multipart(
                ref,
                request.content_type,
                self.storage,
                parameter_limit=self.config.parameter_limit,
                tokenizer_options=self.config.tokenizer_options,
                request_id=context.id,
            )

        logger.debug(
            "Parsed request_id=%s method=%s kind=%s fields=%d files=%d",
            context.id,
            context.method,
            kind.value,
            len(context.form_fields or {}),
            len(context.form_files or {}),
        )
        return context

    def clean(
        self,
        context: RequestContext,
        callback: Callable[[], Any] | None = None,
    ) -> asyncio.Task | None:
        """
        Remove the request's temporary files in the background.

        Files whose descriptor has ``manual_cleanup`` set are kept.
        """
        task = clean(context, self.storage, callback)
        if task is not None:
            self._cleanups.add(task)
            task.add_done_callback(self._cleanups.discard)
        return task

    async def wait_cleanups(self) -> None:
        """Wait for every pending background cleanup."""
        if self._cleanups:
            await asyncio.gather(*self._cleanups, return_exceptions=True)
