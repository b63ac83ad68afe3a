"""
Multipart form-data decoder for reqparser.

Replays a captured body through ``python_multipart.MultipartParser`` and
turns its callbacks into form fields and :class:`FileDescriptor` entries.
File parts are streamed into the same storage backend as the raw body.
Field parts are re-encoded as ``key=value`` pairs and decoded once at the
end with :func:`reqparser.querystring.decode`, so arrays and bracket
nesting behave exactly as for URL-encoded bodies.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass
from typing import Any

from python_multipart import MultipartParser
from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import parse_options_header

from reqparser import querystring
from reqparser.config import DEFAULT_PARAMETER_LIMIT
from reqparser.context import FileDescriptor
from reqparser.exceptions import StorageError
from reqparser.storage import CapturedRef, StorageBackend
from reqparser.types import FormFields, FormFiles

logger = logging.getLogger("reqparser.multipart")

DEFAULT_ENCODING: str = "7bit"
DEFAULT_MIMETYPE: str = "application/octet-stream"


async def _iter_queue(queue: asyncio.Queue) -> AsyncIterator[bytes]:
    while True:
        chunk = await queue.get()
        if chunk is None:
            break
        yield chunk


@dataclass
class _Upload:
    """A file part in flight: its descriptor, data queue and storage task."""

    descriptor: FileDescriptor
    queue: asyncio.Queue
    task: asyncio.Task | None = None
    folded: bool = False
    closed: bool = False

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.queue.put_nowait(None)


class MultipartDecoder:
    """
    Stateful event handler for one multipart body.

    Usage:
        decoder = MultipartDecoder(boundary, storage)
        for chunk in body:
            decoder.write(chunk)
        decoder.finalize()
        fields, files = await decoder.finish()

    Must be driven from inside a running event loop, since file parts are
    stored by tasks.
    """

    def __init__(
        self,
        boundary: bytes | str,
        storage: StorageBackend,
        *,
        parameter_limit: int = DEFAULT_PARAMETER_LIMIT,
        tokenizer_options: Mapping[str, Any] | None = None,
        charset: str = "utf-8",
        request_id: str = "-",
    ) -> None:
        self.storage = storage
        self.parameter_limit = parameter_limit
        self.charset = charset
        self.request_id = request_id

        self.files: FormFiles = {}
        self._pending_fields: list[str] = []
        self._uploads: list[_Upload] = []

        # Current part state
        self._headers: dict[str, str] = {}
        self._header_name = bytearray()
        self._header_value = bytearray()
        self._name: str | None = None
        self._field_data: bytearray | None = None
        self._upload: _Upload | None = None

        callbacks = {
            "on_part_begin": self._on_part_begin,
            "on_header_begin": self._on_header_begin,
            "on_header_field": self._on_header_field,
            "on_header_value": self._on_header_value,
            "on_header_end": self._on_header_end,
            "on_headers_finished": self._on_headers_finished,
            "on_part_data": self._on_part_data,
            "on_part_end": self._on_part_end,
        }
        self._parser = MultipartParser(boundary, callbacks, **dict(tokenizer_options or {}))

    # ------------------------------------------------------------------
    # Tokenizer callbacks
    # ------------------------------------------------------------------

    def _on_part_begin(self) -> None:
        self._headers = {}
        self._name = None
        self._field_data = None
        self._upload = None

    def _on_header_begin(self) -> None:
        self._header_name.clear()
        self._header_value.clear()

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_name.extend(data[start:end])

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value.extend(data[start:end])

    def _on_header_end(self) -> None:
        name = self._header_name.decode("latin-1").strip().lower()
        if name:
            self._headers[name] = self._header_value.decode("latin-1").strip()

    def _on_headers_finished(self) -> None:
        try:
            _disposition, params = parse_options_header(
                self._headers.get("content-disposition", "")
            )
        except ValueError as exc:
            logger.warning(
                "Unreadable Content-Disposition request_id=%s: %s",
                self.request_id,
                exc,
            )
            return
        name = params.get(b"name")
        if name is None:
            logger.warning(
                "Multipart part without a name skipped request_id=%s",
                self.request_id,
            )
            return
        self._name = name.decode(self.charset, errors="replace")

        filename = params.get(b"filename")
        if filename is None:
            self._field_data = bytearray()
            return

        descriptor = FileDescriptor(
            field_name=self._name,
            filename=filename.decode(self.charset, errors="replace"),
            encoding=self._headers.get("content-transfer-encoding", DEFAULT_ENCODING),
            mimetype=self._headers.get("content-type", DEFAULT_MIMETYPE),
        )
        upload = _Upload(descriptor=descriptor, queue=asyncio.Queue())
        upload.task = asyncio.ensure_future(self._store(upload))
        self._uploads.append(upload)
        self._upload = upload

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        if self._upload is not None:
            self._upload.queue.put_nowait(bytes(data[start:end]))
        elif self._field_data is not None:
            self._field_data.extend(data[start:end])

    def _on_part_end(self) -> None:
        if self._upload is not None:
            upload = self._upload
            upload.close()
            querystring.fold(
                self.files,
                upload.descriptor.field_name,
                upload.descriptor,
                merge_repeated=False,
            )
            upload.folded = True
        elif self._field_data is not None and self._name is not None:
            value = self._field_data.decode(self.charset, errors="replace")
            self._pending_fields.append(querystring.encode_pair(self._name, value))
        self._upload = None
        self._field_data = None

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    async def _store(self, upload: _Upload) -> CapturedRef:
        ref = await self.storage.capture(
            _iter_queue(upload.queue), name=upload.descriptor.filename
        )
        upload.descriptor.attach(ref)
        return ref

    # ------------------------------------------------------------------
    # Driving
    # ------------------------------------------------------------------

    def write(self, data: bytes) -> int:
        return self._parser.write(data)

    def finalize(self) -> None:
        self._parser.finalize()

    async def finish(self) -> tuple[FormFields, FormFiles]:
        """
        Wait for every file to be stored, then build the field mapping.

        Storage failures of individual files are logged. Their descriptors
        keep ``written=False``.
        """
        # A part cut short by a tokenizer error never saw its end event
        for upload in self._uploads:
            upload.close()

        results = await asyncio.gather(
            *(upload.task for upload in self._uploads),
            return_exceptions=True,
        )
        for upload, result in zip(self._uploads, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "Could not store upload %r request_id=%s: %s",
                    upload.descriptor.filename,
                    self.request_id,
                    result,
                )
            elif not upload.folded:
                # Incomplete part, nothing references the stored copy
                await self.storage.remove(result)

        fields = querystring.decode(
            "&".join(self._pending_fields),
            parameter_limit=self.parameter_limit,
        )
        return fields, self.files


async def decode_multipart(
    ref: CapturedRef | None,
    content_type: str,
    storage: StorageBackend,
    *,
    parameter_limit: int = DEFAULT_PARAMETER_LIMIT,
    tokenizer_options: Mapping[str, Any] | None = None,
    request_id: str = "-",
) -> tuple[FormFields, FormFiles]:
    """
    Decode a ``multipart/form-data`` body captured in ``storage``.

    Never raises for malformed input or unreadable storage: problems are
    logged and whatever was decoded up to that point is returned.

    Returns:
        ``(fields, files)``
    """
    _ctype, options = parse_options_header(content_type)
    boundary = options.get(b"boundary")
    if not boundary:
        logger.warning("Multipart body without boundary request_id=%s", request_id)
        return {}, {}

    decoder = MultipartDecoder(
        boundary,
        storage,
        parameter_limit=parameter_limit,
        tokenizer_options=tokenizer_options,
        request_id=request_id,
    )

    if ref is not None:
        try:
            async for chunk in storage.read_back(ref):
                decoder.write(chunk)
        except StorageError as exc:
            logger.error(
                "Could not read body for multipart decoding request_id=%s: %s",
                request_id,
                exc.message,
            )
        except MultipartParseError as exc:
            logger.warning(
                "Malformed multipart body request_id=%s: %s", request_id, exc
            )

    try:
        decoder.finalize()
    except MultipartParseError as exc:
        logger.warning("Malformed multipart body request_id=%s: %s", request_id, exc)

    return await decoder.finish()
