"""
Per-request state produced by the parser.
"""

import asyncio
from collections.abc import Iterator
from dataclasses import dataclass, field

from reqparser.storage import CapturedRef
from reqparser.types import FormFields, FormFiles
from reqparser.url import ParsedURL


@dataclass
class FileDescriptor:
    """
    One uploaded file.

    Attributes:
        field_name: Form field name as sent, including any ``[]`` marker.
        filename: Client-side filename from ``Content-Disposition``.
        encoding: ``Content-Transfer-Encoding`` of the part.
        mimetype: ``Content-Type`` of the part.
        data: File content when storage is in memory.
        path: Location of the file when storage is on disk.
        written: True once the on-disk copy is complete.
        manual_cleanup: When True, cleanup leaves ``path`` alone.
    """

    field_name: str
    filename: str
    encoding: str = "7bit"
    mimetype: str = "application/octet-stream"
    data: bytes | None = field(default=None, repr=False)
    path: str | None = None
    size: int = 0
    written: bool = False
    manual_cleanup: bool = False

    @property
    def in_memory(self) -> bool:
        return self.path is None

    def attach(self, ref: CapturedRef) -> None:
        """Record where the storage backend put this file's bytes."""
        self.size = ref.size
        if ref.path is not None:
            self.path = ref.path
            self.written = True
        else:
            # An empty upload is an empty buffer, not a missing one
            self.data = ref.data or b""

    async def read(self) -> bytes:
        """Return the file content from memory or disk."""
        if self.path is None:
            return self.data or b""

        def _read() -> bytes:
            with open(self.path, "rb") as fh:
                return fh.read()

        return await asyncio.to_thread(_read)


@dataclass
class RequestContext:
    """
    Everything the parser learned about one request.

    ``raw_body`` and ``raw_body_path`` are mutually exclusive. They are both
    ``None`` when there was no body or it could not be captured.
    ``form_fields`` and ``form_files`` stay ``None`` unless the body was
    URL-encoded or multipart.
    """

    id: str
    method: str = "GET"
    content_type: str = ""
    url: ParsedURL | None = None
    raw_body: bytes | None = field(default=None, repr=False)
    raw_body_path: str | None = None
    form_fields: FormFields | None = None
    form_files: FormFiles | None = None
    ended: bool = False
    error: Exception | None = None

    @property
    def raw_ref(self) -> CapturedRef | None:
        if self.raw_body is None and self.raw_body_path is None:
            return None
        size = len(self.raw_body) if self.raw_body is not None else 0
        return CapturedRef(data=self.raw_body, path=self.raw_body_path, size=size)

    def set_raw_body(self, ref: CapturedRef | None) -> None:
        if ref is None:
            return
        if ref.path is not None:
            self.raw_body_path = ref.path
        else:
            self.raw_body = ref.data

    def iter_files(self) -> Iterator[FileDescriptor]:
        """Yield every file descriptor, flattening list entries."""
        for entry in (self.form_files or {}).values():
            if isinstance(entry, list):
                yield from entry
            else:
                yield entry
