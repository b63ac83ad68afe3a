"""
Storage backends for captured request bytes.

A backend turns a single-pass byte stream into a :class:`CapturedRef`
that can be read back any number of times, and removes what it created.
Every component that persists bytes (raw body, uploaded files) goes
through this interface, so none of them needs to know where bytes live.
"""

import asyncio
import logging
import os
import shutil
import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass

from reqparser.config import ParserConfig
from reqparser.exceptions import StorageError
from reqparser.types import ByteStream

logger = logging.getLogger("reqparser.storage")

READ_CHUNK_SIZE: int = 64 * 1024


@dataclass(frozen=True)
class CapturedRef:
    """
    Handle to captured bytes.

    Exactly one of ``data`` (memory) or ``path`` (filesystem) is set for a
    non-empty capture. Both are ``None`` when a memory capture saw no bytes.
    """

    data: bytes | None = None
    path: str | None = None
    size: int = 0

    @property
    def empty(self) -> bool:
        return self.data is None and self.path is None


async def drain(chunks: ByteStream) -> int:
    """Consume a stream to the end, discarding its bytes."""
    total = 0
    async for chunk in chunks:
        total += len(chunk)
    return total


class StorageBackend(ABC):
    """Abstract storage backend."""

    @abstractmethod
    async def capture(self, chunks: ByteStream, name: str | None = None) -> CapturedRef:
        """
        Consume ``chunks`` once and return a reference to the stored bytes.

        ``name`` is the client-side filename, if any.
        """
        ...

    @abstractmethod
    def read_back(self, ref: CapturedRef) -> AsyncIterator[bytes]:
        """Stream the captured bytes again."""
        ...

    @abstractmethod
    async def remove_path(self, path: str) -> None:
        """Best-effort removal of a persisted artifact."""
        ...

    async def remove(self, ref: CapturedRef) -> None:
        if ref.path is not None:
            await self.remove_path(ref.path)


class MemoryStorage(StorageBackend):
    """Keeps captured bytes in a single in-memory buffer."""

    async def capture(self, chunks: ByteStream, name: str | None = None) -> CapturedRef:
        parts = [chunk async for chunk in chunks if chunk]
        if not parts:
            # No body at all, as opposed to an empty buffer
            return CapturedRef()
        data = b"".join(parts)
        return CapturedRef(data=data, size=len(data))

    async def read_back(self, ref: CapturedRef) -> AsyncIterator[bytes]:
        if ref.data:
            yield ref.data

    async def remove_path(self, path: str) -> None:
        return None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


def _finish_file(fh) -> None:
    fh.flush()
    os.fsync(fh.fileno())
    fh.close()


class FilesystemStorage(StorageBackend):
    """
    Writes captured bytes to files under ``root``.

    Each capture gets its own file named after a fresh random token, so
    concurrent requests never share a path. A capture only resolves once the
    file has been flushed, synced and closed.
    """

    def __init__(self, root: str, keep_extensions: bool = False) -> None:
        self.root = root
        self.keep_extensions = keep_extensions

    def make_path(self, name: str | None = None) -> str:
        token = uuid.uuid4().hex
        if self.keep_extensions and name:
            token += os.path.splitext(os.path.basename(name))[1]
        return os.path.join(self.root, token)

    async def ensure_root(self) -> None:
        await asyncio.to_thread(os.makedirs, self.root, exist_ok=True)

    async def capture(self, chunks: ByteStream, name: str | None = None) -> CapturedRef:
        try:
            await self.ensure_root()
        except OSError as exc:
            logger.error("Could not create storage directory %s: %s", self.root, exc)
            # The source must still be consumed to the end
            await drain(chunks)
            raise StorageError(
                f"Could not create storage directory {self.root}: {exc}",
                path=self.root,
            ) from exc

        path = self.make_path(name)
        try:
            fh = await asyncio.to_thread(open, path, "wb")
        except OSError as exc:
            logger.error("Could not open %s for writing: %s", path, exc)
            await drain(chunks)
            raise StorageError(f"Could not open {path}: {exc}", path=path) from exc

        size = 0
        try:
            async for chunk in chunks:
                if chunk:
                    await asyncio.to_thread(fh.write, chunk)
                    size += len(chunk)
            await asyncio.to_thread(_finish_file, fh)
        except BaseException as exc:
            # Covers cancellation too, the partial file must not survive
            fh.close()
            await self.remove_path(path)
            if isinstance(exc, OSError):
                logger.error("Write to %s failed: %s", path, exc)
                raise StorageError(f"Could not write {path}: {exc}", path=path) from exc
            raise

        logger.debug("Captured %d bytes to %s", size, path)
        return CapturedRef(path=path, size=size)

    async def read_back(self, ref: CapturedRef) -> AsyncIterator[bytes]:
        if ref.path is None:
            return
        try:
            fh = await asyncio.to_thread(open, ref.path, "rb")
        except OSError as exc:
            raise StorageError(f"Could not open {ref.path}: {exc}", path=ref.path) from exc
        try:
            while True:
                chunk = await asyncio.to_thread(fh.read, READ_CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk
        finally:
            fh.close()

    async def remove_path(self, path: str) -> None:
        try:
            await asyncio.to_thread(os.remove, path)
        except FileNotFoundError:
            logger.debug("Already removed: %s", path)
        except OSError as exc:
            logger.warning("Could not remove %s: %s", path, exc)
        else:
            logger.debug("Removed %s", path)

    async def purge(self) -> None:
        """Remove the whole storage directory."""
        try:
            await asyncio.to_thread(shutil.rmtree, self.root)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Could not purge %s: %s", self.root, exc)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(root={self.root!r})"


def create_storage(config: ParserConfig) -> StorageBackend:
    """Return the backend selected by ``config.storage``."""
    if config.in_memory:
        return MemoryStorage()
    return FilesystemStorage(config.storage, keep_extensions=config.keep_extensions)
