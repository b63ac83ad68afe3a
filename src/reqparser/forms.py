"""
URL-encoded form decoding.
"""

import logging

from reqparser import querystring
from reqparser.config import DEFAULT_PARAMETER_LIMIT
from reqparser.exceptions import DecodeError, StorageError
from reqparser.storage import CapturedRef, StorageBackend
from reqparser.types import FormFields

logger = logging.getLogger("reqparser.forms")


async def read_all(ref: CapturedRef, storage: StorageBackend) -> bytes:
    """Read a captured body back into a single buffer."""
    return b"".join([chunk async for chunk in storage.read_back(ref)])


async def decode_urlencoded(
    ref: CapturedRef | None,
    storage: StorageBackend,
    *,
    parameter_limit: int = DEFAULT_PARAMETER_LIMIT,
) -> FormFields:
    """
    Decode an ``application/x-www-form-urlencoded`` body.

    Raises:
        DecodeError: If a body persisted on disk cannot be read back.
    """
    if ref is None or ref.empty:
        return {}

    try:
        body = await read_all(ref, storage)
    except StorageError as exc:
        logger.error("Could not read body for decoding: %s", exc.message)
        raise DecodeError(f"Could not read request body: {exc.message}") from exc

    return querystring.decode(
        body.decode("utf-8", errors="replace"),
        parameter_limit=parameter_limit,
    )
