"""
Removal of on-disk artifacts left by a parsed request.
"""

import asyncio
import logging
from collections.abc import Callable, Iterator
from typing import Any

from reqparser.context import RequestContext
from reqparser.storage import StorageBackend

logger = logging.getLogger("reqparser.cleanup")


def iter_cleanup_paths(context: RequestContext) -> Iterator[str]:
    """Yield the raw body path and every upload path not claimed by the caller."""
    if context.raw_body_path is not None:
        yield context.raw_body_path
    for descriptor in context.iter_files():
        if descriptor.path is not None and not descriptor.manual_cleanup:
            yield descriptor.path


async def _remove_all(storage: StorageBackend, paths: list[str], request_id: str) -> None:
    results = await asyncio.gather(
        *(storage.remove_path(path) for path in paths),
        return_exceptions=True,
    )
    for path, result in zip(paths, results):
        if isinstance(result, Exception):
            logger.warning(
                "Cleanup of %s failed request_id=%s: %s", path, request_id, result
            )
    logger.debug("Cleaned %d artifact(s) request_id=%s", len(paths), request_id)


def clean(
    context: RequestContext,
    storage: StorageBackend,
    callback: Callable[[], Any] | None = None,
) -> asyncio.Task | None:
    """
    Remove the request's persisted artifacts in the background.

    ``callback`` runs right away; removal does not hold up the caller.
    Returns the removal task, or ``None`` when there is nothing to remove.
    Must be called from within a running event loop when there are files.
    """
    if callback is not None:
        callback()

    paths = list(iter_cleanup_paths(context))
    if not paths:
        return None

    return asyncio.ensure_future(_remove_all(storage, paths, context.id))
