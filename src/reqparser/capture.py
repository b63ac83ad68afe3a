"""
Raw body capture.

Drains the ASGI ``receive`` channel exactly once into a storage backend.
Completion is tracked by a small state machine so that the completion
callback runs once, whatever mix of success and failure paths fire.
"""

import logging
from collections.abc import AsyncIterator, Callable
from enum import Enum
from typing import Any

from reqparser.exceptions import CaptureError, ClientDisconnected, StorageError
from reqparser.storage import CapturedRef, StorageBackend
from reqparser.types import Receive

logger = logging.getLogger("reqparser.capture")

CompletionCallback = Callable[[CapturedRef | None, Exception | None], Any]


class CompletionState(Enum):
    PENDING = "pending"
    OK = "ok"
    ERROR = "error"


class Completion:
    """
    One-shot completion: ``pending -> ok | error``.

    Settling twice is a programming error. The second attempt is logged
    and dropped instead of re-running the callback.
    """

    def __init__(
        self,
        request_id: str = "-",
        callback: CompletionCallback | None = None,
    ) -> None:
        self.request_id = request_id
        self.state = CompletionState.PENDING
        self.result: CapturedRef | None = None
        self.error: Exception | None = None
        self._callback = callback

    @property
    def settled(self) -> bool:
        return self.state is not CompletionState.PENDING

    def settle(
        self,
        result: CapturedRef | None = None,
        error: Exception | None = None,
    ) -> bool:
        """Settle the completion. Returns False if it was already settled."""
        if self.settled:
            logger.error(
                "Completion settled twice request_id=%s state=%s dropped=%r",
                self.request_id,
                self.state.value,
                error or result,
            )
            return False

        if error is not None:
            self.state = CompletionState.ERROR
            self.error = error
        else:
            self.state = CompletionState.OK
            self.result = result

        if self._callback is not None:
            self._callback(self.result, self.error)
        return True


async def iter_receive(receive: Receive) -> AsyncIterator[bytes]:
    """Yield body chunks from ASGI ``http.request`` messages."""
    while True:
        message = await receive()
        if message["type"] == "http.disconnect":
            raise ClientDisconnected()

        body = message.get("body", b"")
        if body:
            yield body

        if not message.get("more_body", False):
            break


async def capture_raw_body(
    receive: Receive | None,
    storage: StorageBackend,
    *,
    request_id: str = "-",
    on_complete: CompletionCallback | None = None,
) -> CapturedRef | None:
    """
    Capture the whole request body into ``storage``.

    Returns ``None`` when there is no transport stream or no bytes were
    received. Raises :class:`CaptureError` when the body could not be
    stored, the transport failed or the client disconnected.
    """
    completion = Completion(request_id, on_complete)

    if receive is None:
        completion.settle(None)
        return None

    try:
        ref = await storage.capture(iter_receive(receive))
    except ClientDisconnected as exc:
        logger.warning("Client disconnected during capture request_id=%s", request_id)
        completion.settle(error=exc)
        raise
    except StorageError as exc:
        logger.error("Body capture failed request_id=%s: %s", request_id, exc.message)
        error = CaptureError(f"Could not capture request body: {exc.message}")
        completion.settle(error=error)
        raise error from exc
    except Exception as exc:
        logger.error("Body stream failed request_id=%s: %r", request_id, exc)
        error = CaptureError(f"Could not capture request body: {exc}")
        completion.settle(error=error)
        raise error from exc

    if ref.empty:
        ref = None
    else:
        logger.debug(
            "Captured body request_id=%s size=%d", request_id, ref.size
        )
    completion.settle(ref)
    return ref
