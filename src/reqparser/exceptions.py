"""
reqparser exceptions.
Each exception marks the pipeline stage that failed.
"""

from typing import Any


class ReqParserException(Exception):
    """Base exception for all reqparser errors."""

    def __init__(self, message: str = "An error occurred") -> None:
        self.message = message
        super().__init__(self.message)


class ConfigurationError(ReqParserException):
    """Unknown or invalid parser option."""
    pass


class StorageError(ReqParserException):
    """A storage backend could not create, write or read an artifact."""

    def __init__(self, message: str = "Storage failure", path: str | None = None) -> None:
        self.path = path
        super().__init__(message)


class CaptureError(ReqParserException):
    """
    The raw body could not be captured.

    ``context`` is the request context as far as it was populated
    (the parsed URL is always present).
    """

    def __init__(
        self,
        message: str = "Could not capture request body",
        context: Any = None,
    ) -> None:
        self.context = context
        super().__init__(message)


class ClientDisconnected(CaptureError):
    """The client went away before the body was fully received."""

    def __init__(
        self,
        message: str = "Client disconnected before the body was received",
        context: Any = None,
    ) -> None:
        super().__init__(message, context)


class DecodeError(ReqParserException):
    """The captured body could not be read back for decoding."""

    def __init__(
        self,
        message: str = "Could not decode request body",
        context: Any = None,
    ) -> None:
        self.context = context
        super().__init__(message)
