"""
reqparser - request body capture and form decoding for ASGI apps.

Captures a request body exactly once, in memory or on disk, decodes
URL-encoded and multipart forms into fields and files, and cleans up
whatever it wrote to disk.
"""

from reqparser.config import ParserConfig
from reqparser.context import FileDescriptor, RequestContext
from reqparser.exceptions import (
    CaptureError,
    ClientDisconnected,
    ConfigurationError,
    DecodeError,
    ReqParserException,
    StorageError,
)
from reqparser.middleware import FormParserMiddleware
from reqparser.parser import ReqParser
from reqparser.storage import FilesystemStorage, MemoryStorage, StorageBackend
from reqparser.url import ParsedURL

__version__ = "0.1.0"
__all__ = [
    "ReqParser",
    "ParserConfig",
    "RequestContext",
    "FileDescriptor",
    "ParsedURL",
    "StorageBackend",
    "MemoryStorage",
    "FilesystemStorage",
    "FormParserMiddleware",
    "ReqParserException",
    "CaptureError",
    "ClientDisconnected",
    "ConfigurationError",
    "DecodeError",
    "StorageError",
]
