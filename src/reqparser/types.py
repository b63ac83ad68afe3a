"""
Type definitions for reqparser.
"""

from collections.abc import AsyncIterator, Awaitable, Callable, Mapping, MutableMapping
from typing import Any, TypeAlias

# ASGI Types
Scope: TypeAlias = MutableMapping[str, Any]
Message: TypeAlias = MutableMapping[str, Any]
Receive: TypeAlias = Callable[[], Awaitable[Message]]
Send: TypeAlias = Callable[[Message], Awaitable[None]]
ASGIApp: TypeAlias = Callable[[Scope, Receive, Send], Awaitable[None]]

# Body Types
ByteStream: TypeAlias = AsyncIterator[bytes]
Headers: TypeAlias = Mapping[str, str]

# Form Types: values are str, list or nested dict; files are
# FileDescriptor or list[FileDescriptor]
FormFields: TypeAlias = dict[str, Any]
FormFiles: TypeAlias = dict[str, Any]
