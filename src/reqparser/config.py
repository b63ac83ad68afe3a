"""
Parser configuration.

A single ``ParserConfig`` is shared read-only by every request a
:class:`~reqparser.parser.ReqParser` handles.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import Any

from reqparser.exceptions import ConfigurationError

MEMORY_STORAGE: str = "memory"

# Same default as the ``qs`` parameter limit used by most form middlewares
DEFAULT_PARAMETER_LIMIT: int = 10_000

DEFAULT_METHODS: frozenset[str] = frozenset({"POST", "PUT", "PATCH", "DELETE"})


@dataclass(frozen=True)
class ParserConfig:
    """
    Recognised parser options.

    Attributes:
        storage: ``"memory"`` to keep bodies and uploads in memory, or a
            directory path under which they are written to disk.
        tokenizer_options: Keyword arguments forwarded verbatim to
            ``python_multipart.MultipartParser`` (e.g. ``max_size``).
        parameter_limit: Maximum number of ``key=value`` pairs decoded from
            a query string or form body. Extra pairs are dropped.
        keep_extensions: Keep the uploaded filename's extension on files
            persisted to disk.
        methods: HTTP methods whose bodies are decoded into form data.
    """

    storage: str = MEMORY_STORAGE
    tokenizer_options: Mapping[str, Any] = field(default_factory=dict)
    parameter_limit: int = DEFAULT_PARAMETER_LIMIT
    keep_extensions: bool = False
    methods: frozenset[str] = DEFAULT_METHODS

    def __post_init__(self) -> None:
        if not isinstance(self.storage, str) or not self.storage:
            raise ConfigurationError(
                "storage must be 'memory' or a directory path"
            )
        if self.parameter_limit < 1:
            raise ConfigurationError("parameter_limit must be a positive integer")
        # Accept any iterable of method names
        object.__setattr__(
            self, "methods", frozenset(m.upper() for m in self.methods)
        )
        object.__setattr__(self, "tokenizer_options", dict(self.tokenizer_options))

    @property
    def in_memory(self) -> bool:
        return self.storage == MEMORY_STORAGE

    @classmethod
    def from_options(cls, options: Mapping[str, Any] | None = None) -> "ParserConfig":
        """Build a config from an option mapping, rejecting unknown names."""
        options = dict(options or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(options) - known)
        if unknown:
            raise ConfigurationError(
                f"Unknown parser option(s): {', '.join(unknown)}"
            )
        return cls(**options)
