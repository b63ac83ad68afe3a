"""
Request URL reconstruction.
"""

from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

from reqparser import querystring
from reqparser.config import DEFAULT_PARAMETER_LIMIT
from reqparser.types import Headers

DEFAULT_HOST: str = "localhost"


@dataclass(frozen=True)
class ParsedURL:
    """Structured view of the URL a client requested."""

    scheme: str
    host: str
    hostname: str
    port: int | None
    pathname: str
    search: str = ""
    query: dict[str, Any] = field(default_factory=dict)

    @property
    def protocol(self) -> str:
        return f"{self.scheme}:"

    @property
    def href(self) -> str:
        return f"{self.scheme}://{self.host}{self.pathname}{self.search}"


def _split_host(host: str) -> tuple[str, int | None]:
    """Split ``host[:port]``, keeping IPv6 literals intact."""
    try:
        parts = urlsplit(f"//{host}")
        port = parts.port
    except ValueError:
        return host, None
    hostname = parts.hostname or host
    if host.startswith("["):
        hostname = f"[{hostname}]"
    return hostname, port


def parse_url(
    target: str,
    headers: Headers,
    encrypted: bool = False,
    *,
    parameter_limit: int = DEFAULT_PARAMETER_LIMIT,
) -> ParsedURL:
    """
    Build a :class:`ParsedURL` from the request target and headers.

    ``headers`` must use lower-case names. The scheme comes from
    ``X-Forwarded-Proto`` when present, then from ``encrypted``.
    """
    forwarded = headers.get("x-forwarded-proto", "").strip()
    if forwarded:
        # Proxies may append one value per hop; the first is the client's
        scheme = forwarded.split(",")[0].strip().lower()
    elif encrypted:
        scheme = "https"
    else:
        scheme = "http"

    host = headers.get("host", "").strip() or DEFAULT_HOST
    hostname, port = _split_host(host)

    path, sep, raw_query = target.partition("?")
    search = f"?{raw_query}" if sep else ""

    return ParsedURL(
        scheme=scheme,
        host=host,
        hostname=hostname,
        port=port,
        pathname=path or "/",
        search=search,
        query=querystring.decode(raw_query, parameter_limit=parameter_limit),
    )
