"""
Query-string codec with array and bracket folding.

``decode("a=1&tag[]=x&tag[]=y&user[name]=bob")`` gives::

    {"a": "1", "tag": ["x", "y"], "user": {"name": "bob"}}

The same :func:`fold` is used by the URL-encoded and multipart decoders so
both produce identical shapes for identical field names.
"""

import re
from collections.abc import Mapping
from typing import Any
from urllib.parse import quote, unquote_plus

from reqparser.config import DEFAULT_PARAMETER_LIMIT

ARRAY_MARKER: str = "[]"

# Maximum number of bracket segments turned into nesting levels
DEFAULT_DEPTH: int = 5

_KEY_RE = re.compile(r"^([^\[\]]+)((?:\[[^\[\]]*\])+)$")
_SEGMENT_RE = re.compile(r"\[([^\[\]]*)\]")


def split_array_marker(name: str) -> tuple[str, bool]:
    """Strip a trailing ``[]`` from ``name``. Returns ``(name, had_marker)``."""
    if name.endswith(ARRAY_MARKER) and len(name) > len(ARRAY_MARKER):
        return name[: -len(ARRAY_MARKER)], True
    return name, False


def fold(
    target: dict[str, Any],
    name: str,
    value: Any,
    *,
    merge_repeated: bool = True,
) -> None:
    """
    Store ``value`` under ``name`` in ``target``.

    A name ending in ``[]`` appends to a list under the stripped name.
    A bare name is stored as a scalar. When the bare name is already
    present it is either merged into a list (``merge_repeated``) or
    overwritten.
    """
    key, is_array = split_array_marker(name)
    existing = target.get(key)

    if is_array:
        if existing is None:
            target[key] = [value]
        elif isinstance(existing, list):
            existing.append(value)
        else:
            target[key] = [existing, value]
        return

    if existing is None or not merge_repeated:
        target[key] = value
    elif isinstance(existing, list):
        existing.append(value)
    else:
        target[key] = [existing, value]


def split_key(key: str, depth: int = DEFAULT_DEPTH) -> list[str]:
    """
    Split ``a[b][c]`` into ``["a", "b", "c"]``.

    Keys that are not bracket paths come back as a single segment.
    Segments past ``depth`` are kept together as one literal segment.
    """
    match = _KEY_RE.match(key)
    if match is None:
        return [key]

    segments = [match.group(1)]
    brackets = _SEGMENT_RE.findall(match.group(2))
    segments.extend(brackets[:depth])
    if len(brackets) > depth:
        segments.append("".join(f"[{s}]" for s in brackets[depth:]))
    return segments


def _as_mapping(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    if isinstance(value, list):
        return {str(i): v for i, v in enumerate(value)}
    return {"0": value}


def _assign(target: dict[str, Any], segments: list[str], value: Any) -> None:
    head, rest = segments[0], segments[1:]
    if not rest:
        fold(target, head, value)
        return
    if rest == [""]:
        fold(target, head + ARRAY_MARKER, value)
        return

    child = target.get(head)
    if not isinstance(child, dict):
        child = {} if child is None else _as_mapping(child)
        target[head] = child
    _assign(child, rest, value)


def decode(
    query: str,
    parameter_limit: int = DEFAULT_PARAMETER_LIMIT,
    depth: int = DEFAULT_DEPTH,
) -> dict[str, Any]:
    """
    Decode a ``key=value&key=value`` string into a nested mapping.

    Pairs beyond ``parameter_limit`` are silently dropped. Malformed
    percent escapes are decoded best effort and never raise.
    """
    result: dict[str, Any] = {}
    if not query:
        return result
    if query.startswith("?"):
        query = query[1:]

    for pair in query.split("&", parameter_limit)[:parameter_limit]:
        if not pair:
            continue
        raw_key, sep, raw_value = pair.partition("=")
        key = unquote_plus(raw_key, errors="replace")
        if not key:
            continue
        value = unquote_plus(raw_value, errors="replace") if sep else ""
        _assign(result, split_key(key, depth), value)

    return result


def _flatten(prefix: str, value: Any) -> list[tuple[str, str]]:
    if isinstance(value, Mapping):
        pairs: list[tuple[str, str]] = []
        for key, sub in value.items():
            pairs.extend(_flatten(f"{prefix}[{key}]", sub))
        return pairs
    if isinstance(value, (list, tuple)):
        pairs = []
        for index, item in enumerate(value):
            if isinstance(item, (Mapping, list, tuple)):
                pairs.extend(_flatten(f"{prefix}[{index}]", item))
            else:
                pairs.append((prefix + ARRAY_MARKER, item))
        return pairs
    return [(prefix, value)]


def encode_pair(key: str, value: Any) -> str:
    """Percent-encode a single ``key=value`` pair."""
    text = "" if value is None else str(value)
    return f"{quote(key, safe='')}={quote(text, safe='')}"


def encode(mapping: Mapping[str, Any]) -> str:
    """
    Encode a (possibly nested) mapping as a query string.

    Lists are written with the ``[]`` marker so that :func:`decode` reads
    them back as lists, even with a single element.
    """
    pairs: list[tuple[str, str]] = []
    for key, value in mapping.items():
        pairs.extend(_flatten(str(key), value))
    return "&".join(encode_pair(k, v) for k, v in pairs)
