"""Typed facts from raw captured text and JSON.

Every function here degrades to a safe default (False, 0, empty, or the
caller's default) instead of raising. Captured evidence comes from agents
that may not have exited cleanly and tools whose output shape drifts between
versions, and rubric weights are calibrated against that leniency.
"""

import json
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

# Keys under which collaborator tools wrap their record arrays
WRAPPER_KEYS = ("beads", "bones", "items", "agents", "messages", "workspaces", "reviews", "records")

_MISSING = object()


@dataclass(frozen=True, slots=True)
class ArrayShape:
    """Document was a bare array (or a lone object standing in for one)."""

    items: tuple[Any, ...]


@dataclass(frozen=True, slots=True)
class WrappedShape:
    """Document was an object wrapping an array under a known key."""

    key: str
    items: tuple[Any, ...]


JsonShape = ArrayShape | WrappedShape


def parse_document(document: Any) -> Any:
    """Parse raw JSON text; already-parsed values pass through.

    JSONL text is accepted as an array of its object lines, provided the
    first line is a complete object. A truncated pretty-printed document
    therefore yields None rather than stray scalars. Returns None when
    nothing usable is found.
    """
    if document is None:
        return None
    if isinstance(document, bytes):
        document = document.decode(errors="replace")
    if not isinstance(document, str):
        return document
    text = document.strip()
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    records = []
    for line in text.splitlines():
        if not line.strip():
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError:
            record = None
        if isinstance(record, dict):
            records.append(record)
        elif not records:
            return None
    return records or None


def normalize_records(document: Any) -> JsonShape:
    """Resolve a document to its record sequence, whatever its top-level shape."""
    data = parse_document(document)
    if isinstance(data, list):
        return ArrayShape(tuple(data))
    if isinstance(data, dict):
        for key in WRAPPER_KEYS:
            wrapped = data.get(key)
            if isinstance(wrapped, list):
                return WrappedShape(key, tuple(wrapped))
        if data:
            return ArrayShape((data,))
    return ArrayShape(())


def first_record(document: Any) -> dict:
    """The first object record of a document, or an empty dict."""
    items = normalize_records(document).items
    if items and isinstance(items[0], dict):
        return items[0]
    return {}


def _split_path(path: str | Sequence[str | int] | None) -> list[str | int]:
    if path is None or path == "":
        return []
    if isinstance(path, str):
        return [part for part in path.split(".") if part]
    return list(path)


def _walk(value: Any, keys: list[str | int]) -> Any:
    for key in keys:
        if isinstance(value, dict) and key in value:
            value = value[key]
        elif isinstance(value, list):
            try:
                value = value[int(key)]
            except (ValueError, IndexError):
                return _MISSING
        else:
            return _MISSING
    return _MISSING if value is None else value


def _candidates(data: Any) -> Iterable[Any]:
    yield data
    shape = normalize_records(data)
    if isinstance(shape, WrappedShape):
        yield list(shape.items)
    if shape.items:
        yield shape.items[0]


def extract_json_field(document: Any, path: str | Sequence[str | int] | None, default: Any = None) -> Any:
    """Look up a dotted path (``"0.status"``) or key sequence in a JSON document.

    The path is tried against the document as-is, then against its wrapped
    record array, then against its first record, so ``"status"`` finds the
    status of a ``show`` result whether the tool printed an object, an array
    or ``{"beads": [...]}``. Null values count as missing.
    """
    data = parse_document(document)
    if data is None:
        return default
    keys = _split_path(path)
    if not keys:
        return data
    for candidate in _candidates(data):
        value = _walk(candidate, keys)
        if value is not _MISSING:
            return value
    return default


def extract_list(document: Any, path: str | Sequence[str | int] | None = None) -> list:
    """Like extract_json_field, but always a list; the record array when no path."""
    if not _split_path(path):
        return list(normalize_records(document).items)
    value = extract_json_field(document, path, None)
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _search(pattern: str, source: str) -> bool:
    try:
        return re.search(pattern, source, re.IGNORECASE) is not None
    except re.error:
        return pattern.lower() in source.lower()


def extract_boolean(source: str | None, patterns: str | Iterable[str]) -> bool:
    """True if any case-insensitive regex (or substring, if invalid) matches."""
    if not source:
        return False
    if isinstance(patterns, str):
        patterns = [patterns]
    return any(_search(pattern, source) for pattern in patterns if pattern)


def extract_count(source: str | None, pattern: str, ignore_case: bool = False) -> int:
    """Number of non-overlapping matches of a pattern; 0 when absent."""
    if not source or not pattern:
        return 0
    flags = re.IGNORECASE if ignore_case else 0
    try:
        return sum(1 for _ in re.finditer(pattern, source, flags))
    except re.error:
        if ignore_case:
            return source.lower().count(pattern.lower())
        return source.count(pattern)


def extract_line_count(source: str | None, pattern: str, ignore_case: bool = False) -> int:
    """Number of lines containing a match, as ``grep -c`` counts them."""
    if not source or not pattern:
        return 0
    flags = re.IGNORECASE if ignore_case else 0
    try:
        regex = re.compile(pattern, flags)
    except re.error:
        needle = pattern.lower() if ignore_case else pattern
        return sum(1 for line in source.splitlines() if needle in (line.lower() if ignore_case else line))
    return sum(1 for line in source.splitlines() if regex.search(line))


def parse_key_values(text: str | None) -> dict[str, str]:
    """Parse ``KEY=VALUE`` lines, skipping anything that is not one."""
    values: dict[str, str] = {}
    if not text:
        return values
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key or not re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", key):
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        values[key] = value
    return values


def to_int(value: Any, default: int = 0) -> int:
    """Coerce a captured value to int, falling back to ``default``."""
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default
