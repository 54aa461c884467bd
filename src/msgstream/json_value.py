"""Structured JSON values and the date facility.

Tool-call input is arbitrary nested JSON.  ``JSONValue`` is the sum of
null/bool/number/string/list/string-keyed dict; ``coerce`` validates and
normalizes a Python value into that shape recursively.
"""

from __future__ import annotations

import json
import re
from datetime import datetime
from typing import Any, Union

JSONValue = Union[
    None, bool, int, float, str, list["JSONValue"], dict[str, "JSONValue"],
]


def coerce(value: Any) -> JSONValue:
    """Return *value* as a ``JSONValue``.

    Tuples become lists and dict keys must be strings.  Raises ``TypeError``
    for anything that has no JSON representation.
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (list, tuple)):
        return [coerce(item) for item in value]
    if isinstance(value, dict):
        result: dict[str, JSONValue] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise TypeError(f"JSON object keys must be strings, got {key!r}")
            result[key] = coerce(item)
        return result
    raise TypeError(f"Unsupported JSON value type: {type(value).__name__}")


def loads(raw: str | bytes) -> JSONValue:
    """Parse JSON text.  Raises ``ValueError`` on malformed input."""
    return json.loads(raw)


def dumps(value: Any) -> str:
    """Serialize a ``JSONValue`` compactly."""
    return json.dumps(coerce(value), separators=(",", ":"), ensure_ascii=False)


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

# Accepted: 2025-04-14T10:00:00Z, 2025-04-14T10:00:00.123456+00:00, ...
_DATETIME_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<frac>\d+))?"
    r"(?P<tz>Z|[+-]\d{2}:?\d{2})$"
)


def parse_datetime(text: str) -> datetime:
    """Parse an API timestamp into an aware ``datetime``.

    Accepts ISO-8601 date-times with or without fractional seconds and with a
    ``Z`` or explicit offset.  Everything else raises ``ValueError``.
    """
    if not isinstance(text, str):
        raise ValueError(f"Could not decode date from: {text!r}")
    match = _DATETIME_RE.match(text.strip())
    if match is None:
        raise ValueError(f"Could not decode date from: {text!r}")

    frac = match.group("frac") or ""
    tz = match.group("tz")
    if tz == "Z":
        tz = "+00:00"
    elif ":" not in tz:
        tz = f"{tz[:3]}:{tz[3:]}"

    normalized = match.group("base")
    if frac:
        # datetime only keeps microseconds
        normalized += "." + frac[:6].ljust(6, "0")
    return datetime.fromisoformat(normalized + tz)


def format_datetime(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")
