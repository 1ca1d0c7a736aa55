"""Deterministic test value synthesis from DataConstraints.

Every function here is total: a missing constraint falls back to an
unconstrained default, never an exception. No clock or randomness is
used, so the same constraints always produce the same values.
"""

from __future__ import annotations

import math
import re
from typing import Any

from api_test_synth.analysis.constraints import DataConstraints

DEFAULT_INTEGER = 42
DEFAULT_NUMBER = 42.5
DEFAULT_ARRAY_ITEMS = 2
NUMBER_STEP = 0.01

STRING_CAP = 10_000
ARRAY_CAP = 1_000
LARGE_STRING_LENGTH = 5_000
LARGE_ARRAY_ITEMS = 500

FORMAT_VALUES = {
    "date": "2024-01-15",
    "date-time": "2024-01-15T10:30:00Z",
    "time": "10:30:00",
    "email": "user@example.com",
    "uuid": "3fa85f64-5717-4562-b3fc-2c963f66afa6",
    "uri": "https://example.com/resource",
    "url": "https://example.com/resource",
    "hostname": "example.com",
    "ipv4": "192.168.1.1",
    "ipv6": "2001:db8::1",
    "password": "SecurePassword123!@#",
    "byte": "dGVzdA==",
    "binary": "dGVzdCBmaWxlIGNvbnRlbnQ=",
}

# checked in order, first substring match wins
CONTEXT_VALUES = (
    ("email", "user@example.com"),
    ("phone", "+15550100"),
    ("url", "https://example.com"),
    ("uri", "https://example.com"),
    ("password", "SecurePassword123!@#"),
    ("token", "test-token-0001"),
    ("address", "123 Test Street"),
    ("description", "Test description"),
    ("title", "Test Title"),
    ("name", "Test Name"),
    ("status", "active"),
    ("code", "CODE001"),
    ("id", "id-0001"),
)

FALSE_HINTS = ("deleted", "disabled", "inactive", "archived", "blocked", "locked")

TYPE_MISMATCH = {
    "string": 12345,
    "integer": "not_a_number",
    "number": "not_a_number",
    "boolean": "not_a_boolean",
    "array": "not_an_array",
    "object": "not_an_object",
}

INVALID_ENUM_VALUE = "INVALID_ENUM_VALUE"


class PayloadSynthesizer:
    """Builds valid, boundary and oversized values for constraint trees."""

    def __init__(self, string_cap: int = STRING_CAP, array_cap: int = ARRAY_CAP):
        self.string_cap = string_cap
        self.array_cap = array_cap

    def value_for(self, c: DataConstraints | None, name: str = "") -> Any:
        """A valid value for ``c``."""
        if c is None or c.truncated:
            return _context_string(name)
        if c.example is not None:
            return c.example
        if c.enum_values:
            return c.enum_values[0]
        kind = c.type or ("object" if c.properties else None)
        if kind == "string":
            return self.string_value(c, name)
        if kind == "integer":
            return self.integer_value(c)
        if kind == "number":
            return self.number_value(c)
        if kind == "boolean":
            return not any(h in name.lower() for h in FALSE_HINTS)
        if kind == "array":
            return self.array_value(c, name)
        if kind == "object":
            return self.build_object(c)
        return _context_string(name)

    def build_object(self, c: DataConstraints | None, include_optional: bool = False) -> dict[str, Any]:
        """Walk required properties (all properties when none are required)."""
        if c is None or not c.properties:
            return {}
        names = self.selected_fields(c, include_optional)
        return {n: self.value_for(c.properties[n], n) for n in names}

    def selected_fields(self, c: DataConstraints, include_optional: bool = False) -> list[str]:
        props = list(c.properties or {})
        if include_optional or not c.required_fields:
            return props
        return [n for n in props if n in c.required_fields]

    def string_value(self, c: DataConstraints, name: str = "") -> str:
        value = None
        if c.format in FORMAT_VALUES:
            value = FORMAT_VALUES[c.format]
        elif c.pattern:
            value = string_from_pattern(c.pattern)
        if value is None:
            value = _context_string(name)
        return self.fit_length(value, c)

    def fit_length(self, value: str, c: DataConstraints) -> str:
        """Clip to ``min(max_length, cap)`` and pad up to ``min_length``."""
        limit = self.string_cap if c.max_length is None else min(c.max_length, self.string_cap)
        value = value[:limit]
        if c.min_length is not None and len(value) < c.min_length:
            value = value + "a" * (min(c.min_length, limit) - len(value))
        return value

    def string_of_length(self, length: int, c: DataConstraints | None = None, name: str = "") -> str:
        base = self.string_value(c, name) if c is not None else _context_string(name)
        if len(base) >= length:
            return base[:length]
        return base + "a" * (length - len(base))

    def integer_value(self, c: DataConstraints) -> int:
        low, high = integer_bounds(c)
        value = DEFAULT_INTEGER
        if low is not None and value < low:
            value = low
        if high is not None and value > high:
            value = high
        if c.multiple_of:
            value = _snap_multiple(value, c.multiple_of, low, high)
        return int(value)

    def number_value(self, c: DataConstraints) -> float:
        low, high = number_bounds(c)
        value = DEFAULT_NUMBER
        if low is not None and value < low:
            value = low
        if high is not None and value > high:
            value = high
        if c.multiple_of:
            value = _snap_multiple(value, c.multiple_of, low, high)
        return float(value)

    def array_value(self, c: DataConstraints, name: str = "", count: int | None = None) -> list[Any]:
        if count is None:
            count = DEFAULT_ARRAY_ITEMS
            if c.min_items is not None:
                count = max(count, c.min_items)
            if c.max_items is not None:
                count = min(count, c.max_items)
        count = max(0, min(count, self.array_cap))
        singular = name[:-1] if name.endswith("s") else name
        return [self._item(c.items, singular, i, bool(c.unique_items)) for i in range(count)]

    def _item(self, c: DataConstraints | None, name: str, index: int, unique: bool) -> Any:
        value = self.value_for(c, name)
        if not unique or index == 0:
            return value
        # enum or example values repeat; vary them only when uniqueness is required
        if c is not None and c.enum_values and index < len(c.enum_values):
            return c.enum_values[index]
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return value + index
        if isinstance(value, str):
            return f"{value}{index}"
        if isinstance(value, dict):
            return {**value, "_index": index}
        return value

    def boundary_values(self, c: DataConstraints, name: str = "") -> list[tuple[str, Any, bool]]:
        """``(label, value, valid)`` for each declared bound of ``c``.

        Valid entries sit exactly on the representable bound; invalid ones
        are one step outside it.
        """
        out: list[tuple[str, Any, bool]] = []
        if c.type == "string" and not c.enum_values:
            if c.min_length is not None and c.min_length <= self.string_cap:
                out.append((f"min length {c.min_length}", self.string_of_length(c.min_length, c, name), True))
                if c.min_length > 0:
                    out.append((f"below min length {c.min_length}", self.string_of_length(c.min_length - 1, c, name), False))
            if c.max_length is not None and c.max_length <= self.string_cap:
                out.append((f"max length {c.max_length}", self.string_of_length(c.max_length, c, name), True))
                out.append((f"above max length {c.max_length}", self.string_of_length(c.max_length + 1, c, name), False))
        elif c.type in ("integer", "number"):
            bounds = integer_bounds(c) if c.type == "integer" else number_bounds(c)
            step = 1 if c.type == "integer" else NUMBER_STEP
            cast = int if c.type == "integer" else float
            low, high = bounds
            if low is not None:
                out.append((f"minimum {cast(low)}", cast(low), True))
                out.append((f"below minimum {cast(low)}", cast(_round(low - step)), False))
            if high is not None:
                out.append((f"maximum {cast(high)}", cast(high), True))
                out.append((f"above maximum {cast(high)}", cast(_round(high + step)), False))
        elif c.type == "array":
            if c.min_items is not None and c.min_items <= self.array_cap:
                out.append((f"min items {c.min_items}", self.array_value(c, name, c.min_items), True))
                if c.min_items > 0:
                    out.append((f"below min items {c.min_items}", self.array_value(c, name, c.min_items - 1), False))
            if c.max_items is not None and c.max_items < self.array_cap:
                out.append((f"max items {c.max_items}", self.array_value(c, name, c.max_items), True))
                out.append((f"above max items {c.max_items}", self.array_value(c, name, c.max_items + 1), False))
        return out

    def large_value(self, c: DataConstraints | None, name: str = "") -> Any:
        """An oversized value sized from declared bounds, capped."""
        if c is None or c.type is None:
            return "a" * LARGE_STRING_LENGTH
        if c.type == "string":
            length = LARGE_STRING_LENGTH if c.max_length is None else min(c.max_length, self.string_cap)
            return self.string_of_length(max(length, 1), c, name)
        if c.type == "array":
            count = LARGE_ARRAY_ITEMS if c.max_items is None else min(c.max_items, self.array_cap)
            return self.array_value(c, name, count)
        if c.type == "object":
            return {n: self.large_value(sub, n) for n, sub in (c.properties or {}).items()}
        return self.value_for(c, name)

    def invalid_type_value(self, c: DataConstraints | None) -> Any:
        if c is None or c.type is None:
            return {"unexpected": ["structure"]}
        return TYPE_MISMATCH.get(c.type, "invalid")


def integer_bounds(c: DataConstraints) -> tuple[int | None, int | None]:
    """Inclusive integer bounds, with exclusive bounds moved inward."""
    low = high = None
    if c.minimum is not None:
        low = math.floor(c.minimum) + 1 if c.exclusive_minimum else math.ceil(c.minimum)
    if c.maximum is not None:
        high = math.ceil(c.maximum) - 1 if c.exclusive_maximum else math.floor(c.maximum)
    return low, high


def number_bounds(c: DataConstraints) -> tuple[float | None, float | None]:
    low = high = None
    if c.minimum is not None:
        low = _round(c.minimum + NUMBER_STEP) if c.exclusive_minimum else c.minimum
    if c.maximum is not None:
        high = _round(c.maximum - NUMBER_STEP) if c.exclusive_maximum else c.maximum
    return low, high


def _round(value: float) -> float:
    return round(value, 6)


def _snap_multiple(value: float, step: float, low: float | None, high: float | None) -> float:
    snapped = math.ceil(value / step) * step
    if high is not None and snapped > high:
        snapped = math.floor(high / step) * step
    if low is not None and snapped < low:
        snapped = math.ceil(low / step) * step
    return _round(snapped)


def _context_string(name: str) -> str:
    lowered = name.lower()
    for hint, value in CONTEXT_VALUES:
        if hint in lowered:
            return value
    return f"test_{lowered}" if lowered else "test_value"


# minimal regex-to-example expansion for the common anchored character-class patterns
_TOKEN = re.compile(r"\\d|\\w|\\s|\[[^\]]+\]|\\.|[^\\\[\](){}*+?|^$]")
_QUANT = re.compile(r"\{(\d+)(?:,(\d*))?\}|[*+?]")


def string_from_pattern(pattern: str) -> str | None:
    """Build a short string matching ``pattern``, or None when the pattern is too complex."""
    try:
        candidate = _expand_pattern(pattern)
        if candidate is not None and re.search(pattern, candidate):
            return candidate
    except re.error:
        return None
    return None


def _expand_pattern(pattern: str) -> str | None:
    body = pattern
    if body.startswith("^"):
        body = body[1:]
    if body.endswith("$") and not body.endswith("\\$"):
        body = body[:-1]
    out = []
    pos = 0
    while pos < len(body):
        m = _TOKEN.match(body, pos)
        if not m:
            return None
        token = m.group(0)
        pos = m.end()
        count = 1
        q = _QUANT.match(body, pos)
        if q:
            pos = q.end()
            if q.group(0) in ("*", "?"):
                count = 0
            elif q.group(0) == "+":
                count = 1
            else:
                count = int(q.group(1))
        out.append(_sample_char(token) * count)
    return "".join(out)


def _sample_char(token: str) -> str:
    if token == "\\d":
        return "1"
    if token == "\\w":
        return "a"
    if token == "\\s":
        return " "
    if token.startswith("["):
        inner = token[1:-1]
        if inner.startswith("^"):
            return "a" if "a" not in inner else "1"
        for candidate in ("a", "A", "1", "0"):
            if re.fullmatch(token, candidate):
                return candidate
        first = inner[0] if inner[0] != "\\" else inner[1:2]
        return first
    if token.startswith("\\"):
        return token[1:]
    return token
