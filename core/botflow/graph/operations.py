"""
Value operations behind the data-manipulation nodes.

Everything here is a pure function of its arguments: no context, no I/O.
Handlers read node config, resolve variables, and call into this module.
Bad operands raise NodeExecutionError; JSON failures raise
JsonOperationFailed so the handler can bind the ``_error`` slot.
"""

import json
import math
import re
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from botflow.errors import JsonOperationFailed, NodeExecutionError
from botflow.graph.expression import as_number, bounded_power
from botflow.graph.template import stringify

MAX_JSON_PATH_LENGTH = 1000


def utc_timestamp() -> str:
    """Current time as ISO-8601 UTC with millisecond precision, e.g. 2025-01-01T12:00:00.000Z."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def require_number(value: Any, what: str = "operand") -> int | float:
    number = as_number(value)
    if number is None:
        raise NodeExecutionError(f"Expected a number for {what}, got {value!r}")
    return number


# ---------------------------------------------------------------------------
# Math
# ---------------------------------------------------------------------------


def _divide(left: int | float, right: int | float) -> int | float:
    if right == 0:
        raise NodeExecutionError("Division by zero")
    return left / right


def _modulo(left: int | float, right: int | float) -> int | float:
    if right == 0:
        raise NodeExecutionError("Modulo by zero")
    # Remainder takes the sign of the dividend, as chat authors expect.
    result = math.fmod(left, right)
    return int(result) if isinstance(left, int) and isinstance(right, int) else result


def _sqrt(value: int | float, _: int | float) -> float:
    if value < 0:
        raise NodeExecutionError(f"Square root of negative number {value}")
    return math.sqrt(value)


def _power(left: int | float, right: int | float) -> int | float:
    try:
        return bounded_power(left, right)
    except (OverflowError, ValueError, ZeroDivisionError) as e:
        raise NodeExecutionError(f"Cannot raise {left} to {right}: {e}") from e


MATH_OPERATIONS: dict[str, Callable[[int | float, int | float], int | float]] = {
    "add": lambda a, b: a + b,
    "subtract": lambda a, b: a - b,
    "multiply": lambda a, b: a * b,
    "divide": _divide,
    "modulo": _modulo,
    "power": _power,
    "sqrt": _sqrt,
    "abs": lambda a, _: abs(a),
    "min": min,
    "max": max,
    "round": lambda a, _: round(a),
    "floor": lambda a, _: math.floor(a),
    "ceil": lambda a, _: math.ceil(a),
}

# Operations that only read their left operand.
UNARY_MATH = frozenset({"sqrt", "abs", "round", "floor", "ceil"})


def apply_math(operation: str, left: Any, right: Any = 0) -> int | float:
    """
    Apply a math operation to two operands.

    Operands may be numbers or numeric strings. Unary operations ignore
    ``right``.

    Example:
        >>> apply_math("add", "2", 3)
        5
    """
    op = MATH_OPERATIONS.get(operation)
    if op is None:
        raise NodeExecutionError(f"Unknown math operation '{operation}'")
    a = require_number(left, "left operand")
    b = 0 if operation in UNARY_MATH else require_number(right, "right operand")
    return op(a, b)


# ---------------------------------------------------------------------------
# Comparison
# ---------------------------------------------------------------------------

_ORDERING: dict[str, Callable[[Any, Any], bool]] = {
    ">": lambda a, b: a > b,
    "<": lambda a, b: a < b,
    ">=": lambda a, b: a >= b,
    "<=": lambda a, b: a <= b,
}


def compare(operator: str, left: Any, right: Any) -> bool:
    """
    Compare two resolved operands.

    Both sides numeric (or numeric strings): compared as numbers.
    Otherwise compared as their chat-text renderings.
    """
    left_num, right_num = as_number(left), as_number(right)
    numeric = left_num is not None and right_num is not None
    a: Any = left_num if numeric else stringify(left)
    b: Any = right_num if numeric else stringify(right)

    if operator in ("==", "==="):
        return a == b
    if operator in ("!=", "!=="):
        return a != b
    if operator in _ORDERING:
        return _ORDERING[operator](a, b)
    if operator == "includes":
        return stringify(right) in stringify(left)
    if operator == "startsWith":
        return stringify(left).startswith(stringify(right))
    if operator == "endsWith":
        return stringify(left).endswith(stringify(right))
    raise NodeExecutionError(f"Unknown comparison operator '{operator}'")


# ---------------------------------------------------------------------------
# Strings
# ---------------------------------------------------------------------------

_ESCAPES = {"\\n": "\n", "\\t": "\t", "\\r": "\r"}


def unescape_separator(separator: str) -> str:
    """Turn the literal ``\\n``, ``\\t``, ``\\r`` typed in the editor into real characters."""
    for literal, char in _ESCAPES.items():
        separator = separator.replace(literal, char)
    return separator


def substring(text: str, start: Any, end: Any = None) -> str:
    """
    Slice with forgiving bounds: negative or non-numeric bounds clamp to 0,
    bounds past the end clamp to the length, and swapped bounds are swapped back.
    """
    length = len(text)

    def clamp(value: Any, default: int) -> int:
        number = as_number(value)
        if number is None or (isinstance(number, float) and math.isnan(number)):
            return default
        return max(0, min(int(number), length))

    begin = clamp(start, 0)
    finish = length if end is None or end == "" else clamp(end, length)
    if begin > finish:
        begin, finish = finish, begin
    return text[begin:finish]


def map_condition(value: str, conditions: list[dict[str, Any]], default: str = "") -> str:
    """
    Ordered if/then lookup table; the first matching row wins.

    A row's ``if`` may list several comma-separated values, any of which matches.

    Example:
        >>> map_condition("b", [{"if": "a, b", "then": "first"}, {"if": "b", "then": "second"}])
        'first'
    """
    for row in conditions:
        candidates = [v.strip() for v in str(row.get("if", "")).split(",")]
        if value in candidates:
            return str(row.get("then", ""))
    return default


# ---------------------------------------------------------------------------
# Arrays and objects
# ---------------------------------------------------------------------------


def split_items(text: str, separator: str = ",") -> list[str]:
    """Comma list to items. Empty text gives an empty list."""
    if not text.strip():
        return []
    return [item.strip() for item in text.split(separator)]


def coerce_array(value: Any) -> list[Any]:
    """
    Array view of a value.

    Lists and tuples pass through (copied). Strings are read as a JSON array
    when they look like one, else as a comma-separated list. None is empty.
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, dict):
        return list(value.values())
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("["):
            try:
                parsed = json.loads(text)
            except json.JSONDecodeError:
                parsed = None
            if isinstance(parsed, list):
                return parsed
        return split_items(text)
    return [value]


def coerce_object(value: Any) -> dict[str, Any]:
    """Object view of a value: dicts copied, JSON object text parsed, anything else empty."""
    if isinstance(value, dict):
        return dict(value)
    if isinstance(value, str) and value.strip().startswith("{"):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            return {}
        if isinstance(parsed, dict):
            return parsed
    return {}


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------

_PROPERTY_START = re.compile(r"[A-Za-z_$]")
_PROPERTY_CHAR = re.compile(r"[A-Za-z0-9_$]")
_QUOTED_KEY = re.compile(r"""^(['"])(.*)\1$""")


def parse_json_path(path: str) -> list[str | int]:
    """
    Split a property path into keys and indexes.

    Supports dot access, numeric indexes and quoted keys. Characters that fit
    none of these are skipped; unterminated brackets are dropped.

    Example:
        >>> parse_json_path("data.items[0]['first name']")
        ['data', 'items', 0, 'first name']
    """
    if not path or not isinstance(path, str) or len(path) > MAX_JSON_PATH_LENGTH:
        return []

    parts: list[str | int] = []
    i = 0
    while i < len(path):
        char = path[i]
        if char == ".":
            i += 1
        elif _PROPERTY_START.match(char):
            start = i
            while i < len(path) and _PROPERTY_CHAR.match(path[i]):
                i += 1
            parts.append(path[start:i])
        elif char == "[":
            i += 1
            depth = 1
            content: list[str] = []
            while i < len(path) and depth > 0:
                if path[i] == "[":
                    depth += 1
                elif path[i] == "]":
                    depth -= 1
                else:
                    content.append(path[i])
                i += 1
            if depth == 0:
                inner = "".join(content).strip()
                quoted = _QUOTED_KEY.match(inner)
                if quoted:
                    parts.append(quoted.group(2))
                elif inner.isdigit():
                    parts.append(int(inner))
        else:
            i += 1
    return parts


def parse_json(value: Any) -> Any:
    """Parse JSON text. Already-structured values pass through."""
    if isinstance(value, (dict, list)):
        return value
    if value is None:
        raise JsonOperationFailed("Nothing to parse")
    try:
        return json.loads(value if isinstance(value, str) else str(value))
    except json.JSONDecodeError as e:
        raise JsonOperationFailed(f"Invalid JSON: {e}") from e


def to_json(value: Any) -> str:
    return json.dumps(value, default=str, ensure_ascii=False)


def extract_path(source: Any, path: str) -> Any:
    """
    Walk ``path`` into ``source``.

    A missing key or index yields None rather than an error; JSON text is
    parsed first.

    Example:
        >>> extract_path({"data": {"items": [{"name": "a"}]}}, "data.items[0].name")
        'a'
    """
    current = parse_json(source) if isinstance(source, str) else source
    for part in parse_json_path(path):
        if current is None:
            return None
        if isinstance(part, int):
            if isinstance(current, (list, tuple, str)) and -len(current) <= part < len(current):
                current = current[part]
            elif isinstance(current, dict):
                current = current.get(str(part))
            else:
                return None
        elif isinstance(current, dict):
            current = current.get(part)
        elif isinstance(current, (list, tuple, str)) and part == "length":
            current = len(current)
        else:
            return None
    return current


# ---------------------------------------------------------------------------
# Embeds
# ---------------------------------------------------------------------------

_HEX_COLOR = re.compile(r"^#?([0-9a-fA-F]{6}|[0-9a-fA-F]{3})$")


def hex_color(value: Any) -> int:
    """``"#5865F2"`` -> ``5793266``. Integers pass through."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    match = _HEX_COLOR.match(str(value).strip())
    if not match:
        raise NodeExecutionError(f"Invalid embed color {value!r}")
    digits = match.group(1)
    if len(digits) == 3:
        digits = "".join(c * 2 for c in digits)
    return int(digits, 16)
