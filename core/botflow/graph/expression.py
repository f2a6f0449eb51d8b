"""
Condition expressions.

Two independent pieces live here:

- ``validate_expression_syntax``: a heuristic linter used by the validator.
  It catches common authoring mistakes (unbalanced brackets or quotes,
  doubled operators, a bare ``=``). It is NOT a parser: it accepts some
  strings the evaluator rejects and rejects some it would accept.
- ``ExpressionEvaluator``: the host evaluator that runs condition text at
  execution time against an AST whitelist. Authors write JavaScript-flavored
  conditions (``&&``, ``===``, ``true``), so those spellings are accepted.
"""

import ast
import logging
import math
import operator
import re
from collections.abc import Callable, Mapping
from typing import Any

from botflow.graph.template import lookup, stringify

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Syntax linter
# ---------------------------------------------------------------------------

_BRACKETS = {"[": "]", "(": ")", "{": "}"}
_CLOSERS = set(_BRACKETS.values())

_INVALID_PATTERNS = [
    re.compile(r"&&\s*&&"),  # doubled &&
    re.compile(r"\|\|\s*\|\|"),  # doubled ||
    re.compile(r"==\s*==="),  # mixed equality
    re.compile(r"!=\s*!=="),  # mixed inequality
    re.compile(r"[^=!<>]\s*=\s*[^=]"),  # single = where == was meant
]


def _balanced_brackets(text: str) -> bool:
    stack: list[str] = []
    for char in text:
        if char in _BRACKETS:
            stack.append(char)
        elif char in _CLOSERS:
            if not stack or _BRACKETS[stack.pop()] != char:
                return False
    return not stack


def _balanced_quotes(text: str) -> bool:
    return text.count("'") % 2 == 0 and text.count('"') % 2 == 0


def validate_expression_syntax(text: str | None) -> bool:
    """
    Best-effort syntax check for condition text. Empty text is valid.

    Brackets must nest, single and double quotes must each come in pairs,
    and known malformed operator sequences are rejected.
    """
    if text is None or not str(text).strip():
        return True
    text = str(text)
    if not _balanced_brackets(text) or not _balanced_quotes(text):
        return False
    return not any(pattern.search(text) for pattern in _INVALID_PATTERNS)


# ---------------------------------------------------------------------------
# Host evaluator
# ---------------------------------------------------------------------------


class ExpressionError(Exception):
    """The expression could not be evaluated."""

    pass


_REFERENCE = re.compile(r"\{(\w+)(?:\[(\d+)\])?\}")
_JS_REWRITES = [
    (re.compile(r"!=="), "!="),
    (re.compile(r"==="), "=="),
    (re.compile(r"&&"), " and "),
    (re.compile(r"\|\|"), " or "),
    (re.compile(r"!(?!=)"), " not "),
    (re.compile(r"\btrue\b"), "True"),
    (re.compile(r"\bfalse\b"), "False"),
    (re.compile(r"\b(?:null|undefined)\b"), "None"),
]


def as_number(value: Any) -> int | float | None:
    """Numeric view of a value, or None. Booleans are not numbers here."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return int(text)
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


MAX_POWER_BITS = 4096


def bounded_power(base: int | float, exponent: int | float) -> int | float:
    """
    ``base ** exponent`` with a ceiling on the size of the result.

    Results wider than ``MAX_POWER_BITS`` bits are refused before any
    arithmetic happens.

    Raises:
        OverflowError: the result would exceed ``MAX_POWER_BITS`` bits.
        ValueError: the result is not a real number.
    """
    if exponent > 0 and abs(base) > 1:
        if exponent * math.log2(abs(base)) > MAX_POWER_BITS:
            raise OverflowError(f"{base} ** {exponent} is too large")
    result = base**exponent
    if isinstance(result, complex):
        raise ValueError(f"{base} ** {exponent} is not a real number")
    return result


def _coerce_pair(left: Any, right: Any) -> tuple[Any, Any]:
    """Compare numeric strings with numbers numerically."""
    if isinstance(left, str) != isinstance(right, str):
        left_num, right_num = as_number(left), as_number(right)
        if left_num is not None and right_num is not None:
            return left_num, right_num
    return left, right


def _add(left: Any, right: Any) -> Any:
    if isinstance(left, str) or isinstance(right, str):
        return stringify(left) + stringify(right)
    return left + right


def _arith(op: Callable[[Any, Any], Any]) -> Callable[[Any, Any], Any]:
    def apply(left: Any, right: Any) -> Any:
        left_num, right_num = as_number(left), as_number(right)
        if left_num is None or right_num is None:
            raise ExpressionError(f"Non-numeric operands: {left!r}, {right!r}")
        return op(left_num, right_num)

    return apply


_BIN_OPS: dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: _add,
    ast.Sub: _arith(operator.sub),
    ast.Mult: _arith(operator.mul),
    ast.Div: _arith(operator.truediv),
    ast.FloorDiv: _arith(operator.floordiv),
    ast.Mod: _arith(operator.mod),
    ast.Pow: _arith(bounded_power),
}

_COMPARE_OPS: dict[type, Callable[[Any, Any], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}

SAFE_FUNCTIONS: dict[str, Callable[..., Any]] = {
    "len": len,
    "str": stringify,
    "int": int,
    "float": float,
    "bool": bool,
    "abs": abs,
    "min": min,
    "max": max,
    "round": round,
}

SAFE_METHODS: dict[str, Callable[..., Any]] = {
    "lower": lambda s: str(s).lower(),
    "upper": lambda s: str(s).upper(),
    "strip": lambda s: str(s).strip(),
    "startswith": lambda s, p: str(s).startswith(str(p)),
    "endswith": lambda s, p: str(s).endswith(str(p)),
    "split": lambda s, sep=None: str(s).split(sep),
    "get": lambda d, k, default=None: d.get(k, default),
    "keys": lambda d: list(d.keys()),
    "values": lambda d: list(d.values()),
    "count": lambda s, x: s.count(x),
    # JavaScript spellings
    "includes": lambda s, x: x in s,
    "startsWith": lambda s, p: str(s).startswith(str(p)),
    "endsWith": lambda s, p: str(s).endswith(str(p)),
    "toLowerCase": lambda s: str(s).lower(),
    "toUpperCase": lambda s: str(s).upper(),
    "trim": lambda s: str(s).strip(),
}


class _SafeEvaluator:
    """Evaluates a parsed expression tree, allowing only whitelisted nodes."""

    def __init__(self, names: Mapping[str, Any]):
        self.names = names

    def visit(self, node: ast.AST) -> Any:
        method = getattr(self, f"visit_{type(node).__name__}", None)
        if method is None:
            raise ExpressionError(f"Unsupported syntax: {type(node).__name__}")
        return method(node)

    def visit_Expression(self, node: ast.Expression) -> Any:
        return self.visit(node.body)

    def visit_Constant(self, node: ast.Constant) -> Any:
        return node.value

    def visit_Name(self, node: ast.Name) -> Any:
        if node.id in self.names:
            return self.names[node.id]
        raise ExpressionError(f"Unknown name: {node.id}")

    def visit_List(self, node: ast.List) -> Any:
        return [self.visit(elt) for elt in node.elts]

    def visit_Tuple(self, node: ast.Tuple) -> Any:
        return tuple(self.visit(elt) for elt in node.elts)

    def visit_Dict(self, node: ast.Dict) -> Any:
        return {
            self.visit(k): self.visit(v) for k, v in zip(node.keys, node.values, strict=True) if k
        }

    def visit_BoolOp(self, node: ast.BoolOp) -> Any:
        is_and = isinstance(node.op, ast.And)
        value: Any = None
        for operand in node.values:
            value = self.visit(operand)
            if is_and and not value:
                return value
            if not is_and and value:
                return value
        return value

    def visit_UnaryOp(self, node: ast.UnaryOp) -> Any:
        operand = self.visit(node.operand)
        if isinstance(node.op, ast.Not):
            return not operand
        number = as_number(operand)
        if number is None:
            raise ExpressionError(f"Non-numeric operand: {operand!r}")
        if isinstance(node.op, ast.USub):
            return -number
        if isinstance(node.op, ast.UAdd):
            return number
        raise ExpressionError(f"Unsupported operator: {type(node.op).__name__}")

    def visit_BinOp(self, node: ast.BinOp) -> Any:
        op = _BIN_OPS.get(type(node.op))
        if op is None:
            raise ExpressionError(f"Unsupported operator: {type(node.op).__name__}")
        try:
            return op(self.visit(node.left), self.visit(node.right))
        except ZeroDivisionError as e:
            raise ExpressionError("Division by zero") from e

    def visit_Compare(self, node: ast.Compare) -> bool:
        left = self.visit(node.left)
        for op_node, comparator in zip(node.ops, node.comparators, strict=True):
            op = _COMPARE_OPS.get(type(op_node))
            if op is None:
                raise ExpressionError(f"Unsupported comparison: {type(op_node).__name__}")
            right = self.visit(comparator)
            a, b = _coerce_pair(left, right)
            try:
                if not op(a, b):
                    return False
            except TypeError as e:
                raise ExpressionError(str(e)) from e
            left = right
        return True

    def visit_IfExp(self, node: ast.IfExp) -> Any:
        return self.visit(node.body) if self.visit(node.test) else self.visit(node.orelse)

    def visit_Subscript(self, node: ast.Subscript) -> Any:
        value = self.visit(node.value)
        key = self.visit(node.slice)
        try:
            return value[key]
        except (IndexError, KeyError, TypeError) as e:
            raise ExpressionError(f"Bad subscript {key!r}") from e

    def visit_Slice(self, node: ast.Slice) -> slice:
        return slice(
            self.visit(node.lower) if node.lower else None,
            self.visit(node.upper) if node.upper else None,
            self.visit(node.step) if node.step else None,
        )

    def visit_Attribute(self, node: ast.Attribute) -> Any:
        # Only `.length` is readable as a bare attribute; methods go through Call.
        if node.attr == "length":
            return len(self.visit(node.value))
        raise ExpressionError(f"Attribute access not allowed: .{node.attr}")

    def visit_Call(self, node: ast.Call) -> Any:
        args = [self.visit(arg) for arg in node.args]
        if node.keywords:
            raise ExpressionError("Keyword arguments are not allowed")
        if isinstance(node.func, ast.Name) and node.func.id in SAFE_FUNCTIONS:
            func = SAFE_FUNCTIONS[node.func.id]
            try:
                return func(*args)
            except (TypeError, ValueError) as e:
                raise ExpressionError(str(e)) from e
        if isinstance(node.func, ast.Attribute) and node.func.attr in SAFE_METHODS:
            target = self.visit(node.func.value)
            try:
                return SAFE_METHODS[node.func.attr](target, *args)
            except (AttributeError, TypeError, ValueError) as e:
                raise ExpressionError(str(e)) from e
        raise ExpressionError("Function call not allowed")


class ExpressionEvaluator:
    """
    Evaluates authored condition text against the current variables.

    ``{name}`` references inside a quoted literal are substituted as text
    (``'{name}' == 'Ann'``); outside quotes they are bound as values
    (``{count} > 5``). Variables whose names are valid identifiers are also
    available bare (``count > 5``).

    Example:
        evaluator = ExpressionEvaluator()
        evaluator.evaluate("{count} > 5 && '{user}' === 'Ann'",
                           {"count": 10, "user": "Ann"})  # True
    """

    def prepare(
        self,
        expression: str,
        variables: Mapping[str, Any],
        extra_names: Mapping[str, Any] | None = None,
    ) -> tuple[str, dict[str, Any]]:
        """Rewrite ``expression`` into Python source plus the names it may use."""
        names: dict[str, Any] = {
            key: value for key, value in variables.items() if key.isidentifier()
        }
        if extra_names:
            names.update(extra_names)
            variables = {**variables, **extra_names}

        parts: list[str] = []
        slot = 0
        for segment, quote in _split_quoted(expression):
            if quote:
                text = _REFERENCE.sub(
                    lambda m: stringify(lookup(variables, m.group(1), m.group(2))), segment
                )
                text = text.replace("\\", "\\\\").replace(quote, "\\" + quote)
                parts.append(f"{quote}{text}{quote}")
                continue

            def bind(match: re.Match[str]) -> str:
                nonlocal slot
                placeholder = f"__v{slot}"
                slot += 1
                names[placeholder] = lookup(variables, match.group(1), match.group(2))
                return placeholder

            code = _REFERENCE.sub(bind, segment)
            for pattern, replacement in _JS_REWRITES:
                code = pattern.sub(replacement, code)
            parts.append(code)
        return "".join(parts).strip(), names

    def evaluate(
        self,
        expression: str,
        variables: Mapping[str, Any],
        extra_names: Mapping[str, Any] | None = None,
    ) -> Any:
        """Evaluate ``expression``. Raises ExpressionError on any failure."""
        source, names = self.prepare(expression, variables, extra_names)
        if not source:
            raise ExpressionError("Empty expression")
        try:
            tree = ast.parse(source, mode="eval")
        except SyntaxError as e:
            raise ExpressionError(f"Invalid expression: {expression!r}") from e
        try:
            return _SafeEvaluator(names).visit(tree)
        except (TypeError, ValueError, AttributeError, OverflowError, RecursionError) as e:
            raise ExpressionError(str(e)) from e

    def is_true(
        self,
        expression: str,
        variables: Mapping[str, Any],
        extra_names: Mapping[str, Any] | None = None,
    ) -> bool:
        """Evaluate as a condition. Failures log a warning and count as false."""
        try:
            return bool(self.evaluate(expression, variables, extra_names))
        except ExpressionError as e:
            logger.warning(f"Condition evaluation failed: {expression!r}: {e}")
            return False


def _split_quoted(text: str) -> list[tuple[str, str | None]]:
    """Split into (segment, quote) pieces; quote is None outside string literals."""
    pieces: list[tuple[str, str | None]] = []
    buffer: list[str] = []
    quote: str | None = None
    i = 0
    while i < len(text):
        char = text[i]
        if quote is None and char in ("'", '"'):
            pieces.append(("".join(buffer), None))
            buffer = []
            quote = char
        elif quote is not None and char == "\\" and i + 1 < len(text):
            buffer.append(text[i + 1])
            i += 1
        elif quote is not None and char == quote:
            pieces.append(("".join(buffer), quote))
            buffer = []
            quote = None
        else:
            buffer.append(char)
        i += 1
    # An unterminated literal is handed to the parser as-is so it fails there.
    if quote is not None:
        pieces.append((quote + "".join(buffer), None))
    elif buffer:
        pieces.append(("".join(buffer), None))
    return pieces
