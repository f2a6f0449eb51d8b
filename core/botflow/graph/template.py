"""
Template interpolation for authored text.

``{name}`` is replaced with the stringified value of variable ``name``;
``{name[2]}`` indexes into a list (or string) value. Matching is literal and
case-sensitive, with no nested braces.

Unbound names render as the empty string. Whether a name is *allowed* to
be unbound is decided by the executor (see PluginExecutor.render), not here.
"""

import json
import re
from collections.abc import Mapping
from typing import Any

REFERENCE_PATTERN = re.compile(r"\{(\w+)(?:\[(\d+)\])?\}")


def stringify(value: Any) -> str:
    """Render a runtime value the way chat text shows it."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str, ensure_ascii=False)
    return str(value)


def references(text: Any) -> list[str]:
    """Variable names referenced by ``text``, in order of first appearance."""
    if not isinstance(text, str):
        return []
    seen: dict[str, None] = {}
    for match in REFERENCE_PATTERN.finditer(text):
        seen.setdefault(match.group(1), None)
    return list(seen)


def lookup(variables: Mapping[str, Any], name: str, index: str | None = None) -> Any:
    """Resolve ``name`` / ``name[index]``. Missing names and bad indexes give None."""
    value = variables.get(name)
    if index is None or value is None:
        return value
    try:
        return value[int(index)]
    except (IndexError, KeyError, TypeError):
        return None


def render(text: Any, variables: Mapping[str, Any]) -> Any:
    """
    Interpolate every ``{name}`` in ``text``.

    Non-string input is returned unchanged.

    Example:
        >>> render("Hello, {username}!", {"username": "Ann"})
        'Hello, Ann!'
        >>> render("Hello, {nobody}!", {})
        'Hello, !'
    """
    if not isinstance(text, str):
        return text
    return REFERENCE_PATTERN.sub(
        lambda m: stringify(lookup(variables, m.group(1), m.group(2))),
        text,
    )


def strip_braces(text: str) -> str:
    """``"{emojis}"`` -> ``"emojis"``: config fields that name a variable directly."""
    return text.strip().removeprefix("{").removesuffix("}")
