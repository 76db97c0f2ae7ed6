"""Minimal JSONPath evaluator used for extractions and body field lookups.

Supports the subset scenario documents use: an optional ``$`` root, dotted
keys, ``[n]`` list indices and ``['key']`` / ``["key"]`` bracketed keys,
e.g. ``$.data.items[0].id`` or ``user.name``.
"""

from __future__ import annotations

import re
from typing import Any, Callable


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()
"""Sentinel returned when a path does not resolve; distinct from a JSON null."""

Extractor = Callable[[Any, str], Any]

_TOKEN_PATTERN = re.compile(r"\[(\d+)\]|\[\s*'([^']*)'\s*\]|\[\s*\"([^\"]*)\"\s*\]|\.?([^.\[\]]+)")


def _tokens(path: str) -> list[int | str] | None:
    expression = path.strip()
    if expression.startswith("$"):
        expression = expression[1:]
    tokens: list[int | str] = []
    position = 0
    while position < len(expression):
        match = _TOKEN_PATTERN.match(expression, position)
        if match is None:
            return None
        index, single_quoted, double_quoted, key = match.groups()
        if index is not None:
            tokens.append(int(index))
        elif single_quoted is not None:
            tokens.append(single_quoted)
        elif double_quoted is not None:
            tokens.append(double_quoted)
        else:
            tokens.append(key)
        position = match.end()
    return tokens


def extract(document: Any, path: str) -> Any:
    """Resolve ``path`` against a parsed JSON document.

    Returns the value found (which may be ``None`` for a JSON null) or
    ``MISSING`` when any segment does not exist.
    """

    tokens = _tokens(path)
    if tokens is None:
        return MISSING

    current = document
    for token in tokens:
        if isinstance(token, int):
            if not isinstance(current, list) or token >= len(current):
                return MISSING
            current = current[token]
        else:
            if not isinstance(current, dict) or token not in current:
                return MISSING
            current = current[token]
    return current
