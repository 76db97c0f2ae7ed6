"""Template placeholder detection and substitution.

A marker is any ``{...}`` or ``{{...}}`` run that matches
``PLACEHOLDER_PATTERN``; the name is the text between the braces, trimmed.
The validator reports every marker it finds. At runtime markers are replaced
from the execution context and unknown ones are left in place so they stay
visible in request captures.
"""

from __future__ import annotations

import json
import re
from typing import Any, Callable, Mapping, Optional, Protocol

PLACEHOLDER_PATTERN = re.compile(r"\{\{?[^}]+\}\}?")
# Substitution only considers balanced markers without nested braces, so a
# marker inside a JSON body is found next to the document's own braces.
SUBSTITUTION_PATTERN = re.compile(r"\{\{[^{}]+\}\}|\{[^{}]+\}")
BASE_URL_NAME = "baseUrl"


class VariableSource(Protocol):
    base_url: str

    @property
    def variables(self) -> Mapping[str, str]: ...


def find_unresolved_placeholders(text: str | None) -> list[str]:
    """Return every placeholder marker in ``text`` verbatim, in order."""

    if not text:
        return []
    return [match.group(0) for match in PLACEHOLDER_PATTERN.finditer(text)]


def find_json_string_placeholders(text: str | None) -> Optional[list[str]]:
    """Markers inside the string keys and values of a JSON document.

    Returns ``None`` when ``text`` is not JSON, so the caller can fall back to
    scanning the raw text.
    """

    if not text:
        return []
    try:
        document = json.loads(text)
    except ValueError:
        return None
    markers: list[str] = []
    _collect_string_markers(document, markers)
    return markers


def _collect_string_markers(node: Any, markers: list[str]) -> None:
    if isinstance(node, str):
        markers.extend(find_unresolved_placeholders(node))
    elif isinstance(node, dict):
        for key, value in node.items():
            markers.extend(find_unresolved_placeholders(key))
            _collect_string_markers(value, markers)
    elif isinstance(node, list):
        for item in node:
            _collect_string_markers(item, markers)


def placeholder_name(marker: str) -> str:
    """``{{ userId }}`` -> ``userId``."""

    return marker.strip("{}").strip()


def resolve(
    text: str,
    context: VariableSource,
    *,
    encode: Callable[[str], str] | None = None,
) -> str:
    """Substitute markers from ``context`` in a single pass.

    ``encode`` is applied to variable values, never to ``baseUrl``.
    """

    variables = context.variables

    def _substitute(match: re.Match[str]) -> str:
        marker = match.group(0)
        name = placeholder_name(marker)
        if name == BASE_URL_NAME:
            return context.base_url
        if name in variables:
            value = variables[name]
            return encode(value) if encode is not None else value
        return marker

    return SUBSTITUTION_PATTERN.sub(_substitute, text)
