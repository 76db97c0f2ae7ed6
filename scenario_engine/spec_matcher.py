"""Match concrete step endpoints against declared API operations."""

from __future__ import annotations

import re
from functools import lru_cache

from .contract import ApiOperation, ApiSpec
from .models import HttpMethod

PATH_PARAM_PATTERN = re.compile(r"\{([^}]+)\}")


def normalize_endpoint(endpoint: str) -> str:
    """Drop the query string."""

    return endpoint.split("?", 1)[0]


@lru_cache(maxsize=512)
def path_pattern(spec_path: str) -> re.Pattern[str]:
    """``/pets/{petId}`` -> ``^/pets/[^/{}]+$``.

    A parameter segment never matches an unresolved ``{marker}``.
    """

    parts: list[str] = []
    position = 0
    for match in PATH_PARAM_PATTERN.finditer(spec_path):
        parts.append(re.escape(spec_path[position:match.start()]))
        parts.append("[^/{}]+")
        position = match.end()
    parts.append(re.escape(spec_path[position:]))
    return re.compile("^" + "".join(parts) + "$")


def path_matches(endpoint: str, spec_path: str) -> bool:
    return path_pattern(spec_path).match(endpoint) is not None


def find_matching_operation(
    method: HttpMethod | str,
    endpoint: str,
    spec: ApiSpec,
) -> ApiOperation | None:
    """Return the first declared operation matching ``method`` and ``endpoint``.

    Declaration order breaks ties between several matching paths.
    """

    wanted = (method.value if isinstance(method, HttpMethod) else str(method)).upper()
    normalized = normalize_endpoint(endpoint)
    for operation in spec.operations:
        if operation.method.upper() != wanted:
            continue
        if path_matches(normalized, operation.path):
            return operation
    return None
