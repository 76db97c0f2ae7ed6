"""Execution context shared across the steps of one run."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional

AUTHORIZATION_HEADER = "Authorization"


@dataclass(frozen=True)
class ContextSnapshot:
    """Read-only view of the context taken before a step is resolved."""

    base_url: str
    variables: Mapping[str, str]


@dataclass
class ExecutionContext:
    """Base URL, variables and ambient headers for a run.

    Variables only change through ``record_extractions``; each step is
    resolved against a ``snapshot`` so later writes never leak backwards.
    """

    base_url: str
    variables: dict[str, str] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    auth_token: Optional[str] = None

    def snapshot(self) -> ContextSnapshot:
        return ContextSnapshot(
            base_url=self.base_url,
            variables=MappingProxyType(dict(self.variables)),
        )

    def record_extractions(self, values: Mapping[str, str]) -> None:
        self.variables.update(values)

    def request_headers(self, step_headers: Mapping[str, str]) -> dict[str, str]:
        """Ambient headers, then the bearer token, then step headers (step wins)."""

        merged: dict[str, str] = dict(self.headers)
        if self.auth_token and not _has_header(merged, AUTHORIZATION_HEADER):
            merged[AUTHORIZATION_HEADER] = f"Bearer {self.auth_token}"
        for name, value in step_headers.items():
            for existing in [key for key in merged if key.lower() == name.lower()]:
                del merged[existing]
            merged[name] = value
        return merged


def _has_header(headers: Mapping[str, str], name: str) -> bool:
    return any(key.lower() == name.lower() for key in headers)
