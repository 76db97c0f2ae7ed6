"""Normalized API contract consumed by the spec matcher."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

from .errors import UnsupportedSpecError

OPENAPI_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")


class ApiOperation(BaseModel):
    """Represents a single operation declared by an API specification."""

    operation_id: str
    method: str
    path: str
    summary: Optional[str] = None
    description: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    deprecated: bool = False

    def describe(self) -> str:
        return f"{self.method} {self.path}"


class ApiSpec(BaseModel):
    """Normalized operation list of one API specification."""

    name: str
    version: str = "0"
    source_path: Optional[str] = None
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: dict[str, Any] = Field(default_factory=dict)
    operations: list[ApiOperation] = Field(default_factory=list)

    @property
    def operation_count(self) -> int:
        return len(self.operations)

    @property
    def used_methods(self) -> set[str]:
        return {op.method for op in self.operations}

    @property
    def paths(self) -> set[str]:
        return {op.path for op in self.operations}

    @property
    def all_tags(self) -> set[str]:
        return {tag for op in self.operations for tag in op.tags}

    def as_serializable(self) -> dict[str, Any]:
        """Return a JSON-serializable dictionary."""

        return self.model_dump(mode="json")


def normalize_openapi(
    data: dict[str, Any],
    *,
    source_path: str | None = None,
    name_override: str | None = None,
) -> ApiSpec:
    """Turn a parsed OpenAPI/Swagger document into an ApiSpec."""

    if not isinstance(data, dict) or not ("openapi" in data or "swagger" in data):
        raise UnsupportedSpecError("Document is not an OpenAPI/Swagger specification")

    info = data.get("info") or {}
    name = name_override or info.get("title") or "api"
    version = str(info.get("version", "0"))
    operations: list[ApiOperation] = []

    for raw_path, path_item in (data.get("paths") or {}).items():
        if not isinstance(path_item, dict):
            continue
        for method in OPENAPI_METHODS:
            entry = path_item.get(method)
            if not isinstance(entry, dict):
                continue
            operations.append(
                ApiOperation(
                    operation_id=entry.get("operationId") or f"{method.upper()} {raw_path}",
                    method=method.upper(),
                    path=raw_path,
                    summary=entry.get("summary"),
                    description=entry.get("description"),
                    tags=[str(tag) for tag in entry.get("tags") or []],
                    deprecated=bool(entry.get("deprecated", False)),
                )
            )

    metadata = {"raw_version": data.get("openapi") or data.get("swagger")}
    return ApiSpec(
        name=name,
        version=version,
        source_path=source_path,
        metadata=metadata,
        operations=operations,
    )
