"""Scenario and API spec loading utilities."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .contract import ApiSpec, normalize_openapi
from .errors import DocumentLoadError
from .models import Scenario


def _read_document(path: Path) -> Any:
    if not path.exists():
        raise DocumentLoadError(f"File not found: {path}")
    try:
        # JSON is a subset of YAML, one parser covers both.
        return yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise DocumentLoadError(f"Failed to parse {path}: {exc}") from exc


def load_scenario(path: Path) -> Scenario:
    """Load and validate a scenario YAML/JSON file."""

    data = _read_document(path)
    if not isinstance(data, dict):
        raise DocumentLoadError(f"Scenario file {path} must contain a mapping")
    try:
        return Scenario.model_validate(data)
    except ValidationError as exc:
        raise DocumentLoadError(f"Invalid scenario document {path}:\n{exc}") from exc


def load_api_spec(path: Path) -> ApiSpec:
    """Load an OpenAPI/Swagger document or a previously normalized ``ApiSpec`` snapshot."""

    data = _read_document(path)
    if not isinstance(data, dict):
        raise DocumentLoadError(f"API spec {path} must contain a mapping")
    if "operations" in data and not ("openapi" in data or "swagger" in data):
        try:
            return ApiSpec.model_validate(data)
        except ValidationError as exc:
            raise DocumentLoadError(f"Invalid API spec snapshot {path}:\n{exc}") from exc
    return normalize_openapi(data, source_path=str(path))
