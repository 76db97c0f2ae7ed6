"""Configuration values for validation and execution."""

from __future__ import annotations

import os

from pydantic import BaseModel, ConfigDict

DEFAULT_BASE_URL = "http://127.0.0.1:9101"
BASE_URL_ENV = "SCENARIO_ENGINE_BASE_URL"
LOG_LEVEL_ENV = "SCENARIO_ENGINE_LOG_LEVEL"
DEFAULT_LOG_LEVEL = "WARNING"


class ValidatorConfig(BaseModel):
    """Limits applied by the static validator."""

    model_config = ConfigDict(frozen=True)

    max_name_length: int = 255
    max_body_bytes: int = 1_000_000
    min_timeout_ms: int = 100
    max_timeout_ms: int = 300_000
    long_timeout_ms: int = 60_000
    sample_operations: int = 10
    # JSON bodies are scanned for markers inside their strings only
    json_body_string_markers_only: bool = True

    @classmethod
    def from_env(cls) -> "ValidatorConfig":
        """Build a config, letting ``SCENARIO_ENGINE_*`` variables override defaults."""

        overrides: dict[str, str] = {}
        for field_name in cls.model_fields:
            raw = os.getenv(f"SCENARIO_ENGINE_{field_name.upper()}")
            if raw:
                overrides[field_name] = raw
        return cls(**overrides)


DEFAULT_VALIDATOR_CONFIG = ValidatorConfig()


def get_base_url(cli_override: str | None = None) -> str:
    """CLI parameter > environment variable > default."""

    return (cli_override or os.getenv(BASE_URL_ENV) or DEFAULT_BASE_URL).rstrip("/")


def get_log_level(cli_override: str | None = None) -> str:
    return (cli_override or os.getenv(LOG_LEVEL_ENV) or DEFAULT_LOG_LEVEL).upper()
