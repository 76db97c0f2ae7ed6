"""Console and log output format selection."""

from __future__ import annotations

import os
from enum import Enum
from typing import Literal

LogFormat = Literal["json", "console", "plain"]

ENV_VAR_NAME = "CONSOLE_OUTPUT_FORMAT"


class OutputFormat(str, Enum):
    """Console output formats."""

    AUTO = "auto"
    RICH = "rich"
    PLAIN = "plain"
    JSON = "json"


def _parse(value: str | None) -> OutputFormat | None:
    if not value:
        return None
    try:
        return OutputFormat(value.lower())
    except ValueError:
        return None


def get_output_format(cli_override: str | None = None) -> OutputFormat:
    """CLI parameter > ``CONSOLE_OUTPUT_FORMAT`` > auto. Unknown values are ignored."""

    return _parse(cli_override) or _parse(os.environ.get(ENV_VAR_NAME)) or OutputFormat.AUTO


def get_log_format(output_format: OutputFormat) -> LogFormat:
    """Map a console output format to the matching structlog renderer."""

    if output_format is OutputFormat.JSON:
        return "json"
    if output_format is OutputFormat.PLAIN:
        return "plain"
    return "console"
