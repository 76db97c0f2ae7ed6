"""Exception types raised by the scenario engine."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .validator import ValidationResult


class ScenarioEngineError(RuntimeError):
    """Base class for every error raised by this package."""


class DocumentLoadError(ScenarioEngineError):
    """Raised when a scenario or API spec document cannot be read or parsed."""


class UnsupportedSpecError(DocumentLoadError):
    """Raised when an API specification is not an OpenAPI/Swagger document."""


class ScenarioValidationError(ScenarioEngineError):
    """Raised when an invalid scenario is submitted for execution."""

    def __init__(self, result: ValidationResult) -> None:
        self.result = result
        super().__init__(f"Scenario validation failed with {len(result.errors)} errors")


class TransportError(ScenarioEngineError):
    """A single HTTP call failed before a response was received."""


class StepTimeoutError(TransportError):
    """A single HTTP call exceeded its step deadline."""

    def __init__(self, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(f"Request timed out after {timeout_ms}ms")


class HttpClientUnavailableError(ScenarioEngineError):
    """The HTTP client collaborator cannot be used at all; aborts the run."""
