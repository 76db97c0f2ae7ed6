"""Static scenario validation.

Checks a scenario without any network or storage access:
- scenario-level properties (name, steps present)
- per-step structure (name, endpoint, timeout, body size, placeholders)
- step index uniqueness and sign
- assertion validity (presence, status bounds, regex compilation)
- conformance to an API spec, when one is supplied

Every rule runs; findings are collected, never short-circuited.
"""

from __future__ import annotations

import re
from collections.abc import Collection, Sequence
from enum import Enum
from typing import Any, Optional

import structlog
from pydantic import BaseModel, Field

from .assertions import compile_pattern
from .config import DEFAULT_VALIDATOR_CONFIG, ValidatorConfig
from .contract import ApiOperation, ApiSpec
from .errors import ScenarioValidationError
from .models import RegexMatcher, Scenario, Step, has_any_assertion, step_indices_are_valid
from .placeholders import (
    PLACEHOLDER_PATTERN,
    find_json_string_placeholders,
    find_unresolved_placeholders,
    placeholder_name,
)
from .spec_matcher import find_matching_operation

LOGGER = structlog.get_logger("scenario_engine.validator")

STATUS_MIN = 100
STATUS_MAX = 599


class ErrorCode(str, Enum):
    EMPTY_NAME = "SCENARIO_EMPTY_NAME"
    NAME_TOO_LONG = "SCENARIO_NAME_TOO_LONG"
    NO_STEPS = "SCENARIO_NO_STEPS"
    DUPLICATE_STEP_INDEX = "SCENARIO_DUPLICATE_STEP_INDEX"
    INVALID_STEP_INDEX = "STEP_INVALID_INDEX"
    EMPTY_STEP_NAME = "STEP_EMPTY_NAME"
    EMPTY_ENDPOINT = "STEP_EMPTY_ENDPOINT"
    ENDPOINT_NOT_IN_SPEC = "STEP_ENDPOINT_NOT_IN_SPEC"
    UNRESOLVED_PLACEHOLDER = "STEP_UNRESOLVED_PLACEHOLDER"
    INVALID_TIMEOUT = "STEP_INVALID_TIMEOUT"
    NO_EXPECTED_RESULT = "STEP_NO_EXPECTED_RESULT"
    INVALID_STATUS_CODE = "STEP_INVALID_STATUS_CODE"
    INVALID_STATUS_RANGE = "STEP_INVALID_STATUS_RANGE"
    INVALID_REGEX_PATTERN = "STEP_INVALID_REGEX_PATTERN"
    BODY_TOO_LARGE = "STEP_BODY_TOO_LARGE"


class WarningCode(str, Enum):
    WEAK_ASSERTIONS = "STEP_WEAK_ASSERTIONS"
    LONG_TIMEOUT = "STEP_LONG_TIMEOUT"
    DEPRECATED_ENDPOINT = "STEP_DEPRECATED_ENDPOINT"
    MISSING_AUTH_HEADER = "STEP_MISSING_AUTH_HEADER"


class ValidationIssue(BaseModel):
    """A single validation finding (blocking error or warning)."""

    code: ErrorCode | WarningCode
    message: str
    field: Optional[str] = None
    step_index: Optional[int] = None
    details: dict[str, Any] = Field(default_factory=dict)


class ValidationResult(BaseModel):
    """Errors block execution; warnings never do."""

    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    @property
    def error_codes(self) -> list[ErrorCode | WarningCode]:
        return [issue.code for issue in self.errors]

    @property
    def warning_codes(self) -> list[ErrorCode | WarningCode]:
        return [issue.code for issue in self.warnings]

    def raise_for_errors(self) -> None:
        if self.errors:
            raise ScenarioValidationError(self)

    def __str__(self) -> str:
        if self.valid:
            msg = "Valid"
            if self.warnings:
                msg += f" ({len(self.warnings)} warnings)"
            return msg
        return f"Invalid: {len(self.errors)} errors, {len(self.warnings)} warnings"


def validate(
    scenario: Scenario,
    api_spec: ApiSpec | None = None,
    *,
    config: ValidatorConfig | None = None,
    known_variables: Collection[str] | None = None,
) -> ValidationResult:
    """Validate a scenario, optionally against an API spec.

    ``known_variables`` names values bound before the first step (seed
    variables, ``baseUrl``); markers naming them, or naming an extraction
    target of a step with a lower index, are not reported. By default every
    marker is reported.
    """

    config = config or DEFAULT_VALIDATOR_CONFIG
    errors = _scenario_property_errors(scenario, config)
    result = validate_steps(
        scenario.steps,
        api_spec,
        config=config,
        known_variables=known_variables,
        require_steps=False,
    )
    result.errors[:0] = errors
    LOGGER.debug(
        "validation_completed",
        scenario=scenario.name,
        errors=len(result.errors),
        warnings=len(result.warnings),
    )
    return result


def validate_steps(
    steps: Sequence[Step],
    api_spec: ApiSpec | None = None,
    *,
    config: ValidatorConfig | None = None,
    known_variables: Collection[str] | None = None,
    require_steps: bool = True,
) -> ValidationResult:
    """Validate a list of steps independently of a scenario."""

    config = config or DEFAULT_VALIDATOR_CONFIG
    errors: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []

    if require_steps and not steps:
        errors.append(_no_steps())

    for position, step in enumerate(steps):
        step_known = _known_before(step, steps, known_variables)
        operation = None
        if api_spec is not None:
            operation = _match_operation(step, api_spec, step_known)
        errors.extend(
            _step_errors(step, position, api_spec, operation, config, step_known)
        )
        warnings.extend(_step_warnings(step, position, operation, config))

    errors.extend(_step_index_errors(steps))
    return ValidationResult(errors=errors, warnings=warnings)


def validate_step(
    step: Step,
    position: int,
    api_spec: ApiSpec | None = None,
    *,
    config: ValidatorConfig | None = None,
    known_variables: Collection[str] | None = None,
) -> list[ValidationIssue]:
    """Blocking findings for a single step."""

    config = config or DEFAULT_VALIDATOR_CONFIG
    operation = None
    if api_spec is not None:
        operation = _match_operation(step, api_spec, known_variables)
    return _step_errors(step, position, api_spec, operation, config, known_variables)


def _known_before(
    step: Step,
    steps: Sequence[Step],
    known_variables: Collection[str] | None,
) -> Collection[str] | None:
    """``known_variables`` plus the extraction targets of steps that run before ``step``."""

    if known_variables is None:
        return None
    known = set(known_variables)
    for other in steps:
        if other.index < step.index:
            known.update(other.extractions)
    return known


def _no_steps() -> ValidationIssue:
    return ValidationIssue(
        code=ErrorCode.NO_STEPS,
        message="Scenario must have at least one step",
        field="steps",
    )


def _scenario_property_errors(scenario: Scenario, config: ValidatorConfig) -> list[ValidationIssue]:
    errors: list[ValidationIssue] = []

    if not scenario.name.strip():
        errors.append(
            ValidationIssue(
                code=ErrorCode.EMPTY_NAME,
                message="Scenario name cannot be blank",
                field="name",
            )
        )

    if len(scenario.name) > config.max_name_length:
        errors.append(
            ValidationIssue(
                code=ErrorCode.NAME_TOO_LONG,
                message=f"Scenario name must be at most {config.max_name_length} characters",
                field="name",
                details={"length": len(scenario.name), "max": config.max_name_length},
            )
        )

    if not scenario.steps:
        errors.append(_no_steps())

    return errors


def _step_index_errors(steps: Sequence[Step]) -> list[ValidationIssue]:
    errors: list[ValidationIssue] = []
    report = step_indices_are_valid(steps)

    if report.duplicates:
        errors.append(
            ValidationIssue(
                code=ErrorCode.DUPLICATE_STEP_INDEX,
                message="Duplicate step indices found: " + ", ".join(str(i) for i in report.duplicates),
                field="steps",
                details={"duplicates": report.duplicates},
            )
        )

    if report.negatives:
        errors.append(
            ValidationIssue(
                code=ErrorCode.INVALID_STEP_INDEX,
                message="Step indices must be non-negative",
                field="steps",
                details={"invalidIndices": report.negatives},
            )
        )

    return errors


def _unresolved(markers: list[str], known_variables: Collection[str] | None) -> list[str]:
    if known_variables is None:
        return markers
    return [marker for marker in markers if placeholder_name(marker) not in known_variables]


def _body_placeholders(body: str | None, config: ValidatorConfig) -> list[str]:
    if config.json_body_string_markers_only:
        markers = find_json_string_placeholders(body)
        if markers is not None:
            return markers
    return find_unresolved_placeholders(body)


def _match_operation(
    step: Step,
    api_spec: ApiSpec,
    known_variables: Collection[str] | None,
) -> ApiOperation | None:
    """Spec operation for ``step``; markers of known variables count as bound segments."""

    endpoint = step.endpoint
    if known_variables:

        def _bind(match: re.Match[str]) -> str:
            name = placeholder_name(match.group(0))
            return name if name in known_variables else match.group(0)

        endpoint = PLACEHOLDER_PATTERN.sub(_bind, endpoint)
    return find_matching_operation(step.method, endpoint, api_spec)


def _step_errors(
    step: Step,
    position: int,
    api_spec: ApiSpec | None,
    operation: ApiOperation | None,
    config: ValidatorConfig,
    known_variables: Collection[str] | None,
) -> list[ValidationIssue]:
    path = f"steps[{position}]"
    errors: list[ValidationIssue] = []

    if not step.name.strip():
        errors.append(
            ValidationIssue(
                code=ErrorCode.EMPTY_STEP_NAME,
                message="Step name cannot be blank",
                field=f"{path}.name",
                step_index=position,
            )
        )

    if not step.endpoint.strip():
        errors.append(
            ValidationIssue(
                code=ErrorCode.EMPTY_ENDPOINT,
                message="Step endpoint cannot be blank",
                field=f"{path}.endpoint",
                step_index=position,
            )
        )

    if not config.min_timeout_ms <= step.timeout_ms <= config.max_timeout_ms:
        errors.append(
            ValidationIssue(
                code=ErrorCode.INVALID_TIMEOUT,
                message=(
                    f"Timeout must be between {config.min_timeout_ms}ms and {config.max_timeout_ms}ms"
                ),
                field=f"{path}.timeoutMs",
                step_index=position,
                details={
                    "value": step.timeout_ms,
                    "min": config.min_timeout_ms,
                    "max": config.max_timeout_ms,
                },
            )
        )

    if step.body is not None:
        size = len(step.body.encode("utf-8"))
        if size > config.max_body_bytes:
            errors.append(
                ValidationIssue(
                    code=ErrorCode.BODY_TOO_LARGE,
                    message=f"Request body exceeds maximum size of {config.max_body_bytes} bytes",
                    field=f"{path}.body",
                    step_index=position,
                    details={"size": size, "max": config.max_body_bytes},
                )
            )

    endpoint_markers = _unresolved(find_unresolved_placeholders(step.endpoint), known_variables)
    if endpoint_markers:
        errors.append(
            ValidationIssue(
                code=ErrorCode.UNRESOLVED_PLACEHOLDER,
                message="Endpoint contains unresolved placeholders: " + ", ".join(endpoint_markers),
                field=f"{path}.endpoint",
                step_index=position,
                details={"placeholders": endpoint_markers},
            )
        )

    body_markers = _unresolved(_body_placeholders(step.body, config), known_variables)
    if body_markers:
        errors.append(
            ValidationIssue(
                code=ErrorCode.UNRESOLVED_PLACEHOLDER,
                message="Body contains unresolved placeholders: " + ", ".join(body_markers),
                field=f"{path}.body",
                step_index=position,
                details={"placeholders": body_markers},
            )
        )

    for header_name, header_value in step.headers.items():
        header_markers = _unresolved(find_unresolved_placeholders(header_value), known_variables)
        if header_markers:
            errors.append(
                ValidationIssue(
                    code=ErrorCode.UNRESOLVED_PLACEHOLDER,
                    message=f"Header '{header_name}' contains unresolved placeholders",
                    field=f"{path}.headers.{header_name}",
                    step_index=position,
                    details={"placeholders": header_markers},
                )
            )

    errors.extend(_expected_result_errors(step, position))

    if api_spec is not None and operation is None:
        errors.append(
            ValidationIssue(
                code=ErrorCode.ENDPOINT_NOT_IN_SPEC,
                message=f"Endpoint '{step.method.value} {step.endpoint}' not found in API specification",
                field=f"{path}.endpoint",
                step_index=position,
                details={
                    "method": step.method.value,
                    "endpoint": step.endpoint,
                    "availableOperations": [
                        op.describe() for op in api_spec.operations[: config.sample_operations]
                    ],
                },
            )
        )

    return errors


def _expected_result_errors(step: Step, position: int) -> list[ValidationIssue]:
    path = f"steps[{position}].expected"
    expected = step.expected
    errors: list[ValidationIssue] = []

    if not has_any_assertion(expected):
        errors.append(
            ValidationIssue(
                code=ErrorCode.NO_EXPECTED_RESULT,
                message="Step must have at least one expected result assertion",
                field=path,
                step_index=position,
            )
        )

    if expected.status is not None and not STATUS_MIN <= expected.status <= STATUS_MAX:
        errors.append(
            ValidationIssue(
                code=ErrorCode.INVALID_STATUS_CODE,
                message=f"Status code must be between {STATUS_MIN} and {STATUS_MAX}",
                field=f"{path}.status",
                step_index=position,
                details={"value": expected.status},
            )
        )

    status_range = expected.status_range
    if status_range is not None and not (
        STATUS_MIN <= status_range.start <= status_range.end <= STATUS_MAX
    ):
        errors.append(
            ValidationIssue(
                code=ErrorCode.INVALID_STATUS_RANGE,
                message=f"Status range must be ordered and within {STATUS_MIN}-{STATUS_MAX}",
                field=f"{path}.statusRange",
                step_index=position,
                details={"start": status_range.start, "end": status_range.end},
            )
        )

    for field_path, matcher in expected.body_fields.items():
        if not isinstance(matcher, RegexMatcher):
            continue
        try:
            compile_pattern(matcher.pattern)
        except re.error as exc:
            errors.append(
                ValidationIssue(
                    code=ErrorCode.INVALID_REGEX_PATTERN,
                    message=f"Invalid regex pattern for field '{field_path}': {exc}",
                    field=f"{path}.bodyFields.{field_path}",
                    step_index=position,
                    details={"pattern": matcher.pattern},
                )
            )

    return errors


def _step_warnings(
    step: Step,
    position: int,
    operation: ApiOperation | None,
    config: ValidatorConfig,
) -> list[ValidationIssue]:
    path = f"steps[{position}]"
    expected = step.expected
    warnings: list[ValidationIssue] = []

    checks_status = expected.status is not None or expected.status_range is not None
    if checks_status and not expected.has_body_assertions:
        warnings.append(
            ValidationIssue(
                code=WarningCode.WEAK_ASSERTIONS,
                message="Step only checks status code. Consider adding body assertions.",
                field=f"{path}.expected",
                step_index=position,
            )
        )

    if step.timeout_ms > config.long_timeout_ms:
        warnings.append(
            ValidationIssue(
                code=WarningCode.LONG_TIMEOUT,
                message=f"Step has a timeout longer than {config.long_timeout_ms // 1000} seconds",
                field=f"{path}.timeoutMs",
                step_index=position,
                details={"value": step.timeout_ms},
            )
        )

    if operation is not None and operation.deprecated:
        warnings.append(
            ValidationIssue(
                code=WarningCode.DEPRECATED_ENDPOINT,
                message=(
                    f"Endpoint '{step.method.value} {step.endpoint}' is marked as deprecated in the spec"
                ),
                field=f"{path}.endpoint",
                step_index=position,
                details={"operation": operation.operation_id},
            )
        )

    if step.is_mutating and not any(name.lower() == "authorization" for name in step.headers):
        warnings.append(
            ValidationIssue(
                code=WarningCode.MISSING_AUTH_HEADER,
                message="Modifying request without Authorization header",
                field=f"{path}.headers",
                step_index=position,
            )
        )

    return warnings
