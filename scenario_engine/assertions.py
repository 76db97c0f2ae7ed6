"""Declarative assertion evaluation against HTTP responses."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Any, Mapping, Optional, assert_never

from pydantic import BaseModel

from .jsonpath import MISSING, Extractor, extract
from .models import (
    AnyMatcher,
    ExactMatcher,
    ExpectedResult,
    FieldMatcher,
    GreaterThanMatcher,
    IsNullMatcher,
    LessThanMatcher,
    NotNullMatcher,
    OneOfMatcher,
    RegexMatcher,
)


class AssertionType(str, Enum):
    STATUS_CODE = "STATUS_CODE"
    STATUS_RANGE = "STATUS_RANGE"
    BODY_CONTAINS = "BODY_CONTAINS"
    BODY_FIELD_EXACT = "BODY_FIELD_EXACT"
    BODY_FIELD_REGEX = "BODY_FIELD_REGEX"
    BODY_FIELD_EXISTS = "BODY_FIELD_EXISTS"
    BODY_FIELD_NOT_NULL = "BODY_FIELD_NOT_NULL"
    BODY_FIELD_NULL = "BODY_FIELD_NULL"
    BODY_FIELD_GREATER_THAN = "BODY_FIELD_GREATER_THAN"
    BODY_FIELD_LESS_THAN = "BODY_FIELD_LESS_THAN"
    BODY_FIELD_ONE_OF = "BODY_FIELD_ONE_OF"
    HEADER_VALUE = "HEADER_VALUE"


@dataclass(frozen=True)
class MatchOutcome:
    """Result of one matcher applied to one value."""

    passed: bool
    expected_description: str
    actual_description: str


class AssertionResult(BaseModel):
    """Recorded outcome of one assertion on a step response."""

    type: AssertionType
    field: Optional[str] = None
    expected: Optional[str] = None
    actual: Optional[str] = None
    passed: bool
    message: Optional[str] = None


def describe_value(value: Any) -> str:
    if value is MISSING:
        return "<missing>"
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(value)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def values_equal(actual: Any, expected: Any) -> bool:
    """Equality without coercion between JSON types."""

    if isinstance(expected, bool) or isinstance(actual, bool):
        return isinstance(expected, bool) and isinstance(actual, bool) and actual == expected
    if _is_number(expected):
        return _is_number(actual) and actual == expected
    if isinstance(expected, str):
        return isinstance(actual, str) and actual == expected
    return False


def _as_text(value: Any) -> str | None:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    return None


@lru_cache(maxsize=256)
def compile_pattern(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern)


def _regex_outcome(pattern: str, actual: Any) -> MatchOutcome:
    expected = f"matches /{pattern}/"
    text = _as_text(actual)
    if text is None:
        return MatchOutcome(False, expected, describe_value(actual))
    try:
        compiled = compile_pattern(pattern)
    except re.error as exc:
        return MatchOutcome(False, expected, f"invalid pattern: {exc}")
    return MatchOutcome(compiled.search(text) is not None, expected, describe_value(actual))


def evaluate_matcher(matcher: FieldMatcher, actual: Any) -> MatchOutcome:
    """Apply ``matcher`` to ``actual``, which may be the ``MISSING`` sentinel."""

    actual_text = describe_value(actual)
    match matcher:
        case ExactMatcher(value=value):
            return MatchOutcome(values_equal(actual, value), describe_value(value), actual_text)
        case AnyMatcher():
            return MatchOutcome(actual is not MISSING, "present", "missing" if actual is MISSING else actual_text)
        case RegexMatcher(pattern=pattern):
            return _regex_outcome(pattern, actual)
        case GreaterThanMatcher(value=value):
            return MatchOutcome(_is_number(actual) and actual > value, f"> {value}", actual_text)
        case LessThanMatcher(value=value):
            return MatchOutcome(_is_number(actual) and actual < value, f"< {value}", actual_text)
        case OneOfMatcher(values=values):
            passed = any(values_equal(actual, candidate) for candidate in values)
            expected = "one of [" + ", ".join(describe_value(v) for v in values) + "]"
            return MatchOutcome(passed, expected, actual_text)
        case NotNullMatcher():
            return MatchOutcome(actual is not MISSING and actual is not None, "not null", actual_text)
        case IsNullMatcher():
            return MatchOutcome(actual is MISSING or actual is None, "null", actual_text)
        case _:
            assert_never(matcher)


def assertion_type_for(matcher: FieldMatcher) -> AssertionType:
    match matcher:
        case ExactMatcher():
            return AssertionType.BODY_FIELD_EXACT
        case AnyMatcher():
            return AssertionType.BODY_FIELD_EXISTS
        case RegexMatcher():
            return AssertionType.BODY_FIELD_REGEX
        case GreaterThanMatcher():
            return AssertionType.BODY_FIELD_GREATER_THAN
        case LessThanMatcher():
            return AssertionType.BODY_FIELD_LESS_THAN
        case OneOfMatcher():
            return AssertionType.BODY_FIELD_ONE_OF
        case NotNullMatcher():
            return AssertionType.BODY_FIELD_NOT_NULL
        case IsNullMatcher():
            return AssertionType.BODY_FIELD_NULL
        case _:
            assert_never(matcher)


def parse_json_body(body: str | None) -> Any:
    """Parsed JSON body, or ``MISSING`` when the body is empty or not JSON."""

    if not body:
        return MISSING
    try:
        return json.loads(body)
    except ValueError:
        return MISSING


def _header_value(headers: Mapping[str, str], name: str) -> str | None:
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def evaluate_expected(
    expected: ExpectedResult,
    *,
    status: int,
    headers: Mapping[str, str],
    body: str | None,
    parsed_body: Any = MISSING,
    extractor: Extractor = extract,
) -> list[AssertionResult]:
    """Run every configured assertion against one response."""

    results: list[AssertionResult] = []

    if expected.status is not None:
        passed = status == expected.status
        results.append(
            AssertionResult(
                type=AssertionType.STATUS_CODE,
                expected=str(expected.status),
                actual=str(status),
                passed=passed,
                message=None if passed else f"Expected status {expected.status} but got {status}",
            )
        )

    if expected.status_range is not None:
        status_range = expected.status_range
        passed = status in status_range
        results.append(
            AssertionResult(
                type=AssertionType.STATUS_RANGE,
                expected=status_range.describe(),
                actual=str(status),
                passed=passed,
                message=None
                if passed
                else f"Expected status in range {status_range.describe()} but got {status}",
            )
        )

    raw_body = body or ""
    for fragment in expected.body_contains:
        found = fragment in raw_body
        results.append(
            AssertionResult(
                type=AssertionType.BODY_CONTAINS,
                expected=fragment,
                actual="found" if found else "not found",
                passed=found,
                message=None if found else f"Body does not contain '{fragment}'",
            )
        )

    if expected.body_fields:
        document = parsed_body if parsed_body is not MISSING else parse_json_body(body)
        for field_path, matcher in expected.body_fields.items():
            actual = MISSING if document is MISSING else extractor(document, field_path)
            outcome = evaluate_matcher(matcher, actual)
            results.append(
                AssertionResult(
                    type=assertion_type_for(matcher),
                    field=field_path,
                    expected=outcome.expected_description,
                    actual=outcome.actual_description,
                    passed=outcome.passed,
                    message=None
                    if outcome.passed
                    else (
                        f"Field '{field_path}' expected {outcome.expected_description} "
                        f"but got {outcome.actual_description}"
                    ),
                )
            )

    for header_name, expected_value in expected.headers.items():
        actual_value = _header_value(headers, header_name)
        passed = actual_value == expected_value
        results.append(
            AssertionResult(
                type=AssertionType.HEADER_VALUE,
                field=header_name,
                expected=expected_value,
                actual=actual_value,
                passed=passed,
                message=None
                if passed
                else f"Header '{header_name}' expected '{expected_value}' but got '{actual_value}'",
            )
        )

    return results
