"""Scenario document models shared by the validator and the executor."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictFloat, StrictInt, StrictStr, field_validator
from pydantic.alias_generators import to_camel

Primitive = Union[StrictBool, StrictInt, StrictFloat, StrictStr]
Number = Union[StrictInt, StrictFloat]


class DocumentModel(BaseModel):
    """Immutable model serialized with camelCase keys."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def as_document(self) -> dict[str, Any]:
        """Return the JSON/YAML friendly document shape."""

        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class HttpMethod(str, Enum):
    """HTTP methods a step may use."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"


MUTATING_METHODS = frozenset({HttpMethod.POST, HttpMethod.PUT, HttpMethod.PATCH, HttpMethod.DELETE})


class ScenarioSource(str, Enum):
    """Who produced the scenario document."""

    AI_GENERATED = "AI_GENERATED"
    MANUAL = "MANUAL"
    IMPORTED = "IMPORTED"


class ExactMatcher(DocumentModel):
    """Field equals ``value`` with the same JSON type."""

    type: Literal["exact"] = "exact"
    value: Primitive


class AnyMatcher(DocumentModel):
    """Field only has to be present."""

    type: Literal["any"] = "any"


class RegexMatcher(DocumentModel):
    """Field rendered as a string contains a match of ``pattern``."""

    type: Literal["regex"] = "regex"
    pattern: str


class GreaterThanMatcher(DocumentModel):
    type: Literal["greaterThan"] = "greaterThan"
    value: Number


class LessThanMatcher(DocumentModel):
    type: Literal["lessThan"] = "lessThan"
    value: Number


class OneOfMatcher(DocumentModel):
    """Field equals one of ``values`` under the exact-match rules."""

    type: Literal["oneOf"] = "oneOf"
    values: tuple[Primitive, ...]


class NotNullMatcher(DocumentModel):
    type: Literal["notNull"] = "notNull"


class IsNullMatcher(DocumentModel):
    type: Literal["isNull"] = "isNull"


FieldMatcher = Annotated[
    Union[
        ExactMatcher,
        AnyMatcher,
        RegexMatcher,
        GreaterThanMatcher,
        LessThanMatcher,
        OneOfMatcher,
        NotNullMatcher,
        IsNullMatcher,
    ],
    Field(discriminator="type"),
]


class StatusRange(DocumentModel):
    """Inclusive range of acceptable status codes."""

    start: int
    end: int

    def __contains__(self, status: object) -> bool:
        return isinstance(status, int) and self.start <= status <= self.end

    def describe(self) -> str:
        return f"{self.start}-{self.end}"


class ExpectedResult(DocumentModel):
    """Assertions evaluated against one step response."""

    status: Optional[int] = None
    status_range: Optional[StatusRange] = None
    headers: dict[str, str] = Field(default_factory=dict)
    body_contains: tuple[str, ...] = ()
    body_fields: dict[str, FieldMatcher] = Field(default_factory=dict)

    @property
    def has_body_assertions(self) -> bool:
        return bool(self.body_contains or self.body_fields)


class Step(DocumentModel):
    """One HTTP request with its assertions and value extractions."""

    index: int
    name: str
    method: HttpMethod
    endpoint: str
    headers: dict[str, str] = Field(default_factory=dict)
    body: Optional[str] = None
    expected: ExpectedResult
    extractions: dict[str, str] = Field(default_factory=dict)
    timeout_ms: int = 30_000

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.upper()
        return value

    @property
    def is_mutating(self) -> bool:
        return self.method in MUTATING_METHODS


class Scenario(DocumentModel):
    """Ordered collection of steps describing one end-to-end API test."""

    name: str
    description: Optional[str] = None
    steps: tuple[Step, ...] = ()
    tags: frozenset[str] = frozenset()
    source: ScenarioSource = ScenarioSource.MANUAL

    @property
    def step_count(self) -> int:
        return len(self.steps)

    @property
    def ordered_steps(self) -> list[Step]:
        """Steps in ascending index order; ties keep document order."""

        return sorted(self.steps, key=lambda step: step.index)


@dataclass(frozen=True)
class StepIndexReport:
    """Outcome of the step index invariant check."""

    duplicates: list[int] = field(default_factory=list)
    negatives: list[int] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.duplicates and not self.negatives


def has_any_assertion(expected: ExpectedResult) -> bool:
    """True when at least one assertion is configured."""

    return (
        expected.status is not None
        or expected.status_range is not None
        or bool(expected.body_contains)
        or bool(expected.body_fields)
        or bool(expected.headers)
    )


def step_indices_are_valid(steps: list[Step] | tuple[Step, ...]) -> StepIndexReport:
    """Report duplicated and negative step indices."""

    counts = Counter(step.index for step in steps)
    duplicates = [index for index, count in counts.items() if count > 1]
    negatives = [step.index for step in steps if step.index < 0]
    return StepIndexReport(duplicates=duplicates, negatives=negatives)
