"""Scenario execution engine.

One run walks the steps in ascending index order, resolves placeholders
against the current context, sends the request through the injected
``HttpClient``, evaluates assertions and threads extracted values into the
context for the following steps.
"""

from __future__ import annotations

import contextlib
import json
import threading
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional
from urllib.parse import quote

import structlog
from pydantic import BaseModel, Field

from .assertions import AssertionResult, evaluate_expected, parse_json_body
from .context import ContextSnapshot, ExecutionContext
from .errors import HttpClientUnavailableError, TransportError
from .http_client import HttpClient, HttpResponse
from .jsonpath import MISSING, Extractor, extract
from .models import Scenario, Step
from .placeholders import resolve

LOGGER = structlog.get_logger("scenario_engine.executor")

ABSOLUTE_URL_PREFIXES = ("http://", "https://")


class RunStatus(str, Enum):
    PASSED = "PASSED"
    FAILED = "FAILED"
    ERROR = "ERROR"
    CANCELLED = "CANCELLED"


class CapturedRequest(BaseModel):
    method: str
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    body: Optional[str] = None


class CapturedResponse(BaseModel):
    status: int
    headers: dict[str, str] = Field(default_factory=dict)
    body: Optional[str] = None


class StepExecutionResult(BaseModel):
    """Outcome of one executed step."""

    step_index: int
    step_name: str
    request: CapturedRequest
    response: Optional[CapturedResponse] = None
    assertions: list[AssertionResult] = Field(default_factory=list)
    extracted_values: dict[str, str] = Field(default_factory=dict)
    passed: bool
    duration_ms: float
    error_message: Optional[str] = None
    executed_at: datetime


class RunResult(BaseModel):
    """Aggregate outcome of one scenario run."""

    scenario_name: str
    status: RunStatus
    step_results: list[StepExecutionResult] = Field(default_factory=list)
    passed_count: int = 0
    failed_count: int = 0
    total_duration_ms: float = 0.0
    started_at: datetime
    finished_at: datetime
    aborted: bool = False
    error_message: Optional[str] = None
    variables: dict[str, str] = Field(default_factory=dict)

    @property
    def total_steps(self) -> int:
        return len(self.step_results)

    @property
    def pass_rate(self) -> float:
        if not self.step_results:
            return 0.0
        return self.passed_count / len(self.step_results) * 100


StepStartCallback = Callable[[Step], None]
StepFinishedCallback = Callable[[Step, StepExecutionResult], None]


def build_url(base_url: str, endpoint: str) -> str:
    if endpoint.startswith(ABSOLUTE_URL_PREFIXES):
        return endpoint
    if not endpoint.startswith("/"):
        endpoint = f"/{endpoint}"
    return f"{base_url.rstrip('/')}{endpoint}"


def stringify(value: Any) -> str:
    """Extracted values are stored as strings; non-strings use their JSON form."""

    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def quote_path_value(value: str) -> str:
    """Percent-encode a substituted endpoint value: ``John Doe`` -> ``John%20Doe``."""

    return quote(value, safe="")


def _failed_step(
    step: Step,
    request: CapturedRequest,
    executed_at: datetime,
    timer: float,
    error_message: str,
) -> StepExecutionResult:
    return StepExecutionResult(
        step_index=step.index,
        step_name=step.name,
        request=request,
        passed=False,
        duration_ms=round((time.perf_counter() - timer) * 1000, 3),
        error_message=error_message,
        executed_at=executed_at,
    )


def _run_status(step_results: list[StepExecutionResult]) -> RunStatus:
    if any(result.error_message for result in step_results):
        return RunStatus.ERROR
    if any(not result.passed for result in step_results):
        return RunStatus.FAILED
    return RunStatus.PASSED


class ScenarioExecutor:
    """Runs scenarios through an injected ``HttpClient``.

    The executor keeps no per-run state, so one instance may serve several
    concurrent runs. An optional semaphore bounds how many runs proceed at once.
    """

    def __init__(
        self,
        http_client: HttpClient,
        *,
        extractor: Extractor = extract,
        concurrency: threading.Semaphore | None = None,
        on_step_start: StepStartCallback | None = None,
        on_step_finished: StepFinishedCallback | None = None,
    ) -> None:
        self._http_client = http_client
        self._extractor = extractor
        self._concurrency = concurrency
        self._on_step_start = on_step_start
        self._on_step_finished = on_step_finished

    def execute(
        self,
        scenario: Scenario,
        context: ExecutionContext,
        *,
        cancel_event: threading.Event | None = None,
    ) -> RunResult:
        guard = self._concurrency if self._concurrency is not None else contextlib.nullcontext()
        with guard:
            return self._execute(scenario, context, cancel_event)

    def _execute(
        self,
        scenario: Scenario,
        context: ExecutionContext,
        cancel_event: threading.Event | None,
    ) -> RunResult:
        log = LOGGER.bind(scenario=scenario.name)
        log.info("run_started", steps=scenario.step_count, base_url=context.base_url)

        started_at = datetime.now(timezone.utc)
        timer = time.perf_counter()
        step_results: list[StepExecutionResult] = []
        status: RunStatus | None = None
        aborted = False
        error_message: str | None = None

        for step in scenario.ordered_steps:
            if cancel_event is not None and cancel_event.is_set():
                log.info("run_cancelled", next_step=step.index)
                status = RunStatus.CANCELLED
                break

            if self._on_step_start is not None:
                self._on_step_start(step)

            try:
                result = self._execute_step(step, context)
            except HttpClientUnavailableError as exc:
                log.error("run_aborted", step=step.index, error=str(exc))
                status = RunStatus.ERROR
                aborted = True
                error_message = str(exc)
                break

            step_results.append(result)
            if result.extracted_values:
                context.record_extractions(result.extracted_values)
            log.info(
                "step_finished",
                step=step.index,
                passed=result.passed,
                duration_ms=result.duration_ms,
                error=result.error_message,
            )
            if self._on_step_finished is not None:
                self._on_step_finished(step, result)

        passed_count = sum(1 for result in step_results if result.passed)
        run = RunResult(
            scenario_name=scenario.name,
            status=status or _run_status(step_results),
            step_results=step_results,
            passed_count=passed_count,
            failed_count=len(step_results) - passed_count,
            total_duration_ms=round((time.perf_counter() - timer) * 1000, 3),
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            aborted=aborted,
            error_message=error_message,
            variables=dict(context.variables),
        )
        log.info(
            "run_finished",
            status=run.status.value,
            passed=run.passed_count,
            failed=run.failed_count,
            duration_ms=run.total_duration_ms,
        )
        return run

    def _resolve_request(self, step: Step, context: ExecutionContext, snapshot: ContextSnapshot) -> CapturedRequest:
        endpoint = resolve(step.endpoint, snapshot, encode=quote_path_value)
        step_headers = {name: resolve(value, snapshot) for name, value in step.headers.items()}
        body = resolve(step.body, snapshot) if step.body is not None else None
        return CapturedRequest(
            method=step.method.value,
            url=build_url(snapshot.base_url, endpoint),
            headers=context.request_headers(step_headers),
            body=body,
        )

    def _execute_step(self, step: Step, context: ExecutionContext) -> StepExecutionResult:
        request = self._resolve_request(step, context, context.snapshot())
        executed_at = datetime.now(timezone.utc)
        timer = time.perf_counter()

        try:
            response: HttpResponse = self._http_client.send(
                request.method,
                request.url,
                request.headers,
                request.body,
                step.timeout_ms,
            )
        except HttpClientUnavailableError:
            raise
        except TransportError as exc:
            return _failed_step(step, request, executed_at, timer, str(exc))
        except Exception as exc:
            # any other client failure is recorded against the step
            LOGGER.exception("step_client_error", step=step.index)
            return _failed_step(step, request, executed_at, timer, f"{type(exc).__name__}: {exc}")

        parsed_body = parse_json_body(response.body)
        assertions = evaluate_expected(
            step.expected,
            status=response.status,
            headers=response.headers,
            body=response.body,
            parsed_body=parsed_body,
            extractor=self._extractor,
        )

        return StepExecutionResult(
            step_index=step.index,
            step_name=step.name,
            request=request,
            response=CapturedResponse(status=response.status, headers=response.headers, body=response.body),
            assertions=assertions,
            extracted_values=self._extract_values(step, parsed_body),
            passed=all(assertion.passed for assertion in assertions),
            duration_ms=round((time.perf_counter() - timer) * 1000, 3),
            executed_at=executed_at,
        )

    def _extract_values(self, step: Step, parsed_body: Any) -> dict[str, str]:
        if parsed_body is MISSING or not step.extractions:
            return {}
        extracted: dict[str, str] = {}
        for variable, path in step.extractions.items():
            value = self._extractor(parsed_body, path)
            if value is MISSING:
                LOGGER.debug("extraction_missing", step=step.index, variable=variable, path=path)
                continue
            extracted[variable] = stringify(value)
        return extracted


def execute(
    scenario: Scenario,
    context: ExecutionContext,
    http_client: HttpClient,
    *,
    extractor: Extractor = extract,
    cancel_event: threading.Event | None = None,
) -> RunResult:
    """Run ``scenario`` once with a throwaway executor."""

    executor = ScenarioExecutor(http_client, extractor=extractor)
    return executor.execute(scenario, context, cancel_event=cancel_event)
