"""Validate, execute and record one scenario run on disk."""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any, Mapping, Optional

import structlog

from .config import ValidatorConfig
from .console_reporter import ConsoleReporter
from .context import ExecutionContext
from .contract import ApiSpec
from .errors import ScenarioValidationError
from .executor import RunResult, ScenarioExecutor, StepExecutionResult
from .http_client import HttpClient, UrllibHttpClient
from .loader import load_scenario
from .models import Scenario, Step
from .output_config import OutputFormat
from .placeholders import BASE_URL_NAME
from .validator import ValidationResult, validate

LOGGER = structlog.get_logger("scenario_engine.runner")


@dataclass
class RunArtifacts:
    run_dir: Path
    events_file: Path
    summary_file: Path


def runtime_variable_names(seed_variables: Mapping[str, str]) -> set[str]:
    """Names bound before the first step runs.

    Extraction targets are added per step by the validator, from the steps
    that run earlier.
    """

    return set(seed_variables) | {BASE_URL_NAME}


class ScenarioRunner:
    """Runs a scenario file and writes ``events.jsonl`` and ``summary.json``."""

    def __init__(
        self,
        *,
        scenario_file: Path,
        output_root: Path,
        run_id: str,
        base_url: str,
        variables: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        auth_token: str | None = None,
        api_spec: ApiSpec | None = None,
        validator_config: ValidatorConfig | None = None,
        skip_validation: bool = False,
        http_client: HttpClient | None = None,
        output_format: OutputFormat = OutputFormat.AUTO,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.scenario_file = scenario_file
        self.output_root = output_root
        self.run_id = run_id
        self.base_url = base_url
        self.variables = dict(variables or {})
        self.headers = dict(headers or {})
        self.auth_token = auth_token
        self.api_spec = api_spec
        self.validator_config = validator_config
        self.skip_validation = skip_validation
        self.cancel_event = cancel_event
        self._http_client = http_client or UrllibHttpClient()
        self._reporter = ConsoleReporter(output_format=output_format)
        self._events_handle: Optional[IO[str]] = None

    def validate(self, scenario: Scenario) -> ValidationResult:
        return validate(
            scenario,
            self.api_spec,
            config=self.validator_config,
            known_variables=runtime_variable_names(self.variables),
        )

    def run(self) -> RunResult:
        """Execute the scenario; raises ``ScenarioValidationError`` when it is invalid."""

        scenario = load_scenario(self.scenario_file)
        log = LOGGER.bind(run_id=self.run_id, scenario=scenario.name)

        if not self.skip_validation:
            validation = self.validate(scenario)
            if not validation.valid or validation.warnings:
                self._reporter.report_validation(validation)
            if not validation.valid:
                log.warning("scenario_rejected", errors=[code.value for code in validation.error_codes])
                raise ScenarioValidationError(validation)

        artifacts = self._prepare_artifacts()
        context = ExecutionContext(
            base_url=self.base_url,
            variables=dict(self.variables),
            headers=dict(self.headers),
            auth_token=self.auth_token,
        )
        executor = ScenarioExecutor(
            self._http_client,
            on_step_start=self._reporter.step_started,
            on_step_finished=self._step_finished,
        )

        self._reporter.start_run(scenario.name, scenario.step_count)
        with artifacts.events_file.open("w", encoding="utf-8") as handle:
            self._events_handle = handle
            try:
                run = executor.execute(scenario, context, cancel_event=self.cancel_event)
            finally:
                self._events_handle = None

        artifacts.summary_file.write_text(
            json.dumps(self._build_summary(run, artifacts), indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        self._reporter.finish_run(run)
        log.info("run_recorded", status=run.status.value, run_dir=str(artifacts.run_dir))
        return run

    def _step_finished(self, step: Step, result: StepExecutionResult) -> None:
        if self._events_handle is not None:
            self._events_handle.write(json.dumps(_serialize_step_result(result), ensure_ascii=False) + "\n")
            self._events_handle.flush()
        self._reporter.step_finished(step, result)

    def _prepare_artifacts(self) -> RunArtifacts:
        run_dir = self.output_root / self.run_id
        run_dir.mkdir(parents=True, exist_ok=True)
        return RunArtifacts(
            run_dir=run_dir,
            events_file=run_dir / "events.jsonl",
            summary_file=run_dir / "summary.json",
        )

    def _build_summary(self, run: RunResult, artifacts: RunArtifacts) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "scenario_name": run.scenario_name,
            "status": run.status.value,
            "started_at": run.started_at.isoformat(),
            "finished_at": run.finished_at.isoformat(),
            "duration_ms": run.total_duration_ms,
            "total_steps": run.total_steps,
            "passed_steps": run.passed_count,
            "failed_steps": run.failed_count,
            "pass_rate": round(run.pass_rate, 2),
            "aborted": run.aborted,
            "error": run.error_message,
            "failures": [
                {
                    "step_index": result.step_index,
                    "step_name": result.step_name,
                    "error": result.error_message,
                    "failed_assertions": [
                        assertion.message for assertion in result.assertions if not assertion.passed
                    ],
                }
                for result in run.step_results
                if not result.passed
            ],
            "variables": run.variables,
            "events_file": str(artifacts.events_file),
            "summary_file": str(artifacts.summary_file),
        }


def _serialize_step_result(result: StepExecutionResult) -> dict[str, Any]:
    return result.model_dump(mode="json")
