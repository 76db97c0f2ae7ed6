"""Entry point for the scenario-engine CLI."""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import typer

if __package__ in {None, ""}:
    sys.path.append(str(Path(__file__).resolve().parents[1]))
    __package__ = "scenario_engine"

from .config import ValidatorConfig, get_base_url, get_log_level
from .console_reporter import ConsoleReporter
from .contract import ApiSpec
from .errors import DocumentLoadError, ScenarioValidationError
from .executor import RunStatus
from .loader import load_api_spec, load_scenario
from .logging_utils import configure_logging
from .output_config import OutputFormat, get_log_format, get_output_format
from .runner import ScenarioRunner
from .validator import validate as validate_scenario

app = typer.Typer(help="Validate and execute multi-step HTTP test scenarios.")

DEFAULT_OUTPUT = Path("workspace/runs")
EXIT_INVALID_SCENARIO = 2


def _setup(output_format: Optional[str], log_level: Optional[str] = None) -> OutputFormat:
    resolved = get_output_format(output_format)
    configure_logging(get_log_level(log_level), get_log_format(resolved))
    return resolved


def _parse_pairs(values: Optional[list[str]], option: str) -> dict[str, str]:
    pairs: dict[str, str] = {}
    for raw in values or []:
        key, separator, value = raw.partition("=")
        if not separator or not key.strip():
            raise typer.BadParameter(f"{option} expects KEY=VALUE, got '{raw}'")
        pairs[key.strip()] = value
    return pairs


def _load_spec(spec: Optional[Path]) -> ApiSpec | None:
    if spec is None:
        return None
    try:
        return load_api_spec(spec)
    except DocumentLoadError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _default_run_id() -> str:
    return datetime.now(timezone.utc).strftime("run-%Y%m%dT%H%M%S")


@app.command()
def validate(
    scenario: Path = typer.Argument(..., help="Scenario YAML/JSON document."),
    spec: Optional[Path] = typer.Option(None, help="OpenAPI/Swagger document to check endpoints against."),
    output_format: Optional[str] = typer.Option(
        None,
        "--output-format",
        help="Console output format: auto, rich, plain, json (env: CONSOLE_OUTPUT_FORMAT).",
    ),
) -> None:
    """Statically validate a scenario without sending any request."""

    resolved_format = _setup(output_format)
    try:
        document = load_scenario(scenario)
    except DocumentLoadError as exc:
        raise typer.BadParameter(str(exc)) from exc

    result = validate_scenario(document, _load_spec(spec), config=ValidatorConfig.from_env())
    if resolved_format is OutputFormat.JSON:
        typer.echo(result.model_dump_json(indent=2))
    else:
        ConsoleReporter(output_format=resolved_format).report_validation(result)
    if not result.valid:
        raise typer.Exit(code=1)


@app.command()
def run(
    scenario: Path = typer.Argument(..., help="Scenario YAML/JSON document."),
    base_url: Optional[str] = typer.Option(
        None,
        help="Target base URL (env: SCENARIO_ENGINE_BASE_URL).",
    ),
    var: Optional[list[str]] = typer.Option(None, "--var", help="Seed variable KEY=VALUE, repeatable."),
    header: Optional[list[str]] = typer.Option(None, "--header", help="Ambient request header KEY=VALUE, repeatable."),
    auth_token: Optional[str] = typer.Option(None, help="Bearer token sent when a step has no Authorization header."),
    spec: Optional[Path] = typer.Option(None, help="OpenAPI/Swagger document to check endpoints against."),
    output_dir: Path = typer.Option(DEFAULT_OUTPUT, help="Directory for run artifacts."),
    run_id: Optional[str] = typer.Option(None, help="Identifier of this run (defaults to a timestamp)."),
    skip_validation: bool = typer.Option(False, help="Execute without validating the scenario first."),
    output_format: Optional[str] = typer.Option(
        None,
        "--output-format",
        help="Console output format: auto, rich, plain, json (env: CONSOLE_OUTPUT_FORMAT).",
    ),
    log_level: Optional[str] = typer.Option(None, help="Log level (env: SCENARIO_ENGINE_LOG_LEVEL)."),
) -> None:
    """Validate and execute a scenario, recording events and a summary."""

    resolved_format = _setup(output_format, log_level)
    runner = ScenarioRunner(
        scenario_file=scenario,
        output_root=output_dir,
        run_id=run_id or _default_run_id(),
        base_url=get_base_url(base_url),
        variables=_parse_pairs(var, "--var"),
        headers=_parse_pairs(header, "--header"),
        auth_token=auth_token,
        api_spec=_load_spec(spec),
        validator_config=ValidatorConfig.from_env(),
        skip_validation=skip_validation,
        output_format=resolved_format,
    )

    try:
        result = runner.run()
    except DocumentLoadError as exc:
        raise typer.BadParameter(str(exc)) from exc
    except ScenarioValidationError as exc:
        if resolved_format is OutputFormat.JSON:
            typer.echo(exc.result.model_dump_json(indent=2))
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_INVALID_SCENARIO) from exc

    if resolved_format is OutputFormat.JSON:
        typer.echo(result.model_dump_json(indent=2))
    if result.status is not RunStatus.PASSED:
        raise typer.Exit(code=1)


def main() -> None:
    """CLI entry point for console_scripts."""

    app()


if __name__ == "__main__":  # pragma: no cover
    main()
