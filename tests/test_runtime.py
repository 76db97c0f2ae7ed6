from __future__ import annotations

import json
import threading
import time
from http.server import BaseHTTPRequestHandler, HTTPServer
from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from scenario_engine.context import ExecutionContext
from scenario_engine.errors import HttpClientUnavailableError, StepTimeoutError, TransportError
from scenario_engine.executor import RunStatus, execute
from scenario_engine.http_client import UrllibHttpClient
from scenario_engine.main import app
from scenario_engine.models import Scenario

runner = CliRunner()


def _start_test_server() -> tuple[HTTPServer, threading.Thread]:
    class Handler(BaseHTTPRequestHandler):
        def _reply(self, status: int, payload: object) -> None:
            body = json.dumps(payload).encode("utf-8")
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def _trickle(self, body: bytes, *, delay: float) -> None:
            self.send_response(200)
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            try:
                for byte in body:
                    self.wfile.write(bytes([byte]))
                    self.wfile.flush()
                    time.sleep(delay)
            except (BrokenPipeError, ConnectionResetError):
                return

        def do_POST(self) -> None:  # noqa: N802 - HTTP handler requirement
            length = int(self.headers.get("Content-Length") or 0)
            payload = json.loads(self.rfile.read(length) or b"{}")
            if self.path == "/users":
                self._reply(201, {"id": 7, "name": payload.get("name"), "auth": self.headers.get("Authorization")})
            else:
                self._reply(404, {"error": "not found"})

        def do_GET(self) -> None:  # noqa: N802 - HTTP handler requirement
            if self.path == "/users/7":
                self._reply(200, {"id": 7, "name": "Ada"})
            elif self.path == "/slow":
                time.sleep(1.0)
                self._reply(200, {})
            elif self.path == "/trickle":
                self._trickle(b"x" * 20, delay=0.1)
            else:
                self._reply(404, {"error": "not found"})

        def log_message(self, format: str, *args: object) -> None:  # pragma: no cover - silence logs
            return

    server = HTTPServer(("127.0.0.1", 0), Handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    return server, thread


def _base_url(server: HTTPServer) -> str:
    return f"http://127.0.0.1:{server.server_address[1]}"


def _scenario_file(tmp_path: Path, *, user_endpoint: str = "/users/{userId}") -> Path:
    scenario = {
        "name": "user lifecycle",
        "tags": ["smoke"],
        "steps": [
            {
                "index": 0,
                "name": "create user",
                "method": "POST",
                "endpoint": "/users",
                "headers": {"Content-Type": "application/json"},
                "body": '{"name": "{userName}"}',
                "expected": {
                    "status": 201,
                    "bodyFields": {
                        "id": {"type": "greaterThan", "value": 0},
                        "name": {"type": "exact", "value": "Ada"},
                        "auth": {"type": "exact", "value": "Bearer token-1"},
                    },
                },
                "extractions": {"userId": "$.id"},
            },
            {
                "index": 1,
                "name": "fetch user",
                "method": "GET",
                "endpoint": user_endpoint,
                "expected": {
                    "statusRange": {"start": 200, "end": 299},
                    "bodyContains": ["Ada"],
                    "headers": {"content-type": "application/json"},
                },
            },
        ],
    }
    path = tmp_path / "scenario.yaml"
    path.write_text(yaml.safe_dump(scenario, sort_keys=False), encoding="utf-8")
    return path


def test_run_produces_summary_and_events(tmp_path: Path) -> None:
    scenario_path = _scenario_file(tmp_path)
    output_dir = tmp_path / "runs"
    server, thread = _start_test_server()

    try:
        result = runner.invoke(
            app,
            [
                "run",
                str(scenario_path),
                "--base-url",
                _base_url(server),
                "--var",
                "userName=Ada",
                "--auth-token",
                "token-1",
                "--output-dir",
                str(output_dir),
                "--run-id",
                "run-1",
                "--output-format",
                "plain",
            ],
        )
    finally:
        server.shutdown()
        thread.join(timeout=5)

    assert result.exit_code == 0, result.output
    run_dir = output_dir / "run-1"
    summary = json.loads((run_dir / "summary.json").read_text(encoding="utf-8"))
    assert summary["status"] == "PASSED"
    assert summary["total_steps"] == 2
    assert summary["passed_steps"] == 2
    assert summary["variables"] == {"userName": "Ada", "userId": "7"}

    events = [json.loads(line) for line in (run_dir / "events.jsonl").read_text(encoding="utf-8").splitlines()]
    assert [event["step_index"] for event in events] == [0, 1]
    assert events[1]["request"]["url"].endswith("/users/7")
    assert events[0]["request"]["headers"]["Authorization"] == "Bearer token-1"


def test_run_records_failures_and_exits_non_zero(tmp_path: Path) -> None:
    scenario_path = _scenario_file(tmp_path, user_endpoint="/users/404")
    output_dir = tmp_path / "runs"
    server, thread = _start_test_server()

    try:
        result = runner.invoke(
            app,
            [
                "run",
                str(scenario_path),
                "--base-url",
                _base_url(server),
                "--var",
                "userName=Ada",
                "--auth-token",
                "token-1",
                "--output-dir",
                str(output_dir),
                "--run-id",
                "run-2",
            ],
        )
    finally:
        server.shutdown()
        thread.join(timeout=5)

    assert result.exit_code == 1, result.output
    summary = json.loads((output_dir / "run-2" / "summary.json").read_text(encoding="utf-8"))
    assert summary["status"] == "FAILED"
    assert summary["failed_steps"] == 1
    assert summary["failures"][0]["step_name"] == "fetch user"


def test_run_refuses_invalid_scenario(tmp_path: Path) -> None:
    scenario_path = _scenario_file(tmp_path, user_endpoint="/users/{unknownId}")

    result = runner.invoke(
        app,
        [
            "run",
            str(scenario_path),
            "--var",
            "userName=Ada",
            "--output-dir",
            str(tmp_path / "runs"),
            "--run-id",
            "run-3",
        ],
    )

    assert result.exit_code == 2, result.output
    assert "STEP_UNRESOLVED_PLACEHOLDER" in result.output
    assert not (tmp_path / "runs" / "run-3").exists()


def test_run_rejects_malformed_variable(tmp_path: Path) -> None:
    result = runner.invoke(app, ["run", str(_scenario_file(tmp_path)), "--var", "novalue"])

    assert result.exit_code != 0


def test_validate_command(tmp_path: Path) -> None:
    spec = {
        "openapi": "3.0.1",
        "info": {"title": "Users", "version": "v1"},
        "paths": {"/users": {"post": {"operationId": "createUser"}}, "/users/{id}": {"get": {}}},
    }
    spec_path = tmp_path / "users.yaml"
    spec_path.write_text(yaml.safe_dump(spec), encoding="utf-8")
    scenario_path = _scenario_file(tmp_path, user_endpoint="/users/7")

    result = runner.invoke(app, ["validate", str(scenario_path), "--spec", str(spec_path), "--output-format", "plain"])

    assert result.exit_code == 1, result.output
    assert "STEP_UNRESOLVED_PLACEHOLDER (steps[0].body)" in result.output
    assert "STEP_MISSING_AUTH_HEADER" in result.output
    assert "STEP_ENDPOINT_NOT_IN_SPEC" not in result.output


def test_validate_command_accepts_clean_scenario(tmp_path: Path) -> None:
    scenario_path = tmp_path / "scenario.yaml"
    scenario_path.write_text(
        yaml.safe_dump(
            {
                "name": "health",
                "steps": [
                    {
                        "index": 0,
                        "name": "ping",
                        "method": "GET",
                        "endpoint": "/health",
                        "expected": {"status": 200, "bodyContains": ["ok"]},
                    }
                ],
            }
        ),
        encoding="utf-8",
    )

    result = runner.invoke(app, ["validate", str(scenario_path), "--output-format", "plain"])

    assert result.exit_code == 0, result.output
    assert "Valid" in result.output


def test_validate_command_reports_load_errors(tmp_path: Path) -> None:
    result = runner.invoke(app, ["validate", str(tmp_path / "missing.yaml")])

    assert result.exit_code == 2


def test_urllib_client_returns_error_statuses_as_responses() -> None:
    server, thread = _start_test_server()
    client = UrllibHttpClient()

    try:
        response = client.send("GET", f"{_base_url(server)}/nothing", {}, None, 5_000)
    finally:
        server.shutdown()
        thread.join(timeout=5)

    assert response.status == 404
    assert json.loads(response.body or "{}") == {"error": "not found"}
    assert response.headers["Content-Type"] == "application/json"


def test_urllib_client_times_out() -> None:
    server, thread = _start_test_server()
    client = UrllibHttpClient()

    try:
        with pytest.raises(StepTimeoutError) as excinfo:
            client.send("GET", f"{_base_url(server)}/slow", {}, None, 200)
    finally:
        server.shutdown()
        thread.join(timeout=5)

    assert str(excinfo.value) == "Request timed out after 200ms"


def test_urllib_client_enforces_a_total_deadline() -> None:
    server, thread = _start_test_server()
    client = UrllibHttpClient()

    started = time.perf_counter()
    try:
        with pytest.raises(StepTimeoutError) as excinfo:
            client.send("GET", f"{_base_url(server)}/trickle", {}, None, 300)
        elapsed = time.perf_counter() - started
    finally:
        server.shutdown()
        thread.join(timeout=5)

    assert str(excinfo.value) == "Request timed out after 300ms"
    assert elapsed < 1.0


def test_urllib_client_maps_invalid_urls_to_transport_errors() -> None:
    server, thread = _start_test_server()
    client = UrllibHttpClient()

    try:
        with pytest.raises(TransportError):
            client.send("GET", f"{_base_url(server)}/users/John Doe", {}, None, 1_000)
        with pytest.raises(TransportError):
            client.send("GET", "http://127.0.0.1:notaport/users", {}, None, 1_000)
    finally:
        server.shutdown()
        thread.join(timeout=5)


def test_seed_value_with_space_is_sent_encoded() -> None:
    scenario = Scenario.model_validate(
        {
            "name": "lookup",
            "steps": [
                {"index": index, "name": endpoint, "method": "GET", "endpoint": endpoint, "expected": {"status": 200}}
                for index, endpoint in enumerate(["/users/{name}", "/users/7"])
            ],
        }
    )
    server, thread = _start_test_server()

    try:
        context = ExecutionContext(base_url=_base_url(server), variables={"name": "John Doe"})
        run = execute(scenario, context, UrllibHttpClient())
    finally:
        server.shutdown()
        thread.join(timeout=5)

    first, second = run.step_results
    assert first.request.url.endswith("/users/John%20Doe")
    assert first.response is not None and first.response.status == 404
    assert first.error_message is None
    assert second.passed
    assert run.status is RunStatus.FAILED


def test_urllib_client_transport_failure_and_close() -> None:
    server = HTTPServer(("127.0.0.1", 0), BaseHTTPRequestHandler)
    url = f"{_base_url(server)}/users"
    server.server_close()
    client = UrllibHttpClient()

    with pytest.raises(TransportError):
        client.send("GET", url, {}, None, 1_000)

    client.close()
    with pytest.raises(HttpClientUnavailableError):
        client.send("GET", url, {}, None, 1_000)
