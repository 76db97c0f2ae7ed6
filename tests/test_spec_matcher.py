from __future__ import annotations

from scenario_engine.contract import ApiOperation, ApiSpec
from scenario_engine.models import HttpMethod
from scenario_engine.spec_matcher import find_matching_operation, normalize_endpoint, path_matches


def _spec() -> ApiSpec:
    return ApiSpec(
        name="Users",
        operations=[
            ApiOperation(operation_id="listUsers", method="GET", path="/users"),
            ApiOperation(operation_id="getUserMe", method="GET", path="/users/me"),
            ApiOperation(operation_id="getUser", method="GET", path="/users/{id}"),
            ApiOperation(operation_id="deleteUser", method="DELETE", path="/users/{id}", deprecated=True),
            ApiOperation(operation_id="getOrder", method="GET", path="/users/{id}/orders/{orderId}"),
        ],
    )


def test_path_parameters_match_a_single_segment() -> None:
    assert path_matches("/users/42", "/users/{id}")
    assert not path_matches("/users/42/extra", "/users/{id}")
    assert not path_matches("/users/", "/users/{id}")
    assert path_matches("/users/42/orders/7", "/users/{id}/orders/{orderId}")


def test_literal_segments_are_not_regex() -> None:
    assert path_matches("/v1.0/items", "/v1.0/items")
    assert not path_matches("/v1x0/items", "/v1.0/items")


def test_query_string_is_ignored() -> None:
    assert normalize_endpoint("/users?page=2") == "/users"
    operation = find_matching_operation("GET", "/users?page=2", _spec())
    assert operation is not None
    assert operation.operation_id == "listUsers"


def test_method_must_match() -> None:
    assert find_matching_operation(HttpMethod.POST, "/users", _spec()) is None
    operation = find_matching_operation("delete", "/users/42", _spec())
    assert operation is not None
    assert operation.operation_id == "deleteUser"


def test_first_declared_operation_wins() -> None:
    operation = find_matching_operation(HttpMethod.GET, "/users/me", _spec())

    assert operation is not None
    assert operation.operation_id == "getUserMe"


def test_unresolved_marker_does_not_match_a_parameter_segment() -> None:
    assert find_matching_operation("GET", "/users/{userId}", _spec()) is None
    assert find_matching_operation("GET", "/users/{userId}/orders/7", _spec()) is None
    assert find_matching_operation("GET", "/users/42/orders/7", _spec()).operation_id == "getOrder"
