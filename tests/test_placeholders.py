from __future__ import annotations

from scenario_engine.context import ExecutionContext
from scenario_engine.placeholders import (
    find_json_string_placeholders,
    find_unresolved_placeholders,
    placeholder_name,
    resolve,
)


def test_find_returns_markers_verbatim_in_order() -> None:
    text = "/users/{userId}/orders/{{orderId}}?page={page}"

    assert find_unresolved_placeholders(text) == ["{userId}", "{{orderId}}", "{page}"]


def test_any_text_between_braces_is_a_marker() -> None:
    assert find_unresolved_placeholders("/users/{user id}") == ["{user id}"]
    assert find_unresolved_placeholders("/items/{$.id}/{1}") == ["{$.id}", "{1}"]


def test_json_string_markers() -> None:
    body = '{"owner": {"id": "{ownerId}"}, "tags": {}, "{key}": [1, "{item}"]}'

    assert find_json_string_placeholders(body) == ["{ownerId}", "{key}", "{item}"]
    assert find_json_string_placeholders("name={userName}") is None
    assert find_json_string_placeholders(None) == []


def test_find_handles_empty_input() -> None:
    assert find_unresolved_placeholders(None) == []
    assert find_unresolved_placeholders("") == []
    assert find_unresolved_placeholders("/users") == []


def test_placeholder_name_strips_braces_and_spaces() -> None:
    assert placeholder_name("{userId}") == "userId"
    assert placeholder_name("{{ userId }}") == "userId"


def test_resolve_substitutes_known_variables_and_base_url() -> None:
    context = ExecutionContext(base_url="http://api.local", variables={"userId": "42"})

    resolved = resolve("{{baseUrl}}/users/{userId}", context.snapshot())

    assert resolved == "http://api.local/users/42"


def test_resolve_keeps_unknown_markers() -> None:
    context = ExecutionContext(base_url="http://api.local")

    assert resolve("/users/{userId}", context.snapshot()) == "/users/{userId}"


def test_resolve_is_single_pass() -> None:
    context = ExecutionContext(base_url="http://api.local", variables={"a": "{b}", "b": "nested"})

    assert resolve("{a}", context.snapshot()) == "{b}"


def test_resolve_inside_json_body() -> None:
    context = ExecutionContext(base_url="http://api.local", variables={"userName": "Ada", "user id": "7"})

    resolved = resolve('{"name": "{userName}", "id": "{user id}", "note": "{unknown}"}', context.snapshot())

    assert resolved == '{"name": "Ada", "id": "7", "note": "{unknown}"}'
    assert resolve('{"id": {user id}}', context.snapshot()) == '{"id": 7}'


def test_resolve_encodes_variable_values_only() -> None:
    context = ExecutionContext(base_url="http://api.local/v1", variables={"name": "John Doe"})

    resolved = resolve("{{baseUrl}}/users/{name}", context.snapshot(), encode=lambda value: value.replace(" ", "+"))

    assert resolved == "http://api.local/v1/users/John+Doe"
