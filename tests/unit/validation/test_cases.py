"""Tests for validation case definitions."""

from __future__ import annotations

import pytest

from stack_supervisor.validation.cases import (
    NO_BODY,
    ResponseExpectation,
    ResponseSnapshot,
    ValidationCase,
    json_contains,
    parse_status_spec,
)

BASE_URLS = {"backend": "http://127.0.0.1:8000", "frontend": "http://127.0.0.1:8501/"}


def _snapshot(status=200, json=None, text=""):
    return ResponseSnapshot(status=status, text=text, json=json)


class TestParseStatusSpec:
    def test_single_code(self) -> None:
        assert parse_status_spec(201) == frozenset({201})
        assert parse_status_spec("204") == frozenset({204})

    def test_class(self) -> None:
        accepted = parse_status_spec("2XX")
        assert 200 in accepted and 299 in accepted and 300 not in accepted

    def test_mixed_list(self) -> None:
        assert parse_status_spec([201, "4xx"]) == frozenset({201} | set(range(400, 500)))

    def test_none(self) -> None:
        assert parse_status_spec(None) is None

    @pytest.mark.parametrize("raw", ["ok", True, [], "xx"])
    def test_invalid(self, raw) -> None:
        with pytest.raises(ValueError):
            parse_status_spec(raw)


class TestJsonContains:
    def test_subset_of_object(self) -> None:
        assert json_contains({"id": 1, "name": "milk"}, {"name": "milk"})

    def test_missing_key(self) -> None:
        assert not json_contains({"id": 1}, {"name": "milk"})

    def test_nested(self) -> None:
        actual = {"item": {"id": 1, "tags": ["a", "b"]}, "ok": True}
        assert json_contains(actual, {"item": {"tags": ["a", "b"]}})
        assert not json_contains(actual, {"item": {"tags": ["a"]}})

    def test_bool_is_not_int(self) -> None:
        assert not json_contains({"ok": 1}, {"ok": True})
        assert json_contains({"ok": True}, {"ok": True})

    def test_type_mismatch(self) -> None:
        assert not json_contains([1], {"a": 1})
        assert not json_contains({"a": 1}, [1])


class TestResponseExpectation:
    def test_all_criteria_met(self) -> None:
        expectation = ResponseExpectation(status=frozenset({201}), json_subset={"name": "milk"}, body_contains="milk")
        response = _snapshot(201, {"id": 1, "name": "milk"}, '{"id": 1, "name": "milk"}')
        assert expectation.check(response) == []

    def test_status_mismatch_reason(self) -> None:
        expectation = ResponseExpectation(status=frozenset({201}))
        assert expectation.check(_snapshot(500)) == ["expected status 201, got 500"]

    def test_status_class_formatted(self) -> None:
        expectation = ResponseExpectation(status=parse_status_spec("2xx"))
        assert expectation.check(_snapshot(404)) == ["expected status 2xx, got 404"]

    def test_non_json_body(self) -> None:
        expectation = ResponseExpectation(json_subset={"name": "milk"})
        reasons = expectation.check(_snapshot(200, None, "<html>"))
        assert reasons == ["expected a JSON body, got '<html>'"]

    def test_json_mismatch(self) -> None:
        expectation = ResponseExpectation(json_subset={"name": "milk"})
        reasons = expectation.check(_snapshot(200, {"name": "eggs"}, '{"name": "eggs"}'))
        assert len(reasons) == 1
        assert "does not contain" in reasons[0]

    def test_body_contains(self) -> None:
        expectation = ResponseExpectation(body_contains="items")
        assert expectation.check(_snapshot(text="no match here")) == ["body does not contain 'items'"]

    def test_no_criteria(self) -> None:
        assert ResponseExpectation().check(_snapshot(500)) == []


class TestValidationCase:
    def test_method_uppercased(self) -> None:
        assert ValidationCase(name="x", method="post").method == "POST"

    def test_body_presence(self) -> None:
        assert not ValidationCase(name="x").has_body
        assert ValidationCase(name="x", body=None).has_body
        assert ValidationCase(name="x").body is NO_BODY

    def test_resolve_relative_url(self) -> None:
        assert ValidationCase(name="x", url="/items").resolve_url(BASE_URLS) == "http://127.0.0.1:8000/items"
        assert ValidationCase(name="x", url="", target="frontend").resolve_url(BASE_URLS) == "http://127.0.0.1:8501/"

    def test_resolve_absolute_url(self) -> None:
        case = ValidationCase(name="x", url="http://example.test/ping", target="nowhere")
        assert case.resolve_url(BASE_URLS) == "http://example.test/ping"

    def test_unknown_target(self) -> None:
        with pytest.raises(ValueError, match="unknown target"):
            ValidationCase(name="x", target="worker").resolve_url(BASE_URLS)

    def test_predicate_adds_reason(self) -> None:
        case = ValidationCase(name="fast", predicate=lambda response: response.elapsed_ms < 100)
        slow = ResponseSnapshot(status=200, text="", elapsed_ms=500.0)
        assert case.evaluate(slow) == ["custom predicate rejected the response"]
        assert case.evaluate(_snapshot()) == []

    def test_raising_predicate_becomes_reason(self) -> None:
        case = ValidationCase(name="shape", predicate=lambda response: response.json["items"])
        assert case.evaluate(_snapshot(json={})) == ["predicate raised KeyError: 'items'"]

    def test_describe(self) -> None:
        assert ValidationCase(name="x", method="post", url="/items").describe() == "POST /items"
