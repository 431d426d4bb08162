"""Tests for the response assertion engine."""

import httpx
import pytest

from apitester.exceptions import ConfigurationError
from apitester.http.assertions import (
    NOT_FOUND,
    AssertionReport,
    AssertionSpec,
    compile_path,
    compile_schema,
    compile_spec,
    evaluate,
)
from apitester.http.client import Failure, Success, TransportFailure

from conftest import USER_BODY


NAME_PATH = "$.user.name"
AMOUNTS_PATH = "$.user.orders[*].amount"


def _success(body=USER_BODY, status_code=200, headers=None) -> Success:
    headers = headers if headers is not None else {"content-type": "application/json"}
    return Success(status_code=status_code, headers=httpx.Headers(headers), body=body, elapsed_ms=12.0)


def _failure() -> Failure:
    error = TransportFailure(kind="ConnectError", message="Connection failed: refused")
    return Failure(last_error=error, attempts_made=3, elapsed_ms=7000.0)


class TestSpec:
    def test_empty_spec(self):
        assert AssertionSpec().is_empty
        assert AssertionSpec(expected_body_values={}).is_empty

    def test_declared_spec(self):
        assert not AssertionSpec(expected_status=200).is_empty

    def test_empty_spec_yields_passing_empty_report(self):
        report = evaluate(_success(), AssertionSpec())
        assert report.checks == ()
        assert report.passed


class TestFailureOutcome:
    def test_single_failing_request_check(self):
        spec = AssertionSpec(
            expected_status=200,
            expected_header=("Content-Type", "application/json"),
            expected_schema={},
            expected_body_values={NAME_PATH: "John Doe"},
        )
        report = evaluate(_failure(), spec)

        assert len(report.checks) == 1
        check = report.checks[0]
        assert check.kind == "request"
        assert not check.passed
        assert "Connection failed" in check.message
        assert "3 attempt" in check.message
        assert not report.passed


class TestStatus:
    def test_matching_error_status_passes(self):
        report = evaluate(_success(status_code=404), AssertionSpec(expected_status=404))
        assert report.passed
        assert report.checks[0].kind == "status"

    def test_mismatch_reports_actual(self):
        report = evaluate(_success(status_code=404), AssertionSpec(expected_status=200))
        check = report.checks[0]
        assert not check.passed
        assert check.expected == 200
        assert check.actual == 404
        assert check.message == "Expected status 200, got 404"


class TestHeader:
    def test_name_is_case_insensitive(self):
        spec = AssertionSpec(expected_header=("Content-Type", "application/json"))
        report = evaluate(_success(headers={"content-type": "application/json"}), spec)
        assert report.passed

    def test_plain_dict_headers(self):
        outcome = Success(status_code=200, headers={"CONTENT-TYPE": "text/plain"}, body="ok", elapsed_ms=1.0)
        report = evaluate(outcome, AssertionSpec(expected_header=("content-type", "text/plain")))
        assert report.passed

    def test_value_must_match_exactly(self):
        spec = AssertionSpec(expected_header=("Content-Type", "application/json"))
        outcome = _success(headers={"content-type": "application/json; charset=utf-8"})
        check = evaluate(outcome, spec).checks[0]
        assert not check.passed
        assert check.actual == "application/json; charset=utf-8"

    def test_missing_header_fails(self):
        check = evaluate(_success(), AssertionSpec(expected_header=("X-Missing", "1"))).checks[0]
        assert not check.passed
        assert check.actual is None
        assert "missing" in check.message

    def test_empty_name_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            compile_spec(AssertionSpec(expected_header=("", "x")))


class TestSchema:
    def test_empty_schema_always_passes(self):
        for body in (USER_BODY, [], "text", None, 3):
            report = evaluate(_success(body=body), AssertionSpec(expected_schema={}))
            assert report.passed

    def test_missing_required_field_fails_with_errors(self):
        schema = {
            "type": "object",
            "properties": {"user": {"type": "object", "required": ["email"]}},
            "required": ["user", "meta"],
        }
        check = evaluate(_success(), AssertionSpec(expected_schema=schema)).checks[0]

        assert check.kind == "schema"
        assert not check.passed
        assert len(check.errors) == 2
        paths = [error["path"] for error in check.errors]
        assert paths == ["$", "$.user"]
        assert all(error["message"] for error in check.errors)
        assert "'meta' is a required property" in check.message
        assert "'email' is a required property" in check.message

    def test_matching_schema_passes(self):
        schema = {
            "type": "object",
            "properties": {
                "user": {
                    "type": "object",
                    "properties": {"name": {"type": "string"}},
                    "required": ["name"],
                }
            },
        }
        check = evaluate(_success(), AssertionSpec(expected_schema=schema)).checks[0]
        assert check.passed
        assert check.errors == ()

    def test_draft_selected_from_schema_keyword(self):
        schema = {"$schema": "http://json-schema.org/draft-07/schema#", "type": "array"}
        assert not evaluate(_success(), AssertionSpec(expected_schema=schema)).passed

    def test_validator_is_fresh_per_compile(self):
        assert compile_schema({}) is not compile_schema({})

    @pytest.mark.parametrize("schema", [{"type": "not-a-type"}, {"required": "name"}, ["type"], "object"])
    def test_invalid_schema_is_configuration_error(self, schema):
        with pytest.raises(ConfigurationError):
            evaluate(_success(), AssertionSpec(expected_schema=schema))

    @pytest.mark.parametrize("schema", [
        {"$ref": "#/definitions/missing"},
        {"properties": {"user": {"$ref": "#/$defs/nope"}}},
    ])
    def test_unresolvable_ref_is_configuration_error(self, schema):
        with pytest.raises(ConfigurationError, match="unresolvable reference"):
            evaluate(_success(), AssertionSpec(expected_status=200, expected_schema=schema))


class TestBodyPaths:
    def test_name_and_amounts_pass(self):
        spec = AssertionSpec(expected_body_values={NAME_PATH: "John Doe", AMOUNTS_PATH: [250, 150]})
        report = evaluate(_success(), spec)
        assert report.passed
        assert [check.path for check in report.checks] == [NAME_PATH, AMOUNTS_PATH]

    def test_one_wrong_value_fails_only_that_check(self):
        spec = AssertionSpec(
            expected_status=200,
            expected_body_values={NAME_PATH: "Jane", AMOUNTS_PATH: [250, 150]},
        )
        report = evaluate(_success(), spec)

        assert not report.passed
        assert [check.passed for check in report.checks] == [True, False, True]
        failed = report.failures[0]
        assert failed.expected == "Jane"
        assert failed.actual == "John Doe"

    def test_array_expectation_is_a_subset_check(self):
        spec = AssertionSpec(expected_body_values={AMOUNTS_PATH: [150]})
        assert evaluate(_success(), spec).passed

        spec = AssertionSpec(expected_body_values={AMOUNTS_PATH: [150, 999]})
        check = evaluate(_success(), spec).checks[0]
        assert not check.passed
        assert "999" in check.message

    def test_array_valued_node(self):
        body = {"tags": ["a", "b", "c"]}
        spec = AssertionSpec(expected_body_values={"$.tags": ["c", "a"]})
        assert evaluate(_success(body=body), spec).passed

    def test_bracket_notation(self):
        spec = AssertionSpec(expected_body_values={"$['user']['orders'][0]['amount']": 250})
        assert evaluate(_success(), spec).passed

    def test_missing_path_is_a_failure_not_an_error(self):
        spec = AssertionSpec(expected_body_values={"$.user.address.zip": "10001", NAME_PATH: "John Doe"})
        report = evaluate(_success(), spec)

        missing, present = report.checks
        assert not missing.passed
        assert missing.actual == NOT_FOUND
        assert present.passed

    def test_text_body_has_no_matches(self):
        spec = AssertionSpec(expected_body_values={NAME_PATH: "John Doe"})
        check = evaluate(_success(body="not json"), spec).checks[0]
        assert check.actual == NOT_FOUND

    def test_booleans_are_not_numbers(self):
        body = {"active": True, "count": 1}
        assert not evaluate(_success(body=body), AssertionSpec(expected_body_values={"$.active": 1})).passed
        assert not evaluate(_success(body=body), AssertionSpec(expected_body_values={"$.count": True})).passed
        assert evaluate(_success(body=body), AssertionSpec(expected_body_values={"$.active": True})).passed

    @pytest.mark.parametrize("expression", ["$.user[", "", "$$..]"])
    def test_invalid_path_is_configuration_error(self, expression):
        with pytest.raises(ConfigurationError):
            compile_path(expression)


class TestOrderingAndAggregate:
    def test_all_checks_run_in_order_after_failures(self):
        spec = AssertionSpec(
            expected_status=500,
            expected_header=("Content-Type", "text/html"),
            expected_schema={"type": "array"},
            expected_body_values={NAME_PATH: "Jane", AMOUNTS_PATH: [250]},
        )
        report = evaluate(_success(), spec)

        assert [check.kind for check in report.checks] == ["status", "header", "schema", "body", "body"]
        assert [check.passed for check in report.checks] == [False, False, False, False, True]
        assert len(report.failures) == 4
        assert not report.passed

    def test_compiled_spec_can_be_reused(self):
        compiled = compile_spec(AssertionSpec(expected_status=200, expected_body_values={NAME_PATH: "John Doe"}))
        assert evaluate(_success(), compiled).passed
        assert not evaluate(_success(status_code=201), compiled).passed

    def test_malformed_declaration_yields_no_partial_report(self):
        spec = AssertionSpec(expected_status=200, expected_body_values={"$.user[": "x"})
        with pytest.raises(ConfigurationError):
            evaluate(_success(), spec)

    def test_report_to_dict(self):
        spec = AssertionSpec(expected_status=200, expected_schema={"required": ["missing"]})
        data = evaluate(_success(), spec).to_dict()
        assert data["passed"] is False
        assert data["checks"][0] == {
            "kind": "status",
            "passed": True,
            "expected": 200,
            "actual": 200,
            "message": "Status code is 200",
        }
        assert data["checks"][1]["errors"][0]["path"] == "$"

    def test_empty_report_passes(self):
        assert AssertionReport().passed
