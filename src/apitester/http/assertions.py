"""
Response assertion engine.

Evaluates declared expectations (status, header, JSON schema, JSONPath
body values) against a request outcome. Every declared check runs, in
a fixed order, even after an earlier one fails; the report carries each
result plus an aggregate verdict.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx
from jsonpath_ng.exceptions import JSONPathError
from jsonpath_ng.ext import parse as parse_jsonpath
from jsonschema.exceptions import SchemaError
from jsonschema.validators import validator_for
from referencing.exceptions import Unresolvable

from apitester.exceptions import ConfigurationError
from apitester.http.client import Failure, RequestOutcome, Success


logger = logging.getLogger(__name__)

NOT_FOUND = "not found"


@dataclass(frozen=True)
class AssertionSpec:
    """Declared expectations. Anything left as None is skipped."""
    expected_status: int | None = None
    expected_header: tuple[str, str] | None = None
    expected_schema: dict | bool | None = None
    expected_body_values: Mapping[str, Any] | None = None

    @property
    def is_empty(self) -> bool:
        return (
            self.expected_status is None
            and self.expected_header is None
            and self.expected_schema is None
            and not self.expected_body_values
        )


@dataclass(frozen=True)
class AssertionCheck:
    """Result of one evaluated expectation."""
    kind: str
    passed: bool
    expected: Any = None
    actual: Any = None
    message: str = ""
    path: str | None = None
    errors: tuple[dict[str, str], ...] = ()

    def to_dict(self) -> dict[str, Any]:
        data = {
            "kind": self.kind,
            "passed": self.passed,
            "expected": self.expected,
            "actual": self.actual,
            "message": self.message,
        }
        if self.path is not None:
            data["path"] = self.path
        if self.errors:
            data["errors"] = list(self.errors)
        return data


@dataclass(frozen=True)
class AssertionReport:
    """Ordered check results and the aggregate verdict."""
    checks: tuple[AssertionCheck, ...] = field(default_factory=tuple)

    @property
    def passed(self) -> bool:
        return all(check.passed for check in self.checks)

    @property
    def failures(self) -> list[AssertionCheck]:
        return [check for check in self.checks if not check.passed]

    def to_dict(self) -> dict[str, Any]:
        return {
            "passed": self.passed,
            "checks": [check.to_dict() for check in self.checks],
        }


@dataclass(frozen=True)
class CompiledSpec:
    """An AssertionSpec whose schema and JSONPath expressions have been checked."""
    spec: AssertionSpec
    validator: Any = None
    paths: tuple[tuple[str, Any, Any], ...] = ()  # (source, parsed, expected)


def compile_schema(schema: Any):
    """Build a validator for schema, choosing the draft from its $schema.

    A fresh validator is built on every call.

    Raises:
        ConfigurationError: if schema is not a valid JSON Schema document.
    """
    if not isinstance(schema, (dict, bool)):
        raise ConfigurationError(
            f"JSON schema must be an object or boolean, got {type(schema).__name__}"
        )
    validator_cls = validator_for(schema)
    try:
        validator_cls.check_schema(schema)
    except SchemaError as e:
        raise ConfigurationError(f"Invalid JSON schema: {e.message}") from e
    return validator_cls(schema)


def compile_path(expression: str):
    """Parse a JSONPath expression.

    Raises:
        ConfigurationError: if the expression cannot be parsed.
    """
    if not isinstance(expression, str) or not expression.strip():
        raise ConfigurationError(f"Invalid JSONPath expression: {expression!r}")
    try:
        return parse_jsonpath(expression)
    except JSONPathError as e:
        raise ConfigurationError(f"Invalid JSONPath expression {expression!r}: {e}") from e


def compile_spec(spec: AssertionSpec) -> CompiledSpec:
    """Check every declaration up front so a broken spec fails before any check runs."""
    validator = None
    if spec.expected_schema is not None:
        validator = compile_schema(spec.expected_schema)

    paths = []
    for expression, expected in (spec.expected_body_values or {}).items():
        paths.append((expression, compile_path(expression), expected))

    if spec.expected_header is not None:
        name, _ = spec.expected_header
        if not name:
            raise ConfigurationError("Expected header name must not be empty")

    return CompiledSpec(spec=spec, validator=validator, paths=tuple(paths))


def _same_value(actual: Any, expected: Any) -> bool:
    """Equality that does not treat True as 1 or False as 0."""
    if isinstance(actual, bool) or isinstance(expected, bool):
        return isinstance(actual, bool) and isinstance(expected, bool) and actual == expected
    return actual == expected


def check_status(outcome: Success, expected: int) -> AssertionCheck:
    passed = outcome.status_code == expected
    if passed:
        message = f"Status code is {outcome.status_code}"
    else:
        message = f"Expected status {expected}, got {outcome.status_code}"
    return AssertionCheck("status", passed, expected, outcome.status_code, message)


def check_header(outcome: Success, name: str, expected: str) -> AssertionCheck:
    actual = httpx.Headers(outcome.headers).get(name)
    passed = actual == expected
    if passed:
        message = f"Header {name} matches"
    elif actual is None:
        message = f"Expected header {name}: {expected}, but it is missing"
    else:
        message = f"Expected header {name}: {expected}, got {actual}"
    return AssertionCheck("header", passed, expected, actual, message, path=name)


def check_schema(outcome: Success, validator) -> AssertionCheck:
    """Validate the body against a compiled schema.

    Raises:
        ConfigurationError: if a $ref in the schema cannot be resolved.
    """
    try:
        errors = sorted(
            validator.iter_errors(outcome.body),
            key=lambda e: (e.json_path, e.message),
        )
    except Unresolvable as e:
        raise ConfigurationError(f"Invalid JSON schema: unresolvable reference: {e}") from e
    entries = tuple({"path": e.json_path, "message": e.message} for e in errors)
    if not entries:
        return AssertionCheck("schema", True, "valid", "valid",
                              "Response is according to the schema")
    details = "; ".join(f"{entry['path']}: {entry['message']}" for entry in entries)
    return AssertionCheck(
        "schema", False, "valid", f"{len(entries)} error(s)",
        f"Response validation failed: {details}", errors=entries,
    )


def check_body_path(outcome: Success, source: str, parsed, expected: Any) -> AssertionCheck:
    matches = [match.value for match in parsed.find(outcome.body)]
    if not matches:
        return AssertionCheck("body", False, expected, NOT_FOUND,
                              f"{source}: no match in response body", path=source)

    if isinstance(expected, list):
        # A single match holding an array is compared as that array
        if len(matches) == 1 and isinstance(matches[0], list):
            actual = matches[0]
        else:
            actual = matches
        missing = [item for item in expected
                   if not any(_same_value(value, item) for value in actual)]
        passed = not missing
        if passed:
            message = f"{source} includes {expected}"
        else:
            message = f"{source}: expected to include {expected}, missing {missing}"
        return AssertionCheck("body", passed, expected, actual, message, path=source)

    actual = matches[0]
    passed = _same_value(actual, expected)
    if passed:
        message = f"{source} equals {expected!r}"
    else:
        message = f"{source}: expected {expected!r}, got {actual!r}"
    return AssertionCheck("body", passed, expected, actual, message, path=source)


def evaluate(outcome: RequestOutcome, spec: AssertionSpec | CompiledSpec) -> AssertionReport:
    """Evaluate declared expectations against an outcome.

    A Failure outcome yields a single failing "request" check. For a
    Success, checks run in the order status, header, schema, body paths.

    Raises:
        ConfigurationError: if the spec holds a malformed schema or JSONPath.
    """
    if isinstance(outcome, Failure):
        error = outcome.last_error
        check = AssertionCheck(
            "request", False, "response", error.message,
            f"No response after {outcome.attempts_made} attempt(s): {error.message}",
        )
        return AssertionReport(checks=(check,))

    compiled = spec if isinstance(spec, CompiledSpec) else compile_spec(spec)
    declared = compiled.spec
    checks: list[AssertionCheck] = []

    if declared.expected_status is not None:
        checks.append(check_status(outcome, declared.expected_status))

    if declared.expected_header is not None:
        name, value = declared.expected_header
        checks.append(check_header(outcome, name, value))

    if compiled.validator is not None:
        checks.append(check_schema(outcome, compiled.validator))

    for source, parsed, expected in compiled.paths:
        checks.append(check_body_path(outcome, source, parsed, expected))

    for check in checks:
        if not check.passed:
            logger.info("Assertion failed (%s): %s", check.kind, check.message)

    return AssertionReport(checks=tuple(checks))
