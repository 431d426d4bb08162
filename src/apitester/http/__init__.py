"""
HTTP request execution and response assertions.

Provides:
- A retrying request executor with exponential backoff
- Authorization header helpers
- Status, header, JSON schema and JSONPath body assertions
"""

from apitester.http.client import (
    Failure,
    HTTPClient,
    RequestDescriptor,
    RequestOutcome,
    RetryPolicy,
    Success,
    TransportFailure,
    execute,
)
from apitester.http.assertions import (
    AssertionCheck,
    AssertionReport,
    AssertionSpec,
    compile_spec,
    evaluate,
)
from apitester.http.auth import AuthMode, apply_auth

__all__ = [
    "AssertionCheck",
    "AssertionReport",
    "AssertionSpec",
    "AuthMode",
    "Failure",
    "HTTPClient",
    "RequestDescriptor",
    "RequestOutcome",
    "RetryPolicy",
    "Success",
    "TransportFailure",
    "apply_auth",
    "compile_spec",
    "evaluate",
    "execute",
]
