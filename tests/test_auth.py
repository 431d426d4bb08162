"""Tests for authorization header construction."""

import base64

import pytest

from apitester.exceptions import ConfigurationError
from apitester.http.auth import AuthMode, apply_auth, basic_auth_header


def test_none_returns_a_copy():
    headers = {"Accept": "application/json"}
    result = apply_auth(headers, None)
    assert result == headers
    assert result is not headers


def test_bearer_attaches_token():
    headers = {"Accept": "application/json"}
    result = apply_auth(headers, "bearer", token="abc123")
    assert result == {"Accept": "application/json", "Authorization": "Bearer abc123"}
    assert headers == {"Accept": "application/json"}


def test_bearer_without_token_is_configuration_error():
    with pytest.raises(ConfigurationError, match="Token is required"):
        apply_auth({}, AuthMode.BEARER)


def test_basic_encodes_credentials():
    result = apply_auth({}, "basic", username="alice", password="s3cret")
    expected = base64.b64encode(b"alice:s3cret").decode()
    assert result["Authorization"] == f"Basic {expected}"
    assert basic_auth_header("alice", "s3cret") == result["Authorization"]


def test_basic_requires_username_and_password():
    with pytest.raises(ConfigurationError):
        apply_auth({}, "basic", username="alice")
    with pytest.raises(ConfigurationError):
        apply_auth({}, "basic", password="x")


def test_credential_replaces_user_authorization_header():
    headers = {"authorization": "Token old"}
    result = apply_auth(headers, "bearer", token="new")
    assert result == {"Authorization": "Bearer new"}
    assert headers == {"authorization": "Token old"}


def test_api_key_uses_named_header():
    result = apply_auth({"x-api-key": "old"}, "api-key", api_key="k-1")
    assert result == {"X-API-Key": "k-1"}

    result = apply_auth({}, "api-key", api_key="k-2", api_key_header="X-Token")
    assert result == {"X-Token": "k-2"}


def test_api_key_required():
    with pytest.raises(ConfigurationError):
        apply_auth({}, "api-key")


def test_unknown_mode():
    with pytest.raises(ConfigurationError, match="Unknown auth mode"):
        apply_auth({}, "oauth")
