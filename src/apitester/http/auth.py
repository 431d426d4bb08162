"""
Authorization header construction.

Each helper returns a new header map; the input mapping is never modified.
"""

import base64
from collections.abc import Mapping
from enum import Enum

from apitester.exceptions import ConfigurationError


DEFAULT_API_KEY_HEADER = "X-API-Key"


class AuthMode(str, Enum):
    """Supported ways of attaching a credential."""
    NONE = "none"
    BASIC = "basic"
    BEARER = "bearer"
    API_KEY = "api-key"


def _without(headers: Mapping[str, str], name: str) -> dict[str, str]:
    """Copy headers, dropping any existing entry for name (case-insensitive)."""
    return {k: v for k, v in headers.items() if k.lower() != name.lower()}


def basic_auth_header(username: str, password: str) -> str:
    """Authorization value for HTTP Basic auth."""
    credentials = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
    return f"Basic {credentials}"


def apply_auth(
    headers: Mapping[str, str],
    mode: AuthMode | str | None,
    *,
    username: str | None = None,
    password: str | None = None,
    token: str | None = None,
    api_key: str | None = None,
    api_key_header: str = DEFAULT_API_KEY_HEADER,
) -> dict[str, str]:
    """Return a copy of headers with the credential for mode attached.

    Raises:
        ConfigurationError: unknown mode, or the credential the mode needs
            was not supplied.
    """
    try:
        mode = AuthMode(mode or AuthMode.NONE)
    except ValueError:
        choices = ", ".join(m.value for m in AuthMode)
        raise ConfigurationError(f"Unknown auth mode {mode!r} (choose from {choices})") from None

    if mode is AuthMode.NONE:
        return dict(headers)

    if mode is AuthMode.BASIC:
        if not username or password is None:
            raise ConfigurationError("Username and password are required for basic authentication")
        result = _without(headers, "Authorization")
        result["Authorization"] = basic_auth_header(username, password)
        return result

    if mode is AuthMode.BEARER:
        if not token:
            raise ConfigurationError("Token is required for bearer token authentication")
        result = _without(headers, "Authorization")
        result["Authorization"] = f"Bearer {token}"
        return result

    if not api_key:
        raise ConfigurationError("An API key is required for api-key authentication")
    result = _without(headers, api_key_header)
    result[api_key_header] = api_key
    return result
