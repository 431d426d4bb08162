"""Shared test fixtures for apitester."""

import logging

import httpx
import pytest

from apitester.config import AppConfig, set_config
from apitester.logging_config import LOGGER_NAME


USER_BODY = {
    "user": {
        "name": "John Doe",
        "address": {"city": "New York"},
        "orders": [{"amount": 250}, {"amount": 150}],
    }
}


@pytest.fixture(autouse=True)
def default_config():
    """Pin configuration so tests never read the environment or .env files."""
    config = AppConfig()
    set_config(config)
    yield config
    set_config(None)


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


class SleepRecorder:
    """Stands in for time.sleep and records requested delays."""

    def __init__(self):
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


def json_handler(body=USER_BODY, status_code: int = 200, headers: dict | None = None):
    """Handler answering every request with the same JSON response."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json=body, headers=headers)

    return handler


def flaky_handler(failures: int, response_handler=None, error=httpx.ConnectError):
    """Handler that raises a transport error for the first `failures` calls.

    The returned handler exposes `.calls` with every request it saw.
    """
    response_handler = response_handler or json_handler()
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) <= failures:
            raise error("connection refused", request=request)
        return response_handler(request)

    handler.calls = calls
    return handler


@pytest.fixture
def user_body() -> dict:
    return USER_BODY
