"""
HTTP request executor with retry and exponential backoff.

Only transport-level failures are retried. Any response that arrives,
whatever its status code, ends the sequence as a Success so the
assertion layer can inspect it.
"""

import json
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Union

import httpx
import tenacity

from apitester.exceptions import ConfigurationError


logger = logging.getLogger(__name__)

BACKOFF_MULTIPLIER = 2


@dataclass(frozen=True)
class RequestDescriptor:
    """A single HTTP request, fixed before execution starts."""
    method: str
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Any = None

    def __post_init__(self):
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))


@dataclass(frozen=True)
class RetryPolicy:
    """How many attempts to make and how long to wait between them."""
    max_attempts: int = 1
    initial_delay_ms: int = 1000
    backoff_multiplier: int = field(default=BACKOFF_MULTIPLIER, init=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ConfigurationError(f"max_attempts must be at least 1, got {self.max_attempts}")
        if self.initial_delay_ms < 0:
            raise ConfigurationError(f"initial_delay_ms must not be negative, got {self.initial_delay_ms}")


@dataclass(frozen=True)
class TransportFailure:
    """The transport error that ended a request sequence."""
    kind: str
    message: str
    exception: BaseException | None = field(default=None, repr=False, compare=False)

    @classmethod
    def from_exception(cls, exc: BaseException, timeout: float | None = None) -> "TransportFailure":
        if isinstance(exc, httpx.ConnectError):
            message = f"Connection failed: {exc}"
        elif isinstance(exc, httpx.TimeoutException):
            message = f"Request timed out after {timeout}s" if timeout else f"Request timed out: {exc}"
        elif isinstance(exc, UnicodeEncodeError):
            message = f"Request could not be encoded: {exc}"
        else:
            message = str(exc) or type(exc).__name__
        return cls(kind=type(exc).__name__, message=message, exception=exc)

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class Success:
    """A response was received (any status code)."""
    status_code: int
    headers: httpx.Headers
    body: Any
    elapsed_ms: float
    attempts: int = 1
    reason_phrase: str = ""
    text: str = ""

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def is_redirect(self) -> bool:
        return 300 <= self.status_code < 400

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status_code < 500

    @property
    def is_server_error(self) -> bool:
        return 500 <= self.status_code < 600

    @property
    def content_type(self) -> str | None:
        return self.headers.get("content-type")


@dataclass(frozen=True)
class Failure:
    """Every attempt failed at the transport level."""
    last_error: TransportFailure
    attempts_made: int
    elapsed_ms: float


RequestOutcome = Union[Success, Failure]


def _is_retryable(exc: BaseException) -> bool:
    """Transport errors are retryable, except a URL scheme httpx cannot speak."""
    if isinstance(exc, httpx.UnsupportedProtocol):
        return False
    return isinstance(exc, httpx.TransportError)


def decode_body(response: httpx.Response) -> Any:
    """Return the JSON value of a response body, or its text if it is not JSON."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class HTTPClient:
    """Executes request descriptors with a retry policy."""

    def __init__(
        self,
        timeout: float = 30.0,
        verify_ssl: bool = True,
        user_agent: str | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self.user_agent = user_agent
        self._transport = transport
        self._sleep = sleep
        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {"User-Agent": self.user_agent} if self.user_agent else None
            self._client = httpx.Client(
                timeout=httpx.Timeout(self.timeout),
                verify=self.verify_ssl,
                transport=self._transport,
                headers=headers,
            )
        return self._client

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            self._client.close()

    def __enter__(self) -> "HTTPClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _send(self, descriptor: RequestDescriptor) -> httpx.Response:
        """Perform one attempt (no retry)."""
        headers = dict(descriptor.headers)
        content = None
        if descriptor.body is not None:
            content = json.dumps(descriptor.body)
            if not any(name.lower() == "content-type" for name in headers):
                headers["Content-Type"] = "application/json"

        return self._get_client().request(
            method=descriptor.method,
            url=descriptor.url,
            headers=headers,
            content=content,
        )

    def execute(self, descriptor: RequestDescriptor, policy: RetryPolicy | None = None) -> RequestOutcome:
        """Run the request, retrying transport failures per ``policy``.

        Elapsed time runs from the start of the first attempt to the
        first response or the final failure, backoff delays included.
        Never raises for transport problems; those come back as Failure.
        """
        policy = policy or RetryPolicy()
        attempts = 0

        def attempt() -> httpx.Response:
            nonlocal attempts
            attempts += 1
            logger.debug("Attempt %d/%d: %s %s", attempts, policy.max_attempts,
                         descriptor.method, descriptor.url)
            return self._send(descriptor)

        retryer = tenacity.Retrying(
            retry=tenacity.retry_if_exception(_is_retryable),
            wait=tenacity.wait_exponential(
                multiplier=policy.initial_delay_ms / 1000,
                exp_base=policy.backoff_multiplier,
            ),
            stop=tenacity.stop_after_attempt(policy.max_attempts),
            sleep=self._sleep,
            before_sleep=tenacity.before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

        start_time = time.monotonic()
        try:
            response = retryer(attempt)
        except (httpx.HTTPError, httpx.InvalidURL, UnicodeEncodeError) as e:
            elapsed_ms = (time.monotonic() - start_time) * 1000
            failure = TransportFailure.from_exception(e, timeout=self.timeout)
            logger.error("All %d attempt(s) failed for %s %s: %s", attempts,
                         descriptor.method, descriptor.url, failure.message)
            return Failure(last_error=failure, attempts_made=attempts, elapsed_ms=elapsed_ms)

        elapsed_ms = (time.monotonic() - start_time) * 1000
        logger.debug("%s %s -> %d in %.0fms after %d attempt(s)", descriptor.method,
                     descriptor.url, response.status_code, elapsed_ms, attempts)

        return Success(
            status_code=response.status_code,
            headers=response.headers,
            body=decode_body(response),
            elapsed_ms=elapsed_ms,
            attempts=attempts,
            reason_phrase=response.reason_phrase,
            text=response.text,
        )


def execute(
    descriptor: RequestDescriptor,
    policy: RetryPolicy | None = None,
    **client_kwargs,
) -> RequestOutcome:
    """Execute a descriptor with a throwaway HTTPClient."""
    with HTTPClient(**client_kwargs) as client:
        return client.execute(descriptor, policy)


def format_json(data: Any, indent: int = 2) -> str:
    """Format JSON data for display."""
    return json.dumps(data, indent=indent, default=str)
