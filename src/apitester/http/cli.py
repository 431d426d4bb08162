"""
Request/assert CLI command.

Parses flags into a request descriptor, retry policy and assertion spec,
runs them through the executor and assertion engine, and renders the
returned data with rich.
"""

import json
import time
from typing import Any

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from apitester.config import get_config
from apitester.exceptions import ConfigurationError
from apitester.http.assertions import (
    AssertionReport,
    AssertionSpec,
    CompiledSpec,
    compile_spec,
    evaluate,
)
from apitester.http.auth import DEFAULT_API_KEY_HEADER, AuthMode, apply_auth
from apitester.http.client import (
    Failure,
    HTTPClient,
    RequestDescriptor,
    RequestOutcome,
    RetryPolicy,
    Success,
    format_json,
)
from apitester.http.expectations import (
    load_json_document,
    parse_alias,
    resolve_body_expectations,
)


EXIT_OK = 0
EXIT_ASSERTIONS_FAILED = 1
EXIT_CONFIG_ERROR = 2
EXIT_UNREACHABLE = 3
EXIT_INTERRUPTED = 130

BANNER = "Api Tester Tool"


def parse_json_option(value: str | None, option: str) -> Any:
    """Parse a JSON-valued flag."""
    if value is None:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {option}: {e}") from e


def parse_header_assertion(value: str) -> tuple[str, str]:
    """Parse 'Name: value' (or the older 'Name; value') into a pair."""
    separator = ":" if ":" in value else ";"
    if separator not in value:
        raise ConfigurationError(
            f"--assert-header must look like 'Header-Name: value', got {value!r}"
        )
    name, expected = (part.strip() for part in value.split(separator, 1))
    if not name:
        raise ConfigurationError(f"--assert-header has an empty header name: {value!r}")
    return name, expected


def _header_value(name: str, value: Any) -> str:
    """Render one --headers entry as a header value.

    Strings are sent as-is; numbers and booleans use their JSON spelling
    (true, not True). Anything else, or text outside ASCII, is rejected.
    """
    if isinstance(value, str):
        text = value
    elif isinstance(value, (bool, int, float)):
        text = json.dumps(value)
    else:
        raise ConfigurationError(
            f"--headers value for {name!r} must be a string, number or boolean, "
            f"got {json.dumps(value)}"
        )
    for label, part in (("name", name), ("value", text)):
        if not part.isascii():
            raise ConfigurationError(f"--headers {label} must be ASCII: {name!r}: {text!r}")
    return text


def build_descriptor(
    url: str,
    method: str,
    headers_json: str | None,
    data_json: str | None,
    auth: str | None = None,
    username: str | None = None,
    password: str | None = None,
    token: str | None = None,
    api_key: str | None = None,
    api_key_header: str = DEFAULT_API_KEY_HEADER,
) -> RequestDescriptor:
    """Build the request descriptor from raw flag values."""
    if not method or not method.strip():
        raise ConfigurationError("HTTP method must not be empty")

    headers = parse_json_option(headers_json, "--headers")
    if headers is None:
        headers = {}
    if not isinstance(headers, dict):
        raise ConfigurationError("--headers must be a JSON object")
    headers = {name: _header_value(name, value) for name, value in headers.items()}

    headers = apply_auth(
        headers,
        auth,
        username=username,
        password=password,
        token=token,
        api_key=api_key,
        api_key_header=api_key_header,
    )

    return RequestDescriptor(
        method=method.strip(),
        url=url,
        headers=headers,
        body=parse_json_option(data_json, "--data"),
    )


def build_assertion_spec(
    assert_status: int | None = None,
    assert_header: str | None = None,
    schema_path: str | None = None,
    assert_body: bool = False,
    expected_values_path: str | None = None,
    body_paths: tuple[str, ...] = (),
) -> CompiledSpec:
    """Load and compile every declared expectation."""
    expected_header = parse_header_assertion(assert_header) if assert_header else None

    schema = None
    if schema_path:
        schema = load_json_document(schema_path, "schema file")

    body_values = None
    if assert_body or expected_values_path:
        path = expected_values_path or get_config().expected_values_path
        document = load_json_document(path, "expected values file")
        aliases = dict(parse_alias(alias) for alias in body_paths)
        body_values = resolve_body_expectations(document, aliases)

    spec = AssertionSpec(
        expected_status=assert_status,
        expected_header=expected_header,
        expected_schema=schema,
        expected_body_values=body_values,
    )
    return compile_spec(spec)


def outcome_to_dict(outcome: RequestOutcome) -> dict[str, Any]:
    """Plain-data view of an outcome for JSON output."""
    if isinstance(outcome, Failure):
        return {
            "ok": False,
            "error": {"kind": outcome.last_error.kind, "message": outcome.last_error.message},
            "attempts": outcome.attempts_made,
            "elapsed_ms": round(outcome.elapsed_ms, 1),
        }
    return {
        "ok": True,
        "status_code": outcome.status_code,
        "headers": dict(outcome.headers),
        "body": outcome.body,
        "attempts": outcome.attempts,
        "elapsed_ms": round(outcome.elapsed_ms, 1),
    }


def exit_code_for(outcome: RequestOutcome, report: AssertionReport | None) -> int:
    """0 on pass, 1 on failed assertions, 3 when the server was never reached."""
    if isinstance(outcome, Failure):
        return EXIT_UNREACHABLE
    if report is not None and not report.passed:
        return EXIT_ASSERTIONS_FAILED
    return EXIT_OK


def render_banner(console: Console) -> None:
    console.print(Panel(Text(BANNER, style="bold bright_cyan", justify="center"), expand=False))


def render_outcome(console: Console, descriptor: RequestDescriptor, outcome: RequestOutcome) -> None:
    """Print the status line and body (or the terminal error)."""
    if isinstance(outcome, Failure):
        console.print(f"[red]All {outcome.attempts_made} attempt(s) failed:[/red] {escape(outcome.last_error.message)}")
        console.print(f"[blue]Time until error: {outcome.elapsed_ms:.0f} ms[/blue]")
        return

    if outcome.is_success:
        status_color = "green"
    elif outcome.is_redirect:
        status_color = "yellow"
    elif outcome.is_client_error:
        status_color = "red"
    else:
        status_color = "red bold"

    attempts = f", {outcome.attempts} attempts" if outcome.attempts > 1 else ""
    console.print(f"[cyan]{descriptor.method}[/cyan] {escape(descriptor.url)}")
    console.print(f"[{status_color}]{outcome.status_code} {outcome.reason_phrase}[/{status_color}] "
                  f"({outcome.elapsed_ms:.0f}ms{attempts})")

    if outcome.body is None:
        return

    console.print()
    if isinstance(outcome.body, (dict, list)):
        syntax = Syntax(format_json(outcome.body), "json", theme="monokai", line_numbers=False)
        console.print(syntax)
    else:
        body = str(outcome.body)
        if len(body) > 2000:
            console.print(body[:2000], markup=False)
            console.print(f"\n[dim]... ({len(body) - 2000} more characters)[/dim]")
        else:
            console.print(body, markup=False)


def render_report(console: Console, report: AssertionReport) -> None:
    """Print the assertion table, schema errors and the verdict."""
    console.print("\n[cyan]Assertions[/cyan]\n")

    table = Table(box=None)
    table.add_column("Check", style="cyan")
    table.add_column("Expected", style="white")
    table.add_column("Actual", style="white")
    table.add_column("Result", style="white")

    for check in report.checks:
        label = f"{check.kind} {check.path}" if check.path else check.kind
        result_str = "[green]PASS[/green]" if check.passed else "[red]FAIL[/red]"
        table.add_row(escape(label), escape(str(check.expected)[:40]), escape(str(check.actual)[:40]), result_str)

    console.print(table)

    for check in report.failures:
        console.print(f"[red]Assertion Failed:[/red] {escape(check.message)}", highlight=False)
        for error in check.errors:
            console.print(f"  [dim]{escape(error['path'])}:[/dim] {escape(error['message'])}", highlight=False)

    if report.passed:
        console.print("\n[green]All assertions passed![/green]")
    else:
        console.print("\n[red]Some assertions failed[/red]")


@click.command("request")
@click.option("-u", "--url", required=True, help="API URL")
@click.option("-m", "--method", required=True, help="HTTP method (GET, POST, PUT, DELETE, etc.)")
@click.option("-H", "--headers", "headers_json", default="{}", show_default=True,
              help="Headers as a JSON object")
@click.option("-d", "--data", "data_json", help="Request body in JSON format")
@click.option("-a", "--auth", type=click.Choice([m.value for m in AuthMode], case_sensitive=False),
              default=AuthMode.NONE.value, show_default=True, help="Authorization method")
@click.option("--username", help="Username for basic auth")
@click.option("--password", help="Password for basic auth")
@click.option("--token", help="Token for bearer auth")
@click.option("--api-key", help="Key for api-key auth")
@click.option("--api-key-header", default=DEFAULT_API_KEY_HEADER, show_default=True,
              help="Header carrying the api key")
@click.option("-r", "--retries", type=click.IntRange(min=1),
              help="Number of attempts on transport failure")
@click.option("--retry-delay", type=click.IntRange(min=0),
              help="Initial delay between attempts in ms (doubles each retry)")
@click.option("-t", "--timeout", type=click.FloatRange(min=0, min_open=True),
              help="Per-attempt timeout in seconds")
@click.option("-k", "--insecure", is_flag=True, help="Disable SSL verification")
@click.option("-s", "--validate-schema", "schema_path", type=click.Path(dir_okay=False),
              help="Validate the response body against this JSON schema file")
@click.option("--assert-status", type=int, help="Assert that the response status code matches")
@click.option("--assert-header", help="Assert a response header (format: 'Header-Name: value')")
@click.option("--assert-body", is_flag=True,
              help="Assert body values listed in the expected values file")
@click.option("-e", "--expected-values", "expected_values_path", type=click.Path(dir_okay=False),
              help="Expected values file (implies --assert-body)")
@click.option("--body-path", "body_paths", multiple=True,
              help="Map an expected value name to a JSONPath: NAME=$.path")
@click.option("--json-output", is_flag=True, help="Print the outcome and assertions as JSON")
@click.option("--no-banner", is_flag=True, help="Do not print the banner")
@click.pass_obj
def request_cmd(obj: dict | None, url: str, method: str, headers_json: str, data_json: str | None,
                auth: str, username: str | None, password: str | None, token: str | None,
                api_key: str | None, api_key_header: str, retries: int | None,
                retry_delay: int | None, timeout: float | None, insecure: bool,
                schema_path: str | None, assert_status: int | None, assert_header: str | None,
                assert_body: bool, expected_values_path: str | None, body_paths: tuple,
                json_output: bool, no_banner: bool):
    """Send an API request and check the response.

    Exits 0 when every declared assertion passed, 1 when an assertion
    failed, 2 when the flags or declaration files are malformed, and 3
    when the server could not be reached.

    Examples:
        apitester request -u https://api.example.com/users -m GET --assert-status 200
        apitester request -u https://api.example.com/users -m POST -d '{"name": "test"}'
        apitester request -u https://api.example.com/me -m GET -a bearer --token abc123
        apitester request -u https://api.example.com/user -m GET -r 3 -s schema.json
        apitester request -u https://api.example.com/user -m GET -e expected-values.json
    """
    obj = obj or {}
    console = Console()

    try:
        config = get_config()
        descriptor = build_descriptor(
            url, method, headers_json, data_json,
            auth=auth, username=username, password=password, token=token,
            api_key=api_key, api_key_header=api_key_header,
        )
        policy = RetryPolicy(
            max_attempts=retries if retries is not None else config.retries,
            initial_delay_ms=retry_delay if retry_delay is not None else config.retry_delay_ms,
        )
        compiled = build_assertion_spec(
            assert_status=assert_status,
            assert_header=assert_header,
            schema_path=schema_path,
            assert_body=assert_body,
            expected_values_path=expected_values_path,
            body_paths=body_paths,
        )
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {escape(str(e))}", highlight=False)
        raise SystemExit(EXIT_CONFIG_ERROR)

    if not (no_banner or json_output):
        render_banner(console)

    client = HTTPClient(
        timeout=timeout or config.timeout,
        verify_ssl=not insecure,
        user_agent=config.user_agent,
        transport=obj.get("transport"),
        sleep=obj.get("sleep", time.sleep),
    )

    try:
        if json_output:
            outcome = client.execute(descriptor, policy)
        else:
            with console.status(f"[cyan]{descriptor.method} {escape(descriptor.url)}...[/cyan]"):
                outcome = client.execute(descriptor, policy)
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted[/yellow]")
        raise SystemExit(EXIT_INTERRUPTED)
    finally:
        client.close()

    report = None
    if isinstance(outcome, Success) and not compiled.spec.is_empty:
        try:
            report = evaluate(outcome, compiled)
        except ConfigurationError as e:
            console.print(f"[red]Configuration error:[/red] {escape(str(e))}", highlight=False)
            raise SystemExit(EXIT_CONFIG_ERROR)

    if json_output:
        document = {
            "request": {"method": descriptor.method, "url": descriptor.url},
            "outcome": outcome_to_dict(outcome),
            "assertions": report.to_dict() if report is not None else None,
        }
        click.echo(json.dumps(document, indent=2, default=str))
    else:
        render_outcome(console, descriptor, outcome)
        if report is not None:
            render_report(console, report)

    code = exit_code_for(outcome, report)
    if code != EXIT_OK:
        raise SystemExit(code)
