"""
Loading of assertion inputs from disk.

These helpers run on the caller side: they turn files (a JSON schema,
an expected-values document) into the plain values the assertion
engine consumes.

An expected-values document maps names to expected values:

    {
      "expectedName": "John Doe",
      "expectedCity": "New York",
      "expectedOrderAmounts": [250, 150]
    }

Keys that start with "$" are JSONPath expressions and are used as-is.
Other keys are names, resolved to a JSONPath through an alias table.
"""

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from apitester.exceptions import ConfigurationError


DEFAULT_BODY_PATHS: dict[str, str] = {
    "expectedName": "$.user.name",
    "expectedCity": "$.user.address.city",
    "expectedOrderAmounts": "$.user.orders[*].amount",
}


def load_json_document(path: str | Path, what: str = "JSON document") -> Any:
    """Read and parse a JSON file.

    Raises:
        ConfigurationError: if the file is missing, unreadable, or not JSON.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read {what} {path}: {e.strerror or e}") from e
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {what} {path}: {e}") from e


def parse_alias(value: str) -> tuple[str, str]:
    """Parse a 'name=$.json.path' alias declaration."""
    if "=" not in value:
        raise ConfigurationError(f"Body path alias must look like NAME=JSONPATH, got {value!r}")
    name, path = value.split("=", 1)
    name, path = name.strip(), path.strip()
    if not name or not path:
        raise ConfigurationError(f"Body path alias must look like NAME=JSONPATH, got {value!r}")
    return name, path


def resolve_body_expectations(
    document: Any,
    aliases: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Turn an expected-values document into a JSONPath -> expected value mapping.

    Args:
        document: Parsed expected-values document (must be an object)
        aliases: Extra name -> JSONPath entries; these override the defaults

    Raises:
        ConfigurationError: if the document is not an object, or a name
            has no known JSONPath, or two keys resolve to the same JSONPath.
    """
    if not isinstance(document, Mapping):
        raise ConfigurationError(
            f"Expected values must be a JSON object, got {type(document).__name__}"
        )

    table = dict(DEFAULT_BODY_PATHS)
    if aliases:
        table.update(aliases)

    resolved: dict[str, Any] = {}
    sources: dict[str, str] = {}
    for key, expected in document.items():
        if key.startswith("$"):
            path = key
        elif key in table:
            path = table[key]
        else:
            raise ConfigurationError(
                f"No JSONPath known for expected value {key!r}; "
                f"use a '$...' key or declare it with --body-path {key}=$.path"
            )
        if path in resolved:
            raise ConfigurationError(
                f"Expected values {sources[path]!r} and {key!r} both resolve to {path}"
            )
        resolved[path] = expected
        sources[path] = key
    return resolved
