"""Wire marshalling for the remote transport.

Turns a (descriptor, args) pair into an HTTP request and an HTTP response
back into a plain value:

- `:key` placeholders in the path are replaced by the encoded argument
- GET/DELETE send every non-null argument in the query string
- POST sends the whole argument mapping as a JSON body
- 204 or an empty body is None, JSON is parsed, anything else is raw text

Placeholder keys stay in the argument set unless `strip_path_args` is
requested, so by default `delete_account(accountId=42)` becomes
`DELETE /api/accounts/42?accountId=42`.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote, urlencode

from ..errors import HTTPError, MissingArgumentError, ResponseParseError
from ..protocol.registry import PLACEHOLDER_PATTERN, CommandDescriptor

logger = logging.getLogger(__name__)

# Characters encodeURIComponent leaves alone
_PATH_SAFE = "-_.!~*'()"

JSON_CONTENT_TYPE = "application/json"


@dataclass(frozen=True)
class PreparedRequest:
    """A fully marshalled HTTP request, ready to send."""

    method: str
    url: str
    body: str | None = None


def stringify(value: Any) -> str:
    """Render an argument value the way the backend expects it on the wire."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def build_path(
    command: str, template: str, args: Mapping[str, Any] | None
) -> tuple[str, frozenset[str]]:
    """Substitute `:key` placeholders from args.

    Returns the path and the set of argument keys that were consumed.

    Raises:
        MissingArgumentError: If any placeholder has no non-null argument
    """
    values = args or {}
    consumed: set[str] = set()
    missing: list[str] = []

    def substitute(match: re.Match[str]) -> str:
        key = match.group(1)
        if values.get(key) is None:
            missing.append(key)
            return match.group(0)
        consumed.add(key)
        return quote(stringify(values[key]), safe=_PATH_SAFE)

    path = PLACEHOLDER_PATTERN.sub(substitute, template)
    if missing:
        raise MissingArgumentError(command, missing)
    return path, frozenset(consumed)


def build_query(args: Mapping[str, Any] | None, exclude: frozenset[str] = frozenset()) -> str:
    """Form-encode every argument that is not None."""
    if not args:
        return ""
    pairs = [
        (key, stringify(value))
        for key, value in args.items()
        if value is not None and key not in exclude
    ]
    return urlencode(pairs)


def build_body(
    args: Mapping[str, Any] | None, exclude: frozenset[str] = frozenset()
) -> str | None:
    """Serialize arguments as a compact JSON object."""
    if args is None:
        return None
    payload = {key: value for key, value in args.items() if key not in exclude}
    return json.dumps(payload, separators=(",", ":"))


def prepare_request(
    descriptor: CommandDescriptor,
    args: Mapping[str, Any] | None,
    strip_path_args: bool = False,
) -> PreparedRequest:
    """Marshal a command call into method, URL and body."""
    path, consumed = build_path(descriptor.name, descriptor.path_template, args)
    exclude = consumed if strip_path_args else frozenset()

    if descriptor.verb.sends_query:
        query = build_query(args, exclude)
        url = f"{path}?{query}" if query else path
        return PreparedRequest(descriptor.verb.value, url)

    return PreparedRequest(descriptor.verb.value, path, build_body(args, exclude))


def build_headers(token: str | None) -> dict[str, str]:
    """Request headers, with the credential attached twice when present."""
    headers = {"Content-Type": JSON_CONTENT_TYPE}
    if token:
        headers["Authorization"] = f"Bearer {token}"
        headers["x-api-key"] = token
    return headers


def parse_body(text: str) -> Any:
    """Parse a JSON body.

    Raises:
        ResponseParseError: If the text is not valid JSON
    """
    try:
        return json.loads(text)
    except ValueError as e:
        raise ResponseParseError(text) from e


def error_message(status_code: int, text: str) -> str:
    """Extract the backend's `error` field, or synthesize a status message."""
    try:
        data = parse_body(text) if text else None
    except ResponseParseError:
        data = None

    if isinstance(data, dict) and data.get("error"):
        error = data["error"]
        return error if isinstance(error, str) else json.dumps(error)
    return f"HTTP Error {status_code}"


def normalize_response(command: str, status_code: int, text: str) -> Any:
    """Convert a raw HTTP response into the call result.

    Raises:
        HTTPError: For any non-2xx status
    """
    if not 200 <= status_code < 300:
        raise HTTPError(error_message(status_code, text), status_code)

    if status_code == 204 or not text:
        return None

    try:
        return parse_body(text)
    except ResponseParseError:
        logger.warning(f"Failed to parse JSON response for [{command}]: {text[:50]}")
        return text
