"""Error taxonomy for command dispatch.

Every failure surfaced by the gateway derives from GatewayError so callers
can catch one type regardless of which transport is active:

- UnmappedCommandError: remote mode, command has no HTTP descriptor
- MissingArgumentError: a path placeholder has no matching argument
- TransportError: the native call interface or the network failed
- HTTPError: the backend answered with a non-2xx status

ResponseParseError is only used internally; a body that fails to parse
is degraded to raw text and never reaches the caller.
"""

from __future__ import annotations


class GatewayError(Exception):
    """Base class for all gateway failures."""


class UnmappedCommandError(GatewayError):
    """Command has no HTTP descriptor and cannot be sent remotely."""

    def __init__(self, command: str):
        super().__init__(f"Command [{command}] not supported in Web mode.")
        self.command = command


class MissingArgumentError(GatewayError):
    """Path template still contains a placeholder after substitution."""

    def __init__(self, command: str, placeholders: list[str]):
        names = ", ".join(placeholders)
        super().__init__(f"Command [{command}] is missing path arguments: {names}")
        self.command = command
        self.placeholders = placeholders


class TransportError(GatewayError):
    """The underlying call interface failed before producing a result."""

    def __init__(self, command: str, message: str):
        super().__init__(message)
        self.command = command


class HTTPError(GatewayError):
    """Non-2xx response from the backend."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_unauthorized(self) -> bool:
        return self.status_code == 401


class ResponseParseError(ValueError):
    """Response body is not valid JSON."""

    def __init__(self, text: str):
        super().__init__(f"Failed to parse JSON response: {text[:50]}")
        self.text = text
