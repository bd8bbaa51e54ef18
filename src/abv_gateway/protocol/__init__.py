"""Transport-agnostic protocol layer.

Defines what travels through the gateway regardless of transport:

- Commands: named operations, mapped to HTTP descriptors for the remote path
- Log records: entries pushed by the backend's debug console
"""

from .records import LogLevel, LogRecord
from .registry import (
    DEFAULT_COMMANDS,
    CommandDescriptor,
    CommandRegistry,
    ConsoleCommand,
    HttpVerb,
)

__all__ = [
    "CommandDescriptor",
    "CommandRegistry",
    "ConsoleCommand",
    "DEFAULT_COMMANDS",
    "HttpVerb",
    "LogLevel",
    "LogRecord",
]
