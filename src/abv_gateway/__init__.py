"""ABV Gateway - command dispatch and live log streaming.

Invoke named backend operations through one executor, whether the process
runs inside a native embedding or talks to the backend over HTTP, and
mirror the backend's debug log into a bounded in-memory buffer.
"""

from .client import GatewayClient, create_client, create_remote_client, create_test_client
from .config import GatewayConfig
from .errors import (
    GatewayError,
    HTTPError,
    MissingArgumentError,
    TransportError,
    UnmappedCommandError,
)

__version__ = "0.1.0"

__all__ = [
    "GatewayClient",
    "GatewayConfig",
    "GatewayError",
    "HTTPError",
    "MissingArgumentError",
    "TransportError",
    "UnmappedCommandError",
    "create_client",
    "create_remote_client",
    "create_test_client",
]
