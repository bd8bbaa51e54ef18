"""Gateway SDK - dispatch commands over the native or remote transport.

Provides multiple transport modes:
- native: call into an in-process embedding
- remote: talk to the backend's REST API over HTTP
- mock: for testing without real I/O
"""

from .auth import CredentialStore, UnauthorizedGate
from .executor import RequestExecutor
from .transport import (
    HTTPTransport,
    MockTransport,
    NativeBridge,
    NativeTransport,
    PushSubscription,
    Transport,
    TransportKind,
    TransportSelector,
    create_http_transport,
    create_mock_transport,
    create_native_transport,
    create_transport,
)

__all__ = [
    # Executor
    "RequestExecutor",
    # Transport Protocol & selection
    "Transport",
    "TransportKind",
    "TransportSelector",
    "NativeBridge",
    "PushSubscription",
    # Transport Implementations
    "NativeTransport",
    "HTTPTransport",
    "MockTransport",
    # Transport Factory Functions
    "create_transport",
    "create_native_transport",
    "create_http_transport",
    "create_mock_transport",
    # Auth
    "CredentialStore",
    "UnauthorizedGate",
]
