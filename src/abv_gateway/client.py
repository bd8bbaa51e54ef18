"""Gateway client - composition root for dispatch and the debug console.

Usage:
    # Inside a native embedding
    async with create_client(bridge=embedding) as client:
        accounts = await client.execute("list_accounts")

    # Against a running backend
    async with create_remote_client("http://127.0.0.1:8045", api_key="...") as client:
        await client.console.enable()
        records = client.logs.snapshot()

    # Testing
    transport = create_mock_transport()
    client = create_test_client(transport)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .config import GatewayConfig
from .console.buffer import LogBuffer
from .console.subscription import SubscriptionManager
from .protocol.registry import CommandRegistry
from .sdk.auth import UnauthorizedCallback, UnauthorizedGate
from .sdk.executor import RequestExecutor
from .sdk.transport import (
    MockTransport,
    NativeBridge,
    Transport,
    TransportKind,
    create_mock_transport,
    create_transport,
)


@dataclass
class GatewayClient:
    """Transport-agnostic client.

    Wires one transport into the request executor, the log buffer and the
    subscription manager. The unauthorized gate is only tripped by the
    remote transport; native embeddings handle auth themselves.
    """

    _transport: Transport
    config: GatewayConfig = field(default_factory=GatewayConfig)
    gate: UnauthorizedGate = field(default_factory=UnauthorizedGate)

    def __post_init__(self) -> None:
        self.executor = RequestExecutor(self._transport)
        self.logs = LogBuffer(self.executor, capacity=self.config.log_capacity)
        self.console = SubscriptionManager(self.executor, self.logs)

    @property
    def transport(self) -> Transport:
        """Access the underlying transport."""
        return self._transport

    @property
    def kind(self) -> TransportKind:
        return self._transport.kind

    async def execute(self, command: str, args: dict[str, Any] | None = None) -> Any:
        """Invoke a command on the active transport."""
        return await self.executor.execute(command, args)

    def on_unauthorized(self, callback: UnauthorizedCallback) -> Any:
        """Register a callback for (debounced) 401 responses."""
        return self.gate.subscribe(callback)

    async def close(self) -> None:
        """Drop the console subscription and release the transport."""
        await self.console.aclose()
        await self._transport.aclose()

    async def __aenter__(self) -> GatewayClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()


# Factory functions


def create_client(
    config: GatewayConfig | None = None,
    bridge: NativeBridge | None = None,
    registry: CommandRegistry | None = None,
) -> GatewayClient:
    """Create a client on whichever transport the environment selects.

    Args:
        config: Gateway settings (defaults to the ABV_* environment)
        bridge: Native embedding, if running inside one
        registry: Command table for the remote transport

    Returns:
        GatewayClient bound to the selected transport
    """
    config = config or GatewayConfig.from_env()
    gate = UnauthorizedGate(config.unauthorized_window)
    transport = create_transport(config, bridge=bridge, registry=registry, gate=gate)
    return GatewayClient(_transport=transport, config=config, gate=gate)


def create_remote_client(
    base_url: str = "http://127.0.0.1:8045",
    api_key: str | None = None,
    timeout: float | None = 30.0,
) -> GatewayClient:
    """Create a client that talks to a running backend over HTTP."""
    config = GatewayConfig(mode="remote", base_url=base_url, api_key=api_key, timeout=timeout)
    return create_client(config)


def create_test_client(
    transport: MockTransport | None = None,
    config: GatewayConfig | None = None,
) -> GatewayClient:
    """Create a client for testing.

    Args:
        transport: Pre-configured mock transport (creates new if None)
        config: Optional settings (log capacity etc.)
    """
    return GatewayClient(
        _transport=transport or create_mock_transport(),
        config=config or GatewayConfig(),
    )
