"""Transport abstraction for command dispatch.

Lets the rest of the application invoke named commands without knowing
whether it runs inside a native embedding (in-process call) or talks to
the backend over HTTP.

Architecture:
- Transport is the PROTOCOL (interface) shared by all transports
- NativeTransport forwards commands verbatim to the embedding's bridge
- HTTPTransport maps commands to REST endpoints and streams pushes over SSE
- MockTransport records calls and replays canned results for tests
- TransportSelector picks native or remote once and never changes its mind

Push channels are exposed as PushSubscription handles: a queue fed by the
transport and drained by whoever holds the handle.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from enum import Enum
from typing import Any, Protocol, runtime_checkable

import httpx

from ..config import GatewayConfig
from ..errors import HTTPError, TransportError
from ..protocol.registry import CommandRegistry
from .auth import CredentialStore, UnauthorizedGate
from .marshal import build_headers, error_message, normalize_response, prepare_request

logger = logging.getLogger(__name__)

ReleaseFn = Callable[[], Awaitable[None] | None]

_END = object()


class TransportKind(str, Enum):
    """Where commands are executed."""

    NATIVE = "native"
    REMOTE = "remote"


@runtime_checkable
class NativeBridge(Protocol):
    """Call interface exposed by a native embedding.

    Both methods may be plain or async:
    - call: execute a command and return its result
    - listen: register a handler on a named event channel and return an
      unlisten function
    """

    def call(self, command: str, args: dict[str, Any] | None = None) -> Any: ...

    def listen(self, channel: str, handler: Callable[[Any], None]) -> Any: ...


class PushSubscription:
    """One live registration on a push channel.

    Payloads are queued in arrival order and consumed by iterating the
    subscription. `close()` releases the underlying registration; calling
    it again is a no-op.

    Usage:
        subscription = await transport.subscribe("log-event")
        async for payload in subscription:
            handle(payload)
    """

    def __init__(self, channel: str):
        self.channel = channel
        self._loop = asyncio.get_running_loop()
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._release: ReleaseFn | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def bind(self, release: ReleaseFn | None) -> None:
        """Attach the function that tears down the registration."""
        self._release = release

    def deliver(self, payload: Any) -> None:
        """Queue a payload. Safe to call from a foreign thread."""
        if self._closed:
            return
        self._put(payload)

    def end(self) -> None:
        """Signal that the channel has no more payloads."""
        self._put(_END)

    def _put(self, item: Any) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self._loop:
            self._queue.put_nowait(item)
        else:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, item)

    async def drain(self) -> None:
        """Wait until every queued payload has been consumed."""
        if not self._closed:
            await self._queue.join()

    async def close(self) -> None:
        """Release the registration and stop iteration."""
        if self._closed:
            return
        self._closed = True

        release, self._release = self._release, None
        if release is not None:
            try:
                result = release()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Error releasing push channel [{self.channel}]")
        self.end()

    async def __aiter__(self) -> AsyncIterator[Any]:
        while True:
            item = await self._queue.get()
            try:
                if item is _END:
                    return
                yield item
            finally:
                self._queue.task_done()


@runtime_checkable
class Transport(Protocol):
    """Protocol for command transports.

    All transports must implement:
    - invoke: execute a named command with optional arguments
    - subscribe: open one live registration on a push channel
    - aclose: release connections
    """

    @property
    def kind(self) -> TransportKind:
        """Which execution path this transport represents."""
        ...

    async def invoke(self, command: str, args: dict[str, Any] | None = None) -> Any:
        """Execute a command and return its result.

        Raises:
            GatewayError: On any failure
        """
        ...

    async def subscribe(self, channel: str) -> PushSubscription:
        """Open a live subscription on a push channel."""
        ...

    async def aclose(self) -> None:
        """Release any held connections."""
        ...


class NativeTransport:
    """Transport that calls straight into the native embedding.

    Command names and arguments are passed through untouched and the
    bridge's result is returned unchanged. Any failure is wrapped in
    TransportError.
    """

    kind = TransportKind.NATIVE

    def __init__(self, bridge: NativeBridge, timeout: float | None = None):
        self._bridge = bridge
        self._timeout = timeout

    async def invoke(self, command: str, args: dict[str, Any] | None = None) -> Any:
        try:
            result = self._bridge.call(command, args)
            if inspect.isawaitable(result):
                result = await asyncio.wait_for(result, timeout=self._timeout)
            return result
        except TimeoutError:
            raise TransportError(
                command, f"Native call [{command}] timed out after {self._timeout}s"
            ) from None
        except Exception as e:
            raise TransportError(command, str(e) or type(e).__name__) from e

    async def subscribe(self, channel: str) -> PushSubscription:
        subscription = PushSubscription(channel)
        try:
            unlisten = self._bridge.listen(channel, subscription.deliver)
            if inspect.isawaitable(unlisten):
                unlisten = await unlisten
        except Exception as e:
            raise TransportError(channel, f"Failed to listen on [{channel}]: {e}") from e

        subscription.bind(unlisten)
        logger.debug(f"Listening on native channel [{channel}]")
        return subscription

    async def aclose(self) -> None:
        """Nothing to release; the embedding owns its lifecycle."""


class HTTPTransport:
    """Transport over the backend's REST API.

    Commands are resolved through the CommandRegistry, marshalled into
    path, query string or JSON body, and authenticated with the stored
    admin key. Push channels are Server-Sent Events streams on
    `config.push_path`.

    A 401 response trips the UnauthorizedGate before the HTTPError
    reaches the caller.
    """

    kind = TransportKind.REMOTE

    def __init__(
        self,
        config: GatewayConfig | None = None,
        registry: CommandRegistry | None = None,
        credentials: CredentialStore | None = None,
        gate: UnauthorizedGate | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.config = config or GatewayConfig(mode="remote")
        self.registry = registry or CommandRegistry.default()
        self.credentials = credentials or CredentialStore(
            self.config.api_key, self.config.api_key_file
        )
        self.gate = gate or UnauthorizedGate(self.config.unauthorized_window)
        self._http_client = http_client
        self._owns_client = http_client is None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=httpx.Timeout(self.config.timeout),
            )
        return self._http_client

    async def invoke(self, command: str, args: dict[str, Any] | None = None) -> Any:
        descriptor = self.registry.resolve(command)
        prepared = prepare_request(descriptor, args, self.config.strip_path_args)
        client = self._ensure_client()

        try:
            response = await client.request(
                prepared.method,
                prepared.url,
                content=prepared.body,
                headers=build_headers(self.credentials.get()),
            )
        except httpx.RequestError as e:
            raise TransportError(command, f"Request failed: {e}") from e

        if response.status_code == 401:
            self.gate.trip()
        return normalize_response(command, response.status_code, response.text)

    async def subscribe(self, channel: str) -> PushSubscription:
        client = self._ensure_client()
        headers = build_headers(self.credentials.get())
        headers["Accept"] = "text/event-stream"
        request = client.build_request(
            "GET",
            self.config.push_path,
            params={"channel": channel},
            headers=headers,
            timeout=httpx.Timeout(self.config.timeout, read=None),  # No read timeout for SSE
        )

        try:
            response = await client.send(request, stream=True)
        except httpx.RequestError as e:
            raise TransportError(channel, f"Failed to open push channel: {e}") from e

        if not response.is_success:
            await response.aread()
            await response.aclose()
            if response.status_code == 401:
                self.gate.trip()
            raise HTTPError(
                error_message(response.status_code, response.text), response.status_code
            )

        subscription = PushSubscription(channel)
        reader = asyncio.create_task(self._read_stream(subscription, response))

        async def release() -> None:
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader

        subscription.bind(release)
        logger.debug(f"Opened push channel [{channel}] at {self.config.push_path}")
        return subscription

    async def _read_stream(self, subscription: PushSubscription, response: httpx.Response) -> None:
        """Parse SSE blocks and deliver each `data:` payload."""
        event_name: str | None = None
        data_lines: list[str] = []
        try:
            async for line in response.aiter_lines():
                if not line:
                    self._dispatch(subscription, event_name, data_lines)
                    event_name, data_lines = None, []
                    continue
                if line.startswith(":"):
                    continue  # comment / keepalive

                name, _, value = line.partition(":")
                value = value[1:] if value.startswith(" ") else value
                if name == "event":
                    event_name = value
                elif name == "data":
                    data_lines.append(value)

            self._dispatch(subscription, event_name, data_lines)
            logger.info(f"Push channel [{subscription.channel}] closed by server")
        except httpx.HTTPError as e:
            logger.warning(f"Push channel [{subscription.channel}] lost: {e}")
        finally:
            subscription.end()
            await response.aclose()

    @staticmethod
    def _dispatch(
        subscription: PushSubscription, event_name: str | None, data_lines: list[str]
    ) -> None:
        if not data_lines:
            return
        if event_name and event_name != subscription.channel:
            return

        data = "\n".join(data_lines)
        try:
            payload = json.loads(data)
        except json.JSONDecodeError:
            logger.warning(f"Failed to parse SSE data: {data[:50]}")
            return
        subscription.deliver(payload)

    async def aclose(self) -> None:
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
        self._http_client = None


class MockTransport:
    """Mock transport for testing.

    Records every invocation and replays canned results or errors.
    No actual I/O - everything is in-memory.

    Usage:
        transport = MockTransport()
        transport.set_response("get_debug_console_logs", [])
        transport.set_error("enable_debug_console", TransportError(...))

        await transport.invoke("get_debug_console_logs")
        transport.emit("log-event", {...})

        assert transport.recorded_calls[0] == ("get_debug_console_logs", None)
    """

    def __init__(self, kind: TransportKind = TransportKind.REMOTE) -> None:
        self.kind = kind
        self._responses: dict[str, Any] = {}
        self._errors: dict[str, Exception] = {}
        self._recorded_calls: list[tuple[str, dict[str, Any] | None]] = []
        self._subscriptions: dict[str, list[PushSubscription]] = {}
        self.subscribe_count = 0

    @property
    def recorded_calls(self) -> list[tuple[str, dict[str, Any] | None]]:
        """All invocations made through this transport."""
        return self._recorded_calls.copy()

    def calls_to(self, command: str) -> int:
        return sum(1 for name, _ in self._recorded_calls if name == command)

    def set_response(self, command: str, result: Any) -> None:
        """Set the canned result for a command.

        A callable result is invoked with the call arguments.
        """
        self._errors.pop(command, None)
        self._responses[command] = result

    def set_error(self, command: str, error: Exception) -> None:
        """Make a command fail with the given error."""
        self._errors[command] = error

    def live_subscriptions(self, channel: str) -> int:
        return sum(1 for s in self._subscriptions.get(channel, []) if not s.closed)

    def emit(self, channel: str, payload: Any) -> None:
        """Deliver a payload to every live subscription on a channel."""
        for subscription in list(self._subscriptions.get(channel, [])):
            subscription.deliver(payload)

    def end_channel(self, channel: str) -> None:
        """Simulate the channel going away."""
        for subscription in list(self._subscriptions.get(channel, [])):
            subscription.end()

    async def invoke(self, command: str, args: dict[str, Any] | None = None) -> Any:
        self._recorded_calls.append((command, args))
        if command in self._errors:
            raise self._errors[command]
        result = self._responses.get(command)
        if callable(result):
            return result(args)
        return result

    async def subscribe(self, channel: str) -> PushSubscription:
        if channel in self._errors:
            raise self._errors[channel]

        subscription = PushSubscription(channel)
        self._subscriptions.setdefault(channel, []).append(subscription)
        self.subscribe_count += 1

        def release() -> None:
            subscriptions = self._subscriptions.get(channel, [])
            if subscription in subscriptions:
                subscriptions.remove(subscription)

        subscription.bind(release)
        return subscription

    async def aclose(self) -> None:
        """No-op for mock."""


class TransportSelector:
    """Decides once whether the native or remote path is active.

    The answer is computed on first use and cached, so it never flips
    mid-session. `mode="remote"` forces HTTP; otherwise a present bridge
    selects the native path.
    """

    def __init__(self, bridge: NativeBridge | None = None, mode: str = "auto"):
        self._bridge = bridge
        self._mode = mode
        self._kind: TransportKind | None = None

    def current(self) -> TransportKind:
        if self._kind is None:
            self._kind = self._detect()
            logger.info(f"Selected {self._kind.value} transport")
        return self._kind

    def _detect(self) -> TransportKind:
        if self._mode == "remote":
            return TransportKind.REMOTE
        if self._bridge is not None:
            return TransportKind.NATIVE
        if self._mode == "native":
            logger.warning("Native transport requested but no bridge is available")
        return TransportKind.REMOTE


# Factory functions


def create_native_transport(
    bridge: NativeBridge, timeout: float | None = 30.0
) -> NativeTransport:
    """Create a transport that calls into a native embedding.

    Args:
        bridge: The embedding's call interface
        timeout: Deadline for async calls (None waits forever)

    Returns:
        NativeTransport wrapping the bridge
    """
    return NativeTransport(bridge, timeout=timeout)


def create_http_transport(
    base_url: str = "http://127.0.0.1:8045",
    api_key: str | None = None,
    timeout: float | None = 30.0,
) -> HTTPTransport:
    """Create an HTTP transport for a running backend.

    Args:
        base_url: Backend URL
        api_key: Admin API key (falls back to the key file when None)
        timeout: Request timeout (None waits forever)

    Returns:
        HTTPTransport configured for the backend
    """
    config = GatewayConfig(mode="remote", base_url=base_url, api_key=api_key, timeout=timeout)
    return HTTPTransport(config)


def create_mock_transport(kind: TransportKind = TransportKind.REMOTE) -> MockTransport:
    """Create a mock transport for testing."""
    return MockTransport(kind)


def create_transport(
    config: GatewayConfig,
    bridge: NativeBridge | None = None,
    registry: CommandRegistry | None = None,
    gate: UnauthorizedGate | None = None,
) -> Transport:
    """Create the transport the TransportSelector picks for this process."""
    selector = TransportSelector(bridge, config.mode)
    if selector.current() == TransportKind.NATIVE and bridge is not None:
        return NativeTransport(bridge, timeout=config.timeout)
    return HTTPTransport(config, registry=registry, gate=gate)
