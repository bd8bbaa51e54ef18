"""Unit tests for the debug console subscription manager."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
from conftest import make_record, record_payload, wait_until

from abv_gateway.console.buffer import LogBuffer
from abv_gateway.console.subscription import LOG_CHANNEL, ConsoleState, SubscriptionManager
from abv_gateway.errors import HTTPError, TransportError
from abv_gateway.protocol.registry import ConsoleCommand
from abv_gateway.sdk.executor import RequestExecutor
from abv_gateway.sdk.transport import MockTransport, NativeTransport


def make_manager(transport, capacity: int = 5000) -> SubscriptionManager:
    executor = RequestExecutor(transport)
    return SubscriptionManager(executor, LogBuffer(executor, capacity=capacity))


class ChannelDropOnDisable(MockTransport):
    """Ends the log channel while a disable call is in flight, then fails it."""

    async def invoke(self, command: str, args: dict[str, Any] | None = None) -> Any:
        if command == ConsoleCommand.DISABLE.value:
            self.end_channel(LOG_CHANNEL)
            await asyncio.sleep(0.05)
            raise HTTPError("HTTP Error 503", 503)
        return await super().invoke(command, args)


@pytest.fixture
def transport(mock_transport: MockTransport) -> MockTransport:
    mock_transport.set_response("get_debug_console_logs", [record_payload(1), record_payload(2)])
    mock_transport.set_response("is_debug_console_enabled", True)
    return mock_transport


# =============================================================================
# enable()
# =============================================================================


class TestEnable:
    """Test enabling the console."""

    @pytest.mark.asyncio
    async def test_enable_loads_snapshot_and_listens(self, transport):
        manager = make_manager(transport)

        assert await manager.enable() is True

        assert manager.state is ConsoleState.LISTENING
        assert manager.is_listening
        assert [r.id for r in manager.buffer.snapshot()] == [1, 2]
        assert transport.live_subscriptions(LOG_CHANNEL) == 1
        assert [name for name, _ in transport.recorded_calls] == [
            "enable_debug_console",
            "get_debug_console_logs",
        ]
        await manager.aclose()

    @pytest.mark.asyncio
    async def test_enable_twice_keeps_one_subscription(self, transport):
        manager = make_manager(transport)

        await manager.enable()
        await manager.enable()

        assert transport.subscribe_count == 1
        assert transport.live_subscriptions(LOG_CHANNEL) == 1
        assert transport.calls_to("enable_debug_console") == 1
        await manager.aclose()

    @pytest.mark.asyncio
    async def test_concurrent_enable_keeps_one_subscription(self, transport):
        manager = make_manager(transport)

        results = await asyncio.gather(manager.enable(), manager.enable(), manager.enable())

        assert results == [True, True, True]
        assert transport.subscribe_count == 1
        await manager.aclose()

    @pytest.mark.asyncio
    async def test_no_duplicate_delivery_after_double_enable(self, transport):
        manager = make_manager(transport)
        await manager.enable()
        await manager.enable()

        transport.emit(LOG_CHANNEL, record_payload(3))
        await manager.flush()

        assert [r.id for r in manager.buffer.snapshot()] == [1, 2, 3]
        await manager.aclose()

    @pytest.mark.asyncio
    async def test_enable_failure_leaves_no_handle(self, transport, caplog):
        transport.set_error("enable_debug_console", HTTPError("HTTP Error 500", 500))
        manager = make_manager(transport)

        assert await manager.enable() is False

        assert manager.state is ConsoleState.DISABLED
        assert not manager.is_listening
        assert transport.subscribe_count == 0
        assert "Failed to enable debug console" in caplog.text

    @pytest.mark.asyncio
    async def test_snapshot_failure_leaves_no_handle(self, transport):
        transport.set_error("get_debug_console_logs", TransportError("x", "timeout"))
        manager = make_manager(transport)

        assert await manager.enable() is False
        assert transport.subscribe_count == 0
        assert manager.state is ConsoleState.DISABLED

    @pytest.mark.asyncio
    async def test_subscribe_failure_leaves_no_handle(self, transport):
        transport.set_error(LOG_CHANNEL, TransportError(LOG_CHANNEL, "no channel"))
        manager = make_manager(transport)

        assert await manager.enable() is False
        assert not manager.is_listening


# =============================================================================
# Pushed records
# =============================================================================


class TestPushedRecords:
    """Pushed records land in the buffer in delivery order."""

    @pytest.mark.asyncio
    async def test_records_appended_in_order(self, transport):
        manager = make_manager(transport)
        await manager.enable()

        for record_id in (9, 3, 7):
            transport.emit(LOG_CHANNEL, record_payload(record_id, "DEBUG"))
        await manager.flush()

        assert [r.id for r in manager.buffer.snapshot()] == [1, 2, 9, 3, 7]
        await manager.aclose()

    @pytest.mark.asyncio
    async def test_duplicates_are_not_removed(self, transport):
        manager = make_manager(transport)
        await manager.enable()

        transport.emit(LOG_CHANNEL, record_payload(5))
        transport.emit(LOG_CHANNEL, record_payload(5))
        await manager.flush()

        assert [r.id for r in manager.buffer.snapshot()] == [1, 2, 5, 5]
        await manager.aclose()

    @pytest.mark.asyncio
    async def test_malformed_payload_is_skipped(self, transport):
        manager = make_manager(transport)
        await manager.enable()

        transport.emit(LOG_CHANNEL, {"id": "not-a-number"})
        transport.emit(LOG_CHANNEL, record_payload(3))
        await manager.flush()

        assert [r.id for r in manager.buffer.snapshot()] == [1, 2, 3]
        await manager.aclose()

    @pytest.mark.asyncio
    async def test_overflow_evicts_oldest(self, transport):
        manager = make_manager(transport, capacity=3)
        await manager.enable()

        transport.emit(LOG_CHANNEL, record_payload(3))
        transport.emit(LOG_CHANNEL, record_payload(4))
        await manager.flush()

        assert [r.id for r in manager.buffer.snapshot()] == [2, 3, 4]
        await manager.aclose()

    @pytest.mark.asyncio
    async def test_channel_end_drops_handle(self, transport):
        manager = make_manager(transport)
        await manager.enable()

        transport.end_channel(LOG_CHANNEL)
        await wait_until(lambda: not manager.is_listening)

        assert manager.state is ConsoleState.DISABLED
        assert transport.live_subscriptions(LOG_CHANNEL) == 0


# =============================================================================
# disable()
# =============================================================================


class TestDisable:
    """Test disabling the console."""

    @pytest.mark.asyncio
    async def test_disable_releases_subscription(self, transport):
        manager = make_manager(transport)
        await manager.enable()

        assert await manager.disable() is True

        assert manager.state is ConsoleState.DISABLED
        assert not manager.is_listening
        assert transport.live_subscriptions(LOG_CHANNEL) == 0
        assert transport.calls_to("disable_debug_console") == 1

    @pytest.mark.asyncio
    async def test_disable_without_subscription(self, transport):
        manager = make_manager(transport)

        assert await manager.disable() is True
        assert manager.state is ConsoleState.DISABLED

    @pytest.mark.asyncio
    async def test_no_delivery_after_disable(self, transport):
        manager = make_manager(transport)
        await manager.enable()
        await manager.disable()

        transport.emit(LOG_CHANNEL, record_payload(3))
        await asyncio.sleep(0)

        assert [r.id for r in manager.buffer.snapshot()] == [1, 2]

    @pytest.mark.asyncio
    async def test_disable_failure_keeps_subscription(self, transport):
        manager = make_manager(transport)
        await manager.enable()
        transport.set_error("disable_debug_console", HTTPError("HTTP Error 503", 503))

        assert await manager.disable() is False

        assert manager.state is ConsoleState.LISTENING
        assert manager.is_listening
        await manager.aclose()

    @pytest.mark.asyncio
    async def test_channel_end_during_failed_disable(self):
        """State follows the handle when the channel dies mid-call."""
        transport = ChannelDropOnDisable()
        manager = make_manager(transport)
        await manager.enable()

        assert await manager.disable() is False

        assert not manager.is_listening
        assert manager.state is ConsoleState.DISABLED

    @pytest.mark.asyncio
    async def test_reenable_replaces_buffer_with_snapshot(self, transport):
        """After disable/enable the buffer equals the backend snapshot exactly."""
        manager = make_manager(transport)
        await manager.enable()
        transport.emit(LOG_CHANNEL, record_payload(3))
        await manager.flush()
        await manager.disable()
        manager.buffer.append(make_record(99))

        transport.set_response("get_debug_console_logs", [record_payload(10), record_payload(11)])
        await manager.enable()

        assert [r.id for r in manager.buffer.snapshot()] == [10, 11]
        await manager.aclose()


# =============================================================================
# check_status()
# =============================================================================


class TestCheckStatus:
    """Resynchronizing with the backend's authoritative flag."""

    @pytest.mark.asyncio
    async def test_resumes_when_backend_enabled(self, transport):
        manager = make_manager(transport)

        assert await manager.check_status() is True

        assert manager.state is ConsoleState.LISTENING
        assert transport.live_subscriptions(LOG_CHANNEL) == 1
        assert [r.id for r in manager.buffer.snapshot()] == [1, 2]
        assert transport.calls_to("enable_debug_console") == 0
        await manager.aclose()

    @pytest.mark.asyncio
    async def test_idempotent_when_already_listening(self, transport):
        manager = make_manager(transport)
        await manager.enable()

        await manager.check_status()

        assert transport.subscribe_count == 1
        assert transport.calls_to("get_debug_console_logs") == 1
        await manager.aclose()

    @pytest.mark.asyncio
    async def test_backend_disabled(self, transport):
        transport.set_response("is_debug_console_enabled", False)
        manager = make_manager(transport)

        assert await manager.check_status() is False

        assert manager.state is ConsoleState.DISABLED
        assert transport.subscribe_count == 0

    @pytest.mark.asyncio
    async def test_backend_disabled_releases_stale_handle(self, transport):
        manager = make_manager(transport)
        await manager.enable()
        transport.set_response("is_debug_console_enabled", False)

        await manager.check_status()

        assert not manager.is_listening
        assert transport.live_subscriptions(LOG_CHANNEL) == 0

    @pytest.mark.asyncio
    async def test_query_failure(self, transport):
        transport.set_error("is_debug_console_enabled", TransportError("x", "down"))
        manager = make_manager(transport)

        assert await manager.check_status() is False
        assert manager.state is ConsoleState.DISABLED


# =============================================================================
# Native embedding
# =============================================================================


class TestNativeConsole:
    """The same manager works over the native transport."""

    @pytest.mark.asyncio
    async def test_enable_listen_disable(self, bridge):
        bridge.results["get_debug_console_logs"] = [record_payload(1)]
        manager = make_manager(NativeTransport(bridge))

        assert await manager.enable() is True
        bridge.emit(LOG_CHANNEL, record_payload(2))
        await manager.flush()

        assert [r.id for r in manager.buffer.snapshot()] == [1, 2]

        await manager.disable()

        assert bridge.unlisten_count == 1
        assert [name for name, _ in bridge.calls] == [
            "enable_debug_console",
            "get_debug_console_logs",
            "disable_debug_console",
        ]
