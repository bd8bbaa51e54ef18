"""Unit tests for the bounded log buffer and display filter."""

import pytest
from conftest import make_record

from abv_gateway.console.buffer import LogBuffer, LogFilter, level_counts
from abv_gateway.errors import TransportError
from abv_gateway.protocol.records import LogLevel
from abv_gateway.sdk.executor import RequestExecutor
from abv_gateway.sdk.transport import MockTransport


class TestCapacity:
    """Test FIFO eviction at capacity."""

    def test_default_capacity(self):
        assert LogBuffer().capacity == 5000

    def test_append_below_capacity(self):
        buffer = LogBuffer(capacity=3)
        buffer.append(make_record(1))
        buffer.append(make_record(2))

        assert [r.id for r in buffer.snapshot()] == [1, 2]

    def test_overflow_evicts_exactly_the_oldest(self):
        """The 5001st record evicts record 0 and keeps the rest in order."""
        buffer = LogBuffer()
        for i in range(5000):
            buffer.append(make_record(i))

        buffer.append(make_record(5000))

        ids = [r.id for r in buffer.snapshot()]
        assert len(ids) == 5000
        assert ids[0] == 1
        assert ids[-1] == 5000
        assert ids == list(range(1, 5001))

    def test_length_never_exceeds_capacity(self):
        buffer = LogBuffer(capacity=10)
        for i in range(25):
            buffer.append(make_record(i))
            assert len(buffer) <= 10

        assert [r.id for r in buffer.snapshot()] == list(range(15, 25))

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            LogBuffer(capacity=0)


class TestReplaceAndSnapshot:
    def test_replace_discards_previous_contents(self):
        buffer = LogBuffer(capacity=5)
        buffer.append(make_record(1))

        buffer.replace([make_record(10), make_record(11)])

        assert [r.id for r in buffer.snapshot()] == [10, 11]

    def test_replace_keeps_newest_when_oversized(self):
        buffer = LogBuffer(capacity=3)

        buffer.replace([make_record(i) for i in range(6)])

        assert [r.id for r in buffer.snapshot()] == [3, 4, 5]

    def test_snapshot_is_immutable_copy(self):
        buffer = LogBuffer(capacity=5)
        buffer.append(make_record(1))

        snapshot = buffer.snapshot()
        buffer.append(make_record(2))

        assert isinstance(snapshot, tuple)
        assert [r.id for r in snapshot] == [1]


class TestClear:
    """Clearing purges the backend history as well."""

    @pytest.mark.asyncio
    async def test_clear_calls_backend_then_empties(self):
        transport = MockTransport()
        buffer = LogBuffer(RequestExecutor(transport), capacity=5)
        buffer.append(make_record(1))

        await buffer.clear()

        assert transport.recorded_calls == [("clear_debug_console_logs", None)]
        assert len(buffer) == 0

    @pytest.mark.asyncio
    async def test_failed_clear_keeps_local_records(self):
        transport = MockTransport()
        transport.set_error("clear_debug_console_logs", TransportError("x", "backend down"))
        buffer = LogBuffer(RequestExecutor(transport), capacity=5)
        buffer.append(make_record(1))

        with pytest.raises(TransportError):
            await buffer.clear()

        assert len(buffer) == 1

    @pytest.mark.asyncio
    async def test_clear_without_executor(self):
        buffer = LogBuffer(capacity=5)
        buffer.append(make_record(1))

        await buffer.clear()

        assert len(buffer) == 0


class TestLogFilter:
    """Test display-time filtering."""

    def _records(self):
        return [
            make_record(1, "ERROR", "upstream failed"),
            make_record(2, "INFO", "request completed"),
            make_record(3, "DEBUG", "token refreshed"),
            make_record(4, "WARN", "Rate limit near"),
        ]

    def test_default_levels(self):
        view = LogFilter()

        assert [r.id for r in view.apply(self._records())] == [1, 2, 4]

    def test_search_matches_message_case_insensitive(self):
        view = LogFilter(search="RATE")

        assert [r.id for r in view.apply(self._records())] == [4]

    def test_search_matches_target(self):
        view = LogFilter(search="proxy::")

        assert len(view.apply(self._records())) == 3

    def test_toggle(self):
        view = LogFilter()
        view.toggle(LogLevel.DEBUG)
        view.toggle(LogLevel.ERROR)

        assert [r.id for r in view.apply(self._records())] == [2, 3, 4]

    def test_filter_does_not_modify_buffer(self):
        buffer = LogBuffer(capacity=10)
        for record in self._records():
            buffer.append(record)

        LogFilter(levels={LogLevel.ERROR}).apply(buffer.snapshot())

        assert len(buffer) == 4

    def test_level_counts(self):
        counts = level_counts(self._records() + [make_record(5, "ERROR")])

        assert counts == {LogLevel.ERROR: 2, LogLevel.WARN: 1, LogLevel.INFO: 1, LogLevel.DEBUG: 1}
        assert list(counts) == [LogLevel.ERROR, LogLevel.WARN, LogLevel.INFO, LogLevel.DEBUG]
