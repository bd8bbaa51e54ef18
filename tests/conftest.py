"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import pytest

from abv_gateway.protocol.records import LogRecord
from abv_gateway.sdk.transport import MockTransport, TransportKind


class FakeBridge:
    """In-process stand-in for a native embedding."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any] | None]] = []
        self.results: dict[str, Any] = {}
        self.errors: dict[str, Exception] = {}
        self.handlers: dict[str, list[Callable[[Any], None]]] = {}
        self.unlisten_count = 0

    async def call(self, command: str, args: dict[str, Any] | None = None) -> Any:
        self.calls.append((command, args))
        if command in self.errors:
            raise self.errors[command]
        return self.results.get(command)

    async def listen(self, channel: str, handler: Callable[[Any], None]) -> Callable[[], None]:
        self.handlers.setdefault(channel, []).append(handler)

        def unlisten() -> None:
            self.unlisten_count += 1
            self.handlers[channel].remove(handler)

        return unlisten

    def emit(self, channel: str, payload: Any) -> None:
        for handler in list(self.handlers.get(channel, [])):
            handler(payload)


def record_payload(record_id: int, level: str = "INFO", message: str | None = None) -> dict:
    """Raw log record as the backend sends it."""
    return {
        "id": record_id,
        "timestamp": 1_735_689_600_000 + record_id,
        "level": level,
        "target": "proxy::server",
        "message": message or f"message {record_id}",
        "fields": {},
    }


def make_record(record_id: int, level: str = "INFO", message: str | None = None) -> LogRecord:
    return LogRecord.model_validate(record_payload(record_id, level, message))


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Poll until predicate() is true or fail after timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(0.01)


@pytest.fixture
def bridge() -> FakeBridge:
    return FakeBridge()


@pytest.fixture
def mock_transport() -> MockTransport:
    return MockTransport(TransportKind.REMOTE)
