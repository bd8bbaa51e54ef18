"""Debug console subscription manager.

Owns at most one live subscription to the backend's log channel and feeds
every pushed record into the LogBuffer.

State machine:
    DISABLED -> ENABLING -> LISTENING -> DISABLING -> DISABLED

Transitions are serialized, so enabling twice in a row (or concurrently)
still leaves exactly one subscription.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import Enum
from typing import Any

from pydantic import ValidationError

from ..protocol.records import LogRecord
from ..protocol.registry import ConsoleCommand
from ..sdk.executor import RequestExecutor
from ..sdk.transport import PushSubscription
from .buffer import LogBuffer

logger = logging.getLogger(__name__)

LOG_CHANNEL = "log-event"


class ConsoleState(str, Enum):
    """Subscription lifecycle."""

    DISABLED = "disabled"
    ENABLING = "enabling"
    LISTENING = "listening"
    DISABLING = "disabling"


class SubscriptionManager:
    """Enables, disables and resynchronizes the live log stream."""

    def __init__(
        self,
        executor: RequestExecutor,
        buffer: LogBuffer,
        channel: str = LOG_CHANNEL,
    ):
        self._executor = executor
        self._buffer = buffer
        self._channel = channel
        self._state = ConsoleState.DISABLED
        self._handle: PushSubscription | None = None
        self._pump: asyncio.Task[None] | None = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> ConsoleState:
        return self._state

    @property
    def is_listening(self) -> bool:
        return self._handle is not None

    @property
    def buffer(self) -> LogBuffer:
        return self._buffer

    async def enable(self) -> bool:
        """Enable the console, load the snapshot and start listening.

        A no-op when already listening. Returns True if the console is
        listening afterwards; failures are logged, never raised.
        """
        async with self._lock:
            if self._handle is not None:
                return True

            self._state = ConsoleState.ENABLING
            try:
                await self._executor.execute(ConsoleCommand.ENABLE.value)
                await self.load_snapshot()
                await self._acquire()
            except Exception as e:
                self._state = ConsoleState.DISABLED
                logger.error(f"Failed to enable debug console: {e}")
                return False

            self._state = ConsoleState.LISTENING
            logger.info("Debug console enabled")
            return True

    async def disable(self) -> bool:
        """Disable the console on the backend and drop the subscription.

        Returns True on success. If the backend call fails the subscription
        is kept and the state follows it.
        """
        async with self._lock:
            self._state = ConsoleState.DISABLING
            try:
                await self._executor.execute(ConsoleCommand.DISABLE.value)
            except Exception as e:
                # The channel may have ended while the call was in flight
                self._state = (
                    ConsoleState.LISTENING if self._handle is not None else ConsoleState.DISABLED
                )
                logger.error(f"Failed to disable debug console: {e}")
                return False

            await self._release()
            self._state = ConsoleState.DISABLED
            logger.info("Debug console disabled")
            return True

    async def check_status(self) -> bool:
        """Bring local state in line with the backend's enabled flag.

        If the backend reports the console enabled but nothing is listening
        locally (e.g. after a restart), the snapshot is reloaded and a new
        subscription opened. Returns the backend's flag, or False if it
        could not be queried.
        """
        async with self._lock:
            try:
                enabled = bool(await self._executor.execute(ConsoleCommand.IS_ENABLED.value))
            except Exception as e:
                logger.error(f"Failed to check debug console status: {e}")
                return False

            if enabled and self._handle is None:
                self._state = ConsoleState.ENABLING
                try:
                    await self.load_snapshot()
                    await self._acquire()
                except Exception as e:
                    self._state = ConsoleState.DISABLED
                    logger.error(f"Failed to resume debug console: {e}")
                    return enabled
                self._state = ConsoleState.LISTENING
                logger.info("Debug console resumed")
            elif not enabled and self._handle is not None:
                await self._release()
                self._state = ConsoleState.DISABLED

            return enabled

    async def load_snapshot(self) -> None:
        """Replace the buffer with the backend's current history."""
        raw: Any = await self._executor.execute(ConsoleCommand.GET_LOGS.value)
        records = [LogRecord.model_validate(item) for item in raw or []]
        self._buffer.replace(records)
        logger.debug(f"Loaded {len(records)} log records")

    async def flush(self) -> None:
        """Wait until every record pushed so far has reached the buffer."""
        if self._handle is not None:
            await self._handle.drain()

    async def aclose(self) -> None:
        """Drop the subscription without telling the backend (teardown)."""
        async with self._lock:
            await self._release()
            self._state = ConsoleState.DISABLED

    async def _acquire(self) -> None:
        if self._handle is not None:
            return
        handle = await self._executor.transport.subscribe(self._channel)
        self._handle = handle
        self._pump = asyncio.create_task(self._pump_records(handle))

    async def _release(self) -> None:
        handle, self._handle = self._handle, None
        pump, self._pump = self._pump, None
        if handle is not None:
            await handle.close()
        if pump is not None:
            pump.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await pump

    async def _pump_records(self, handle: PushSubscription) -> None:
        """Move pushed payloads into the buffer in delivery order."""
        async for payload in handle:
            try:
                record = LogRecord.model_validate(payload)
            except ValidationError as e:
                logger.warning(f"Dropping malformed log record: {e}")
                continue
            self._buffer.append(record)

        # Channel ended without us releasing it
        if self._handle is handle:
            logger.warning(f"Push channel [{self._channel}] ended, console stopped listening")
            self._handle = None
            self._pump = None
            self._state = ConsoleState.DISABLED
            await handle.close()
