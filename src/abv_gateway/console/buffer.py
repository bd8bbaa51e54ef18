"""Bounded log buffer for the debug console.

Holds the most recent log records in arrival order. Once the buffer is
full, every append evicts the oldest record. Readers get immutable
snapshots, so a UI can filter them without coordinating with the writer.
"""

from __future__ import annotations

import logging
from collections import Counter, deque
from collections.abc import Iterable
from dataclasses import dataclass, field

from ..config import DEFAULT_LOG_CAPACITY
from ..protocol.records import LogLevel, LogRecord
from ..protocol.registry import ConsoleCommand
from ..sdk.executor import RequestExecutor

logger = logging.getLogger(__name__)


class LogBuffer:
    """Fixed-capacity, insertion-ordered sequence of log records."""

    def __init__(
        self,
        executor: RequestExecutor | None = None,
        capacity: int = DEFAULT_LOG_CAPACITY,
    ):
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self._executor = executor
        self._records: deque[LogRecord] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._records.maxlen or 0

    def __len__(self) -> int:
        return len(self._records)

    def append(self, record: LogRecord) -> None:
        """Append a record, evicting the oldest one when full."""
        self._records.append(record)

    def replace(self, records: Iterable[LogRecord]) -> None:
        """Replace the contents, keeping at most the newest `capacity` records."""
        self._records = deque(records, maxlen=self.capacity)

    def snapshot(self) -> tuple[LogRecord, ...]:
        """Immutable copy of the current contents, oldest first."""
        return tuple(self._records)

    async def clear(self) -> None:
        """Clear the backend history, then the local contents.

        The backend is cleared first. On failure the local contents are kept
        and the error propagates.
        """
        if self._executor is not None:
            await self._executor.execute(ConsoleCommand.CLEAR_LOGS.value)
        self._records.clear()
        logger.debug("Log buffer cleared")


DEFAULT_LEVELS = frozenset({LogLevel.ERROR, LogLevel.WARN, LogLevel.INFO})


@dataclass
class LogFilter:
    """Display-time filter over buffer snapshots.

    Filtering never touches the buffer itself.
    """

    levels: set[LogLevel] = field(default_factory=lambda: set(DEFAULT_LEVELS))
    search: str = ""

    def toggle(self, level: LogLevel) -> None:
        if level in self.levels:
            self.levels.discard(level)
        else:
            self.levels.add(level)

    def accepts(self, record: LogRecord) -> bool:
        return record.level in self.levels and record.matches(self.search)

    def apply(self, records: Iterable[LogRecord]) -> list[LogRecord]:
        return [record for record in records if self.accepts(record)]


def level_counts(records: Iterable[LogRecord]) -> dict[LogLevel, int]:
    """Number of records per level, in severity order, omitting zeros."""
    counts = Counter(record.level for record in records)
    return {level: counts[level] for level in LogLevel if counts[level]}
