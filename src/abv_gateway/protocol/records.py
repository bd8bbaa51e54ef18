"""Log records pushed by the backend's debug console."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class LogLevel(str, Enum):
    """Severity levels, most severe first."""

    ERROR = "ERROR"
    WARN = "WARN"
    INFO = "INFO"
    DEBUG = "DEBUG"
    TRACE = "TRACE"


class LogRecord(BaseModel):
    """A single backend log entry.

    Example payload:
        {
            "id": 42,
            "timestamp": 1735689600000,
            "level": "INFO",
            "target": "proxy::server",
            "message": "request completed",
            "fields": {"status": "200"}
        }

    `id` is assigned by the backend and increases monotonically;
    `timestamp` is in epoch milliseconds.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    timestamp: int
    level: LogLevel
    target: str
    message: str
    fields: dict[str, str] = Field(default_factory=dict)

    def matches(self, term: str) -> bool:
        """Case-insensitive substring match on message or target."""
        if not term:
            return True
        needle = term.lower()
        return needle in self.message.lower() or needle in self.target.lower()
