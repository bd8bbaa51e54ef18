"""Debug console: live log streaming into a bounded buffer."""

from .buffer import DEFAULT_LEVELS, LogBuffer, LogFilter, level_counts
from .subscription import LOG_CHANNEL, ConsoleState, SubscriptionManager

__all__ = [
    "ConsoleState",
    "DEFAULT_LEVELS",
    "LOG_CHANNEL",
    "LogBuffer",
    "LogFilter",
    "SubscriptionManager",
    "level_counts",
]
