"""Credentials and the unauthorized signal for the remote transport."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path

logger = logging.getLogger(__name__)

UnauthorizedCallback = Callable[[], None]


class CredentialStore:
    """Read-only access to the persisted admin API key.

    An explicit key wins over the key file. The file is only re-read when its
    modification time changes, so a key saved by another process is picked up
    without restart.
    """

    def __init__(self, api_key: str | None = None, key_file: Path | None = None):
        self._api_key = api_key
        self._key_file = key_file
        self._cached: tuple[int, str | None] | None = None  # (mtime_ns, token)

    def get(self) -> str | None:
        """Return the bearer token, or None if no key is stored."""
        if self._api_key:
            return self._api_key
        if self._key_file is None:
            return None
        try:
            mtime = self._key_file.stat().st_mtime_ns
            if self._cached is not None and self._cached[0] == mtime:
                return self._cached[1]
            token = self._key_file.read_text(encoding="utf-8").strip() or None
        except FileNotFoundError:
            self._cached = None
            return None
        except OSError as e:
            logger.warning(f"Failed to read API key from {self._key_file}: {e}")
            return None

        self._cached = (mtime, token)
        return token


class UnauthorizedGate:
    """Debounced notifier for 401 responses.

    Fires at most once per `window` seconds, measured from the previous
    firing, no matter how many requests fail in between.

    Usage:
        gate = UnauthorizedGate()
        unsubscribe = gate.subscribe(show_login_prompt)
        gate.trip()  # fires
        gate.trip()  # suppressed until the window has elapsed
    """

    def __init__(
        self,
        window: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.window = window
        self._clock = clock
        self._last_fired: float | None = None
        self._callbacks: list[UnauthorizedCallback] = []

    def subscribe(self, callback: UnauthorizedCallback) -> Callable[[], None]:
        """Register a callback. Returns an unsubscribe function."""
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def trip(self) -> bool:
        """Record an unauthorized failure. Returns True if the signal fired."""
        now = self._clock()
        if self._last_fired is not None and now - self._last_fired <= self.window:
            return False

        self._last_fired = now
        logger.info("Unauthorized response, notifying listeners")
        for callback in list(self._callbacks):
            try:
                callback()
            except Exception:
                logger.exception("Error in unauthorized listener")
        return True
