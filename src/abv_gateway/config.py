"""Gateway configuration.

All settings have defaults suitable for a locally running backend and can
be overridden through ABV_* environment variables.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://127.0.0.1:8045"
DEFAULT_PUSH_PATH = "/api/proxy/debug/stream"
DEFAULT_LOG_CAPACITY = 5000
DEFAULT_UNAUTHORIZED_WINDOW = 2.0

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _default_key_file() -> Path:
    return Path.home() / ".antigravity_tools" / "admin_api_key"


@dataclass
class GatewayConfig:
    """Configuration for the command gateway."""

    # Transport selection
    mode: str = "auto"  # "auto" | "native" | "remote"

    # Remote settings
    base_url: str = DEFAULT_BASE_URL
    timeout: float | None = 30.0
    push_path: str = DEFAULT_PUSH_PATH

    # Credentials
    api_key: str | None = None
    api_key_file: Path = field(default_factory=_default_key_file)

    # Marshalling
    strip_path_args: bool = False

    # Unauthorized signal debounce, in seconds
    unauthorized_window: float = DEFAULT_UNAUTHORIZED_WINDOW

    # Console
    log_capacity: int = DEFAULT_LOG_CAPACITY

    def __post_init__(self) -> None:
        if self.mode not in ("auto", "native", "remote"):
            raise ValueError(f"Invalid transport mode: {self.mode}")
        if self.log_capacity < 1:
            raise ValueError("log_capacity must be positive")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> GatewayConfig:
        """Build a config from ABV_* environment variables."""
        env = os.environ if environ is None else environ
        config = cls()

        if mode := env.get("ABV_TRANSPORT"):
            config.mode = mode.strip().lower()
        if base_url := env.get("ABV_BASE_URL"):
            config.base_url = base_url.rstrip("/")
        if timeout := env.get("ABV_TIMEOUT"):
            config.timeout = None if timeout.strip().lower() == "none" else float(timeout)
        if push_path := env.get("ABV_PUSH_PATH"):
            config.push_path = push_path
        if api_key := env.get("ABV_ADMIN_API_KEY"):
            config.api_key = api_key
        if key_file := env.get("ABV_API_KEY_FILE"):
            config.api_key_file = Path(key_file).expanduser()
        if strip := env.get("ABV_STRIP_PATH_ARGS"):
            config.strip_path_args = strip.strip().lower() in _TRUE_VALUES
        if window := env.get("ABV_UNAUTHORIZED_WINDOW_MS"):
            config.unauthorized_window = int(window) / 1000

        config.__post_init__()
        logger.debug(f"Loaded gateway config: mode={config.mode} base_url={config.base_url}")
        return config
