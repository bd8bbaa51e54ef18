"""Request executor - the single entry point for invoking commands."""

from __future__ import annotations

import logging
from typing import Any

from .transport import Transport, TransportKind

logger = logging.getLogger(__name__)

_FAILURE_LABELS = {
    TransportKind.NATIVE: "Native invoke error",
    TransportKind.REMOTE: "Web fetch error",
}


class RequestExecutor:
    """Executes named commands on whichever transport was selected.

    Callers never branch on the runtime: the same `execute()` works for
    the native embedding and for the HTTP backend. Failures are logged
    here once and then propagated unchanged; nothing is retried.
    """

    def __init__(self, transport: Transport):
        self._transport = transport

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def kind(self) -> TransportKind:
        return self._transport.kind

    async def execute(self, command: str, args: dict[str, Any] | None = None) -> Any:
        """Invoke a command and return its result.

        Args:
            command: Command name, e.g. "list_accounts"
            args: Optional argument mapping

        Raises:
            UnmappedCommandError: Remote mode and the command has no endpoint
            MissingArgumentError: A path placeholder has no argument
            TransportError: The call interface or network failed
            HTTPError: The backend returned a non-2xx status
            TypeError: An argument cannot be serialized to JSON
        """
        logger.debug(f"Dispatching [{command}] via {self.kind.value} transport")
        try:
            return await self._transport.invoke(command, args)
        except Exception as e:
            logger.error(f"{_FAILURE_LABELS.get(self.kind, 'Invoke error')} [{command}]: {e}")
            raise
