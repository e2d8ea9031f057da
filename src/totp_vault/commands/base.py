"""Command adapter — abstract request/response bridge to the secure store."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any

logger = logging.getLogger(__name__)

# ── Command names understood by the store ────────────────
SETUP_STORAGE_KEYS = "setup_storage_keys"
ADD_SERVICE = "add_service"
UPDATE_SERVICE = "update_service"
REMOVE_SERVICE = "remove_service"
GET_SERVICES_TOKENS = "get_services_tokens"
GET_SERVICE_ICON = "get_service_icon"


class CommandError(Exception):
    """A command was rejected by the store or could not be delivered."""

    def __init__(self, command: str, detail: str) -> None:
        super().__init__(f"{command}: {detail}")
        self.command = command
        self.detail = detail


class CommandTimeout(CommandError):
    """No response arrived before the configured deadline."""


class CommandAdapter(ABC):
    """Abstract base class for every way of reaching the store.

    Each call is single-shot: it is submitted once, the caller suspends
    until the result or failure arrives, and nothing is retried here.
    Concrete adapters implement :meth:`_send`; :meth:`invoke` wraps it in
    the optional deadline.
    """

    def __init__(self, timeout: float | None = None) -> None:
        self._timeout = timeout

    async def invoke(self, command: str, args: dict[str, Any] | None = None) -> Any:
        """Run *command* with *args* and return its JSON-shaped result.

        Raises
        ------
        CommandError
            The store refused the command or the transport failed.
        CommandTimeout
            The deadline elapsed first.
        """
        logger.debug("Invoking %s", command)
        if self._timeout is None:
            return await self._send(command, args or {})
        try:
            return await asyncio.wait_for(self._send(command, args or {}), self._timeout)
        except TimeoutError as exc:
            logger.warning("Command %s timed out after %.1fs", command, self._timeout)
            raise CommandTimeout(command, f"no response after {self._timeout}s") from exc

    @abstractmethod
    async def _send(self, command: str, args: dict[str, Any]) -> Any:
        """Deliver one command and return the decoded JSON result."""
