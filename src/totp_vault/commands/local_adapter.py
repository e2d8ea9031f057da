"""In-process command adapter — dispatches commands to a ``VaultBackend``."""

from __future__ import annotations

import logging
from typing import Any

from totp_vault.backend.vault import StorageError, VaultBackend
from totp_vault.commands import base
from totp_vault.commands.base import CommandAdapter, CommandError

logger = logging.getLogger(__name__)


class LocalCommandAdapter(CommandAdapter):
    """Runs commands against a backend living in the same process.

    Argument names follow the wire contract (``userPass``, ``totpUri``,
    ``serviceId``, ``service``) so callers cannot tell this adapter from
    :class:`~totp_vault.commands.http_adapter.HttpCommandAdapter`.
    """

    def __init__(self, backend: VaultBackend, timeout: float | None = None) -> None:
        super().__init__(timeout)
        self._backend = backend

    async def _send(self, command: str, args: dict[str, Any]) -> Any:
        try:
            if command == base.SETUP_STORAGE_KEYS:
                return await self._backend.setup_storage_keys(args["userPass"])
            if command == base.ADD_SERVICE:
                return await self._backend.add_service(args["totpUri"])
            if command == base.UPDATE_SERVICE:
                return await self._backend.update_service(args["service"])
            if command == base.REMOVE_SERVICE:
                return await self._backend.remove_service(args["serviceId"])
            if command == base.GET_SERVICES_TOKENS:
                return await self._backend.get_services_tokens()
            if command == base.GET_SERVICE_ICON:
                return await self._backend.get_service_icon(args["serviceId"])
        except KeyError as exc:
            raise CommandError(command, f"missing argument {exc.args[0]!r}") from exc
        except StorageError as exc:
            logger.info("Command %s rejected: %s", command, exc)
            raise CommandError(command, str(exc)) from exc

        raise CommandError(command, "unknown command")
