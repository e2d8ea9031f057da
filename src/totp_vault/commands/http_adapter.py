"""HTTP command adapter — reaches an out-of-process store over HTTP.

The store is expected to expose ``POST {base_url}/{command}`` returning
``{"result": ...}`` on success and a ``detail`` message otherwise, which
is what :mod:`totp_vault.backend.router` serves.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from totp_vault.commands.base import CommandAdapter, CommandError
from totp_vault.config import settings

logger = logging.getLogger(__name__)


class HttpCommandAdapter(CommandAdapter):
    """Async HTTP wrapper around the command server."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(timeout if timeout is not None else settings.command_timeout_seconds)
        self._base_url = (base_url or settings.command_api_base_url).rstrip("/")
        self._transport = transport

    async def _send(self, command: str, args: dict[str, Any]) -> Any:
        url = f"{self._base_url}/{command}"
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                resp = await client.post(url, json=args)
        except httpx.HTTPError as exc:
            logger.exception("Command %s request error: %s", command, exc)
            raise CommandError(command, str(exc) or type(exc).__name__) from exc

        if resp.status_code == 200:
            try:
                body = resp.json()
            except ValueError:
                body = None
            if not isinstance(body, dict):
                logger.error("Command %s returned a malformed body: %s", command, resp.text)
                raise CommandError(command, "malformed response")
            return body.get("result")

        logger.error("Command %s failed: %s %s", command, resp.status_code, resp.text)
        raise CommandError(command, _detail(resp))


def _detail(resp: httpx.Response) -> str:
    """Pull the error message out of a FastAPI error body."""
    try:
        detail = resp.json().get("detail")
    except ValueError:
        detail = None
    return str(detail) if detail else f"HTTP {resp.status_code}"
