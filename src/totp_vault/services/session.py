"""Vault session — wires the engine together for one unlocked directory."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from totp_vault.commands.base import CommandAdapter
from totp_vault.services.bootstrap import CredentialBootstrap
from totp_vault.services.directory import DirectoryCache
from totp_vault.services.local_storage import LocalStorage
from totp_vault.services.mutations import DirectoryMutations
from totp_vault.services.platform_secret import PlatformSecret
from totp_vault.services.scheduler import TokenRefreshScheduler

logger = logging.getLogger(__name__)


class VaultSession:
    """Owns the directory, the scheduler and the flows that touch them.

    Use as an async context manager so the refresh loop is always
    cancelled on teardown::

        async with VaultSession(adapter, storage, secret) as session:
            await session.bootstrap.unlock(password)
    """

    def __init__(
        self,
        adapter: CommandAdapter,
        local_storage: LocalStorage,
        platform_secret: PlatformSecret,
        tick_seconds: float | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.directory = DirectoryCache()
        self.scheduler = TokenRefreshScheduler(adapter, self.directory, tick_seconds, clock)
        self.bootstrap = CredentialBootstrap(
            adapter, self.directory, self.scheduler, local_storage, platform_secret
        )
        self.mutations = DirectoryMutations(adapter, self.directory, self.scheduler)

    async def close(self) -> None:
        """Stop the refresh loop."""
        await self.scheduler.stop()
        logger.debug("Vault session closed")

    async def __aenter__(self) -> VaultSession:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
