"""Credential bootstrap — turns a password into an unlocked directory session."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum

from totp_vault.commands.base import SETUP_STORAGE_KEYS, CommandAdapter, CommandError
from totp_vault.errors import BiometricError, TokenRefreshFailed, UnlockFailed
from totp_vault.models.service import PayloadError, decode_service_map
from totp_vault.services.directory import DirectoryCache
from totp_vault.services.local_storage import ENCRYPTED_PASSWORD_KEY, LocalStorage
from totp_vault.services.platform_secret import (
    STORE_PASSWORD_OPTIONS,
    STORE_PASSWORD_REASON,
    UNLOCK_OPTIONS,
    UNLOCK_REASON,
    PlatformSecret,
)
from totp_vault.services.scheduler import TokenRefreshScheduler

logger = logging.getLogger(__name__)


class UnlockState(StrEnum):
    LOCKED = "locked"
    UNLOCKING = "unlocking"
    UNLOCKED = "unlocked"
    FAILED = "failed"


@dataclass
class UnlockResult:
    """Outcome of a successful unlock."""

    service_count: int
    offer_credential_storage: bool = False

    @property
    def needs_onboarding(self) -> bool:
        """An empty vault: the user should add a first service."""
        return self.service_count == 0


class CredentialBootstrap:
    """Unlocks the store and seeds the directory.

    Flow
    ----
    1. ``Locked → Unlocking`` on a typed password (:meth:`unlock`) or on a
       stored unlock credential (:meth:`unlock_with_stored_credential`),
       which is first unwrapped by the platform secret.
    2. ``setup_storage_keys`` is invoked with the plaintext password.
    3. Success → ``Unlocked``: the directory is replaced by the returned
       map and, if it isn't empty, token refresh starts.
    4. Any failure → ``Failed`` with an empty directory and no refresh.
    """

    def __init__(
        self,
        adapter: CommandAdapter,
        directory: DirectoryCache,
        scheduler: TokenRefreshScheduler,
        local_storage: LocalStorage,
        platform_secret: PlatformSecret,
    ) -> None:
        self._adapter = adapter
        self._directory = directory
        self._scheduler = scheduler
        self._local_storage = local_storage
        self._platform_secret = platform_secret
        self.state = UnlockState.LOCKED

    async def has_stored_credential(self) -> bool:
        return await self._local_storage.has_item(ENCRYPTED_PASSWORD_KEY)

    async def unlock(self, password: str) -> UnlockResult:
        """Unlock with a password typed by the user."""
        return await self._unlock(password, manual=True)

    async def unlock_with_stored_credential(self) -> UnlockResult | None:
        """Try a silent unlock with the stored credential.

        Returns ``None`` when nothing is stored.  A platform failure is
        re-raised as is (``BiometricUnavailable`` / ``BiometricDenied``);
        asking for the password instead is up to the caller.
        """
        blob = await self._local_storage.get_item(ENCRYPTED_PASSWORD_KEY)
        if blob is None:
            return None

        self.state = UnlockState.UNLOCKING
        try:
            password = await self._platform_secret.unwrap(blob, UNLOCK_REASON, UNLOCK_OPTIONS)
        except BiometricError as exc:
            self.state = UnlockState.FAILED
            logger.warning("Silent unlock aborted: %s", exc.detail)
            raise
        return await self._unlock(password, manual=False)

    async def store_credential(self, password: str) -> None:
        """Wrap *password* with the platform secret and persist it.

        Overwrites any credential stored before.
        """
        blob = await self._platform_secret.wrap(
            password, STORE_PASSWORD_REASON, STORE_PASSWORD_OPTIONS
        )
        await self._local_storage.set_item(ENCRYPTED_PASSWORD_KEY, blob)
        logger.info("Unlock credential stored")

    # ── Private helpers ──────────────────────────────────

    async def _unlock(self, password: str, *, manual: bool) -> UnlockResult:
        self.state = UnlockState.UNLOCKING
        await self._scheduler.stop()

        try:
            payload = await self._adapter.invoke(SETUP_STORAGE_KEYS, {"userPass": password})
            services = decode_service_map(payload)
        except (CommandError, PayloadError) as exc:
            detail = exc.detail if isinstance(exc, CommandError) else str(exc)
            error = UnlockFailed(f"Couldn't open the services file: {detail}")
            self.state = UnlockState.FAILED
            self._directory.clear()
            self._directory.fail(error)
            logger.info("Unlock failed: %s", detail)
            raise error from exc

        self.state = UnlockState.UNLOCKED
        self._directory.replace(services)
        logger.info("Unlocked with %d service(s)", len(services))

        if services:
            try:
                await self._scheduler.restart()
            except TokenRefreshFailed as exc:
                logger.warning("Unlocked, but tokens are unavailable: %s", exc.detail)

        offer = (
            manual
            and self._platform_secret.available
            and not await self.has_stored_credential()
        )
        return UnlockResult(service_count=len(services), offer_credential_storage=offer)
