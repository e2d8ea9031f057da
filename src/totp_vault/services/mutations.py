"""Directory mutation flows — add, update, delete and icon repair."""

from __future__ import annotations

import asyncio
import logging

from totp_vault.commands.base import (
    ADD_SERVICE,
    GET_SERVICE_ICON,
    REMOVE_SERVICE,
    UPDATE_SERVICE,
    CommandAdapter,
    CommandError,
)
from totp_vault.errors import (
    IconFetchFailed,
    InvalidServiceUri,
    MutationFailed,
    TokenRefreshFailed,
)
from totp_vault.models.service import PayloadError, Service, decode_service_map
from totp_vault.services.directory import DirectoryCache
from totp_vault.services.scheduler import TokenRefreshScheduler

logger = logging.getLogger(__name__)


class DirectoryMutations:
    """Changes the directory through the store, one flow at a time.

    A failed flow leaves the cached directory as it was, except for the
    two local-only edits: clearing a broken icon and the optimistic
    removal done by :meth:`delete`.
    """

    def __init__(
        self,
        adapter: CommandAdapter,
        directory: DirectoryCache,
        scheduler: TokenRefreshScheduler,
    ) -> None:
        self._adapter = adapter
        self._directory = directory
        self._scheduler = scheduler
        self._lock = asyncio.Lock()
        self._icon_loading: set[str] = set()

    async def add(self, totp_uri: str) -> Service:
        """Add a service from a provisioning URI (typed or scanned).

        The store signals a bad URI only by not growing the map, so the
        add counts as successful exactly when the returned map is larger
        than the current one.  A resubmitted URI looks the same as a
        malformed one.
        """
        async with self._lock:
            before = self._directory.snapshot()
            try:
                payload = await self._adapter.invoke(ADD_SERVICE, {"totpUri": totp_uri})
                services = decode_service_map(payload)
            except CommandError as exc:
                self._directory.fail(exc)
                raise InvalidServiceUri(f"Couldn't add this service: {exc.detail}") from exc
            except PayloadError as exc:
                self._directory.fail(exc)
                raise InvalidServiceUri(f"Couldn't add this service: {exc}") from exc

            if len(services) <= len(before):
                logger.info("Service rejected (%d → %d)", len(before), len(services))
                raise InvalidServiceUri("Couldn't add this service!")

            self._directory.replace(services)
            added = next(s for sid, s in services.items() if sid not in before)
            logger.info("Service added (%d total)", len(services))
            await self._refresh_tokens()
            return added

    async def update(
        self,
        service_id: str,
        *,
        name: str | None = None,
        issuer: str | None = None,
        icon: str | None = None,
    ) -> Service:
        """Edit a service's display fields; the entry is patched locally."""
        async with self._lock:
            current = self._directory.get(service_id)
            if current is None:
                raise MutationFailed("Service not found")

            updated = current.with_display(name=name, issuer=issuer, icon=icon)
            try:
                await self._adapter.invoke(UPDATE_SERVICE, {"service": updated.to_wire()})
            except CommandError as exc:
                raise MutationFailed(f"Couldn't update the service: {exc.detail}") from exc

            self._directory.patch(updated)
            logger.info("Service %s updated", service_id)
            return updated

    async def delete(self, service_id: str) -> None:
        """Delete a service, then refresh the token view."""
        async with self._lock:
            try:
                await self._adapter.invoke(REMOVE_SERVICE, {"serviceId": service_id})
            except CommandError as exc:
                self._directory.fail(exc)
                raise MutationFailed(f"Couldn't delete the service: {exc.detail}") from exc

            self._directory.remove(service_id)
            self._scheduler.forget(service_id)
            logger.info("Service %s deleted", service_id)
            await self._refresh_tokens()

    def mark_icon_broken(self, service_id: str) -> None:
        """Clear an icon that failed to render.  No store call is made."""
        service = self._directory.get(service_id)
        if service is None or not service.icon:
            return
        logger.info("Couldn't load service logo at: %s", service.icon)
        self._directory.patch(service.with_display(icon=""))

    async def fetch_icon(self, service_id: str) -> str | None:
        """Ask the store for a fresh icon.

        Returns ``None`` without calling the store when a fetch for the
        same service is already in progress.
        """
        if service_id in self._icon_loading:
            return None
        self._icon_loading.add(service_id)
        try:
            icon = await self._adapter.invoke(GET_SERVICE_ICON, {"serviceId": service_id})
        except CommandError as exc:
            self._set_icon(service_id, "")
            raise IconFetchFailed(f"Couldn't fetch the service icon: {exc.detail}") from exc
        finally:
            self._icon_loading.discard(service_id)

        if not isinstance(icon, str):
            self._set_icon(service_id, "")
            raise IconFetchFailed("Couldn't fetch the service icon: unexpected result")
        self._set_icon(service_id, icon)
        return icon

    # ── Private helpers ──────────────────────────────────

    def _set_icon(self, service_id: str, icon: str) -> None:
        service = self._directory.get(service_id)
        if service is not None and service.icon != icon:
            self._directory.patch(service.with_display(icon=icon))

    async def _refresh_tokens(self) -> None:
        try:
            await self._scheduler.restart()
        except TokenRefreshFailed as exc:
            # already delivered to token subscribers
            logger.warning("Token refresh after mutation failed: %s", exc.detail)
