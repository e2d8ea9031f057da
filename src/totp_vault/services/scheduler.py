"""Token refresh scheduler — keeps the one-time codes and countdowns fresh."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from totp_vault.commands.base import GET_SERVICES_TOKENS, CommandAdapter, CommandError
from totp_vault.config import settings
from totp_vault.errors import TokenRefreshFailed
from totp_vault.models.service import PayloadError, TotpToken, decode_token_map
from totp_vault.services.broadcast import SnapshotChannel, Subscription
from totp_vault.services.directory import DirectoryCache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenDisplay:
    """What the list shows for one service at one tick."""

    code: str
    next_step_time: datetime
    remaining: int


TokenView = dict[str, TokenDisplay]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class TokenRefreshScheduler:
    """Fetches the token set and runs the countdown that refreshes it.

    Flow
    ----
    1. :meth:`restart` cancels any running tick loop, fetches every
       service's token from the store and starts a new loop.
    2. Each tick recomputes ``round(expiry - now)`` per service and
       publishes the resulting :data:`TokenView`.
    3. As soon as the smallest remaining time is negative the loop
       fetches the token set again, without waiting for a restart.

    Only one tick loop is alive at a time; its task handle is owned here
    and every restart or stop holds the lifecycle lock while it swaps it.
    Tokens whose service is no longer in the directory are never shown.
    """

    def __init__(
        self,
        adapter: CommandAdapter,
        directory: DirectoryCache,
        tick_seconds: float | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._adapter = adapter
        self._directory = directory
        self._tick_seconds = tick_seconds or settings.token_tick_seconds
        self._clock = clock or _utcnow
        self._task: asyncio.Task | None = None
        self._lifecycle = asyncio.Lock()
        self._tokens: dict[str, TotpToken] = {}
        self._view: TokenView = {}
        self._channel: SnapshotChannel[TokenView] = SnapshotChannel("tokens")

    # ── Reading ──────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def view(self) -> TokenView:
        """The token view computed at the last tick, limited to live services."""
        return {sid: shown for sid, shown in self._view.items() if sid in self._directory}

    def subscribe(self) -> Subscription[TokenView]:
        return self._channel.subscribe()

    # ── Lifecycle ────────────────────────────────────────

    async def restart(self) -> None:
        """Stop the current loop, fetch fresh tokens and start a new loop.

        With an empty directory nothing is fetched and no loop runs.

        Raises
        ------
        TokenRefreshFailed
            The store could not produce the token set; no loop is running.
        """
        async with self._lifecycle:
            await self._cancel_loop()
            if not len(self._directory):
                self._tokens = {}
                self._recompute()
                return

            await self._fetch()
            self._recompute()
            self._task = asyncio.create_task(self._tick_loop(), name="token-refresh")
            logger.debug("Token refresh loop started (%d token(s))", len(self._tokens))

    async def stop(self) -> None:
        """Cancel the tick loop, if any, and wait for it to finish."""
        async with self._lifecycle:
            await self._cancel_loop()

    def forget(self, service_id: str) -> None:
        """Drop a deleted service's token right away."""
        self._tokens.pop(service_id, None)
        self._view.pop(service_id, None)

    # ── Private helpers ──────────────────────────────────

    async def _cancel_loop(self) -> None:
        # caller holds self._lifecycle
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.debug("Token refresh loop stopped")

    async def _fetch(self) -> None:
        try:
            payload = await self._adapter.invoke(GET_SERVICES_TOKENS)
            self._tokens = decode_token_map(payload)
        except (CommandError, PayloadError) as exc:
            error = TokenRefreshFailed(f"Couldn't load the current tokens: {exc}")
            self._channel.fail(error)
            self._channel = SnapshotChannel("tokens")
            raise error from exc

    def _recompute(self) -> float:
        """Refresh the view; returns the smallest remaining time."""
        now = self._clock()
        minimum = math.inf
        view: TokenView = {}
        for service_id, token in self._tokens.items():
            if service_id not in self._directory:
                continue
            remaining = round((token.next_step_time - now).total_seconds())
            minimum = min(minimum, remaining)
            view[service_id] = TokenDisplay(token.code, token.next_step_time, remaining)
        self._view = view
        self._channel.publish(view)
        return minimum

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self._tick_seconds)
            if self._recompute() >= 0:
                continue
            logger.debug("A token expired, fetching a fresh set")
            try:
                await self._fetch()
            except TokenRefreshFailed as exc:
                logger.error("Token refresh stopped: %s", exc.detail)
                return
            self._recompute()
