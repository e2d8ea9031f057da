"""Service directory cache — the single in-memory ``id → Service`` map."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping

from totp_vault.models.service import Service
from totp_vault.services.broadcast import SnapshotChannel, Subscription

logger = logging.getLogger(__name__)

Directory = dict[str, Service]


class DirectoryCache:
    """Authoritative copy of the unlocked directory.

    Every change publishes the complete resulting map (never a delta) to
    the current channel.  Late subscribers get nothing until the next
    change, so :meth:`snapshot` is the way to read the current state.

    The cache has a single writer: the bootstrap and mutation flows,
    which run one at a time on the event loop.
    """

    def __init__(self) -> None:
        self._services: Directory = {}
        self._channel: SnapshotChannel[Directory] = SnapshotChannel("directory")

    # ── Reading ──────────────────────────────────────────

    def snapshot(self) -> Directory:
        """Return a copy of the current map."""
        return dict(self._services)

    def get(self, service_id: str) -> Service | None:
        return self._services.get(service_id)

    def subscribe(self) -> Subscription[Directory]:
        return self._channel.subscribe()

    def __len__(self) -> int:
        return len(self._services)

    def __contains__(self, service_id: object) -> bool:
        return service_id in self._services

    def __iter__(self) -> Iterator[str]:
        return iter(self._services)

    # ── Writing ──────────────────────────────────────────

    def replace(self, services: Mapping[str, Service]) -> None:
        """Swap the whole map for a backend snapshot."""
        self._services = dict(services)
        logger.debug("Directory replaced (%d service(s))", len(self._services))
        self._publish()

    def patch(self, service: Service) -> None:
        """Replace one existing entry with a locally edited copy."""
        if service.id not in self._services:
            raise KeyError(service.id)
        self._services = {**self._services, service.id: service}
        self._publish()

    def remove(self, service_id: str) -> None:
        services = dict(self._services)
        services.pop(service_id, None)
        self._services = services
        self._publish()

    def clear(self) -> None:
        self._services = {}
        self._publish()

    def fail(self, error: BaseException) -> None:
        """End the current channel with *error* and open a fresh one.

        The cached map itself is left untouched.
        """
        logger.warning("Directory channel terminated: %s", error)
        self._channel.fail(error)
        self._channel = SnapshotChannel("directory")

    def _publish(self) -> None:
        self._channel.publish(self.snapshot())
