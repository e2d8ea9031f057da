"""Shared fixtures and fakes for the vault engine tests."""

from __future__ import annotations

import asyncio
import base64
import inspect
import os
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from totp_vault.backend.brandfetch import BrandfetchClient
from totp_vault.backend.vault import VaultBackend
from totp_vault.commands.base import CommandAdapter, CommandError
from totp_vault.commands.local_adapter import LocalCommandAdapter
from totp_vault.models.preference import Base
from totp_vault.services.local_storage import LocalStorage

GITHUB_URI = (
    "otpauth://totp/GitHub:constantoine@github.com"
    "?secret=KRSXG5CTMVRXEZLUKN2XAZLSKNSWG4TFOQ&issuer=GitHub"
)
GITHUB_ID = "GitHubconstantoine@github.com"
GOOGLE_URI = "otpauth://totp/Google:alice@example.com?secret=JBSWY3DPEHPK3PXP&issuer=Google"
GOOGLE_ID = "Googlealice@example.com"
MALFORMED_URI = "this is not an otpauth uri"


def service_payload(service_id: str, **overrides: Any) -> dict[str, Any]:
    """A wire-shaped service as the store would return it."""
    payload = {
        "id": service_id,
        "issuer": "Issuer",
        "name": service_id,
        "secret": "JBSWY3DPEHPK3PXP",
        "algorithm": "SHA1",
        "digits": 6,
        "period": 30,
        "icon": "",
    }
    payload.update(overrides)
    return payload


class ManualClock:
    """A clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)

    def epoch(self, offset: float = 0) -> int:
        return int(self.now.timestamp() + offset)


class FakeAdapter(CommandAdapter):
    """Adapter whose results come from per-command handlers.

    A handler receives the args dict and returns the result (or an
    awaitable of it); it may raise ``CommandError``.
    """

    def __init__(self, timeout: float | None = None) -> None:
        super().__init__(timeout)
        self.handlers: dict[str, Callable[[dict[str, Any]], Any]] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def on(self, command: str, handler: Callable[[dict[str, Any]], Any]) -> None:
        self.handlers[command] = handler

    def fail(self, command: str, detail: str = "boom") -> None:
        def _raise(args: dict[str, Any]) -> Any:
            raise CommandError(command, detail)

        self.handlers[command] = _raise

    def count(self, command: str) -> int:
        return sum(1 for name, _ in self.calls if name == command)

    async def _send(self, command: str, args: dict[str, Any]) -> Any:
        self.calls.append((command, args))
        result = self.handlers[command](args)
        if inspect.isawaitable(result):
            result = await result
        return result


class RecordingAdapter(CommandAdapter):
    """Passes commands through to another adapter and records their names."""

    def __init__(self, inner: CommandAdapter) -> None:
        super().__init__(None)
        self._inner = inner
        self.commands: list[str] = []

    async def _send(self, command: str, args: dict[str, Any]) -> Any:
        self.commands.append(command)
        return await self._inner.invoke(command, args)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll *predicate* on the event loop until it holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def device_key() -> str:
    return base64.b64encode(os.urandom(32)).decode()


@pytest.fixture
def vault_path(tmp_path):
    return tmp_path / "vault.bin"


@pytest.fixture
def vault(vault_path) -> VaultBackend:
    """Backend with a cheap KDF and brand lookups disabled."""
    return VaultBackend(vault_path, iterations=1_000, brands=BrandfetchClient(client_id=""))


@pytest.fixture
def adapter(vault) -> RecordingAdapter:
    return RecordingAdapter(LocalCommandAdapter(vault))


@pytest_asyncio.fixture
async def local_storage():
    """LocalStorage over a fresh in-memory database."""
    engine = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield LocalStorage(async_sessionmaker(engine, expire_on_commit=False))
    await engine.dispose()
