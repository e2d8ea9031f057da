"""Tests for the CredentialBootstrap — unlock by password and by stored credential."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from totp_vault.backend.brandfetch import BrandfetchClient
from totp_vault.backend.vault import VaultBackend
from totp_vault.commands.base import GET_SERVICES_TOKENS
from totp_vault.commands.local_adapter import LocalCommandAdapter
from totp_vault.errors import BiometricDenied, BiometricUnavailable, UnlockFailed
from totp_vault.services.bootstrap import UnlockState
from totp_vault.services.local_storage import ENCRYPTED_PASSWORD_KEY
from totp_vault.services.platform_secret import STORE_PASSWORD_OPTIONS, DeviceKeyPlatformSecret
from totp_vault.services.session import VaultSession

from conftest import GITHUB_ID, GITHUB_URI


async def _seed(vault_path, password: str) -> None:
    """Write a vault holding one service, as an earlier run would have."""
    backend = VaultBackend(vault_path, iterations=1_000, brands=BrandfetchClient(client_id=""))
    await backend.setup_storage_keys(password)
    await backend.add_service(GITHUB_URI)


@pytest_asyncio.fixture
async def session(adapter, local_storage, device_key):
    async with VaultSession(
        adapter, local_storage, DeviceKeyPlatformSecret(device_key), tick_seconds=0.01
    ) as sess:
        yield sess


# ──────────────────────────────────────────────────────────
# Manual unlock
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_empty_vault_needs_onboarding(session, adapter):
    assert session.bootstrap.state is UnlockState.LOCKED

    result = await session.bootstrap.unlock("hunter2")

    assert session.bootstrap.state is UnlockState.UNLOCKED
    assert result.needs_onboarding
    assert result.offer_credential_storage
    assert len(session.directory) == 0
    assert not session.scheduler.running
    assert GET_SERVICES_TOKENS not in adapter.commands


@pytest.mark.asyncio
async def test_unlock_with_services_starts_refresh(session, vault_path):
    await _seed(vault_path, "hunter2")

    result = await session.bootstrap.unlock("hunter2")

    assert result.service_count == 1
    assert not result.needs_onboarding
    assert list(session.directory) == [GITHUB_ID]
    assert session.scheduler.running
    assert set(session.scheduler.view()) == {GITHUB_ID}


@pytest.mark.asyncio
async def test_wrong_password(session, vault_path):
    await _seed(vault_path, "hunter2")
    sub = session.directory.subscribe()

    with pytest.raises(UnlockFailed, match="Couldn't open the services file"):
        await session.bootstrap.unlock("wrong")

    assert session.bootstrap.state is UnlockState.FAILED
    assert len(session.directory) == 0
    assert not session.scheduler.running
    assert await sub.next() == {}
    with pytest.raises(UnlockFailed):
        await sub.next()


@pytest.mark.asyncio
async def test_failed_attempt_then_success(session, vault_path):
    await _seed(vault_path, "hunter2")

    with pytest.raises(UnlockFailed):
        await session.bootstrap.unlock("wrong")
    result = await session.bootstrap.unlock("hunter2")

    assert session.bootstrap.state is UnlockState.UNLOCKED
    assert result.service_count == 1


@pytest.mark.asyncio
async def test_no_offer_without_platform_secret(adapter, local_storage):
    async with VaultSession(adapter, local_storage, DeviceKeyPlatformSecret("")) as sess:
        result = await sess.bootstrap.unlock("hunter2")

    assert not result.offer_credential_storage


# ──────────────────────────────────────────────────────────
# Stored unlock credential
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_store_credential_then_silent_unlock(
    session, vault_path, adapter, local_storage, device_key
):
    await _seed(vault_path, "hunter2")
    await session.bootstrap.unlock("hunter2")
    await session.bootstrap.store_credential("hunter2")

    assert await local_storage.has_item(ENCRYPTED_PASSWORD_KEY)
    assert await local_storage.get_item(ENCRYPTED_PASSWORD_KEY) != "hunter2"

    # next app start
    async with VaultSession(
        adapter, local_storage, DeviceKeyPlatformSecret(device_key), tick_seconds=0.01
    ) as restarted:
        result = await restarted.bootstrap.unlock_with_stored_credential()

        assert result is not None
        assert result.service_count == 1
        assert not result.offer_credential_storage
        assert restarted.bootstrap.state is UnlockState.UNLOCKED
        assert list(restarted.directory) == [GITHUB_ID]


@pytest.mark.asyncio
async def test_no_offer_once_credential_is_stored(session):
    await session.bootstrap.unlock("hunter2")
    await session.bootstrap.store_credential("hunter2")

    result = await session.bootstrap.unlock("hunter2")

    assert not result.offer_credential_storage


@pytest.mark.asyncio
async def test_store_credential_overwrites(session, local_storage):
    await session.bootstrap.store_credential("first")
    first = await local_storage.get_item(ENCRYPTED_PASSWORD_KEY)
    await session.bootstrap.store_credential("second")

    assert await local_storage.get_item(ENCRYPTED_PASSWORD_KEY) != first


@pytest.mark.asyncio
async def test_silent_unlock_without_credential(session, adapter):
    assert await session.bootstrap.unlock_with_stored_credential() is None
    assert session.bootstrap.state is UnlockState.LOCKED
    assert adapter.commands == []


@pytest.mark.asyncio
async def test_silent_unlock_denied(adapter, local_storage, device_key):
    await local_storage.set_item(ENCRYPTED_PASSWORD_KEY, "blob")
    refuse = AsyncMock(return_value=False)

    async with VaultSession(
        adapter, local_storage, DeviceKeyPlatformSecret(device_key, prompt=refuse)
    ) as sess:
        with pytest.raises(BiometricDenied):
            await sess.bootstrap.unlock_with_stored_credential()

        assert sess.bootstrap.state is UnlockState.FAILED
        assert adapter.commands == []


@pytest.mark.asyncio
async def test_silent_unlock_unavailable(adapter, local_storage):
    await local_storage.set_item(ENCRYPTED_PASSWORD_KEY, "blob")

    async with VaultSession(adapter, local_storage, DeviceKeyPlatformSecret("")) as sess:
        with pytest.raises(BiometricUnavailable):
            await sess.bootstrap.unlock_with_stored_credential()


@pytest.mark.asyncio
async def test_silent_unlock_with_stale_password(vault_path, local_storage, device_key):
    """A stored password that no longer opens the vault fails like a typed one."""
    await _seed(vault_path, "new-password")
    secret = DeviceKeyPlatformSecret(device_key)
    await local_storage.set_item(
        ENCRYPTED_PASSWORD_KEY, await secret.wrap("old-password", "r", STORE_PASSWORD_OPTIONS)
    )
    backend = VaultBackend(vault_path, iterations=1_000, brands=BrandfetchClient(client_id=""))

    async with VaultSession(LocalCommandAdapter(backend), local_storage, secret) as sess:
        with pytest.raises(UnlockFailed):
            await sess.bootstrap.unlock_with_stored_credential()
        assert sess.bootstrap.state is UnlockState.FAILED
