"""Tests for the snapshot broadcast and the directory cache."""

import asyncio

import pytest

from totp_vault.models.service import decode_service_map
from totp_vault.services.broadcast import SnapshotChannel
from totp_vault.services.directory import DirectoryCache

from conftest import service_payload


def _services(*ids):
    return decode_service_map({sid: service_payload(sid) for sid in ids})


@pytest.mark.asyncio
async def test_subscribers_receive_full_snapshots():
    cache = DirectoryCache()
    sub = cache.subscribe()

    cache.replace(_services("a", "b"))
    cache.remove("a")

    assert set(await sub.next()) == {"a", "b"}
    assert set(await sub.next()) == {"b"}


@pytest.mark.asyncio
async def test_late_subscriber_gets_no_replay():
    cache = DirectoryCache()
    cache.replace(_services("a"))

    late = cache.subscribe()

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(late.next(), 0.05)
    assert set(cache.snapshot()) == {"a"}


@pytest.mark.asyncio
async def test_snapshot_is_a_copy():
    cache = DirectoryCache()
    cache.replace(_services("a"))

    snapshot = cache.snapshot()
    snapshot.clear()

    assert len(cache) == 1
    assert "a" in cache


@pytest.mark.asyncio
async def test_failure_terminates_channel_and_opens_a_fresh_one():
    cache = DirectoryCache()
    cache.replace(_services("a"))
    old = cache.subscribe()

    cache.fail(RuntimeError("store unreachable"))

    with pytest.raises(RuntimeError, match="store unreachable"):
        await old.next()
    # the cached map survives a channel failure
    assert set(cache.snapshot()) == {"a"}

    fresh = cache.subscribe()
    cache.replace(_services("a", "b"))
    assert set(await fresh.next()) == {"a", "b"}


def test_patch_requires_existing_entry():
    cache = DirectoryCache()
    cache.replace(_services("a"))
    patched = cache.get("a").with_display(name="renamed")

    cache.patch(patched)
    assert cache.get("a").name == "renamed"

    with pytest.raises(KeyError):
        cache.patch(_services("zzz")["zzz"])


@pytest.mark.asyncio
async def test_closed_subscription_stops_iteration():
    channel: SnapshotChannel[int] = SnapshotChannel("numbers")
    sub = channel.subscribe()
    channel.publish(1)
    channel.close()

    received = [value async for value in sub]

    assert received == [1]
    assert channel.closed
    with pytest.raises(RuntimeError):
        channel.publish(2)


@pytest.mark.asyncio
async def test_unsubscribe():
    channel: SnapshotChannel[int] = SnapshotChannel("numbers")
    sub = channel.subscribe()

    sub.close()
    channel.publish(1)

    assert channel.subscriber_count == 0
    with pytest.raises(StopAsyncIteration):
        await sub.next()
