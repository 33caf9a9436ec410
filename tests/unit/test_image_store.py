import asyncio
import re

import pytest

import image_store
from image_store import ImageStore, new_image_id, run_cleanup_loop


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_new_image_id_is_timestamp_prefixed():
    image_id = new_image_id(now=1_700_000_000.123)
    assert re.fullmatch(r"1700000000123-[0-9a-z]{9}", image_id)


def test_put_and_get():
    store = ImageStore()
    image_id = store.put(b"jpeg-bytes")
    assert store.get(image_id) == b"jpeg-bytes"
    assert image_id in store
    assert len(store) == 1


def test_get_accepts_jpg_suffix():
    store = ImageStore()
    image_id = store.put(b"data")
    assert store.get(f"{image_id}.jpg") == b"data"
    assert f"{image_id}.jpg" in store


def test_get_unknown_returns_none():
    assert ImageStore().get("123-abc") is None


def test_evict_expired_drops_only_old_entries():
    clock = FakeClock()
    store = ImageStore(ttl_seconds=3600, clock=clock)
    old = store.put(b"old")
    clock.now += 1800
    fresh = store.put(b"fresh")
    clock.now += 1801

    assert store.evict_expired() == [old]
    assert store.get(old) is None
    assert store.get(fresh) == b"fresh"


def test_entry_at_exact_ttl_is_kept():
    clock = FakeClock()
    store = ImageStore(ttl_seconds=60, clock=clock)
    image_id = store.put(b"x")
    assert store.evict_expired(now=clock.now + 60) == []
    assert image_id in store


def test_cleanup_loop_evicts_until_cancelled():
    calls = []

    class Store:
        def evict_expired(self):
            calls.append(1)

    async def scenario():
        task = asyncio.create_task(run_cleanup_loop(Store(), interval=0.01))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())
    assert len(calls) >= 1


def test_default_ttl_comes_from_settings():
    assert ImageStore().ttl_seconds == image_store.settings.IMAGE_TTL_SECONDS
