"""Unit tests for the persistent store adapters.

Run with: pytest tests/test_store.py -v
"""

import asyncio
import json
from types import SimpleNamespace

import pytest

from shared.cache.redis_client import DistributedLock, LockTimeoutError
from shared.storage.redis_store import RedisStore
from shared.storage.store import (
    JsonFileStore,
    MemoryHub,
    MemoryStore,
    StoreChange,
    create_store,
)

DEFAULT = {"bookings": [], "zones": [], "events": []}


class TestLoadSave:
    """Tests for load/save on a single context."""

    async def test_round_trip(self, store):
        document = {"bookings": [{"id": 1, "userName": "Alice"}], "zones": [], "events": []}

        await store.save("k", document)

        assert await store.load("k", DEFAULT) == document

    async def test_missing_key_returns_copy_of_default(self, store):
        loaded = await store.load("missing", DEFAULT)
        loaded["bookings"].append("x")

        assert DEFAULT["bookings"] == []
        assert await store.exists("missing") is False

    @pytest.mark.parametrize("raw", ["{not json", "[1, 2]", "42", "null"])
    async def test_malformed_value_returns_default(self, store, hub, caplog, raw):
        hub.values["k"] = raw

        assert await store.load("k", DEFAULT) == DEFAULT
        assert "MALFORMED_STORE" in caplog.text


class TestChangeFeed:
    """Tests for MemoryHub notifications between contexts."""

    async def test_save_notifies_other_contexts_only(self, hub):
        a, b = MemoryStore(hub), MemoryStore(hub)
        seen_a, seen_b = [], []
        a.subscribe(seen_a.append)
        b.subscribe(seen_b.append)

        await a.save("k", {"v": 1})

        assert seen_a == []
        assert len(seen_b) == 1
        assert seen_b[0].key == "k"
        assert json.loads(seen_b[0].new_value) == {"v": 1}
        assert seen_b[0].origin == a.origin

    async def test_stale_read_until_delivery(self):
        """A context keeps its cached copy until the notification arrives."""
        hub = MemoryHub(auto_deliver=False)
        a, b = MemoryStore(hub), MemoryStore(hub)

        await a.save("k", {"v": 1})
        assert await b.load("k", {}) == {"v": 1}

        await a.save("k", {"v": 2})
        assert await b.load("k", {}) == {"v": 1}

        delivered = await hub.deliver_pending()

        assert delivered == 2
        assert await b.load("k", {}) == {"v": 2}

    async def test_unsubscribe(self, hub):
        a, b = MemoryStore(hub), MemoryStore(hub)
        seen = []
        unsubscribe = b.subscribe(seen.append)

        unsubscribe()
        await a.save("k", {"v": 1})

        assert seen == []

    async def test_failing_listener_does_not_block_others(self, hub, caplog):
        a, b = MemoryStore(hub), MemoryStore(hub)
        seen = []

        def broken(change):
            raise RuntimeError("boom")

        b.subscribe(broken)
        b.subscribe(seen.append)

        await a.save("k", {"v": 1})

        assert len(seen) == 1
        assert "boom" in caplog.text

    async def test_mirror_does_not_notify(self, hub):
        a, b = MemoryStore(hub), MemoryStore(hub)
        seen = []
        b.subscribe(seen.append)

        await a.mirror("k", json.dumps({"v": 1}))

        assert seen == []
        assert a.peek("k") == json.dumps({"v": 1})
        assert "k" not in hub.values


class TestJsonFileStore:
    """Tests for JsonFileStore."""

    async def test_round_trip_writes_one_file_per_key(self, tmp_path):
        store = JsonFileStore(str(tmp_path))

        assert await store.exists("moodCafeBookings") is False
        await store.save("moodCafeBookings", {"bookings": []})

        assert await store.load("moodCafeBookings", DEFAULT) == {"bookings": []}
        assert sorted(p.name for p in tmp_path.iterdir()) == ["moodCafeBookings.json"]

    async def test_corrupt_file_returns_default(self, tmp_path):
        (tmp_path / "k.json").write_text("{oops", encoding="utf-8")
        store = JsonFileStore(str(tmp_path))

        assert await store.load("k", DEFAULT) == DEFAULT

    async def test_file_io_runs_in_worker_thread(self, tmp_path, monkeypatch):
        calls = []
        to_thread = asyncio.to_thread

        async def recording_to_thread(func, *args):
            calls.append(func.__name__)
            return await to_thread(func, *args)

        monkeypatch.setattr("shared.storage.store.asyncio.to_thread", recording_to_thread)
        store = JsonFileStore(str(tmp_path))

        await store.save("k", {"v": 1})
        await store.mirror("k", json.dumps({"v": 2}))
        assert await store.load("k", DEFAULT) == {"v": 2}

        assert calls == ["_replace", "_replace", "_read"]


class TestCreateStore:
    """Tests for create_store."""

    def test_memory_backend(self):
        assert isinstance(create_store(SimpleNamespace(STORE_BACKEND="memory")), MemoryStore)

    def test_file_backend(self, tmp_path):
        store = create_store(SimpleNamespace(STORE_BACKEND="file", DATA_DIR=str(tmp_path)))

        assert isinstance(store, JsonFileStore)

    def test_redis_backend(self):
        store = create_store(SimpleNamespace(STORE_BACKEND="redis", REDIS_CHANGES_CHANNEL="changes"))

        assert isinstance(store, RedisStore)
        assert store.channel == "changes"

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            create_store(SimpleNamespace(STORE_BACKEND="sqlite"))


class TestRedisStore:
    """Tests for RedisStore without a Redis server."""

    async def test_save_sets_and_publishes_envelope(self, fake_redis):
        client = fake_redis
        store = RedisStore(channel="changes", client=client)

        await store.save("k", {"v": 1})

        assert json.loads(client.values["k"]) == {"v": 1}
        channel, message = client.published[0]
        envelope = json.loads(message)
        assert channel == "changes"
        assert envelope["key"] == "k"
        assert envelope["origin"] == store.origin
        assert json.loads(envelope["value"]) == {"v": 1}

    async def test_remote_envelope_invalidates_cache_and_notifies(self, fake_redis):
        client = fake_redis
        store = RedisStore(channel="changes", client=client)
        seen = []
        store.subscribe(seen.append)
        await store.save("k", {"v": 1})

        client.values["k"] = json.dumps({"v": 2})
        await store.handle_envelope(json.dumps({"key": "k", "value": client.values["k"], "origin": "other"}))

        assert seen == [StoreChange(key="k", new_value=json.dumps({"v": 2}), origin="other")]
        assert await store.load("k", {}) == {"v": 2}

    async def test_own_envelope_is_ignored(self, fake_redis):
        store = RedisStore(channel="changes", client=fake_redis)
        seen = []
        store.subscribe(seen.append)

        await store.handle_envelope(json.dumps({"key": "k", "value": "{}", "origin": store.origin}))

        assert seen == []

    async def test_invalid_envelope_is_logged(self, fake_redis, caplog):
        store = RedisStore(channel="changes", client=fake_redis)
        seen = []
        store.subscribe(seen.append)

        await store.handle_envelope("not json")

        assert seen == []
        assert "SYNC_PARSE_FAILURE" in caplog.text

    async def test_lock_rereads_from_redis(self, fake_redis):
        store = RedisStore(channel="changes", client=fake_redis)
        await store.save("k", {"v": 1})
        fake_redis.values["k"] = json.dumps({"v": 2})

        assert await store.load("k", {}) == {"v": 1}
        async with store.lock("k"):
            assert "lock:k" in fake_redis.values
            assert await store.load("k", {}) == {"v": 2}
        assert "lock:k" not in fake_redis.values


class TestDistributedLock:
    """Tests for the SET NX lock."""

    async def test_second_holder_waits_for_release(self, fake_redis):
        order = []

        async def hold(name):
            async with DistributedLock("k", client=fake_redis, retry_interval=0.01):
                order.append(f"{name}:in")
                await asyncio.sleep(0.05)
                order.append(f"{name}:out")

        await asyncio.gather(hold("a"), hold("b"))

        assert order == ["a:in", "a:out", "b:in", "b:out"]

    async def test_timeout_raises(self, fake_redis):
        fake_redis.values["lock:k"] = "someone-else"

        with pytest.raises(LockTimeoutError):
            async with DistributedLock("k", client=fake_redis, timeout=0.05, retry_interval=0.01):
                pass

    async def test_release_only_removes_own_lock(self, fake_redis):
        lock = DistributedLock("k", client=fake_redis)
        assert await lock.acquire()
        fake_redis.values["lock:k"] = "someone-else"

        await lock.release()

        assert fake_redis.values["lock:k"] == "someone-else"

    async def test_memory_store_lock_is_a_no_op(self, store):
        async with store.lock("k"):
            await store.save("k", {"v": 1})

        assert await store.load("k", {}) == {"v": 1}
