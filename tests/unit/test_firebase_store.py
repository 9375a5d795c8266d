"""
Unit tests for the Firebase Realtime Database store.

A fake ``db.Reference`` stands in for the Admin SDK. Like the real one it
fires listener events from whatever thread performed the write.
"""

import asyncio
import copy
from types import SimpleNamespace

import pytest
from firebase_admin import exceptions

from guardian.errors import NotConnected, WriteError
from guardian.store import CONNECTED_PATH, FirebaseStore, split_path
from guardian.store.firebase import apply_event


class FakeTree:

    def __init__(self):
        self.data = None
        self.listeners = []
        self.updates = []
        self.fail_writes = False

    def read(self, segments):
        node = self.data
        for segment in segments:
            if not isinstance(node, dict) or segment not in node:
                return None
            node = node[segment]
        return copy.deepcopy(node)

    def write(self, segments, value):
        self.data = apply_event(self.data, "put", "/".join(segments), value)
        for listener in list(self.listeners):
            listener.changed(segments)


class FakeRegistration:

    def __init__(self, tree, segments, callback):
        self.tree = tree
        self.segments = segments
        self.callback = callback
        self.closed = False

    def changed(self, written):
        if self.closed:
            return
        if written[:len(self.segments)] == self.segments:
            relative = written[len(self.segments):]
            self.fire("put", "/" + "/".join(relative), self.tree.read(written))
        elif self.segments[:len(written)] == written:
            self.fire("put", "/", self.tree.read(self.segments))

    def fire(self, event_type, path, data):
        self.callback(SimpleNamespace(event_type=event_type, path=path, data=data))

    def close(self):
        self.closed = True
        self.tree.listeners.remove(self)


class FakeReference:

    def __init__(self, tree, segments=()):
        self.tree = tree
        self.segments = list(segments)

    def child(self, path):
        return FakeReference(self.tree, self.segments + split_path(path))

    def get(self):
        return self.tree.read(self.segments)

    def set(self, value):
        if value is None:
            raise ValueError("Value must not be None.")
        if self.tree.fail_writes:
            raise exceptions.UnavailableError("database offline")
        self.tree.write(self.segments, value)

    def update(self, value):
        self.tree.updates.append((list(self.segments), value))
        for key, item in value.items():
            self.tree.write(self.segments + split_path(key), item)

    def delete(self):
        self.tree.write(self.segments, None)

    def listen(self, callback):
        registration = FakeRegistration(self.tree, self.segments, callback)
        self.tree.listeners.append(registration)
        registration.fire("put", "/", self.get())
        return registration


@pytest.fixture
def tree():
    return FakeTree()


@pytest.fixture
async def firebase_store(tree):
    store = FirebaseStore(root=FakeReference(tree))
    await store.connect()
    yield store
    await store.close()


async def flush(store):
    await asyncio.sleep(0)
    await store.settle()


@pytest.mark.unit
class TestApplyEvent:
    """Test folding listener events into a cached value."""

    def test_root_put_replaces(self):
        assert apply_event({"a": 1}, "put", "/", {"b": 2}) == {"b": 2}

    def test_nested_put(self):
        assert apply_event({"a": 1}, "put", "/x/y", 3) == {"a": 1, "x": {"y": 3}}

    def test_put_none_prunes_empty_branches(self):
        assert apply_event({"x": {"y": 3}}, "put", "/x/y", None) is None

    def test_patch_merges_fields(self):
        value = apply_event({"online": True, "battery": 50}, "patch", "/", {"online": False, "lastSeen": 9})

        assert value == {"online": False, "battery": 50, "lastSeen": 9}


@pytest.mark.unit
class TestFirebaseStoreData:
    """Test reads and writes through the Admin SDK reference."""

    async def test_set_get_remove(self, firebase_store):
        await firebase_store.set("families/f1/commands", {"type": "VIBRATE"})

        assert await firebase_store.get("families/f1/commands/type") == "VIBRATE"

        await firebase_store.remove("families/f1/commands")
        assert await firebase_store.get("families/f1") is None

    async def test_set_none_deletes(self, firebase_store):
        await firebase_store.set("a/b", 1)

        await firebase_store.set("a/b", None)

        assert await firebase_store.get("a") is None

    async def test_root_multi_path_update(self, firebase_store, tree):
        await firebase_store.update("", {"accounts/budi": {"role": "parent"}, "families/f1/parent": "budi"})

        assert tree.updates == [([], {"accounts/budi": {"role": "parent"}, "families/f1/parent": "budi"})]
        assert await firebase_store.get("families/f1/parent") == "budi"

    async def test_overlapping_update_rejected_before_writing(self, firebase_store, tree):
        with pytest.raises(ValueError):
            await firebase_store.update("", {"a": 1, "a/b": 2})

        assert tree.updates == []

    async def test_invalid_key_rejected(self, firebase_store):
        with pytest.raises(ValueError):
            await firebase_store.set("families/f.1", 1)

    async def test_sdk_error_becomes_write_error(self, firebase_store, tree):
        tree.fail_writes = True

        with pytest.raises(WriteError):
            await firebase_store.set("a", 1)

    async def test_writes_need_connect(self, tree):
        store = FirebaseStore(root=FakeReference(tree))

        with pytest.raises(NotConnected):
            await store.set("a", 1)


@pytest.mark.unit
class TestFirebaseStoreSubscriptions:
    """Test listener events delivered as full snapshots."""

    async def test_initial_snapshot_then_changes(self, firebase_store):
        await firebase_store.set("families/f1/childStatus", {"online": True, "battery": 80})
        seen = []

        await firebase_store.subscribe("families/f1/childStatus", lambda snap: seen.append(snap.val()))
        await flush(firebase_store)
        await firebase_store.update("families/f1/childStatus", {"battery": 40})
        await flush(firebase_store)

        assert seen == [{"online": True, "battery": 80}, {"online": True, "battery": 40}]

    async def test_ancestor_write_redelivers(self, firebase_store):
        seen = []
        await firebase_store.subscribe("families/f1/commands", lambda snap: seen.append(snap.val()))
        await flush(firebase_store)

        await firebase_store.set("families/f1", {"commands": {"type": "VIBRATE"}})
        await flush(firebase_store)

        assert seen == [None, {"type": "VIBRATE"}]

    async def test_unsubscribe_closes_listener(self, firebase_store, tree):
        seen = []
        unsubscribe = await firebase_store.subscribe("a", lambda snap: seen.append(snap.val()))
        await flush(firebase_store)

        unsubscribe()
        await firebase_store.set("a", 1)
        await flush(firebase_store)

        for _ in range(100):
            if not tree.listeners:
                break
            await asyncio.sleep(0.01)
        assert seen == [None]
        assert tree.listeners == []

    async def test_connected_follows_open_and_close(self, tree):
        store = FirebaseStore(root=FakeReference(tree))
        seen = []

        await store.subscribe(CONNECTED_PATH, lambda snap: seen.append(snap.val()))
        await store.connect()
        await store.close()

        assert seen == [False, True, False]

    async def test_disconnect_hooks_unsupported(self, firebase_store):
        hook = firebase_store.on_disconnect("families/f1/childStatus")

        with pytest.raises(WriteError):
            await hook.update({"online": False})
        await hook.cancel()
