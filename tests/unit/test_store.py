"""
Unit tests for the in-process realtime tree.
"""

import pytest

from guardian.errors import WriteError
from guardian.store import CONNECTED_PATH, SERVER_TIMESTAMP, ListenerGroup


@pytest.mark.unit
class TestTreeWrites:
    """Test set, update and remove semantics."""

    async def test_set_then_get(self, parent_store):
        await parent_store.set("families/f1/childStatus", {"online": True, "battery": 80})

        assert await parent_store.get("families/f1/childStatus/battery") == 80
        assert await parent_store.get("families/f1") == {"childStatus": {"online": True, "battery": 80}}

    async def test_missing_path_reads_none(self, parent_store):
        assert await parent_store.get("families/nope") is None

    async def test_set_none_removes_and_prunes(self, parent_store):
        await parent_store.set("families/f1/logs/1", {"message": "hi"})
        await parent_store.remove("families/f1/logs/1")

        assert await parent_store.get("families/f1") is None

    async def test_update_merges_fields(self, parent_store):
        await parent_store.set("families/f1/childStatus", {"online": True})
        await parent_store.update("families/f1/childStatus", {"battery": 55})

        assert await parent_store.get("families/f1/childStatus") == {"online": True, "battery": 55}

    async def test_update_with_none_deletes_field(self, parent_store):
        await parent_store.set("families/f1/childStatus", {"online": True, "sos": True})
        await parent_store.update("families/f1/childStatus", {"sos": None})

        assert await parent_store.get("families/f1/childStatus") == {"online": True}

    async def test_root_update_is_one_commit(self, parent_store, database):
        before = database.commit

        await parent_store.update("", {
            "users/a": {"role": "parent"},
            "users/b": {"role": "child"},
            "families/f1/createdAt": 1,
        })

        assert database.commit == before + 1
        assert await parent_store.get("users/b/role") == "child"

    async def test_overlapping_update_keys_rejected(self, parent_store, database):
        before = database.commit

        with pytest.raises(ValueError):
            await parent_store.update("", {"users/a": {"x": 1}, "users/a/y": 2})

        assert database.commit == before
        assert await parent_store.get("users") is None

    async def test_reserved_characters_rejected(self, parent_store):
        with pytest.raises(ValueError):
            await parent_store.set("users/bad.key", 1)

    async def test_server_timestamp_resolved_on_write(self, parent_store, clock):
        await parent_store.set("families/f1/childStatus/lastSeen", SERVER_TIMESTAMP)

        assert await parent_store.get("families/f1/childStatus/lastSeen") == clock.now

    async def test_write_while_disconnected_fails(self, child_store):
        await child_store.drop()

        with pytest.raises(WriteError):
            await child_store.set("families/f1/x", 1)


@pytest.mark.unit
class TestSubscriptions:
    """Test snapshot delivery."""

    async def test_current_value_delivered_immediately(self, parent_store):
        await parent_store.set("families/f1/childLocation", {"lat": 1})
        seen = []

        await parent_store.subscribe("families/f1/childLocation", lambda snap: seen.append(snap.val()))

        assert seen == [{"lat": 1}]

    async def test_absent_value_delivered_as_none(self, parent_store):
        seen = []
        await parent_store.subscribe("families/f1/childLocation", lambda snap: seen.append(snap.exists()))
        assert seen == [False]

    async def test_other_client_writes_are_delivered(self, parent_store, child_store):
        seen = []
        await parent_store.subscribe("families/f1/childStatus", lambda snap: seen.append(snap.val()))

        await child_store.update("families/f1/childStatus", {"battery": 40})
        await child_store.set("families/f1/childStatus/sos", True)

        assert seen == [None, {"battery": 40}, {"battery": 40, "sos": True}]

    async def test_ancestor_write_is_delivered(self, parent_store, child_store):
        seen = []
        await parent_store.subscribe("families/f1/childStatus/sos", lambda snap: seen.append(snap.val()))

        await child_store.set("families/f1", {"childStatus": {"sos": True}})

        assert seen == [None, True]

    async def test_sibling_write_not_delivered(self, parent_store, child_store):
        seen = []
        await parent_store.subscribe("families/f1/childStatus", lambda snap: seen.append(snap.val()))

        await child_store.set("families/f1/commands", {"type": "VIBRATE"})

        assert seen == [None]

    async def test_unchanged_write_still_delivered(self, parent_store, child_store):
        seen = []
        await parent_store.subscribe("families/f1/childStatus/online", lambda snap: seen.append(snap.val()))

        await child_store.set("families/f1/childStatus/online", True)
        await child_store.set("families/f1/childStatus/online", True)

        assert seen == [None, True, True]

    async def test_unsubscribe_stops_delivery(self, parent_store):
        seen = []
        unsubscribe = await parent_store.subscribe("a", lambda snap: seen.append(snap.val()))
        unsubscribe()

        await parent_store.set("a", 1)

        assert seen == [None]

    async def test_snapshot_is_a_copy(self, parent_store):
        seen = []
        await parent_store.set("a", {"b": 1})
        await parent_store.subscribe("a", lambda snap: seen.append(snap.val()))

        seen[0]["b"] = 2

        assert await parent_store.get("a") == {"b": 1}

    async def test_failing_callback_does_not_reach_writer(self, parent_store, child_store):
        def explode(snapshot):
            raise RuntimeError("listener bug")

        await parent_store.subscribe("a", explode)
        await child_store.set("a", 1)

        assert await child_store.get("a") == 1

    async def test_async_callbacks_settle(self, parent_store, child_store, database):
        seen = []

        async def on_value(snapshot):
            seen.append(snapshot.val())

        await parent_store.subscribe("a", on_value)
        await child_store.set("a", 1)
        await database.settle()

        assert seen == [None, 1]


@pytest.mark.unit
class TestConnectionState:
    """Test .info/connected and disconnect hooks."""

    async def test_connected_path_follows_connection(self, child_store):
        seen = []
        await child_store.subscribe(CONNECTED_PATH, lambda snap: seen.append(snap.val()))

        await child_store.drop()
        await child_store.connect()

        assert seen == [True, False, True]

    async def test_reconnect_redelivers_data_subscriptions(self, parent_store, child_store):
        seen = []
        await child_store.subscribe("a", lambda snap: seen.append(snap.val()))

        await child_store.drop()
        await parent_store.set("a", 5)
        await child_store.connect()

        assert seen == [None, 5]

    async def test_hook_runs_on_drop_with_drop_time(self, child_store, parent_store, clock):
        await child_store.on_disconnect("families/f1/childStatus").update(
            {"online": False, "lastSeen": SERVER_TIMESTAMP}
        )
        clock.advance(30_000)

        await child_store.drop()

        status = await parent_store.get("families/f1/childStatus")
        assert status == {"online": False, "lastSeen": clock.now}

    async def test_hook_runs_once(self, child_store, parent_store, database):
        await child_store.on_disconnect("a").set("gone")
        await child_store.drop()
        await parent_store.set("a", "back")

        await child_store.connect()
        await child_store.drop()

        assert await parent_store.get("a") == "back"
        assert database.hooks_for(child_store.client_id) == {}

    async def test_reregistration_replaces_hook(self, child_store, database):
        hook = child_store.on_disconnect("families/f1/childStatus")
        await hook.update({"online": False})
        await hook.update({"online": False, "lastSeen": SERVER_TIMESTAMP})

        hooks = database.hooks_for(child_store.client_id)
        assert list(hooks) == ["families/f1/childStatus"]
        assert hooks["families/f1/childStatus"][1]["lastSeen"] == SERVER_TIMESTAMP

    async def test_cancelled_hook_does_not_run(self, child_store, parent_store):
        hook = child_store.on_disconnect("a")
        await hook.set("gone")
        await hook.cancel()

        await child_store.drop()

        assert await parent_store.get("a") is None

    async def test_close_runs_hooks(self, child_store, parent_store):
        await child_store.on_disconnect("a").remove()
        await parent_store.set("a", 1)

        await child_store.close()

        assert await parent_store.get("a") is None

    async def test_hook_needs_connection(self, child_store):
        await child_store.drop()

        with pytest.raises(WriteError):
            await child_store.on_disconnect("a").set(1)


@pytest.mark.unit
class TestListenerGroup:

    def test_close_detaches_everything_once(self):
        calls = []
        group = ListenerGroup()
        group.add(lambda: calls.append("a"))
        group.add(lambda: calls.append("b"))

        group.close()
        group.close()

        assert calls == ["b", "a"]
        assert len(group) == 0

    def test_failing_handle_does_not_stop_others(self):
        calls = []
        group = ListenerGroup()
        group.add(lambda: calls.append("a"))
        group.add(lambda: 1 / 0)

        group.close()

        assert calls == ["a"]
