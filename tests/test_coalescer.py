"""Tests for the collection and index coalescers."""

import pytest

from keyflux import (
    UPDATED_KEYS_INDEX_KEY,
    CoalescerEvent,
    Collection,
    CollectionCoalescer,
    CollectionEvent,
    FlushError,
    IndexCoalescer,
    ManualIndex,
)


def _signals(coalescer, event=CoalescerEvent.HAS_CHANGES):
    log = []
    coalescer.emitter.on(event, lambda: log.append(event))
    return log


class TestCollectionCoalescer:
    def test_tracks_updated_pks(self):
        c = Collection()
        co = CollectionCoalescer(c.emitter)
        c.upsert_one({"id": "a"})
        c.upsert_one({"id": "b"})
        assert co.get_updated_keys() == ("a", "b")

    def test_same_pk_counted_once(self):
        c = Collection()
        co = CollectionCoalescer(c.emitter)
        c.upsert_one({"id": "a", "v": 1})
        c.upsert_one({"id": "a", "v": 2})
        assert co.get_updated_keys() == ("a",)

    def test_has_changes_fires_once_per_cycle(self):
        c = Collection()
        co = CollectionCoalescer(c.emitter)
        log = _signals(co)
        for i in range(5):
            c.upsert_one({"id": f"k{i}"})
        assert len(log) == 1
        assert set(co.get_updated_keys()) == {f"k{i}" for i in range(5)}

    def test_clear_starts_new_cycle(self):
        c = Collection()
        co = CollectionCoalescer(c.emitter)
        log = _signals(co)
        c.upsert_one({"id": "a"})
        co.clear_updated_keys()
        assert co.get_updated_keys() == ()
        assert not co.has_changes
        c.upsert_one({"id": "a"})
        assert len(log) == 2

    def test_empty_batch_is_noop(self):
        c = Collection()
        co = CollectionCoalescer(c.emitter)
        log = _signals(co)
        c.emitter.emit(CollectionEvent.UPDATE, type("P", (), {"pks": ()})())
        c.remove_many_by_pks([])
        assert log == []
        assert co.get_updated_keys() == ()

    def test_clear_when_empty_is_silent(self):
        c = Collection()
        co = CollectionCoalescer(c.emitter)
        before = _signals(co, CoalescerEvent.BEFORE_FLUSH)
        co.clear_updated_keys()
        co.clear_updated_keys()
        assert before == []

    def test_returned_keys_are_snapshots(self):
        c = Collection()
        co = CollectionCoalescer(c.emitter)
        c.upsert_one({"id": "a"})
        keys = co.get_updated_keys()
        c.upsert_one({"id": "b"})
        assert keys == ("a",)

    def test_destroy_unsubscribes(self):
        c = Collection()
        co = CollectionCoalescer(c.emitter)
        log = _signals(co)
        co.destroy()
        c.upsert_one({"id": "a"})
        assert log == []
        assert co.get_updated_keys() == ()
        assert not c.emitter.has_listeners(CollectionEvent.UPDATE)
        co.destroy()  # idempotent


class TestFlushEvents:
    def test_before_flush_sees_pending_keys(self):
        c = Collection()
        co = CollectionCoalescer(c.emitter)
        seen = []
        co.emitter.on(CoalescerEvent.BEFORE_FLUSH, lambda: seen.append(("before", co.get_updated_keys())))
        co.emitter.on(CoalescerEvent.AFTER_FLUSH, lambda: seen.append(("after", co.get_updated_keys())))
        c.upsert_one({"id": "a"})
        co.clear_updated_keys()
        assert seen == [("before", ("a",)), ("after", ())]

    def test_failing_before_flush_still_clears(self):
        c = Collection()
        co = CollectionCoalescer(c.emitter)
        log = _signals(co)
        after = _signals(co, CoalescerEvent.AFTER_FLUSH)

        def boom():
            raise RuntimeError("snapshot failed")

        co.emitter.on(CoalescerEvent.BEFORE_FLUSH, boom)
        c.upsert_one({"id": "a"})
        with pytest.raises(FlushError) as info:
            co.clear_updated_keys()
        assert [type(e) for e in info.value.exceptions] == [RuntimeError]
        assert after == [CoalescerEvent.AFTER_FLUSH]
        assert co.get_updated_keys() == ()
        c.upsert_one({"id": "b"})
        assert len(log) == 2

    def test_failing_has_changes_signals_again(self):
        c = Collection()
        co = CollectionCoalescer(c.emitter)
        attempts = []

        def refuse():
            attempts.append(co.get_updated_keys())
            if len(attempts) == 1:
                raise RuntimeError("cannot schedule")

        co.emitter.on(CoalescerEvent.HAS_CHANGES, refuse)
        with pytest.raises(RuntimeError):
            c.upsert_one({"id": "a"})
        c.upsert_one({"id": "b"})
        assert attempts == [("a",), ("a", "b")]
        assert co.has_changes


class TestIndexCoalescer:
    def test_tracks_index_keys(self):
        idx = ManualIndex()
        co = IndexCoalescer(idx.emitter)
        log = _signals(co)
        idx.set_pks("x", [1])
        idx.add_pks("y", [2])
        idx.set_pks("x", [3])
        assert co.get_updated_keys() == ("x", "y")
        assert len(log) == 1

    def test_clear_all_keys(self):
        idx = ManualIndex()
        idx.set_pks("x", [1])
        idx.set_pks("y", [2])
        co = IndexCoalescer(idx.emitter)
        idx.clear()
        assert co.get_updated_keys() == ("x", "y")

    def test_comparator_suppression_keeps_cycle_closed(self):
        idx = ManualIndex(compare_pks="set-based")
        idx.set_pks("k", [1, 2, 3])
        co = IndexCoalescer(idx.emitter)
        log = _signals(co)
        idx.set_pks("k", [3, 2, 1])
        assert log == []
        assert co.get_updated_keys() == ()

    def test_injected_pending_index(self):
        pending = ManualIndex()
        idx = ManualIndex()
        co = IndexCoalescer(idx.emitter, pending)
        idx.set_pks("x", [1])
        assert pending.get_pks(UPDATED_KEYS_INDEX_KEY) == ("x",)
        co.clear_updated_keys()
        assert pending.get_pks(UPDATED_KEYS_INDEX_KEY) == ()

    def test_destroy(self):
        idx = ManualIndex()
        co = IndexCoalescer(idx.emitter)
        co.destroy()
        idx.set_pks("x", [1])
        assert co.get_updated_keys() == ()
