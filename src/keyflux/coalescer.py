"""Coalescers — fold raw change events into one pending key set per cycle.

A coalescer listens to a source's UPDATE event and accumulates the touched
keys. The first non-empty batch after a clear emits ``HAS_CHANGES``; later
batches only grow the set until ``clear_updated_keys`` starts a new cycle.

The pending set is itself a ``ManualIndex`` holding one bucket under
``UPDATED_KEYS_INDEX_KEY``, so callers can inject an index of their own.
"""

from __future__ import annotations

from typing import Generic, Hashable, Iterable, TypeVar

from keyflux.emitter import EventEmitter
from keyflux.errors import FlushError, collect
from keyflux.events import (
    CoalescerEvent,
    CollectionEvent,
    CollectionUpdate,
    IndexEvent,
    IndexUpdate,
)
from keyflux.index import ManualIndex

K = TypeVar("K", bound=Hashable)

UPDATED_KEYS_INDEX_KEY = "__updated_keys__"


class ChangeCoalescer(Generic[K]):
    """Base coalescer. Subclasses wire ``_add_updated_keys`` to a source."""

    def __init__(self, index: ManualIndex[str, K] | None = None) -> None:
        self.emitter: EventEmitter[CoalescerEvent] = EventEmitter()
        self._updated = index if index is not None else ManualIndex()
        if not self._updated.has_key(UPDATED_KEYS_INDEX_KEY):
            self._updated.set_pks(UPDATED_KEYS_INDEX_KEY, ())
        self._has_emitted = False
        self._destroyed = False

    def get_updated_keys(self) -> tuple[K, ...]:
        """Keys changed since the last clear, in first-touch order."""
        return self._updated.get_pks(UPDATED_KEYS_INDEX_KEY)

    @property
    def has_changes(self) -> bool:
        return self._updated.get_key_size(UPDATED_KEYS_INDEX_KEY) > 0

    def clear_updated_keys(self) -> None:
        """End the cycle: BEFORE_FLUSH, empty the set, AFTER_FLUSH.

        The set is emptied and AFTER_FLUSH fires even when a BEFORE_FLUSH
        listener fails; listener failures are raised together afterwards.
        """
        if not self.has_changes:
            self._has_emitted = False
            return
        errors: list[Exception] = []
        try:
            self.emitter.emit(CoalescerEvent.BEFORE_FLUSH)
        except Exception as exc:
            collect(errors, exc)
        self._updated.set_pks(UPDATED_KEYS_INDEX_KEY, ())
        self._has_emitted = False
        try:
            self.emitter.emit(CoalescerEvent.AFTER_FLUSH)
        except Exception as exc:
            collect(errors, exc)
        if errors:
            raise FlushError(f"{len(errors)} flush listener(s) failed", errors)

    def destroy(self) -> None:
        if self._destroyed:
            return
        self._destroyed = True
        self._detach()
        self.emitter.off_all()
        self._updated.destroy()
        self._has_emitted = False

    def _add_updated_keys(self, keys: Iterable[K]) -> None:
        self._updated.add_pks(UPDATED_KEYS_INDEX_KEY, keys)
        if not self._has_emitted and self.has_changes:
            self._has_emitted = True
            try:
                self.emitter.emit(CoalescerEvent.HAS_CHANGES)
            except Exception:
                # keys stay pending; the next batch signals again
                self._has_emitted = False
                raise

    def _detach(self) -> None:
        raise NotImplementedError


class CollectionCoalescer(ChangeCoalescer[K]):
    """Tracks primary keys touched by a collection.

    Takes the collection's emitter rather than the collection itself.
    """

    def __init__(
        self,
        collection_emitter: EventEmitter[CollectionEvent],
        index: ManualIndex[str, K] | None = None,
    ) -> None:
        super().__init__(index)
        self._source = collection_emitter
        self._source.on(CollectionEvent.UPDATE, self._handle_update)

    def _handle_update(self, payload: CollectionUpdate[K]) -> None:
        self._add_updated_keys(payload.pks)

    def _detach(self) -> None:
        self._source.off(CollectionEvent.UPDATE, self._handle_update)


class IndexCoalescer(ChangeCoalescer[K]):
    """Tracks index keys touched by an index."""

    def __init__(
        self,
        index_emitter: EventEmitter[IndexEvent],
        index: ManualIndex[str, K] | None = None,
    ) -> None:
        super().__init__(index)
        self._source = index_emitter
        self._source.on(IndexEvent.UPDATE, self._handle_update)

    def _handle_update(self, payload: IndexUpdate[K]) -> None:
        self._add_updated_keys(payload.keys)

    def _detach(self) -> None:
        self._source.off(IndexEvent.UPDATE, self._handle_update)
