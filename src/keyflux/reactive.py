"""Reactive wrappers — a source wired to its coalescer and demux.

Both wrappers share the queue they are given, so everything built on one
queue is notified in the same flush.
"""

from __future__ import annotations

from typing import Generic, Hashable, Iterable, Sequence, TypeVar

from keyflux.coalescer import CollectionCoalescer, IndexCoalescer
from keyflux.collection import Collection, EntityUpdater, PkSelector
from keyflux.comparators import ComparisonPolicy, PkComparator
from keyflux.demux import KeyHandler, SubscriptionDemux, Unsubscribe
from keyflux.index import IndexMetrics, ManualIndex
from keyflux.queue import EventQueue

T = TypeVar("T")
PK = TypeVar("PK", bound=Hashable)
IK = TypeVar("IK", bound=Hashable)


class ReactiveCollection(Generic[T, PK]):
    """Collection whose changes are delivered per primary key."""

    def __init__(
        self,
        queue: EventQueue,
        *,
        select_pk: PkSelector | None = None,
        update_entity: EntityUpdater | None = None,
    ) -> None:
        self.collection: Collection[T, PK] = Collection(
            select_pk=select_pk, update_entity=update_entity
        )
        self.coalescer: CollectionCoalescer[PK] = CollectionCoalescer(self.collection.emitter)
        self.demux: SubscriptionDemux[PK] = SubscriptionDemux(self.coalescer, queue)

    def subscribe(self, pk: PK, handler: KeyHandler) -> Unsubscribe:
        return self.demux.subscribe_on_key(pk, handler)

    def subscribe_many(self, pks: Iterable[PK], handler: KeyHandler) -> Unsubscribe:
        return self.demux.subscribe_on_keys(pks, handler)

    def upsert(self, entity: T) -> None:
        self.collection.upsert_one(entity)

    def upsert_many(self, entities: Iterable[T]) -> None:
        self.collection.upsert_many(entities)

    def remove(self, entity: T) -> None:
        self.collection.remove_one(entity)

    def remove_many(self, entities: Iterable[T]) -> None:
        self.collection.remove_many(entities)

    def get(self, pk: PK) -> T | None:
        return self.collection.get_one_by_pk(pk)

    def get_many(self, pks: Iterable[PK]) -> dict[PK, T | None]:
        return self.collection.get_many_by_pks(pks)

    def destroy(self) -> None:
        self.demux.destroy()
        self.coalescer.destroy()
        self.collection.emitter.off_all()

    def __repr__(self) -> str:
        return f"ReactiveCollection({self.collection!r}, {self.demux!r})"


class ReactiveIndex(Generic[IK, PK]):
    """Manual index whose changes are delivered per index key."""

    def __init__(
        self,
        queue: EventQueue,
        *,
        index: ManualIndex[IK, PK] | None = None,
        compare_pks: ComparisonPolicy | PkComparator | None = None,
    ) -> None:
        if index is not None and compare_pks is not None:
            raise TypeError("pass either an index or compare_pks, not both")
        self.index: ManualIndex[IK, PK] = index if index is not None else ManualIndex(
            compare_pks=compare_pks
        )
        self.coalescer: IndexCoalescer[IK] = IndexCoalescer(self.index.emitter)
        self.demux: SubscriptionDemux[IK] = SubscriptionDemux(self.coalescer, queue)

    def subscribe(self, key: IK, handler: KeyHandler) -> Unsubscribe:
        return self.demux.subscribe_on_key(key, handler)

    def subscribe_many(self, keys: Iterable[IK], handler: KeyHandler) -> Unsubscribe:
        return self.demux.subscribe_on_keys(keys, handler)

    def set(self, key: IK, pks: Sequence[PK]) -> None:
        self.index.set_pks(key, pks)

    def add(self, key: IK, pks: Iterable[PK]) -> None:
        self.index.add_pks(key, pks)

    def remove(self, key: IK, pks: Iterable[PK]) -> None:
        self.index.remove_pks(key, pks)

    def clear(self, key: IK | None = None) -> None:
        self.index.clear(key)

    def get(self, key: IK) -> tuple[PK, ...]:
        return self.index.get_pks(key)

    def has(self, key: IK) -> bool:
        return self.index.has_key(key)

    def keys(self) -> tuple[IK, ...]:
        return self.index.get_keys()

    def get_metrics(self) -> IndexMetrics:
        return self.index.get_metrics()

    def destroy(self) -> None:
        self.demux.destroy()
        self.coalescer.destroy()
        self.index.destroy()

    def __repr__(self) -> str:
        return f"ReactiveIndex({self.index!r}, {self.demux!r})"
