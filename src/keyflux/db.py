"""Database — one shared queue for a group of reactive collections and indexes.

Each database owns its scheduler and queue, so independent databases (one per
test, one per screen) never see each other's flushes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from keyflux.collection import EntityUpdater, PkSelector
from keyflux.comparators import ComparisonPolicy, PkComparator
from keyflux.queue import EventQueue
from keyflux.reactive import ReactiveCollection, ReactiveIndex
from keyflux.scheduler import Scheduler, SchedulerType

logger = logging.getLogger("keyflux.db")


@dataclass(frozen=True, slots=True)
class DatabaseMetrics:
    queue_length: int
    scheduler: str
    collections: int
    indexes: int


class Database:
    """Factory and lifecycle owner for reactive collections and indexes."""

    def __init__(self, scheduler: Scheduler | SchedulerType = "microtask", **scheduler_options) -> None:
        self.queue = EventQueue(scheduler, **scheduler_options)
        self._collections: list[ReactiveCollection] = []
        self._indexes: list[ReactiveIndex] = []
        self._destroyed = False

    @property
    def scheduler(self) -> Scheduler:
        return self.queue.scheduler

    def create_collection(
        self,
        *,
        select_pk: PkSelector | None = None,
        update_entity: EntityUpdater | None = None,
    ) -> ReactiveCollection:
        self._check_alive()
        collection = ReactiveCollection(
            self.queue, select_pk=select_pk, update_entity=update_entity
        )
        self._collections.append(collection)
        return collection

    def create_index(
        self, *, comparison: ComparisonPolicy | PkComparator | None = None
    ) -> ReactiveIndex:
        """Create an index. comparison suppresses no-op ``set`` calls (see keyflux.comparators)."""
        self._check_alive()
        index = ReactiveIndex(self.queue, compare_pks=comparison)
        self._indexes.append(index)
        return index

    def flush(self) -> None:
        """Deliver pending notifications now, without waiting for the scheduler."""
        self.queue.flush()

    def get_metrics(self) -> DatabaseMetrics:
        return DatabaseMetrics(
            queue_length=self.queue.length,
            scheduler=type(self.scheduler).__name__,
            collections=len(self._collections),
            indexes=len(self._indexes),
        )

    def destroy(self) -> None:
        """Destroy every collection and index, then the queue. Idempotent."""
        if self._destroyed:
            return
        self._destroyed = True
        for collection in self._collections:
            collection.destroy()
        for index in self._indexes:
            index.destroy()
        logger.debug(
            "destroyed database: %d collections, %d indexes",
            len(self._collections), len(self._indexes),
        )
        self._collections.clear()
        self._indexes.clear()
        self.queue.destroy()

    def _check_alive(self) -> None:
        if self._destroyed:
            raise RuntimeError("database has been destroyed")

    def __enter__(self) -> Database:
        return self

    def __exit__(self, *exc_info) -> None:
        self.destroy()

    def __repr__(self) -> str:
        state = "destroyed" if self._destroyed else f"queue={self.queue.length}"
        return f"Database({type(self.scheduler).__name__}, {state})"


def create_db(scheduler: Scheduler | SchedulerType = "microtask", **scheduler_options) -> Database:
    """Create a database whose collections and indexes share one queue.

    Usage:
        db = create_db(scheduler="sync")
        users = db.create_collection()
        calls = []

        users.subscribe("u1", lambda: calls.append(users.get("u1")))
        users.upsert({"id": "u1", "name": "Ada"})
        users.upsert({"id": "u1", "role": "admin"})

        db.flush()
        # calls == [{"id": "u1", "name": "Ada", "role": "admin"}]
    """
    return Database(scheduler, **scheduler_options)
