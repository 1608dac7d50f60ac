"""keyflux: in-memory reactive object store with batched per-key notifications."""

from importlib.metadata import version as _version

__version__ = _version("keyflux")

from keyflux.emitter import EventEmitter
from keyflux.events import (
    CoalescerEvent,
    CollectionEvent,
    CollectionUpdate,
    IndexEvent,
    IndexUpdate,
    QueueEvent,
    SchedulerEvent,
)
from keyflux.errors import FlushError, KeyfluxError, MissingPrimaryKeyError, SchedulerError
from keyflux.collection import Collection
from keyflux.index import ManualIndex
from keyflux.comparators import resolve_comparator
from keyflux.coalescer import (
    UPDATED_KEYS_INDEX_KEY,
    ChangeCoalescer,
    CollectionCoalescer,
    IndexCoalescer,
)
from keyflux.scheduler import (
    AnimationFrameScheduler,
    ImmediateScheduler,
    MicrotaskScheduler,
    Scheduler,
    SyncScheduler,
    TimeoutScheduler,
    create_scheduler,
)
from keyflux.queue import EventQueue
from keyflux.demux import SubscriptionDemux
from keyflux.reactive import ReactiveCollection, ReactiveIndex
from keyflux.db import Database, create_db
# keyflux.textual needs the textual extra and is not imported here

__all__ = [
    "EventEmitter",
    "CollectionEvent",
    "IndexEvent",
    "CoalescerEvent",
    "QueueEvent",
    "SchedulerEvent",
    "CollectionUpdate",
    "IndexUpdate",
    "KeyfluxError",
    "MissingPrimaryKeyError",
    "SchedulerError",
    "FlushError",
    "Collection",
    "ManualIndex",
    "resolve_comparator",
    "UPDATED_KEYS_INDEX_KEY",
    "ChangeCoalescer",
    "CollectionCoalescer",
    "IndexCoalescer",
    "Scheduler",
    "SyncScheduler",
    "MicrotaskScheduler",
    "AnimationFrameScheduler",
    "TimeoutScheduler",
    "ImmediateScheduler",
    "create_scheduler",
    "EventQueue",
    "SubscriptionDemux",
    "ReactiveCollection",
    "ReactiveIndex",
    "Database",
    "create_db",
]
