"""Per-event publish/subscribe with O(1) add/remove and reentrant emission.

Each event owns a bucket: an ordered list of handler slots, a
handler -> slot lookup, a tombstone counter and an emission depth counter.
``off`` only tombstones a slot, so a running ``emit`` is never disturbed;
the bucket is compacted (rebuilt) or dropped once no emission is in flight.
"""

from __future__ import annotations

from typing import Callable, Generic, Hashable, Iterator, TypeVar

E = TypeVar("E", bound=Hashable)

Handler = Callable[..., None]


class _Bucket:
    __slots__ = ("handlers", "index_by_handler", "tombstones", "emitting")

    def __init__(self) -> None:
        self.handlers: list[Handler | None] = []
        self.index_by_handler: dict[Handler, int] = {}
        self.tombstones = 0
        self.emitting = 0

    def compact(self) -> None:
        live = [h for h in self.handlers if h is not None]
        self.handlers = live
        self.index_by_handler = {h: i for i, h in enumerate(live)}
        self.tombstones = 0


class EventEmitter(Generic[E]):
    """Publish/subscribe keyed by event.

    Handlers run in registration order. A handler registered during an emit
    is not called by that emit; a handler removed during an emit is skipped
    if its slot has not been reached yet.
    """

    __slots__ = ("_buckets",)

    def __init__(self) -> None:
        self._buckets: dict[E, _Bucket] = {}

    def on(self, event: E, handler: Handler) -> None:
        """Register handler for event. Registering twice is a no-op."""
        bucket = self._buckets.get(event)
        if bucket is None:
            bucket = self._buckets[event] = _Bucket()
        elif handler in bucket.index_by_handler:
            return
        bucket.index_by_handler[handler] = len(bucket.handlers)
        bucket.handlers.append(handler)

    def off(self, event: E, handler: Handler) -> None:
        """Remove handler from event. Unknown handlers are ignored."""
        bucket = self._buckets.get(event)
        if bucket is None:
            return
        index = bucket.index_by_handler.pop(handler, None)
        if index is None:
            return
        bucket.handlers[index] = None
        bucket.tombstones += 1
        if bucket.emitting == 0:
            self._cleanup(event, bucket)

    def emit(self, event: E, *args) -> None:
        """Call every live handler registered when emission starts."""
        bucket = self._buckets.get(event)
        if bucket is None:
            return
        handlers = bucket.handlers
        length = len(handlers)
        if length == 0:
            return

        bucket.emitting += 1
        try:
            for i in range(length):
                handler = handlers[i]
                if handler is not None:
                    handler(*args)
        finally:
            bucket.emitting -= 1
            if bucket.emitting == 0 and bucket.tombstones:
                self._cleanup(event, bucket)

    def off_all(self, event: E | None = None) -> None:
        """Drop one event's handlers, or every handler when event is None."""
        if event is not None:
            bucket = self._buckets.pop(event, None)
            if bucket is not None:
                self._retire(bucket)
            return
        buckets, self._buckets = self._buckets, {}
        for bucket in buckets.values():
            self._retire(bucket)

    # --- Observers ---

    def listeners(self, event: E) -> tuple[Handler, ...]:
        """Snapshot of live handlers for event, in registration order."""
        bucket = self._buckets.get(event)
        if bucket is None:
            return ()
        return tuple(h for h in bucket.handlers if h is not None)

    def iter_listeners(self, event: E) -> Iterator[Handler]:
        """Iterate live handlers without copying. Do not mutate while iterating."""
        bucket = self._buckets.get(event)
        if bucket is None:
            return iter(())
        return (h for h in bucket.handlers if h is not None)

    def listener_count(self, event: E) -> int:
        bucket = self._buckets.get(event)
        return len(bucket.index_by_handler) if bucket is not None else 0

    def has_listeners(self, event: E) -> bool:
        return self.listener_count(event) > 0

    def has_listener(self, event: E, handler: Handler) -> bool:
        bucket = self._buckets.get(event)
        return bucket is not None and handler in bucket.index_by_handler

    def events(self) -> tuple[E, ...]:
        """Events that currently have at least one live handler."""
        return tuple(e for e, b in self._buckets.items() if b.index_by_handler)

    def __len__(self) -> int:
        """Number of events with at least one live handler."""
        return sum(1 for b in self._buckets.values() if b.index_by_handler)

    # --- Internals ---

    def _cleanup(self, event: E, bucket: _Bucket) -> None:
        length = len(bucket.handlers)
        if bucket.tombstones >= length:
            # Only drop the bucket we own; off_all may have replaced it.
            if self._buckets.get(event) is bucket:
                del self._buckets[event]
        elif bucket.tombstones * 2 >= length:
            bucket.compact()

    @staticmethod
    def _retire(bucket: _Bucket) -> None:
        """Stop a dropped bucket from calling anything in an emit still running on it."""
        if bucket.emitting:
            for i in range(len(bucket.handlers)):
                bucket.handlers[i] = None
        bucket.index_by_handler.clear()

    def __repr__(self) -> str:
        return f"EventEmitter(events={len(self)})"
