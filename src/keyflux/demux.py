"""Per-key subscriptions fed by a coalescer and flushed through a queue.

When the coalescer reports changes, the demux enqueues one ``process_flush``.
That flush snapshots the changed keys, closes the coalescer's cycle and calls
each handler subscribed to any of those keys exactly once, in
key-then-registration order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Generic, Hashable, Iterable, TypeVar

from keyflux.coalescer import ChangeCoalescer
from keyflux.emitter import EventEmitter
from keyflux.errors import FlushError, collect
from keyflux.events import CoalescerEvent
from keyflux.queue import EventQueue

K = TypeVar("K", bound=Hashable)

KeyHandler = Callable[[], None]
Unsubscribe = Callable[[], None]

logger = logging.getLogger("keyflux.demux")


@dataclass(frozen=True, slots=True)
class DemuxMetrics:
    total_keys: int
    total_handlers: int
    average_handlers_per_key: float
    queue_length: int


class SubscriptionDemux(Generic[K]):
    """Fan a coalesced change set out to per-key handlers."""

    def __init__(self, coalescer: ChangeCoalescer[K], queue: EventQueue) -> None:
        self._coalescer = coalescer
        self._queue = queue
        # one bucket per subscribed key
        self._handlers: EventEmitter[K] = EventEmitter()
        self._coalescer.emitter.on(CoalescerEvent.HAS_CHANGES, self._handle_has_changes)

    def _handle_has_changes(self) -> None:
        self._queue.enqueue(self.process_flush)

    def process_flush(self) -> None:
        """Notify handlers of every key changed in the current cycle."""
        updated = self._coalescer.get_updated_keys()
        errors: list[Exception] = []
        # Close the cycle first: mutations made by handlers open the next one.
        try:
            self._coalescer.clear_updated_keys()
        except Exception as exc:
            collect(errors, exc)
        if not updated:
            return

        # handler -> the updated keys it was found under, in first-seen order
        keys_by_handler: dict[KeyHandler, list[K]] = {}
        for key in updated:
            for handler in self._handlers.iter_listeners(key):
                keys_by_handler.setdefault(handler, []).append(key)
        logger.debug(
            "%d keys changed, notifying %d handlers", len(updated), len(keys_by_handler)
        )

        for handler, keys in keys_by_handler.items():
            # skip handlers unsubscribed by an earlier handler of this flush
            if not any(self._handlers.has_listener(key, handler) for key in keys):
                continue
            try:
                handler()
            except Exception as exc:
                collect(errors, exc)
        if errors:
            raise FlushError(f"{len(errors)} callback(s) failed during demux flush", errors)

    # --- Subscriptions ---

    def subscribe_on_key(self, key: K, handler: KeyHandler) -> Unsubscribe:
        self._handlers.on(key, handler)
        return lambda: self.unsubscribe_from_key(key, handler)

    def subscribe_on_keys(self, keys: Iterable[K], handler: KeyHandler) -> Unsubscribe:
        """Subscribe handler to every key. The returned callable undoes only what this call added."""
        added: list[K] = []
        for key in keys:
            if not self._handlers.has_listener(key, handler):
                self._handlers.on(key, handler)
                added.append(key)
        return lambda: self.unsubscribe_from_keys(added, handler)

    def unsubscribe_from_key(self, key: K, handler: KeyHandler) -> None:
        self._handlers.off(key, handler)

    def unsubscribe_from_keys(self, keys: Iterable[K], handler: KeyHandler) -> None:
        for key in keys:
            self._handlers.off(key, handler)

    def off_all(self) -> None:
        self._handlers.off_all()

    def destroy(self) -> None:
        self._coalescer.emitter.off(CoalescerEvent.HAS_CHANGES, self._handle_has_changes)
        self._handlers.off_all()

    # --- Observability ---

    def has_subscriptions(self) -> bool:
        return len(self._handlers) > 0

    def get_handler_count(self, key: K) -> int:
        return self._handlers.listener_count(key)

    def get_metrics(self) -> DemuxMetrics:
        keys = self._handlers.events()
        total = sum(self._handlers.listener_count(k) for k in keys)
        return DemuxMetrics(
            total_keys=len(keys),
            total_handlers=total,
            average_handlers_per_key=total / len(keys) if keys else 0.0,
            queue_length=self._queue.length,
        )

    def __repr__(self) -> str:
        return f"SubscriptionDemux(keys={len(self._handlers)})"
