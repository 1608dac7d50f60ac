"""Deferred execution queue, optionally driven by a scheduler.

``flush`` runs a snapshot of the queue: the live queue is emptied before any
callback runs, so work enqueued during a flush waits for the next one and a
nested ``flush`` returns immediately.
"""

from __future__ import annotations

import logging
from typing import Callable

from keyflux.emitter import EventEmitter
from keyflux.errors import FlushError, collect
from keyflux.events import QueueEvent, SchedulerEvent
from keyflux.scheduler import Scheduler, SchedulerType, create_scheduler

logger = logging.getLogger("keyflux.queue")

Callback = Callable[[], None]


class EventQueue:
    """Ordered list of zero-argument callbacks, flushed in batches.

    With a scheduler, the empty -> non-empty transition arms it and its FLUSH
    event drains the queue. Without one, call ``flush()`` yourself.
    """

    def __init__(self, scheduler: Scheduler | SchedulerType | None = None, **scheduler_options) -> None:
        if isinstance(scheduler, str):
            scheduler = create_scheduler(scheduler, **scheduler_options)
        elif scheduler_options:
            raise TypeError("scheduler options require a scheduler type, not an instance")
        self.emitter: EventEmitter[QueueEvent] = EventEmitter()
        self._queue: list[Callback] = []
        self._scheduler = scheduler
        if scheduler is not None:
            scheduler.on(SchedulerEvent.FLUSH, self.flush)

    @property
    def scheduler(self) -> Scheduler | None:
        return self._scheduler

    def enqueue(self, fn: Callback) -> None:
        """Append fn. A scheduler that cannot arm leaves the queue as it was."""
        self._queue.append(fn)
        if self._scheduler is not None and len(self._queue) == 1:
            try:
                self._scheduler.schedule()
            except Exception:
                self._queue.pop()
                raise

    def flush(self) -> None:
        """Run every callback queued so far.

        Failures do not stop the batch. They are raised together as a
        ``FlushError`` once every callback of the snapshot has run.
        """
        if not self._queue:
            return
        batch = self._queue
        self._queue = []
        logger.debug("flushing %d callbacks", len(batch))

        errors: list[Exception] = []
        self._run(lambda: self.emitter.emit(QueueEvent.BEFORE_FLUSH), errors)
        for fn in batch:
            self._run(fn, errors)
        self._run(lambda: self.emitter.emit(QueueEvent.AFTER_FLUSH), errors)

        if errors:
            raise FlushError(f"{len(errors)} callback(s) failed during flush", errors)

    @staticmethod
    def _run(fn: Callback, errors: list[Exception]) -> None:
        try:
            fn()
        except Exception as exc:
            collect(errors, exc)

    @property
    def length(self) -> int:
        return len(self._queue)

    @property
    def is_empty(self) -> bool:
        return not self._queue

    def __len__(self) -> int:
        return len(self._queue)

    def clear(self) -> None:
        """Drop queued callbacks without running them and cancel any pending flush."""
        self._queue.clear()
        if self._scheduler is not None:
            self._scheduler.cancel()

    def destroy(self) -> None:
        if self._scheduler is not None:
            self._scheduler.off(SchedulerEvent.FLUSH, self.flush)
        self.clear()
        self.emitter.off_all()

    def __repr__(self) -> str:
        return f"EventQueue(length={len(self._queue)}, scheduler={self._scheduler!r})"
