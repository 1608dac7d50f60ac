"""Schedulers — decide when a queued flush actually runs.

A scheduler is armed with ``schedule()`` and fires once by emitting
``SchedulerEvent.FLUSH``. ``schedule()`` is a no-op while armed and
``cancel()`` is a no-op while disarmed; the armed flag is dropped before
FLUSH is emitted so work enqueued during the flush arms it again.

Async variants run on an asyncio event loop (the one passed in, else the
running one). Without a loop, the timer variants fall back to a
``threading.Timer`` that hands the flush to ``call_from_thread`` (e.g.
Textual's ``App.call_from_thread``) so it runs on the owning thread. With
neither, ``schedule()`` raises ``SchedulerError``.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Callable, Literal

from keyflux.emitter import EventEmitter, Handler
from keyflux.errors import SchedulerError
from keyflux.events import SchedulerEvent

logger = logging.getLogger("keyflux.scheduler")

SchedulerType = Literal["sync", "microtask", "animation_frame", "timeout", "immediate"]

FRAME_INTERVAL = 1 / 60

ThreadMarshal = Callable[[Callable[[], None]], Any]
FrameRequester = Callable[[Callable[[], None]], Any]


class Scheduler:
    """Base scheduler: owns the FLUSH event and the armed token."""

    def __init__(self) -> None:
        self._emitter: EventEmitter[SchedulerEvent] = EventEmitter()
        # identity of the current arming; None when disarmed
        self._token: object | None = None

    @property
    def pending(self) -> bool:
        return self._token is not None

    def schedule(self) -> None:
        if self._token is not None:
            return
        token = self._token = object()
        try:
            self._arm(token)
        except BaseException:
            self._token = None
            raise
        logger.debug("%s armed", type(self).__name__)

    def cancel(self) -> None:
        if self._token is None:
            return
        self._token = None
        self._disarm()
        logger.debug("%s cancelled", type(self).__name__)

    def on(self, event: SchedulerEvent, handler: Handler) -> None:
        self._emitter.on(event, handler)

    def off(self, event: SchedulerEvent, handler: Handler) -> None:
        self._emitter.off(event, handler)

    def _fire(self, token: object) -> None:
        """Timer callback. Stale tokens belong to a cancelled arming."""
        if token is not self._token:
            return
        self._token = None
        self._forget()
        self._emitter.emit(SchedulerEvent.FLUSH)

    def _arm(self, token: object) -> None:
        raise NotImplementedError

    def _disarm(self) -> None:
        """Release the native handle of a cancelled arming."""

    def _forget(self) -> None:
        """Drop the native handle of an arming that just fired."""

    def __repr__(self) -> str:
        state = "pending" if self.pending else "idle"
        return f"{type(self).__name__}({state})"


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class SyncScheduler(Scheduler):
    """Never fires on its own. Call ``run()`` (or flush the queue) explicitly.

    Deterministic; meant for tests and for callers that own the flush point.
    """

    def _arm(self, token: object) -> None:
        pass

    def run(self) -> None:
        """Fire the pending flush now, if armed."""
        if self._token is not None:
            self._fire(self._token)


class _HandleScheduler(Scheduler):
    """Variant holding one cancellable native handle (asyncio handle or Timer)."""

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
        call_from_thread: ThreadMarshal | None = None,
    ) -> None:
        super().__init__()
        self._loop = loop
        self._call_from_thread = call_from_thread
        self._handle: asyncio.Handle | threading.Timer | None = None

    def _disarm(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _forget(self) -> None:
        self._handle = None

    def _start_timer(self, token: object, delay: float) -> None:
        """Arm a daemon timer whose callback hops back through call_from_thread.

        The flush itself never runs on the timer thread.
        """
        marshal = self._call_from_thread
        if marshal is None:
            raise SchedulerError(
                f"{type(self).__name__} needs an asyncio event loop or call_from_thread"
            )
        timer = threading.Timer(delay, marshal, args=[lambda: self._fire(token)])
        timer.daemon = True
        self._handle = timer
        timer.start()


class MicrotaskScheduler(_HandleScheduler):
    """Fires at the end of the current synchronous turn of the event loop."""

    def __init__(self, *, loop: asyncio.AbstractEventLoop | None = None) -> None:
        super().__init__(loop=loop)

    def _arm(self, token: object) -> None:
        loop = _running_loop() or self._loop
        if loop is None:
            raise SchedulerError(
                "MicrotaskScheduler needs a running asyncio event loop or an explicit loop"
            )
        self._handle = loop.call_soon(self._fire, token)


class TimeoutScheduler(_HandleScheduler):
    """Fires after ``delay`` seconds (default 0)."""

    def __init__(
        self,
        delay: float = 0.0,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
        call_from_thread: ThreadMarshal | None = None,
    ) -> None:
        super().__init__(loop=loop, call_from_thread=call_from_thread)
        self.delay = max(0.0, float(delay))

    def _arm(self, token: object) -> None:
        loop = self._loop or _running_loop()
        if loop is not None:
            self._handle = loop.call_later(self.delay, self._fire, token)
        else:
            self._start_timer(token, self.delay)


class AnimationFrameScheduler(_HandleScheduler):
    """Fires on the next paint tick.

    ``request_frame(callback)`` hooks a UI toolkit's refresh cycle; without
    one the scheduler falls back to a timer at ``FRAME_INTERVAL``.
    """

    def __init__(
        self,
        *,
        request_frame: FrameRequester | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
        call_from_thread: ThreadMarshal | None = None,
    ) -> None:
        super().__init__(loop=loop, call_from_thread=call_from_thread)
        self._request_frame = request_frame

    def _arm(self, token: object) -> None:
        if self._request_frame is not None:
            # Frame requests cannot be revoked; a cancelled token fires as a no-op.
            self._request_frame(lambda: self._fire(token))
            return
        loop = self._loop or _running_loop()
        if loop is not None:
            self._handle = loop.call_later(FRAME_INTERVAL, self._fire, token)
        else:
            self._start_timer(token, FRAME_INTERVAL)


class ImmediateScheduler(_HandleScheduler):
    """Fastest available async tick.

    Tries, in order: the running loop's ``call_soon``, the bound loop's
    ``call_soon_threadsafe``, then a zero-delay timer marshaled through
    ``call_from_thread``.
    """

    def _arm(self, token: object) -> None:
        running = _running_loop()
        if running is not None:
            self._handle = running.call_soon(self._fire, token)
        elif self._loop is not None and not self._loop.is_closed():
            self._handle = self._loop.call_soon_threadsafe(self._fire, token)
        else:
            self._start_timer(token, 0.0)


def create_scheduler(kind: SchedulerType, **options) -> Scheduler:
    """Build a scheduler by tag. Options go to the variant's constructor."""
    match kind:
        case "sync":
            return SyncScheduler(**options)
        case "microtask":
            return MicrotaskScheduler(**options)
        case "animation_frame":
            return AnimationFrameScheduler(**options)
        case "timeout":
            return TimeoutScheduler(**options)
        case "immediate":
            return ImmediateScheduler(**options)
    raise ValueError(f"unknown scheduler type: {kind!r}")
