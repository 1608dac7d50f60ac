"""Tests for the schedulers."""

import asyncio
import queue
import threading

import pytest

from keyflux import (
    AnimationFrameScheduler,
    ImmediateScheduler,
    MicrotaskScheduler,
    SchedulerError,
    SchedulerEvent,
    SyncScheduler,
    TimeoutScheduler,
    create_scheduler,
)


def _flushes(scheduler):
    log = []
    scheduler.on(SchedulerEvent.FLUSH, lambda: log.append("flush"))
    return log


class _Owner:
    """Stands in for an app thread that accepts work via call_from_thread."""

    def __init__(self):
        self._inbox = queue.Queue()

    def call_from_thread(self, fn):
        self._inbox.put(fn)

    def run_next(self, timeout=2):
        self._inbox.get(timeout=timeout)()


class TestSync:
    def test_never_fires_by_itself(self):
        s = SyncScheduler()
        log = _flushes(s)
        s.schedule()
        assert log == []
        assert s.pending
        s.run()
        assert log == ["flush"]
        assert not s.pending

    def test_schedule_is_idempotent(self):
        s = SyncScheduler()
        log = _flushes(s)
        s.schedule()
        s.schedule()
        s.run()
        s.run()
        assert log == ["flush"]

    def test_cancel(self):
        s = SyncScheduler()
        log = _flushes(s)
        s.cancel()  # disarmed, no-op
        s.schedule()
        s.cancel()
        s.run()
        assert log == []

    def test_rearm_during_flush(self):
        s = SyncScheduler()
        seen = []
        s.on(SchedulerEvent.FLUSH, lambda: (seen.append(s.pending), s.schedule()))
        s.schedule()
        s.run()
        assert seen == [False]
        assert s.pending

    def test_off(self):
        s = SyncScheduler()
        calls = []

        def handler():
            calls.append(1)

        s.on(SchedulerEvent.FLUSH, handler)
        s.off(SchedulerEvent.FLUSH, handler)
        s.schedule()
        s.run()
        assert calls == []


class TestMicrotask:
    def test_fires_after_current_turn(self):
        async def main():
            s = MicrotaskScheduler()
            log = _flushes(s)
            s.schedule()
            log.append("sync")
            await asyncio.sleep(0)
            return log

        assert asyncio.run(main()) == ["sync", "flush"]

    def test_cancel_before_fire(self):
        async def main():
            s = MicrotaskScheduler()
            log = _flushes(s)
            s.schedule()
            s.cancel()
            await asyncio.sleep(0)
            return log

        assert asyncio.run(main()) == []

    def test_without_loop_raises(self):
        s = MicrotaskScheduler()
        with pytest.raises(SchedulerError):
            s.schedule()
        assert not s.pending

    def test_explicit_loop(self):
        loop = asyncio.new_event_loop()
        try:
            s = MicrotaskScheduler(loop=loop)
            log = _flushes(s)
            s.schedule()
            loop.run_until_complete(asyncio.sleep(0))
            assert log == ["flush"]
        finally:
            loop.close()


class TestTimeout:
    def test_fires_after_delay_on_loop(self):
        async def main():
            s = TimeoutScheduler(0.01)
            log = _flushes(s)
            s.schedule()
            await asyncio.sleep(0)
            before = list(log)
            await asyncio.sleep(0.05)
            return before, log

        before, after = asyncio.run(main())
        assert before == []
        assert after == ["flush"]

    def test_negative_delay_clamped(self):
        assert TimeoutScheduler(-5).delay == 0.0

    def test_timer_without_marshal_raises(self):
        s = TimeoutScheduler(0.0)
        with pytest.raises(SchedulerError):
            s.schedule()
        assert not s.pending

    def test_timer_flushes_on_owning_thread(self):
        owner = _Owner()
        s = TimeoutScheduler(0.0, call_from_thread=owner.call_from_thread)
        threads = []
        s.on(SchedulerEvent.FLUSH, lambda: threads.append(threading.get_ident()))
        s.schedule()
        assert threads == []
        owner.run_next()
        assert threads == [threading.get_ident()]
        assert not s.pending

    def test_timer_cancel(self):
        owner = _Owner()
        s = TimeoutScheduler(0.05, call_from_thread=owner.call_from_thread)
        log = _flushes(s)
        s.schedule()
        s.cancel()
        with pytest.raises(queue.Empty):
            owner.run_next(timeout=0.2)
        assert log == []


class TestAnimationFrame:
    def test_uses_request_frame(self):
        frames = []
        s = AnimationFrameScheduler(request_frame=frames.append)
        log = _flushes(s)
        s.schedule()
        s.schedule()
        assert len(frames) == 1
        frames.pop()()
        assert log == ["flush"]

    def test_cancelled_frame_is_noop(self):
        frames = []
        s = AnimationFrameScheduler(request_frame=frames.append)
        log = _flushes(s)
        s.schedule()
        s.cancel()
        s.schedule()
        assert len(frames) == 2
        frames[0]()  # stale arming
        assert log == []
        frames[1]()
        assert log == ["flush"]

    def test_loop_fallback(self):
        async def main():
            s = AnimationFrameScheduler()
            log = _flushes(s)
            s.schedule()
            await asyncio.sleep(0.1)
            return log

        assert asyncio.run(main()) == ["flush"]


class TestImmediate:
    def test_running_loop(self):
        async def main():
            s = ImmediateScheduler()
            log = _flushes(s)
            s.schedule()
            log.append("sync")
            await asyncio.sleep(0)
            return log

        assert asyncio.run(main()) == ["sync", "flush"]

    def test_timer_fallback(self):
        owner = _Owner()
        s = ImmediateScheduler(call_from_thread=owner.call_from_thread)
        log = _flushes(s)
        s.schedule()
        owner.run_next()
        assert log == ["flush"]

    def test_no_loop_no_marshal_raises(self):
        with pytest.raises(SchedulerError):
            ImmediateScheduler().schedule()


class TestCreate:
    @pytest.mark.parametrize(
        "kind, cls",
        [
            ("sync", SyncScheduler),
            ("microtask", MicrotaskScheduler),
            ("animation_frame", AnimationFrameScheduler),
            ("timeout", TimeoutScheduler),
            ("immediate", ImmediateScheduler),
        ],
    )
    def test_by_tag(self, kind, cls):
        assert isinstance(create_scheduler(kind), cls)

    def test_options_forwarded(self):
        assert create_scheduler("timeout", delay=2).delay == 2.0

    def test_unknown_tag(self):
        with pytest.raises(ValueError, match="unknown scheduler type"):
            create_scheduler("idle")
