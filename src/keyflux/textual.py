"""Textual bridge for keyflux subscriptions and flush timing. Needs the textual extra.

Widget-safety guards, NoMatches handling and thread marshaling live here,
not at callsites. The core pipeline stays toolkit-agnostic.
"""

import threading
from contextlib import contextmanager

from textual.css.query import NoMatches

from keyflux.scheduler import AnimationFrameScheduler

# Keyed by id(app) so multiple apps work in tests.
_paused_apps: set[int] = set()


@contextmanager
def pause(app):
    """Suspend guarded handlers during widget replacement."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


def subscribe(app, source, keys, handler):
    """Subscribe handler to keys of a reactive collection or index, guarded for app.

    Skips while the app is paused or not running, swallows NoMatches from
    widget queries, and marshals calls from other threads through
    ``app.call_from_thread``. Returns the unsubscribe callable.
    """
    _main = threading.get_ident()

    def _guarded():
        if not is_safe(app):
            return
        if threading.get_ident() != _main:
            app.call_from_thread(_safe)
        else:
            _safe()

    def _safe():
        try:
            handler()
        except NoMatches:
            pass

    return source.subscribe_many(keys, _guarded)


def frame_scheduler(app) -> AnimationFrameScheduler:
    """Scheduler that flushes after the app's next screen refresh."""
    return AnimationFrameScheduler(request_frame=app.call_after_refresh)
