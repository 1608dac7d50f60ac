"""Exceptions raised by keyflux.

Misuse is reported synchronously at the call that needed the data.
Failures inside a flush are collected and raised once the cycle is done,
so queue and coalescer state is already consistent when the caller sees them.
"""

from __future__ import annotations


class KeyfluxError(Exception):
    """Base class for every keyflux error."""


class MissingPrimaryKeyError(KeyfluxError, ValueError):
    """An entity could not yield a primary key."""

    def __init__(self, entity: object) -> None:
        super().__init__(f"primary key is required to upsert an entity: {entity!r}")
        self.entity = entity


class SchedulerError(KeyfluxError, RuntimeError):
    """A scheduler could not arrange a flush."""


class FlushError(KeyfluxError, ExceptionGroup):
    """One or more callbacks failed during a flush cycle.

    Every callback of the cycle still ran; ``exceptions`` holds each failure
    in the order it happened.
    """

    def derive(self, excs):
        return FlushError(self.message, excs)


def collect(errors: list[BaseException], exc: Exception) -> None:
    """Append exc to errors, flattening a nested FlushError."""
    if isinstance(exc, FlushError):
        errors.extend(exc.exceptions)
    else:
        errors.append(exc)
