"""Event kinds and payloads exchanged between pipeline components."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Generic, Hashable, TypeVar

K = TypeVar("K", bound=Hashable)


class CollectionEvent(enum.Enum):
    UPDATE = "update"


class IndexEvent(enum.Enum):
    UPDATE = "update"


class CoalescerEvent(enum.Enum):
    HAS_CHANGES = "has_changes"
    BEFORE_FLUSH = "before_flush"
    AFTER_FLUSH = "after_flush"


class QueueEvent(enum.Enum):
    BEFORE_FLUSH = "before_flush"
    AFTER_FLUSH = "after_flush"


class SchedulerEvent(enum.Enum):
    FLUSH = "flush"


@dataclass(frozen=True, slots=True)
class CollectionUpdate(Generic[K]):
    """Primary keys touched by one collection mutation."""

    pks: tuple[K, ...]


@dataclass(frozen=True, slots=True)
class IndexUpdate(Generic[K]):
    """Index keys touched by one index mutation."""

    keys: tuple[K, ...]
