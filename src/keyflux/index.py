"""Manual index — index key -> ordered set of primary keys.

Every mutation that changes the mapping emits ``IndexEvent.UPDATE`` with the
touched index keys. Reads return tuples, never the internal sets.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Hashable, Iterable, Sequence, TypeVar

from keyflux.comparators import ComparisonPolicy, PkComparator, resolve_comparator, shallow
from keyflux.emitter import EventEmitter
from keyflux.events import IndexEvent, IndexUpdate

IK = TypeVar("IK", bound=Hashable)
PK = TypeVar("PK", bound=Hashable)


@dataclass(frozen=True, slots=True)
class IndexMetrics:
    total_keys: int
    total_pks: int
    average_pks_per_key: float
    max_bucket_size: int
    min_bucket_size: int


class ManualIndex(Generic[IK, PK]):
    """Index whose key -> pks mapping is maintained by the caller."""

    def __init__(self, *, compare_pks: ComparisonPolicy | PkComparator | None = None) -> None:
        self.emitter: EventEmitter[IndexEvent] = EventEmitter()
        self._compare_pks = resolve_comparator(compare_pks)
        # dict used as an insertion-ordered set
        self._pks: dict[IK, dict[PK, None]] = {}
        # sequence object last passed to set_pks, for identity comparison
        self._sources: dict[IK, Sequence[PK]] = {}

    # --- Reads ---

    def get_pks(self, key: IK) -> tuple[PK, ...]:
        bucket = self._pks.get(key)
        return tuple(bucket) if bucket else ()

    def get_pks_by_keys(self, keys: Iterable[IK]) -> dict[IK, tuple[PK, ...]]:
        return {key: self.get_pks(key) for key in keys}

    def has_key(self, key: IK) -> bool:
        return key in self._pks

    def get_keys(self) -> tuple[IK, ...]:
        return tuple(self._pks)

    def get_key_size(self, key: IK) -> int:
        bucket = self._pks.get(key)
        return len(bucket) if bucket else 0

    @property
    def size(self) -> int:
        return len(self._pks)

    @property
    def is_empty(self) -> bool:
        return not self._pks

    def get_metrics(self) -> IndexMetrics:
        sizes = [len(b) for b in self._pks.values()]
        total = sum(sizes)
        return IndexMetrics(
            total_keys=len(sizes),
            total_pks=total,
            average_pks_per_key=total / len(sizes) if sizes else 0.0,
            max_bucket_size=max(sizes, default=0),
            min_bucket_size=min(sizes, default=0),
        )

    # --- Writes ---

    def set_pks(self, key: IK, pks: Sequence[PK]) -> None:
        """Replace the pks of key. Skipped silently when the key exists and the comparator says equal."""
        if self._compare_pks is not None and key in self._pks:
            if self._compare_pks is shallow:
                existing = self._sources.get(key, _MISSING)
            else:
                existing = self.get_pks(key)
            if existing is not _MISSING and self._compare_pks(existing, pks):
                return
        self._pks[key] = dict.fromkeys(pks)
        self._sources[key] = pks
        self._emit_update((key,))

    def add_pks(self, key: IK, pks: Iterable[PK]) -> None:
        bucket = self._pks.get(key)
        if bucket is None:
            bucket = {}
        before = len(bucket)
        for pk in pks:
            bucket.setdefault(pk, None)
        if len(bucket) == before:
            return
        self._pks[key] = bucket
        self._sources.pop(key, None)
        self._emit_update((key,))

    def remove_pks(self, key: IK, pks: Iterable[PK]) -> None:
        bucket = self._pks.get(key)
        if bucket is None:
            return
        changed = False
        for pk in pks:
            if bucket.pop(pk, _MISSING) is not _MISSING:
                changed = True
        if not bucket:
            del self._pks[key]
            changed = True
        if changed:
            self._sources.pop(key, None)
            self._emit_update((key,))

    def clear(self, key: IK | None = None) -> None:
        """Drop one key, or every key when key is None."""
        if key is None:
            if not self._pks:
                return
            keys = tuple(self._pks)
            self._pks.clear()
            self._sources.clear()
            self._emit_update(keys)
        elif key in self._pks:
            del self._pks[key]
            self._sources.pop(key, None)
            self._emit_update((key,))

    def destroy(self) -> None:
        self.emitter.off_all()
        self._pks.clear()
        self._sources.clear()

    def _emit_update(self, keys: tuple[IK, ...]) -> None:
        self.emitter.emit(IndexEvent.UPDATE, IndexUpdate(keys))

    def __repr__(self) -> str:
        return f"ManualIndex(keys={len(self._pks)})"


_MISSING = object()
