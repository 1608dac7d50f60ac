"""Collection — a primary-key store with merge-on-upsert and an update event.

Every upsert emits ``CollectionEvent.UPDATE`` with the primary keys it
touched, whether or not the stored value actually changed. Removals report
only keys that were stored. Readers are
expected to come back through ``get_one_by_pk`` after being notified.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from typing import Any, Callable, Generic, Hashable, Iterable, TypeVar

from keyflux.emitter import EventEmitter
from keyflux.errors import MissingPrimaryKeyError
from keyflux.events import CollectionEvent, CollectionUpdate

T = TypeVar("T")
PK = TypeVar("PK", bound=Hashable)

PkSelector = Callable[[Any], Hashable]
EntityUpdater = Callable[[Any, Any], Any]


def select_id(entity: Any) -> Hashable:
    """Default pk selector: ``entity["id"]`` for mappings, ``entity.id`` otherwise."""
    if isinstance(entity, Mapping):
        return entity.get("id")
    return getattr(entity, "id", None)


def merge_entity(draft: Any, prev: Any) -> Any:
    """Default updater: shallow merge of draft over the stored entity."""
    if isinstance(prev, Mapping) and isinstance(draft, Mapping):
        return {**prev, **draft}
    if dataclasses.is_dataclass(prev) and not isinstance(prev, type):
        if isinstance(draft, Mapping):
            return dataclasses.replace(prev, **draft)
        if type(draft) is type(prev):
            return draft
    return draft


class Collection(Generic[T, PK]):
    """Entities keyed by primary key."""

    def __init__(
        self,
        *,
        select_pk: PkSelector | None = None,
        update_entity: EntityUpdater | None = None,
    ) -> None:
        self.emitter: EventEmitter[CollectionEvent] = EventEmitter()
        self._select_pk = select_pk or select_id
        self._update_entity = update_entity or merge_entity
        self._entities: dict[PK, T] = {}

    # --- Reads ---

    def get_one_by_pk(self, pk: PK) -> T | None:
        return self._entities.get(pk)

    def get_many_by_pks(self, pks: Iterable[PK]) -> dict[PK, T | None]:
        return {pk: self._entities.get(pk) for pk in pks}

    def get_all(self) -> list[T]:
        return list(self._entities.values())

    def get_all_pks(self) -> list[PK]:
        return list(self._entities)

    def count_all(self) -> int:
        return len(self._entities)

    def __contains__(self, pk: PK) -> bool:
        return pk in self._entities

    def __len__(self) -> int:
        return len(self._entities)

    # --- Writes ---

    def upsert_one(self, entity: T) -> None:
        pk = self._require_pk(self._select_pk(entity), entity)
        self._store(pk, entity)
        self._emit_update((pk,))

    def upsert_one_by_pk(self, pk: PK, entity: Any) -> None:
        self._store(self._require_pk(pk, entity), entity)
        self._emit_update((pk,))

    def upsert_many(self, entities: Iterable[T]) -> None:
        """Upsert every entity. Nothing is stored if any of them lacks a pk."""
        entities = list(entities)
        pks = tuple(self._require_pk(self._select_pk(e), e) for e in entities)
        for pk, entity in zip(pks, entities):
            self._store(pk, entity)
        self._emit_update(pks)

    def remove_one(self, entity: T) -> None:
        self.remove_one_by_pk(self._select_pk(entity))

    def remove_many(self, entities: Iterable[T]) -> None:
        self.remove_many_by_pks([self._select_pk(e) for e in entities])

    def remove_one_by_pk(self, pk: PK) -> None:
        if pk in self._entities:
            del self._entities[pk]
            self._emit_update((pk,))

    def remove_many_by_pks(self, pks: Iterable[PK]) -> None:
        """Remove the stored pks. Only those actually removed are reported."""
        removed = tuple(pk for pk in dict.fromkeys(pks) if pk in self._entities)
        for pk in removed:
            del self._entities[pk]
        if removed:
            self._emit_update(removed)

    def clear(self) -> None:
        """Remove every entity. Subscribers of the removed keys are notified."""
        pks = tuple(self._entities)
        self._entities.clear()
        if pks:
            self._emit_update(pks)

    @staticmethod
    def _require_pk(pk: Any, entity: Any) -> PK:
        if pk is None or pk == "":
            raise MissingPrimaryKeyError(entity)
        return pk

    def _store(self, pk: PK, entity: Any) -> None:
        existing = self._entities.get(pk)
        if existing is not None:
            self._entities[pk] = self._update_entity(entity, existing)
        else:
            self._entities[pk] = entity

    def _emit_update(self, pks: tuple[PK, ...]) -> None:
        self.emitter.emit(CollectionEvent.UPDATE, CollectionUpdate(pks))

    def __repr__(self) -> str:
        return f"Collection(entities={len(self._entities)})"
