"""In-process entity store.

Implements the ``EntityStore`` protocol on plain dictionaries for tests and
single-process development.  It reproduces the API-server behaviour the
reconcilers and the launcher depend on:

- monotonically increasing ``resource_version`` and conflict detection on
  conditional writes;
- separate spec and status writes;
- label selection;
- watches that replay existing objects before streaming changes;
- cascade deletion: deleting an object garbage-collects everything whose
  owner references point at it, recursively.

All state lives on one event loop; there is no locking.
"""

from __future__ import annotations

import asyncio
import itertools
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass, field

from loguru import logger

from queuewarden.models.enums import EventType
from queuewarden.models.meta import KubeObject, utcnow
from queuewarden.store.base import AlreadyExistsError, ConflictError, NotFoundError, T, WatchEvent

_Key = tuple[str, str, str]


@dataclass
class _Watcher:
    kind: str
    namespace: str
    name: str | None
    labels: dict[str, str] | None
    queue: asyncio.Queue[WatchEvent] = field(default_factory=asyncio.Queue)

    def matches(self, obj: KubeObject) -> bool:
        if obj.KIND != self.kind or obj.namespace != self.namespace:
            return False
        if self.name is not None and obj.name != self.name:
            return False
        return _labels_match(obj, self.labels)


def _labels_match(obj: KubeObject, labels: dict[str, str] | None) -> bool:
    if not labels:
        return True
    return all(obj.metadata.labels.get(k) == v for k, v in labels.items())


def _key(obj: KubeObject) -> _Key:
    return (obj.KIND, obj.namespace, obj.name)


class MemoryEntityStore:
    """Dictionary-backed implementation of the EntityStore protocol."""

    def __init__(self) -> None:
        self._objects: dict[_Key, KubeObject] = {}
        self._versions = itertools.count(1)
        self._watchers: list[_Watcher] = []

    # -- Read ------------------------------------------------------------------

    async def get(self, kind: type[T], namespace: str, name: str) -> T:
        obj = self._objects.get((kind.KIND, namespace, name))
        if obj is None:
            raise NotFoundError(kind.KIND, namespace, name)
        return obj.model_copy(deep=True)  # type: ignore[return-value]

    async def list(self, kind: type[T], namespace: str, labels: dict[str, str] | None = None) -> list[T]:
        return [
            obj.model_copy(deep=True)  # type: ignore[misc]
            for (obj_kind, obj_ns, _), obj in self._objects.items()
            if obj_kind == kind.KIND and obj_ns == namespace and _labels_match(obj, labels)
        ]

    # -- Write -----------------------------------------------------------------

    async def create(self, obj: T) -> T:
        key = _key(obj)
        if key in self._objects:
            msg = f"{obj.KIND} '{obj.namespace}/{obj.name}' already exists"
            raise AlreadyExistsError(msg)

        stored = obj.model_copy(deep=True)
        stored.metadata.uid = uuid.uuid4().hex
        stored.metadata.resource_version = self._next_version()
        stored.metadata.creation_timestamp = utcnow()
        self._objects[key] = stored
        self._notify(EventType.ADDED, stored)
        return stored.model_copy(deep=True)

    async def update(self, obj: T) -> T:
        existing = self._check_version(obj)
        stored = obj.model_copy(deep=True)
        if "status" in type(obj).model_fields:
            stored.status = existing.status.model_copy(deep=True)  # type: ignore[attr-defined]
        return self._replace(existing, stored)

    async def update_status(self, obj: T) -> T:
        existing = self._check_version(obj)
        stored = existing.model_copy(deep=True)
        stored.status = obj.status.model_copy(deep=True)  # type: ignore[attr-defined]
        return self._replace(existing, stored)

    async def delete(self, kind: type[T], namespace: str, name: str) -> None:
        obj = self._objects.pop((kind.KIND, namespace, name), None)
        if obj is None:
            raise NotFoundError(kind.KIND, namespace, name)
        self._notify(EventType.DELETED, obj)
        self._collect_garbage(obj)

    # -- Watch -----------------------------------------------------------------

    async def watch(
        self,
        kind: type[T],
        namespace: str,
        *,
        name: str | None = None,
        labels: dict[str, str] | None = None,
    ) -> AsyncIterator[WatchEvent[T]]:
        watcher = _Watcher(kind=kind.KIND, namespace=namespace, name=name, labels=labels)
        # Snapshot and registration happen without an await in between, so no
        # change can slip through the gap.
        initial = [obj.model_copy(deep=True) for obj in self._objects.values() if watcher.matches(obj)]
        self._watchers.append(watcher)
        try:
            for obj in initial:
                yield WatchEvent(EventType.ADDED, obj)  # type: ignore[arg-type]
            while True:
                yield await watcher.queue.get()
        finally:
            self._watchers.remove(watcher)

    # -- Internals -------------------------------------------------------------

    def _next_version(self) -> str:
        return str(next(self._versions))

    def _check_version(self, obj: KubeObject) -> KubeObject:
        existing = self._objects.get(_key(obj))
        if existing is None:
            raise NotFoundError(obj.KIND, obj.namespace, obj.name)
        version = obj.metadata.resource_version
        if version is not None and version != existing.metadata.resource_version:
            msg = (
                f"{obj.KIND} '{obj.namespace}/{obj.name}' was modified "
                f"(have {version}, current {existing.metadata.resource_version})"
            )
            raise ConflictError(msg)
        return existing

    def _replace(self, existing: KubeObject, stored: T) -> T:
        stored.metadata.uid = existing.metadata.uid
        stored.metadata.creation_timestamp = existing.metadata.creation_timestamp
        stored.metadata.resource_version = self._next_version()
        self._objects[_key(stored)] = stored
        self._notify(EventType.MODIFIED, stored)
        return stored.model_copy(deep=True)

    def _notify(self, event_type: EventType, obj: KubeObject) -> None:
        for watcher in self._watchers:
            if watcher.matches(obj):
                watcher.queue.put_nowait(WatchEvent(event_type, obj.model_copy(deep=True)))

    def _collect_garbage(self, owner: KubeObject) -> None:
        """Delete every object owned by *owner*, depth first."""
        dependents = [
            obj for obj in self._objects.values() if obj.namespace == owner.namespace and obj.is_owned_by(owner)
        ]
        for obj in dependents:
            if self._objects.pop(_key(obj), None) is None:
                continue
            logger.debug("GC: deleting {} {}/{} owned by {} {}", obj.KIND, obj.namespace, obj.name, owner.KIND, owner.name)
            self._notify(EventType.DELETED, obj)
            self._collect_garbage(obj)
