"""Entity store interface.

The entity store is the only shared mutable state between the launcher and
the operator: a strongly consistent, watchable collection of namespaced
resources with optimistic concurrency.  On a cluster it is the Kubernetes
API; in tests it is ``MemoryEntityStore``.

Writes are conditional: ``update`` and ``update_status`` carry the
``resource_version`` that was read and fail with ``ConflictError`` if the
object changed in the meantime.  Callers re-read and retry.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Generic, Protocol, TypeVar, runtime_checkable

from queuewarden.models.enums import EventType
from queuewarden.models.meta import KubeObject

T = TypeVar("T", bound=KubeObject)


class StoreError(RuntimeError):
    """Base class for entity store failures."""


class NotFoundError(StoreError, LookupError):
    """Raised when the requested object does not exist."""

    def __init__(self, kind: str, namespace: str, name: str) -> None:
        super().__init__(f"{kind} '{namespace}/{name}' not found")
        self.kind = kind
        self.namespace = namespace
        self.name = name


class AlreadyExistsError(StoreError):
    """Raised when creating an object whose name is taken."""


class ConflictError(StoreError):
    """Raised when a conditional write lost against a concurrent writer."""


@dataclass
class WatchEvent(Generic[T]):
    type: EventType
    object: T


@runtime_checkable
class EntityStore(Protocol):
    """Async protocol for reading, writing and watching resources.

    Every method returns deep copies: mutating a returned object never
    affects the store until it is written back.
    """

    async def get(self, kind: type[T], namespace: str, name: str) -> T:
        """Get one object.  Raises ``NotFoundError`` if missing."""
        ...

    async def list(self, kind: type[T], namespace: str, labels: dict[str, str] | None = None) -> list[T]:
        """List objects in *namespace* matching every label in *labels*, in creation order."""
        ...

    async def create(self, obj: T) -> T:
        """Create an object.  Raises ``AlreadyExistsError`` if the name is taken."""
        ...

    async def update(self, obj: T) -> T:
        """Replace metadata and spec (status is ignored).  Raises ``ConflictError`` on a stale version."""
        ...

    async def update_status(self, obj: T) -> T:
        """Replace the status subresource only.  Raises ``ConflictError`` on a stale version."""
        ...

    async def delete(self, kind: type[T], namespace: str, name: str) -> None:
        """Delete an object and, through owner references, everything it owns.

        Raises ``NotFoundError`` if missing.
        """
        ...

    def watch(
        self,
        kind: type[T],
        namespace: str,
        *,
        name: str | None = None,
        labels: dict[str, str] | None = None,
    ) -> AsyncIterator[WatchEvent[T]]:
        """Stream changes to matching objects.

        Existing objects are replayed first as ``ADDED`` events so a watcher
        never misses state that predates it.  The stream ends only when the
        consumer stops iterating.
        """
        ...
