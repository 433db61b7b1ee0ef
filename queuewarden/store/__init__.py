"""Entity store implementations."""

from queuewarden.store.base import (
    AlreadyExistsError,
    ConflictError,
    EntityStore,
    NotFoundError,
    StoreError,
    WatchEvent,
)
from queuewarden.store.memory import MemoryEntityStore

__all__ = [
    "AlreadyExistsError",
    "ConflictError",
    "EntityStore",
    "MemoryEntityStore",
    "NotFoundError",
    "StoreError",
    "WatchEvent",
]
