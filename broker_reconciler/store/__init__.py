"""
The store module provides the resource store the controller reads desired
state from and persists observed state to.

- Uses NamedResource as the key for all objects.
- Stores values as dataclass instances from manifest.py for type safety.
- Notifies listeners of object and status changes, which is how the
  dispatcher learns that something must be reconciled.

This abstract interface allows for various implementations (in-memory, a
cluster API client, etc.).
"""

from .store import Store, StoreEvent, OBJECT_EVENTS
from .in_memory import InMemoryStore

__all__ = [
    "Store",
    "StoreEvent",
    "OBJECT_EVENTS",
    "InMemoryStore",
]
