"""Store module for holding the state of watched and managed resources."""

from abc import ABC, abstractmethod
from collections.abc import Callable
from enum import Enum
from typing import TypeVar

from broker_reconciler.manifest import BaseManifest, BrokerStatus, NamedResource

T = TypeVar("T", bound=BaseManifest)


class StoreEvent(str, Enum):
    """Enum for store events."""

    OBJECT_ADDED = "object_added"
    OBJECT_UPDATED = "object_updated"
    OBJECT_DELETED = "object_deleted"
    STATUS_UPDATED = "status_updated"


OBJECT_EVENTS = (
    StoreEvent.OBJECT_ADDED,
    StoreEvent.OBJECT_UPDATED,
    StoreEvent.OBJECT_DELETED,
)


class Store(ABC):
    """Abstract base class for the central object store with listener support."""

    @abstractmethod
    def add_object(self, obj: T) -> None:
        """Add or replace a manifest object in the store.

        Replacing an object with a different spec advances its generation. The
        status of an object with a status subresource is preserved.
        """

    @abstractmethod
    def get_object(self, resource_id: NamedResource, cls: type[T]) -> T | None:
        """Retrieve a manifest object by resource identity and type."""

    @abstractmethod
    def delete_object(self, resource_id: NamedResource) -> None:
        """Remove a manifest object from the store, if present."""

    @abstractmethod
    def update_status(self, resource_id: NamedResource, status: BrokerStatus) -> None:
        """Replace the status subresource of an object.

        Raises:
            ObjectNotFoundError: If the object does not exist.
        """

    @abstractmethod
    def get_status(self, resource_id: NamedResource) -> BrokerStatus | None:
        """Retrieve the status subresource of an object."""

    @abstractmethod
    def list_objects(self, kind: str | None = None) -> list[BaseManifest]:
        """List all manifest objects in the store, optionally filtered by kind."""

    @abstractmethod
    def add_listener(
        self,
        event: StoreEvent,
        callback: Callable[[NamedResource, BaseManifest], None],
        flush: bool = False,
    ) -> Callable[[], None]:
        """Register a callback for a specific event.

        When `flush` is set the callback is invoked for every object already
        in the store. Returns a callable that removes the listener.
        """
