"""Module for in memory object store."""

import copy
import dataclasses
from collections import defaultdict
from collections.abc import Callable
from typing import Any, TypeVar, DefaultDict

import logging

from broker_reconciler.manifest import BaseManifest, BrokerStatus, NamedResource
from broker_reconciler.exceptions import ObjectNotFoundError

from .store import Store, StoreEvent


_LOGGER = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseManifest)


def _has_status(obj: BaseManifest) -> bool:
    return isinstance(getattr(obj, "status", None), BrokerStatus)


class InMemoryStore(Store):
    """In-memory implementation of the Store interface.

    Objects are copied on the way in and out so callers can never mutate
    stored state behind the store's back. Supports event listeners for
    object and status changes.
    """

    def __init__(self) -> None:
        """Initialize the InMemoryStore."""
        self._objects: dict[NamedResource, BaseManifest] = {}
        self._listeners: DefaultDict[StoreEvent, list[Callable[..., None]]] = (
            defaultdict(list)
        )

    def add_object(self, obj: T) -> None:
        """Add or replace a manifest object in the store."""
        if (
            not hasattr(obj, "kind")
            or not hasattr(obj, "namespace")
            or not hasattr(obj, "name")
        ):
            raise ValueError("Object must have kind, namespace, and name attributes")
        resource_id = NamedResource(obj.kind, obj.namespace, obj.name)
        obj = copy.deepcopy(obj)
        if (existing := self._objects.get(resource_id)) is None:
            if hasattr(obj, "generation") and not obj.generation:
                obj.generation = 1
            _LOGGER.debug("Adding object %s to store", resource_id)
            self._objects[resource_id] = obj
            self._fire_event(StoreEvent.OBJECT_ADDED, resource_id, obj)
            return

        if _has_status(existing):
            # The status is only written through update_status
            obj = dataclasses.replace(  # type: ignore[type-var]
                obj,
                status=copy.deepcopy(existing.status),  # type: ignore[attr-defined]
                generation=existing.generation,  # type: ignore[attr-defined]
            )
            if existing.spec != obj.spec:  # type: ignore[attr-defined]
                obj.generation += 1  # type: ignore[attr-defined]
        if dataclasses.asdict(existing) == dataclasses.asdict(obj):
            _LOGGER.debug("Object %s already exists in store, skipping", resource_id)
            return
        _LOGGER.debug("Updating existing object %s in store", resource_id)
        self._objects[resource_id] = obj
        self._fire_event(StoreEvent.OBJECT_UPDATED, resource_id, obj)

    def get_object(self, resource_id: NamedResource, cls: type[T]) -> T | None:
        """Retrieve a manifest object by resource identity and type."""
        obj = self._objects.get(resource_id)
        if obj is not None:
            if isinstance(obj, cls):
                return copy.deepcopy(obj)
            raise ValueError(
                f"Object {resource_id.namespaced_name} is not of type {cls.__name__} (was {obj.__class__.__name__})"
            )
        return None

    def delete_object(self, resource_id: NamedResource) -> None:
        """Remove a manifest object from the store, if present."""
        if (obj := self._objects.pop(resource_id, None)) is None:
            _LOGGER.debug("Object %s not in store, nothing to delete", resource_id)
            return
        _LOGGER.debug("Deleted object %s from store", resource_id)
        self._fire_event(StoreEvent.OBJECT_DELETED, resource_id, obj)

    def update_status(self, resource_id: NamedResource, status: BrokerStatus) -> None:
        """Replace the status subresource of an object."""
        if (obj := self._objects.get(resource_id)) is None:
            raise ObjectNotFoundError(
                f"Cannot update status of {resource_id}, object not found"
            )
        if not _has_status(obj):
            raise ValueError(
                f"Resource kind {resource_id.kind} does not support status updates"
            )
        _LOGGER.debug(
            "Updating status for resource %s (observed generation %s)",
            resource_id.namespaced_name,
            status.observed_generation,
        )
        obj = dataclasses.replace(obj, status=copy.deepcopy(status))  # type: ignore[type-var]
        self._objects[resource_id] = obj
        self._fire_event(StoreEvent.STATUS_UPDATED, resource_id, obj)

    def get_status(self, resource_id: NamedResource) -> BrokerStatus | None:
        """Retrieve the status subresource of an object."""
        if (obj := self._objects.get(resource_id)) is None or not _has_status(obj):
            return None
        return copy.deepcopy(obj.status)  # type: ignore[attr-defined]

    def list_objects(self, kind: str | None = None) -> list[BaseManifest]:
        """List all manifest objects in the store, optionally filtered by kind."""
        if kind is None:
            return [copy.deepcopy(obj) for obj in self._objects.values()]
        return [
            copy.deepcopy(obj)
            for obj in self._objects.values()
            if getattr(obj, "kind", None) == kind
        ]

    def add_listener(
        self,
        event: StoreEvent,
        callback: Callable[[NamedResource, BaseManifest], None],
        flush: bool = False,
    ) -> Callable[[], None]:
        """Register a callback for a specific event."""

        def remove() -> None:
            if callback in self._listeners[event]:
                self._listeners[event].remove(callback)

        self._listeners[event].append(callback)

        if flush and event == StoreEvent.OBJECT_ADDED:
            _LOGGER.debug("Flushing objects for event type %s", event)
            for rid, obj in list(self._objects.items()):
                callback(rid, obj)

        return remove

    def _fire_event(self, event: StoreEvent, *args: Any) -> None:
        for cb in list(self._listeners[event]):  # Iterate over a copy for safe removal
            try:
                cb(*args)
            except Exception:
                _LOGGER.exception("Store listener callback failed for event %s", event)
