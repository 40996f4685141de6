"""Dispatcher mapping store change notifications to broker reconcile keys.

Notifications arrive for the brokers themselves, for the children they own
and for the triggers that reference them. Each one maps to at most one
broker identity which is added to the work queue.
"""

from collections.abc import Callable
import logging

from broker_reconciler.manifest import (
    BaseManifest,
    NamedResource,
    Trigger,
    DEPLOYMENT_KIND,
    EVENTING_GROUP,
    REDIS_BROKER_KIND,
    SERVICE_ACCOUNT_KIND,
    SERVICE_KIND,
    TRIGGER_KIND,
)
from broker_reconciler.store import Store, StoreEvent, OBJECT_EVENTS

from .filters import (
    ReferenceResolver,
    StoreReferenceResolver,
    controller_key,
    filter_controller,
    filter_trigger_for_broker,
    trigger_broker_key,
)
from .workqueue import WorkQueue

__all__ = ["Dispatcher"]

_LOGGER = logging.getLogger(__name__)

OWNED_KINDS = (DEPLOYMENT_KIND, SERVICE_KIND, SERVICE_ACCOUNT_KIND)
REFERENCING_KINDS = (TRIGGER_KIND,)


class Dispatcher:
    """Enqueues the broker affected by each change notification."""

    def __init__(
        self,
        store: Store,
        queue: WorkQueue[NamedResource],
        resolver: ReferenceResolver | None = None,
        primary_kind: str = REDIS_BROKER_KIND,
        primary_group: str = EVENTING_GROUP,
        owned_kinds: tuple[str, ...] = OWNED_KINDS,
        referencing_kinds: tuple[str, ...] = REFERENCING_KINDS,
    ) -> None:
        """Initialize the Dispatcher.

        Args:
            store: The store emitting change notifications.
            queue: The work queue receiving broker identities.
            resolver: Resolves broker references, defaults to the store.
            primary_kind: The kind of the managed resource.
            primary_group: The API group of the managed resource.
            owned_kinds: Kinds of the children created by the managed resource.
            referencing_kinds: Kinds of objects referencing a managed resource.
        """
        self._store = store
        self._queue = queue
        self._resolver = resolver or StoreReferenceResolver(store)
        self._primary_kind = primary_kind
        self._primary_group = primary_group
        self._owned_kinds = owned_kinds
        self._referencing_kinds = referencing_kinds
        self._remove_listeners: list[Callable[[], None]] = []

    def start(self) -> None:
        """Subscribe to object notifications, replaying existing objects."""
        if self._remove_listeners:
            return
        for event in OBJECT_EVENTS:
            self._remove_listeners.append(
                self._store.add_listener(
                    event, self.handle, flush=(event == StoreEvent.OBJECT_ADDED)
                )
            )
        _LOGGER.debug("Dispatcher started for %s", self._primary_kind)

    def stop(self) -> None:
        """Unsubscribe from object notifications."""
        for remove in self._remove_listeners:
            remove()
        self._remove_listeners.clear()

    def dispatch(
        self, resource_id: NamedResource, obj: BaseManifest
    ) -> NamedResource | None:
        """Return the broker identity to reconcile for a notification, if any."""
        kind = resource_id.kind
        if kind == self._primary_kind:
            return resource_id
        if kind in self._owned_kinds:
            if not filter_controller(obj, self._primary_kind, self._primary_group):
                return None
            return controller_key(obj)
        if kind in self._referencing_kinds:
            if not filter_trigger_for_broker(
                obj, self._resolver, self._primary_kind, self._primary_group
            ):
                return None
            if isinstance(obj, Trigger):
                return trigger_broker_key(obj)
        return None

    def handle(self, resource_id: NamedResource, obj: BaseManifest) -> None:
        """Enqueue the broker affected by a notification."""
        if (key := self.dispatch(resource_id, obj)) is None:
            _LOGGER.debug("Dropping notification for %s", resource_id)
            return
        _LOGGER.debug("Notification for %s enqueues %s", resource_id, key)
        self._queue.add(key)
