"""Filters deciding whether a change notification concerns a managed broker.

Filters are plain functions. Anything they need to look up is passed in
explicitly as a `ReferenceResolver`.
"""

from abc import ABC, abstractmethod
import logging

from broker_reconciler.exceptions import ObjectNotFoundError
from broker_reconciler.manifest import (
    BaseManifest,
    NamedResource,
    OwnedManifest,
    Trigger,
)
from broker_reconciler.store import Store

__all__ = [
    "ReferenceResolver",
    "StoreReferenceResolver",
    "filter_controller",
    "controller_key",
    "filter_trigger_for_broker",
    "trigger_broker_key",
]

_LOGGER = logging.getLogger(__name__)


class ReferenceResolver(ABC):
    """Resolves the object a reference points at."""

    @abstractmethod
    def lookup(self, kind: str, namespace: str, name: str) -> BaseManifest:
        """Return the referenced object.

        Raises:
            ObjectNotFoundError: If the object does not exist.
        """


class StoreReferenceResolver(ReferenceResolver):
    """Resolves references against the objects in a Store."""

    def __init__(self, store: Store) -> None:
        self._store = store

    def lookup(self, kind: str, namespace: str, name: str) -> BaseManifest:
        resource_id = NamedResource(kind, namespace, name)
        if (obj := self._store.get_object(resource_id, BaseManifest)) is None:
            raise ObjectNotFoundError(f"Object {resource_id} not found")
        return obj


def filter_controller(obj: BaseManifest, owner_kind: str, owner_group: str) -> bool:
    """Return True if the object is controlled by an object of the given kind."""
    if not isinstance(obj, OwnedManifest):
        return False
    if (owner := obj.controller_of()) is None:
        return False
    return owner.kind == owner_kind and owner.group == owner_group


def controller_key(obj: BaseManifest) -> NamedResource | None:
    """Return the identity of the object controlling this object, if any."""
    if not isinstance(obj, OwnedManifest) or (owner := obj.controller_of()) is None:
        return None
    return NamedResource(owner.kind, getattr(obj, "namespace", None), owner.name)


def filter_trigger_for_broker(
    obj: BaseManifest,
    resolver: ReferenceResolver,
    broker_kind: str,
    broker_group: str,
) -> bool:
    """Return True if the object is a Trigger pointing at an existing broker.

    An unset group on the reference matches any group. A broker that cannot
    be looked up for any reason other than not existing is logged and the
    trigger is ignored; a later notification will try again.
    """
    if not isinstance(obj, Trigger):
        return False
    ref = obj.broker
    if ref.group not in (broker_group, "") or ref.kind != broker_kind:
        return False
    try:
        resolver.lookup(broker_kind, obj.namespace, ref.name)
    except ObjectNotFoundError:
        _LOGGER.debug(
            "Trigger %s/%s references missing broker %s",
            obj.namespace,
            obj.name,
            ref.name,
        )
        return False
    except Exception as err:  # pylint: disable=broad-except
        _LOGGER.error(
            "Unable to get broker %s for trigger %s/%s: %s",
            ref.name,
            obj.namespace,
            obj.name,
            err,
        )
        return False
    return True


def trigger_broker_key(trigger: Trigger) -> NamedResource:
    """Return the identity of the broker a trigger points at."""
    return NamedResource(trigger.broker.kind, trigger.namespace, trigger.broker.name)
