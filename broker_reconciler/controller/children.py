"""Reconcilers that make a child object of a broker match its desired shape."""

import dataclasses
import logging
from typing import Generic, TypeVar

from broker_reconciler.exceptions import (
    BrokerException,
    ResourceConflictError,
    TransientStoreError,
)
from broker_reconciler.manifest import (
    Deployment,
    NamedResource,
    OwnedManifest,
    OwnerReference,
    RedisBroker,
    Service,
    ServiceAccount,
)
from broker_reconciler.store import Store

__all__ = [
    "ChildReconciler",
    "DeploymentReconciler",
    "ServiceReconciler",
    "ServiceAccountReconciler",
]

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T", bound=OwnedManifest)


def _controlled_by(owner: OwnerReference | None, broker: RedisBroker) -> bool:
    """Return True if the owner reference names this incarnation of the broker."""
    if owner is None:
        return False
    if (owner.group, owner.kind, owner.name) != (broker.group, broker.kind, broker.name):
        return False
    return not (owner.uid and broker.uid and owner.uid != broker.uid)


class ChildReconciler(Generic[T]):
    """Creates or updates one kind of child object in the store.

    Fields listed in `observed_fields` are owned by whatever runs the child
    and are carried over from the stored object instead of the desired one.
    """

    child_cls: type[T]
    observed_fields: tuple[str, ...] = ("conditions",)

    def __init__(self, store: Store) -> None:
        self._store = store

    def reconcile(self, broker: RedisBroker, desired: T) -> T:
        """Ensure the child matches the desired object and return what is stored.

        Raises:
            ResourceConflictError: If the child exists but another object controls it.
            TransientStoreError: If reading or writing the store failed.
        """
        resource_id = NamedResource(desired.kind, desired.namespace, desired.name)  # type: ignore[attr-defined]
        current = self._get(resource_id)
        if current is None:
            _LOGGER.info("Creating %s for broker %s", resource_id, broker.resource_id)
            self._put(desired)
            return desired

        owner = current.controller_of()
        if not _controlled_by(owner, broker):
            raise ResourceConflictError(
                "NotOwned",
                f"{resource_id} already exists and is not controlled by {broker.resource_id}",
            )

        merged = dataclasses.replace(
            desired,
            **{name: getattr(current, name) for name in self.observed_fields},
        )
        if merged != current:
            _LOGGER.info("Updating %s for broker %s", resource_id, broker.resource_id)
            self._put(merged)
        return merged

    def _get(self, resource_id: NamedResource) -> T | None:
        try:
            return self._store.get_object(resource_id, self.child_cls)
        except ValueError as err:
            raise ResourceConflictError(
                "NameConflict", f"{resource_id} exists with another type: {err}"
            ) from err
        except BrokerException:
            raise
        except Exception as err:
            raise TransientStoreError(f"Failed to get {resource_id}: {err}") from err

    def _put(self, obj: T) -> None:
        try:
            self._store.add_object(obj)
        except BrokerException:
            raise
        except Exception as err:
            raise TransientStoreError(
                f"Failed to write {obj.kind} {obj.namespace}/{obj.name}: {err}"  # type: ignore[attr-defined]
            ) from err


class DeploymentReconciler(ChildReconciler[Deployment]):
    """Reconciles compute workloads."""

    child_cls = Deployment


class ServiceReconciler(ChildReconciler[Service]):
    """Reconciles network services, keeping the assigned cluster IP."""

    child_cls = Service
    observed_fields = ("conditions", "cluster_ip")


class ServiceAccountReconciler(ChildReconciler[ServiceAccount]):
    """Reconciles the identity of the broker workload."""

    child_cls = ServiceAccount
    observed_fields = ()
