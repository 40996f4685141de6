"""Lifecycle of a RedisBroker status.

The broker is Ready when the Redis workload and service, the broker workload
and service are all available and the broker has an address. Each of those
is a dependent condition of the broker's condition set.
"""

from collections.abc import Callable, Iterable
from datetime import datetime

from .conditions import ConditionAccessor, ConditionManager, ConditionSet
from .conditions import ConditionSetRegistry
from .manifest import (
    BrokerStatus,
    Condition,
    ConditionStatus,
    Deployment,
    RedisBroker,
    Service,
)

__all__ = [
    "BrokerLifecycle",
    "DEFAULT_CONDITION_SET",
    "propagate_child_availability",
]


REDIS_DEPLOYMENT_READY = "RedisDeploymentReady"
REDIS_SERVICE_READY = "RedisServiceReady"
BROKER_DEPLOYMENT_READY = "BrokerDeploymentReady"
BROKER_SERVICE_READY = "BrokerServiceReady"
ADDRESSABLE = "Addressable"

CHILD_AVAILABLE = "Available"

DEFAULT_CONDITION_SET = ConditionSet.new_living_set(
    REDIS_DEPLOYMENT_READY,
    REDIS_SERVICE_READY,
    BROKER_DEPLOYMENT_READY,
    BROKER_SERVICE_READY,
    ADDRESSABLE,
)

# Reason prefix and human label for each child condition
_CHILD_NAMES: dict[str, tuple[str, str]] = {
    REDIS_DEPLOYMENT_READY: ("RedisDeployment", "Redis Deployment"),
    REDIS_SERVICE_READY: ("RedisService", "Redis Service"),
    BROKER_DEPLOYMENT_READY: ("BrokerDeployment", "Broker Deployment"),
    BROKER_SERVICE_READY: ("BrokerService", "Broker Service"),
}


def _child_names(own_type: str) -> tuple[str, str]:
    if own_type in _CHILD_NAMES:
        return _CHILD_NAMES[own_type]
    return own_type, own_type


def propagate_child_availability(
    manager: ConditionManager,
    accessor: ConditionAccessor,
    own_type: str,
    child_conditions: Iterable[Condition],
    condition_type: str = CHILD_AVAILABLE,
) -> None:
    """Copy the availability of a child onto one dependent condition.

    The child's condition of `condition_type` is passed through as is. A
    missing condition is treated as Unknown. Snapshots may be stale; the
    last call wins.
    """
    prefix, label = _child_names(own_type)
    child = next((c for c in child_conditions if c.type == condition_type), None)
    if child is None:
        manager.mark_unknown(
            accessor,
            own_type,
            f"{prefix}Unknown",
            f"The {label} has no {condition_type} condition",
        )
        return
    if child.status == ConditionStatus.TRUE:
        manager.mark_true(accessor, own_type)
    elif child.status == ConditionStatus.FALSE:
        manager.mark_false(
            accessor,
            own_type,
            child.reason or f"{prefix}False",
            child.message or f"The status of {label} is False",
        )
    else:
        manager.mark_unknown(
            accessor,
            own_type,
            child.reason or f"{prefix}Unknown",
            child.message or f"The status of {label} is Unknown",
        )


class BrokerLifecycle:
    """Status operations of a RedisBroker against the active condition set."""

    def __init__(
        self,
        registry: ConditionSetRegistry | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._registry = registry or ConditionSetRegistry(DEFAULT_CONDITION_SET)
        self._clock = clock

    @property
    def registry(self) -> ConditionSetRegistry:
        return self._registry

    def manage(self) -> ConditionManager:
        """Return a manager for the currently active condition set."""
        if self._clock is None:
            return ConditionManager(self._registry.get())
        return ConditionManager(self._registry.get(), self._clock)

    def initialize_conditions(self, status: BrokerStatus) -> None:
        """Set relevant unset conditions to Unknown."""
        self.manage().initialize_conditions(status)

    def get_condition(self, status: BrokerStatus, cond_type: str) -> Condition | None:
        return self.manage().get_condition(status, cond_type)

    def get_top_level_condition(self, status: BrokerStatus) -> Condition:
        return self.manage().get_top_level_condition(status)

    def is_ready(self, broker: RedisBroker) -> bool:
        """Return True if the broker is Ready and its latest spec was observed."""
        status = broker.status
        return (
            status.observed_generation == broker.generation
            and self.manage().is_happy(status)
        )

    def set_address(self, status: BrokerStatus, url: str | None) -> None:
        """Make the broker addressable at the URL, or not addressable when empty."""
        manager = self.manage()
        if url:
            status.address = url
            manager.mark_true(status, ADDRESSABLE)
        else:
            status.address = None
            manager.mark_false(
                status, ADDRESSABLE, "NoURL", "address is not yet resolvable"
            )

    def mark_failed(
        self, status: BrokerStatus, cond_type: str, reason: str, message: str
    ) -> None:
        self.manage().mark_false(status, cond_type, reason, message)

    def mark_unknown(
        self, status: BrokerStatus, cond_type: str, reason: str, message: str
    ) -> None:
        self.manage().mark_unknown(status, cond_type, reason, message)

    def mark_ready(self, status: BrokerStatus, cond_type: str) -> None:
        self.manage().mark_true(status, cond_type)

    def propagate_redis_deployment_availability(
        self, status: BrokerStatus, deployment: Deployment
    ) -> None:
        propagate_child_availability(
            self.manage(), status, REDIS_DEPLOYMENT_READY, deployment.conditions
        )

    def propagate_redis_service_availability(
        self, status: BrokerStatus, service: Service
    ) -> None:
        propagate_child_availability(
            self.manage(), status, REDIS_SERVICE_READY, service.conditions
        )

    def propagate_broker_deployment_availability(
        self, status: BrokerStatus, deployment: Deployment
    ) -> None:
        propagate_child_availability(
            self.manage(), status, BROKER_DEPLOYMENT_READY, deployment.conditions
        )

    def propagate_broker_service_availability(
        self, status: BrokerStatus, service: Service
    ) -> None:
        propagate_child_availability(
            self.manage(), status, BROKER_SERVICE_READY, service.conditions
        )
