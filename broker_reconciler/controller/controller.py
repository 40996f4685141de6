"""
RedisBroker Controller implementation.

This controller keeps every RedisBroker reconciled with its children: a Redis
workload and service (unless an external Redis is used), the broker
workload, its service account and its service. The observed availability of
the children is folded into the broker's conditions and the broker becomes
addressable once its service exists.

Key Concepts:
    - Dispatcher: Turns store notifications into broker keys on a work queue.
    - WorkQueue: Dedups keys, serializes work per key and backs off failures.
    - BrokerLifecycle: Condition operations against the active condition set.

Reconciliation is level-triggered: every pass derives the full desired state
from the current spec, whatever notification caused it.
"""

import asyncio
import copy
import logging
from typing import TypeVar

from broker_reconciler.config import ControllerConfig
from broker_reconciler.dispatcher import Dispatcher, WorkQueue
from broker_reconciler.exceptions import (
    BrokerException,
    ObjectNotFoundError,
    PermanentConfigurationError,
    QueueShutdownError,
    ResourceConflictError,
    TransientStoreError,
)
from broker_reconciler.lifecycle import (
    BROKER_DEPLOYMENT_READY,
    BROKER_SERVICE_READY,
    REDIS_DEPLOYMENT_READY,
    REDIS_SERVICE_READY,
    BrokerLifecycle,
)
from broker_reconciler.manifest import (
    BrokerStatus,
    NamedResource,
    OwnedManifest,
    RedisBroker,
)
from broker_reconciler.store import Store
from broker_reconciler.task import TaskService, get_task_service

from . import resources
from .children import (
    ChildReconciler,
    DeploymentReconciler,
    ServiceAccountReconciler,
    ServiceReconciler,
)

__all__ = ["BrokerController"]

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T", bound=OwnedManifest)


class BrokerController:
    """
    Controller for reconciling RedisBroker resources.

    Workers drain a shared work queue. A given broker is never reconciled by
    two workers at once; different brokers are reconciled concurrently.
    """

    def __init__(
        self,
        store: Store,
        config: ControllerConfig | None = None,
        lifecycle: BrokerLifecycle | None = None,
        task_service: TaskService | None = None,
    ) -> None:
        """
        Initialize the controller and start its workers.

        Args:
            store: The central store holding brokers, children and triggers
            config: The configuration for the controller
            lifecycle: Condition operations, defaults to the RedisBroker set
            task_service: Service used to run the workers
        """
        self._store = store
        self._config = config or ControllerConfig()
        self._lifecycle = lifecycle or BrokerLifecycle()
        self._queue: WorkQueue[NamedResource] = WorkQueue(
            self._config.queue, name=RedisBroker.kind
        )
        self._dispatcher = Dispatcher(store, self._queue)
        self._deployments = DeploymentReconciler(store)
        self._services = ServiceReconciler(store)
        self._service_accounts = ServiceAccountReconciler(store)
        self._task_service = task_service or get_task_service()
        self._dispatcher.start()
        self._tasks = [
            self._task_service.create_background_task(
                self._worker(i), name=f"broker-worker-{i}"
            )
            for i in range(self._config.workers)
        ]

    @property
    def lifecycle(self) -> BrokerLifecycle:
        return self._lifecycle

    @property
    def queue(self) -> WorkQueue[NamedResource]:
        return self._queue

    async def close(self) -> None:
        """Stop dispatching, shut the queue down and wait for the workers."""
        _LOGGER.info("Closing BrokerController")
        self._dispatcher.stop()
        self._queue.shutdown()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

    async def wait_idle(self) -> None:
        """Wait until no broker is queued or being reconciled."""
        await self._queue.wait_idle()

    async def _worker(self, worker_id: int) -> None:
        _LOGGER.debug("Worker %d started", worker_id)
        while True:
            try:
                key = await self._queue.get()
            except QueueShutdownError:
                _LOGGER.debug("Worker %d stopped", worker_id)
                return
            try:
                await self.reconcile(key)
            except asyncio.CancelledError:
                raise
            except BrokerException as err:
                _LOGGER.warning("Failed to reconcile %s, will retry: %s", key, err)
                self._queue.add_rate_limited(key)
            except Exception:
                _LOGGER.exception("Unexpected error reconciling %s, will retry", key)
                self._queue.add_rate_limited(key)
            else:
                self._queue.forget(key)
            finally:
                self._queue.done(key)

    async def reconcile(self, resource_id: NamedResource) -> None:
        """
        Reconcile a RedisBroker.

        A permanent configuration error is reported on the broker status and
        not raised. Transient and conflict errors are reported on the status
        as well as possible and then raised so the broker is retried.

        Args:
            resource_id: The identifier of the RedisBroker.

        Raises:
            TransientStoreError: If the store could not be read or written.
            ResourceConflictError: If a child is controlled by another object.
        """
        try:
            broker = self._store.get_object(resource_id, RedisBroker)
        except Exception as err:
            raise TransientStoreError(f"Failed to get {resource_id}: {err}") from err
        if broker is None:
            _LOGGER.debug("Broker %s no longer exists, nothing to do", resource_id)
            return

        _LOGGER.info("Reconciling broker %s", resource_id)
        original = broker.status
        status = copy.deepcopy(original)
        self._lifecycle.initialize_conditions(status)
        try:
            self._reconcile_kind(broker, status)
        except PermanentConfigurationError as err:
            _LOGGER.info("Broker %s has an invalid spec: %s", resource_id, err)
            self._lifecycle.mark_failed(
                status,
                err.condition_type or BROKER_DEPLOYMENT_READY,
                err.reason,
                err.message,
            )
        except (ResourceConflictError, TransientStoreError):
            self._persist_best_effort(resource_id, original, status)
            raise

        status.observed_generation = broker.generation
        self._persist(resource_id, original, status)
        broker.status = status
        _LOGGER.info(
            "Reconciled broker %s (ready=%s)",
            resource_id,
            self._lifecycle.is_ready(broker),
        )

    def _reconcile_kind(self, broker: RedisBroker, status: BrokerStatus) -> None:
        resources.validate_spec(broker)
        lifecycle = self._lifecycle

        if broker.spec.redis.connection_url:
            lifecycle.mark_ready(status, REDIS_DEPLOYMENT_READY)
            lifecycle.mark_ready(status, REDIS_SERVICE_READY)
        else:
            redis_deployment = self._reconcile_child(
                status,
                REDIS_DEPLOYMENT_READY,
                self._deployments,
                broker,
                resources.redis_deployment(broker, self._config),
            )
            lifecycle.propagate_redis_deployment_availability(status, redis_deployment)
            redis_service = self._reconcile_child(
                status,
                REDIS_SERVICE_READY,
                self._services,
                broker,
                resources.redis_service(broker, self._config),
            )
            lifecycle.propagate_redis_service_availability(status, redis_service)

        self._reconcile_child(
            status,
            BROKER_DEPLOYMENT_READY,
            self._service_accounts,
            broker,
            resources.broker_service_account(broker),
        )
        broker_deployment = self._reconcile_child(
            status,
            BROKER_DEPLOYMENT_READY,
            self._deployments,
            broker,
            resources.broker_deployment(broker, self._config),
        )
        lifecycle.propagate_broker_deployment_availability(status, broker_deployment)
        broker_service = self._reconcile_child(
            status,
            BROKER_SERVICE_READY,
            self._services,
            broker,
            resources.broker_service(broker),
        )
        lifecycle.propagate_broker_service_availability(status, broker_service)
        lifecycle.set_address(
            status, resources.broker_address(broker_service, self._config)
        )

    def _reconcile_child(
        self,
        status: BrokerStatus,
        cond_type: str,
        reconciler: ChildReconciler[T],
        broker: RedisBroker,
        desired: T,
    ) -> T:
        try:
            return reconciler.reconcile(broker, desired)
        except ResourceConflictError as err:
            self._lifecycle.mark_failed(status, cond_type, err.reason, err.message)
            raise
        except TransientStoreError as err:
            self._lifecycle.mark_unknown(status, cond_type, "StoreError", str(err))
            raise

    def _persist(
        self, resource_id: NamedResource, original: BrokerStatus, status: BrokerStatus
    ) -> None:
        if status == original:
            _LOGGER.debug("Status of %s unchanged", resource_id)
            return
        try:
            self._store.update_status(resource_id, status)
        except ObjectNotFoundError:
            _LOGGER.debug("Broker %s deleted during reconcile", resource_id)
        except BrokerException:
            raise
        except Exception as err:
            raise TransientStoreError(
                f"Failed to update status of {resource_id}: {err}"
            ) from err

    def _persist_best_effort(
        self, resource_id: NamedResource, original: BrokerStatus, status: BrokerStatus
    ) -> None:
        try:
            self._persist(resource_id, original, status)
        except BrokerException as err:
            _LOGGER.warning("Unable to record failure on %s: %s", resource_id, err)
