"""Command line action reconciling brokers read from local manifests."""

import dataclasses
import logging
import pathlib
import sys
from argparse import (
    ArgumentParser,
    BooleanOptionalAction,
    _SubParsersAction as SubParsersAction,
)
from typing import Any, TextIO, cast

import yaml

from broker_reconciler.config import ControllerConfig
from broker_reconciler.controller import BrokerController
from broker_reconciler.lifecycle import CHILD_AVAILABLE, BrokerLifecycle
from broker_reconciler.loader import LoadOptions, ResourceLoader
from broker_reconciler.manifest import (
    Condition,
    ConditionStatus,
    Deployment,
    OwnedManifest,
    RedisBroker,
    Service,
    DEPLOYMENT_KIND,
    REDIS_BROKER_KIND,
    SERVICE_KIND,
)
from broker_reconciler.store import InMemoryStore, Store
from broker_reconciler.task import task_service_context

_LOGGER = logging.getLogger(__name__)

AVAILABLE_REASON = "AssumedAvailable"


def broker_summary(lifecycle: BrokerLifecycle, broker: RedisBroker) -> dict[str, Any]:
    """Return a printable summary of the status of a broker."""
    top = lifecycle.get_top_level_condition(broker.status)
    summary: dict[str, Any] = {
        "name": broker.name,
        "namespace": broker.namespace,
        "ready": lifecycle.is_ready(broker),
    }
    if top.reason:
        summary["reason"] = top.reason
    if top.message:
        summary["message"] = top.message
    if broker.status.address:
        summary["address"] = broker.status.address
    summary["conditions"] = {
        cond.type: str(cond.status) for cond in broker.status.conditions
    }
    return summary


def mark_children_available(store: Store) -> int:
    """Mark every broker owned workload and service as available.

    There is no cluster running the children locally, so this stands in for
    the workload controllers reporting them available.
    """
    count = 0
    for kind in (DEPLOYMENT_KIND, SERVICE_KIND):
        for obj in store.list_objects(kind):
            child = cast(Deployment | Service, obj)
            owner = cast(OwnedManifest, child).controller_of()
            if owner is None or owner.kind != REDIS_BROKER_KIND:
                continue
            if any(
                c.type == CHILD_AVAILABLE and c.status == ConditionStatus.TRUE
                for c in child.conditions
            ):
                continue
            child.conditions = [
                c for c in child.conditions if c.type != CHILD_AVAILABLE
            ] + [
                Condition(
                    type=CHILD_AVAILABLE,
                    status=ConditionStatus.TRUE,
                    reason=AVAILABLE_REASON,
                )
            ]
            store.add_object(child)
            count += 1
    return count


class ReconcileAction:
    """Reconcile brokers from local manifests and print their status."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "reconcile",
                help="Reconcile RedisBrokers found in local manifests",
                description=(
                    "Load RedisBrokers, Triggers and existing child objects from "
                    "local manifests, reconcile them and print each broker status."
                ),
            ),
        )
        args.add_argument(
            "--path",
            help="Path to a manifest file or a directory of manifests",
            type=pathlib.Path,
            required=True,
        )
        args.add_argument(
            "--config",
            help="Optional YAML file with the controller configuration",
            type=pathlib.Path,
            default=None,
        )
        args.add_argument(
            "--workers",
            help="Number of concurrent reconcile workers",
            type=int,
            default=None,
        )
        args.add_argument(
            "--assume-available",
            default=False,
            action=BooleanOptionalAction,
            help="Report created workloads and services as available",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        path: pathlib.Path,
        config: pathlib.Path | None,
        workers: int | None,
        assume_available: bool,
        output: TextIO = sys.stdout,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        controller_config = (
            ControllerConfig.from_file(config) if config else ControllerConfig()
        )
        if workers is not None:
            controller_config = dataclasses.replace(controller_config, workers=workers)

        store = InMemoryStore()
        with task_service_context():
            controller = BrokerController(store, controller_config)
            try:
                loader = ResourceLoader()
                async for obj in loader.load(LoadOptions(path=path)):
                    store.add_object(obj)
                await controller.wait_idle()
                if assume_available and mark_children_available(store):
                    await controller.wait_idle()
            finally:
                await controller.close()

        summaries = [
            broker_summary(controller.lifecycle, cast(RedisBroker, broker))
            for broker in sorted(
                store.list_objects(REDIS_BROKER_KIND),
                key=lambda obj: (obj.namespace, obj.name),  # type: ignore[attr-defined]
            )
        ]
        _LOGGER.debug("Reconciled %d brokers", len(summaries))
        for summary in summaries:
            yaml.dump(summary, output, sort_keys=False, explicit_start=True)
