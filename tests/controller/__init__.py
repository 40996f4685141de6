"""Test helpers for the broker controller."""

import asyncio
from collections.abc import Callable
from typing import Any

from broker_reconciler.manifest import (
    BaseManifest,
    BrokerStatus,
    Condition,
    NamedResource,
    RedisBroker,
)
from broker_reconciler.store.in_memory import InMemoryStore

BROKER_ID = NamedResource("RedisBroker", "ns", "demo")


class FlakyStore(InMemoryStore):
    """An in-memory store that fails writes of selected kinds."""

    def __init__(self) -> None:
        super().__init__()
        self.failing_kinds: set[str] = set()

    def add_object(self, obj: Any) -> None:
        if getattr(obj, "kind", None) in self.failing_kinds:
            raise RuntimeError(f"store unavailable for {obj.kind}")
        super().add_object(obj)


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Wait until the predicate holds, polling the store."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.005)


def broker_status(
    store: InMemoryStore, resource_id: NamedResource = BROKER_ID
) -> BrokerStatus:
    status = store.get_status(resource_id)
    assert status is not None
    return status


def condition(
    store: InMemoryStore, cond_type: str, resource_id: NamedResource = BROKER_ID
) -> Condition | None:
    status = store.get_status(resource_id)
    if status is None:
        return None
    return next((c for c in status.conditions if c.type == cond_type), None)


def new_broker(name: str = "demo", **kwargs: Any) -> RedisBroker:
    return RedisBroker(name=name, namespace="ns", uid=f"uid-{name}", **kwargs)


def child(store: InMemoryStore, kind: str, name: str, cls: type[BaseManifest]) -> Any:
    return store.get_object(NamedResource(kind, "ns", name), cls)
