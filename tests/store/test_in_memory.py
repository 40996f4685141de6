import pytest
from dataclasses import dataclass

from broker_reconciler.store import InMemoryStore
from broker_reconciler.store.store import StoreEvent
from broker_reconciler.manifest import (
    BaseManifest,
    BrokerStatus,
    Condition,
    ConditionStatus,
    NamedResource,
    RedisBroker,
    RedisBrokerSpec,
    BrokerSpec,
)
from broker_reconciler.exceptions import ObjectNotFoundError


@dataclass
class DummyManifest(BaseManifest):
    kind: str
    namespace: str
    name: str
    value: int


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


def test_add_and_get_object(store: InMemoryStore) -> None:
    """Test adding and retrieving a manifest object."""
    obj = DummyManifest(kind="TestKind", namespace="ns", name="foo", value=42)
    rid = NamedResource("TestKind", "ns", "foo")
    store.add_object(obj)
    result = store.get_object(rid, DummyManifest)
    assert result == obj

    class NotDummy(BaseManifest):
        pass

    with pytest.raises(
        ValueError, match=r"Object ns/foo is not of type NotDummy \(was DummyManifest\)"
    ):
        store.get_object(rid, NotDummy)


def test_get_object_returns_copy(store: InMemoryStore) -> None:
    """Test that mutating a returned object does not change the store."""
    store.add_object(DummyManifest(kind="TestKind", namespace="ns", name="foo", value=1))
    rid = NamedResource("TestKind", "ns", "foo")
    result = store.get_object(rid, DummyManifest)
    assert result
    result.value = 2
    assert store.get_object(rid, DummyManifest) == DummyManifest(
        kind="TestKind", namespace="ns", name="foo", value=1
    )


def test_list_objects(store: InMemoryStore) -> None:
    """Test listing objects."""
    obj1 = DummyManifest(kind="KindA", namespace="ns", name="foo", value=1)
    obj2 = DummyManifest(kind="KindB", namespace="ns", name="bar", value=2)
    obj3 = DummyManifest(kind="KindA", namespace="ns", name="baz", value=3)
    store.add_object(obj1)
    store.add_object(obj2)
    store.add_object(obj3)
    all_objs = store.list_objects()
    assert sorted(all_objs, key=lambda x: x.name) == sorted(  # type: ignore[attr-defined]
        [obj1, obj2, obj3], key=lambda x: x.name
    )
    kind_a_objs = store.list_objects(kind="KindA")
    assert sorted(kind_a_objs, key=lambda x: x.name) == sorted(  # type: ignore[attr-defined]
        [obj1, obj3], key=lambda x: x.name
    )
    kind_b_objs = store.list_objects(kind="KindB")
    assert kind_b_objs == [obj2]


def test_object_added_listener(store: InMemoryStore) -> None:
    events = []

    def on_added(resource_id: NamedResource, obj: DummyManifest) -> None:
        events.append((resource_id, obj))

    remove = store.add_listener(StoreEvent.OBJECT_ADDED, on_added)
    obj = DummyManifest(kind="TestKind", namespace="ns", name="foo", value=1)
    rid = NamedResource("TestKind", "ns", "foo")
    store.add_object(obj)
    assert events == [(rid, obj)]
    remove()
    store.add_object(
        DummyManifest(kind="TestKind", namespace="ns", name="bar", value=2)
    )
    # Listener should not be called after removal
    assert len(events) == 1


def test_object_added_listener_flush(store: InMemoryStore) -> None:
    """Test that existing objects are replayed to a new listener on flush."""
    store.add_object(DummyManifest(kind="TestKind", namespace="ns", name="foo", value=1))
    events: list[NamedResource] = []
    store.add_listener(
        StoreEvent.OBJECT_ADDED, lambda rid, obj: events.append(rid), flush=True
    )
    assert events == [NamedResource("TestKind", "ns", "foo")]


def test_object_updated_listener(store: InMemoryStore) -> None:
    """Test that only a changed object fires an update notification."""
    events: list[int] = []
    store.add_listener(
        StoreEvent.OBJECT_UPDATED, lambda rid, obj: events.append(obj.value)
    )
    store.add_object(DummyManifest(kind="TestKind", namespace="ns", name="foo", value=1))
    store.add_object(DummyManifest(kind="TestKind", namespace="ns", name="foo", value=1))
    assert events == []
    store.add_object(DummyManifest(kind="TestKind", namespace="ns", name="foo", value=2))
    assert events == [2]


def test_delete_object(store: InMemoryStore) -> None:
    """Test deleting an object fires a notification once."""
    events: list[NamedResource] = []
    store.add_listener(StoreEvent.OBJECT_DELETED, lambda rid, obj: events.append(rid))
    rid = NamedResource("TestKind", "ns", "foo")
    store.add_object(DummyManifest(kind="TestKind", namespace="ns", name="foo", value=1))
    store.delete_object(rid)
    store.delete_object(rid)
    assert store.get_object(rid, DummyManifest) is None
    assert events == [rid]


def test_listener_failure_is_isolated(store: InMemoryStore) -> None:
    """Test that a failing listener does not prevent others from running."""
    events: list[NamedResource] = []

    def fail(rid: NamedResource, obj: BaseManifest) -> None:
        raise RuntimeError("boom")

    store.add_listener(StoreEvent.OBJECT_ADDED, fail)
    store.add_listener(StoreEvent.OBJECT_ADDED, lambda rid, obj: events.append(rid))
    store.add_object(DummyManifest(kind="TestKind", namespace="ns", name="foo", value=1))
    assert events == [NamedResource("TestKind", "ns", "foo")]


def test_broker_generation(store: InMemoryStore) -> None:
    """Test that a spec change advances the generation of a broker."""
    broker = RedisBroker(name="demo", namespace="ns")
    store.add_object(broker)
    rid = broker.resource_id
    stored = store.get_object(rid, RedisBroker)
    assert stored
    assert stored.generation == 1

    store.add_object(RedisBroker(name="demo", namespace="ns"))
    stored = store.get_object(rid, RedisBroker)
    assert stored
    assert stored.generation == 1

    store.add_object(
        RedisBroker(
            name="demo",
            namespace="ns",
            spec=RedisBrokerSpec(broker=BrokerSpec(replicas=3)),
        )
    )
    stored = store.get_object(rid, RedisBroker)
    assert stored
    assert stored.generation == 2


def test_update_and_get_status(store: InMemoryStore) -> None:
    """Test updating and retrieving the status of a broker."""
    broker = RedisBroker(name="demo", namespace="ns")
    store.add_object(broker)
    rid = broker.resource_id
    events: list[NamedResource] = []
    store.add_listener(StoreEvent.STATUS_UPDATED, lambda rid, obj: events.append(rid))

    status = BrokerStatus(
        conditions=[Condition(type="Ready", status=ConditionStatus.TRUE)],
        observed_generation=1,
    )
    store.update_status(rid, status)
    assert store.get_status(rid) == status
    assert events == [rid]

    # Replacing the object keeps the status written through update_status
    store.add_object(RedisBroker(name="demo", namespace="ns"))
    assert store.get_status(rid) == status


def test_update_status_not_found(store: InMemoryStore) -> None:
    """Test updating the status of a missing object."""
    rid = NamedResource("RedisBroker", "ns", "missing")
    with pytest.raises(ObjectNotFoundError):
        store.update_status(rid, BrokerStatus())
    assert store.get_status(rid) is None


def test_update_status_unsupported(store: InMemoryStore) -> None:
    """Test updating the status of an object without a status."""
    store.add_object(DummyManifest(kind="TestKind", namespace="ns", name="foo", value=1))
    with pytest.raises(ValueError, match="does not support status updates"):
        store.update_status(NamedResource("TestKind", "ns", "foo"), BrokerStatus())
