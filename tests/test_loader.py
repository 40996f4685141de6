"""Tests for the resource loader."""

import pathlib

import pytest

from broker_reconciler.exceptions import BrokerException
from broker_reconciler.loader import LoadOptions, ResourceLoader
from broker_reconciler.manifest import BaseManifest, RedisBroker, Trigger

TESTDATA = pathlib.Path("tests/testdata")


async def load(options: LoadOptions) -> list[BaseManifest]:
    loader = ResourceLoader()
    return [obj async for obj in loader.load(options)]


async def test_load_directory() -> None:
    """Test loading every manifest below a directory."""
    objs = await load(LoadOptions(path=TESTDATA / "brokers"))
    assert [(type(obj).__name__, obj.name) for obj in objs] == [  # type: ignore[attr-defined]
        ("RedisBroker", "demo"),
        ("Trigger", "display"),
        ("RedisBroker", "external"),
    ]
    external = objs[2]
    assert isinstance(external, RedisBroker)
    assert external.namespace == "events"
    assert external.spec.redis.connection_url == "rediss://redis.example.com:6380"
    assert external.spec.redis.stream_max_len == 1000
    trigger = objs[1]
    assert isinstance(trigger, Trigger)
    assert trigger.broker.group == "eventing.triggermesh.io"


async def test_load_not_recursive() -> None:
    objs = await load(LoadOptions(path=TESTDATA / "brokers", recursive=False))
    assert [obj.name for obj in objs] == ["demo", "display"]  # type: ignore[attr-defined]


async def test_load_file() -> None:
    objs = await load(LoadOptions(path=TESTDATA / "brokers" / "extra" / "external.yml"))
    assert len(objs) == 1


async def test_load_missing_path() -> None:
    with pytest.raises(BrokerException, match="Path does not exist"):
        await load(LoadOptions(path=TESTDATA / "missing"))


async def test_load_invalid_yaml(tmp_path: pathlib.Path) -> None:
    manifest = tmp_path / "bad.yaml"
    manifest.write_text("kind: [RedisBroker\n")
    with pytest.raises(BrokerException, match="Invalid YAML"):
        await load(LoadOptions(path=manifest))


async def test_load_invalid_document(tmp_path: pathlib.Path) -> None:
    manifest = tmp_path / "bad.yaml"
    manifest.write_text("--- just a string\n")
    with pytest.raises(BrokerException, match="Invalid document"):
        await load(LoadOptions(path=manifest))


@pytest.mark.parametrize(
    "content",
    [
        "apiVersion: apps/v1\nkind: Deployment\nmetadata:\n  name: d\nspec:\n  replicas: many\n",
        (
            "apiVersion: apps/v1\nkind: Deployment\nmetadata:\n  name: d\nspec:\n"
            "  template:\n    spec:\n      containers:\n      - env:\n        - value: x\n"
        ),
        (
            "apiVersion: v1\nkind: Service\nmetadata:\n  name: s\nstatus:\n"
            "  conditions:\n  - type: Available\n    lastTransitionTime: yesterday\n"
        ),
    ],
    ids=["invalid-replicas", "env-missing-name", "invalid-transition-time"],
)
async def test_load_malformed_object(tmp_path: pathlib.Path, content: str) -> None:
    """Test a supported object with invalid fields fails the load."""
    manifest = tmp_path / "bad.yaml"
    manifest.write_text(content)
    with pytest.raises(BrokerException, match="Invalid document"):
        await load(LoadOptions(path=manifest))
