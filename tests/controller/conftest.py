"""Test fixtures for the broker controller."""

from typing import AsyncGenerator

import pytest

from broker_reconciler.config import ControllerConfig
from broker_reconciler.controller import BrokerController
from broker_reconciler.dispatcher import WorkQueueConfig

from . import FlakyStore


@pytest.fixture
def store() -> FlakyStore:
    """Create an in-memory store for testing."""
    return FlakyStore()


@pytest.fixture
def config() -> ControllerConfig:
    return ControllerConfig(
        workers=2, queue=WorkQueueConfig(base_delay=0.001, max_delay=0.01)
    )


@pytest.fixture
async def controller(
    store: FlakyStore, config: ControllerConfig
) -> AsyncGenerator[BrokerController, None]:
    """Create a BrokerController with an in-memory store."""
    controller = BrokerController(store, config)
    yield controller
    await controller.close()
