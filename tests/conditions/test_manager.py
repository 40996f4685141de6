"""Tests for the ConditionManager."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
import itertools

import pytest

from broker_reconciler.conditions import ConditionManager, ConditionSet, READY
from broker_reconciler.manifest import BrokerStatus, Condition, ConditionStatus

TYPES = ("A", "B", "C")

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


@dataclass
class FakeClock:
    """A clock advancing one second on every reading."""

    now: datetime = START
    readings: list[datetime] = field(default_factory=list)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        self.readings.append(self.now)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def manager(clock: FakeClock) -> ConditionManager:
    return ConditionManager(ConditionSet.new_living_set(*TYPES), clock)


def test_initialize_conditions(manager: ConditionManager) -> None:
    """Test that every declared condition starts out Unknown."""
    status = BrokerStatus()
    manager.initialize_conditions(status)
    assert [c.type for c in status.conditions] == ["A", "B", "C", READY]
    assert all(c.status == ConditionStatus.UNKNOWN for c in status.conditions)
    assert all(c.last_transition_time is not None for c in status.conditions)


def test_initialize_conditions_idempotent(manager: ConditionManager) -> None:
    """Test that initializing twice does not touch existing conditions."""
    status = BrokerStatus()
    manager.initialize_conditions(status)
    manager.mark_true(status, "A")
    snapshot = [Condition(**vars(c)) for c in status.conditions]
    manager.initialize_conditions(status)
    assert status.conditions == snapshot


def test_all_true_is_happy(manager: ConditionManager) -> None:
    """Test that the top-level condition is True when every dependent is."""
    status = BrokerStatus()
    manager.initialize_conditions(status)
    for cond_type in TYPES:
        assert not manager.is_happy(status)
        manager.mark_true(status, cond_type)
    assert manager.is_happy(status)
    ready = manager.get_condition(status, READY)
    assert ready
    assert ready.status == ConditionStatus.TRUE
    assert ready.reason == ""


@pytest.mark.parametrize("order", list(itertools.permutations(TYPES)))
def test_order_of_marks_is_irrelevant(
    order: tuple[str, ...], manager: ConditionManager
) -> None:
    """Test that the top-level condition does not depend on the mark order."""
    status = BrokerStatus()
    manager.initialize_conditions(status)
    for cond_type in order:
        manager.mark_true(status, cond_type)
    assert manager.is_happy(status)


MIXED_MARKS = {
    "A": (ConditionStatus.UNKNOWN, "WaitingA"),
    "B": (ConditionStatus.FALSE, "FailedB"),
    "C": (ConditionStatus.FALSE, "FailedC"),
}

UNKNOWN_MARKS = {
    "A": (ConditionStatus.TRUE, ""),
    "B": (ConditionStatus.UNKNOWN, "WaitingB"),
    "C": (ConditionStatus.UNKNOWN, "WaitingC"),
}


@pytest.mark.parametrize(
    ("marks", "expected_status", "expected_reason"),
    [
        (MIXED_MARKS, ConditionStatus.FALSE, "FailedB"),
        (UNKNOWN_MARKS, ConditionStatus.UNKNOWN, "WaitingB"),
    ],
    ids=["false", "unknown"],
)
@pytest.mark.parametrize("order", list(itertools.permutations(TYPES)))
def test_order_of_failures_is_irrelevant(
    order: tuple[str, ...],
    marks: dict[str, tuple[ConditionStatus, str]],
    expected_status: ConditionStatus,
    expected_reason: str,
    manager: ConditionManager,
) -> None:
    """Test the earliest declared failing dependent is surfaced in any mark order."""
    status = BrokerStatus()
    manager.initialize_conditions(status)
    for cond_type in order:
        cond_status, reason = marks[cond_type]
        if cond_status == ConditionStatus.TRUE:
            manager.mark_true(status, cond_type)
        elif cond_status == ConditionStatus.FALSE:
            manager.mark_false(status, cond_type, reason, f"{cond_type} failed")
        else:
            manager.mark_unknown(status, cond_type, reason, f"{cond_type} pending")
    top = manager.get_top_level_condition(status)
    assert top.status == expected_status
    assert top.reason == expected_reason
    ready = manager.get_condition(status, READY)
    assert ready
    assert ready.status == expected_status
    assert ready.reason == expected_reason


def test_false_takes_precedence_over_unknown(manager: ConditionManager) -> None:
    """Test that a False dependent is surfaced ahead of an earlier Unknown."""
    status = BrokerStatus()
    manager.initialize_conditions(status)
    manager.mark_unknown(status, "A", "Waiting", "A is pending")
    manager.mark_false(status, "C", "Broken", "C failed")
    top = manager.get_top_level_condition(status)
    assert top.status == ConditionStatus.FALSE
    assert top.reason == "Broken"
    assert top.message == "C failed"


def test_first_declared_wins(manager: ConditionManager) -> None:
    """Test that the earliest declared dependent is surfaced."""
    status = BrokerStatus()
    manager.initialize_conditions(status)
    manager.mark_false(status, "C", "ReasonC", "")
    manager.mark_false(status, "B", "ReasonB", "")
    assert manager.get_top_level_condition(status).reason == "ReasonB"
    manager.mark_true(status, "B")
    assert manager.get_top_level_condition(status).reason == "ReasonC"


def test_missing_dependent_is_unknown(manager: ConditionManager) -> None:
    """Test that a dependent that was never set counts as Unknown."""
    status = BrokerStatus()
    manager.mark_true(status, "A")
    manager.mark_true(status, "B")
    top = manager.get_top_level_condition(status)
    assert top.status == ConditionStatus.UNKNOWN
    assert not manager.is_happy(status)


def test_undeclared_type_ignored(manager: ConditionManager) -> None:
    """Test that marking an undeclared type does nothing."""
    status = BrokerStatus()
    manager.mark_true(status, "Other")
    assert status.conditions == []


def test_transition_time_kept_on_same_status(
    manager: ConditionManager, clock: FakeClock
) -> None:
    """Test that the transition time only moves when the status changes."""
    status = BrokerStatus()
    manager.mark_false(status, "A", "First", "first failure")
    cond = manager.get_condition(status, "A")
    assert cond
    first_time = cond.last_transition_time

    manager.mark_false(status, "A", "Second", "second failure")
    cond = manager.get_condition(status, "A")
    assert cond
    assert cond.reason == "Second"
    assert cond.last_transition_time == first_time

    manager.mark_true(status, "A")
    cond = manager.get_condition(status, "A")
    assert cond
    assert cond.last_transition_time
    assert first_time
    assert cond.last_transition_time > first_time


def test_at_most_one_condition_per_type(manager: ConditionManager) -> None:
    """Test that repeated marks keep a single condition per type."""
    status = BrokerStatus()
    manager.initialize_conditions(status)
    for _ in range(3):
        manager.mark_true(status, "A")
        manager.mark_false(status, "A", "Broken", "")
        manager.mark_unknown(status, "A", "Waiting", "")
    types = [c.type for c in status.conditions]
    assert len(types) == len(set(types))


def test_address_flip(clock: FakeClock) -> None:
    """Test marking a condition False and then True leaves one True condition."""
    manager = ConditionManager(ConditionSet.new_living_set("Addressable"), clock)
    status = BrokerStatus()
    manager.mark_false(status, "Addressable", "NoURL", "")
    before = clock.now
    manager.mark_true(status, "Addressable")
    conditions = [c for c in status.conditions if c.type == "Addressable"]
    assert len(conditions) == 1
    assert conditions[0].status == ConditionStatus.TRUE
    assert conditions[0].last_transition_time
    assert conditions[0].last_transition_time >= before
    assert manager.is_happy(status)
