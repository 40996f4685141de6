"""Operations that mutate the conditions of a status object.

The manager works against anything exposing its conditions through
`ConditionAccessor`, so it is shared by every status type that uses a
condition set.
"""

from collections.abc import Callable
from datetime import datetime, timezone
import logging
from typing import Protocol

from broker_reconciler.manifest import Condition, ConditionStatus

from .condition_set import ConditionSet

__all__ = [
    "ConditionAccessor",
    "ConditionManager",
]

_LOGGER = logging.getLogger(__name__)


class ConditionAccessor(Protocol):
    """A status object whose conditions can be read and mutated in place."""

    def get_conditions(self) -> list[Condition]:
        """Return the mutable list of conditions."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConditionManager:
    """Manages the conditions of a status object for a condition set.

    None of the operations raise. The top-level condition is recomputed
    from the dependents after every mutation of a dependent.
    """

    def __init__(
        self,
        condition_set: ConditionSet,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the ConditionManager."""
        self._condition_set = condition_set
        self._clock = clock

    @property
    def condition_set(self) -> ConditionSet:
        return self._condition_set

    def get_condition(
        self, accessor: ConditionAccessor, cond_type: str
    ) -> Condition | None:
        """Return the condition of the given type, or None."""
        for cond in accessor.get_conditions():
            if cond.type == cond_type:
                return cond
        return None

    def initialize_conditions(self, accessor: ConditionAccessor) -> None:
        """Set every declared condition that is missing to Unknown."""
        conditions = accessor.get_conditions()
        present = {cond.type for cond in conditions}
        for cond_type in self._condition_set.all_types:
            if cond_type in present:
                continue
            conditions.append(
                Condition(
                    type=cond_type,
                    status=ConditionStatus.UNKNOWN,
                    last_transition_time=self._clock(),
                )
            )

    def mark_true(self, accessor: ConditionAccessor, cond_type: str) -> None:
        """Mark the condition True."""
        self._mark(accessor, cond_type, ConditionStatus.TRUE, "", "")

    def mark_false(
        self, accessor: ConditionAccessor, cond_type: str, reason: str, message: str
    ) -> None:
        """Mark the condition False with a reason."""
        self._mark(accessor, cond_type, ConditionStatus.FALSE, reason, message)

    def mark_unknown(
        self, accessor: ConditionAccessor, cond_type: str, reason: str, message: str
    ) -> None:
        """Mark the condition Unknown with a reason."""
        self._mark(accessor, cond_type, ConditionStatus.UNKNOWN, reason, message)

    def get_top_level_condition(self, accessor: ConditionAccessor) -> Condition:
        """Compute the top-level condition from the dependent conditions.

        When every dependent is True the top-level condition is True.
        Otherwise the first False dependent in declaration order is surfaced,
        or the first Unknown one if none is False. A missing dependent counts
        as Unknown.
        """
        first_false: Condition | None = None
        first_unknown: Condition | None = None
        for cond_type in self._condition_set.dependent_types:
            cond = self.get_condition(accessor, cond_type) or Condition(type=cond_type)
            if cond.status == ConditionStatus.TRUE:
                continue
            if cond.status == ConditionStatus.FALSE:
                first_false = cond
                break
            if first_unknown is None:
                first_unknown = cond

        happy_type = self._condition_set.happy_type
        if (selected := first_false or first_unknown) is None:
            top = Condition(type=happy_type, status=ConditionStatus.TRUE)
        else:
            top = Condition(
                type=happy_type,
                status=selected.status,
                reason=selected.reason,
                message=selected.message,
            )
        if (
            existing := self.get_condition(accessor, happy_type)
        ) is not None and existing.status == top.status:
            top.last_transition_time = existing.last_transition_time
        return top

    def is_happy(self, accessor: ConditionAccessor) -> bool:
        """Return True if the top-level condition is True."""
        return self.get_top_level_condition(accessor).status == ConditionStatus.TRUE

    def _mark(
        self,
        accessor: ConditionAccessor,
        cond_type: str,
        status: ConditionStatus,
        reason: str,
        message: str,
    ) -> None:
        if not self._condition_set.contains(cond_type):
            _LOGGER.debug("Ignoring undeclared condition type %s", cond_type)
            return
        self._set_condition(
            accessor,
            Condition(type=cond_type, status=status, reason=reason, message=message),
        )
        if cond_type != self._condition_set.happy_type:
            self._set_condition(accessor, self.get_top_level_condition(accessor))

    def _set_condition(self, accessor: ConditionAccessor, new: Condition) -> None:
        """Upsert a condition, keeping the transition time if status is unchanged."""
        conditions = accessor.get_conditions()
        for i, cond in enumerate(conditions):
            if cond.type != new.type:
                continue
            if cond.status == new.status and cond.last_transition_time is not None:
                new.last_transition_time = cond.last_transition_time
            else:
                new.last_transition_time = self._clock()
            conditions[i] = new
            return
        new.last_transition_time = self._clock()
        conditions.append(new)
