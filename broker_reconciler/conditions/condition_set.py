"""Condition sets declare which conditions make up a resource's readiness.

A living condition set is an ordered list of dependent condition types plus
one top-level type. The top-level condition is True only when every
dependent is True. The declaration order decides which dependent is
surfaced on the top-level condition when several are not True.
"""

from collections.abc import Iterator
import contextlib
from dataclasses import dataclass
import logging
import threading

__all__ = [
    "ConditionSet",
    "ConditionSetRegistry",
    "READY",
]

_LOGGER = logging.getLogger(__name__)

READY = "Ready"


@dataclass(frozen=True)
class ConditionSet:
    """An immutable ordered collection of dependent condition types."""

    happy_type: str
    dependent_types: tuple[str, ...]

    @classmethod
    def new_living_set(cls, *dependent_types: str) -> "ConditionSet":
        """Create a condition set whose top-level type is Ready."""
        return cls.new_set(READY, *dependent_types)

    @classmethod
    def new_set(cls, happy_type: str, *dependent_types: str) -> "ConditionSet":
        """Create a condition set with an explicit top-level type.

        Duplicates and the top-level type itself are dropped from the
        dependents, keeping the first occurrence.
        """
        deps: list[str] = []
        for dep in dependent_types:
            if dep == happy_type or dep in deps:
                continue
            deps.append(dep)
        return cls(happy_type=happy_type, dependent_types=tuple(deps))

    @property
    def all_types(self) -> tuple[str, ...]:
        """The dependent types followed by the top-level type."""
        return (*self.dependent_types, self.happy_type)

    def contains(self, cond_type: str) -> bool:
        """Return True if the type is declared in this set."""
        return cond_type == self.happy_type or cond_type in self.dependent_types


class _ReadWriteLock:
    """Many concurrent readers or one writer."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @contextlib.contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextlib.contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class ConditionSetRegistry:
    """Holds the active condition set shared by every reconciliation.

    The set may be swapped for an alternate broker class. Readers always see
    either the old or the new set, never a mix.
    """

    def __init__(self, default: ConditionSet) -> None:
        self._lock = _ReadWriteLock()
        self._active = default

    def get(self) -> ConditionSet:
        """Return the active condition set."""
        with self._lock.read():
            return self._active

    def register(self, condition_set: ConditionSet) -> None:
        """Replace the active condition set for all later reconciliations."""
        with self._lock.write():
            self._active = condition_set
        _LOGGER.info(
            "Registered condition set %s with dependents %s",
            condition_set.happy_type,
            ", ".join(condition_set.dependent_types),
        )
