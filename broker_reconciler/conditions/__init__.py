"""Condition sets and the manager that aggregates them into readiness."""

from .condition_set import ConditionSet, ConditionSetRegistry, READY
from .manager import ConditionAccessor, ConditionManager

__all__ = [
    "ConditionSet",
    "ConditionSetRegistry",
    "ConditionAccessor",
    "ConditionManager",
    "READY",
]
