"""Dispatch of change notifications to the broker work queue.

This module decides, for every change in the store, which broker (if any)
has to be reconciled again, and queues it with dedup and backoff.
"""

from .dispatcher import Dispatcher
from .filters import ReferenceResolver, StoreReferenceResolver
from .workqueue import WorkQueue, WorkQueueConfig

__all__ = [
    "Dispatcher",
    "ReferenceResolver",
    "StoreReferenceResolver",
    "WorkQueue",
    "WorkQueueConfig",
]
