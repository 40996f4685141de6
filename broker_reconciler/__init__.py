"""
broker-reconciler keeps RedisBroker resources reconciled with the workloads
and services that realize them, and reports their readiness through status
conditions.
"""

__all__ = [
    "conditions",
    "controller",
    "dispatcher",
    "exceptions",
    "lifecycle",
    "manifest",
    "store",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
