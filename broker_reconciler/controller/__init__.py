"""Broker Controller module.

This module provides the BrokerController that keeps RedisBroker resources
reconciled with their children and reports their readiness.
"""

from .controller import BrokerController

__all__ = [
    "BrokerController",
]
