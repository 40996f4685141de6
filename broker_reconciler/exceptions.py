"""Exceptions related to broker-reconciler."""

__all__ = [
    "BrokerException",
    "InputException",
    "ObjectNotFoundError",
    "TransientStoreError",
    "PermanentConfigurationError",
    "ResourceConflictError",
    "QueueShutdownError",
]


class BrokerException(Exception):
    """Generic base exception used for this library."""


class InputException(BrokerException):
    """Raised when the input files or values are not formatted as expected."""


class ObjectNotFoundError(BrokerException):
    """Raised when an object is not found in the store."""


class TransientStoreError(BrokerException):
    """Raised when a read or write against the resource store failed.

    The reconciliation is expected to be retried with backoff.
    """


class PermanentConfigurationError(InputException):
    """Raised when a broker spec can never produce a valid child topology.

    The failure is surfaced on the broker status and is not retried until
    the spec changes.
    """

    def __init__(
        self, reason: str, message: str, condition_type: str | None = None
    ) -> None:
        super().__init__(message)
        self.reason = reason
        self.message = message
        self.condition_type = condition_type


class ResourceConflictError(BrokerException):
    """Raised when a child object exists but is controlled by someone else."""

    def __init__(self, reason: str, message: str) -> None:
        super().__init__(message)
        self.reason = reason
        self.message = message


class QueueShutdownError(BrokerException):
    """Raised when reading from a work queue that has been shut down."""
