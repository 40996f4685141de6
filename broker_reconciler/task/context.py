"""The TaskService that controllers started in the current context run on."""

import contextlib
import contextvars
from collections.abc import Generator

from .service import TaskService, TaskServiceImpl

__all__: list[str] = []

_active_service: contextvars.ContextVar[TaskService | None] = contextvars.ContextVar(
    "_active_service", default=None
)


def get_task_service() -> TaskService:
    """Return the active TaskService, installing a new one when there is none."""
    if (service := _active_service.get()) is None:
        service = TaskServiceImpl()
        _active_service.set(service)
    return service


@contextlib.contextmanager
def task_service_context(
    service: TaskService | None = None,
) -> Generator[TaskService, None, None]:
    """Make a TaskService active until the block exits.

    The service that was active before, if any, is active again afterwards,
    so contexts may be nested.
    """
    active = service or TaskServiceImpl()
    token = _active_service.set(active)
    try:
        yield active
    finally:
        _active_service.reset(token)
