"""Polling of asynchronous API tasks."""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Callable, Protocol

from .api.models import Task
from .errors import TaskCanceledError, TaskFailedError, TaskTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 5.0
DEFAULT_TIMEOUT = 900.0


class TaskStatus(str, Enum):
    DONE = "Done"
    WAITING = "Waiting"
    IN_PROGRESS = "In progress"
    CANCELED = "Canceled"
    FAILED = "Failed"


class TaskSource(Protocol):
    def get_task(self, task_id: str) -> Task:  # pragma: no cover - interface
        ...


def wait_for_task(
    client: TaskSource,
    task_id: str,
    *,
    interval: float = DEFAULT_INTERVAL,
    timeout: float = DEFAULT_TIMEOUT,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> Task:
    """Poll `task_id` until it is done.

    API errors propagate on the first failed poll; a Canceled or Failed task
    raises, and so does running past `timeout` seconds.
    """

    deadline = clock() + timeout
    while True:
        task = client.get_task(task_id)
        logger.debug("Task %s status: %s", task_id, task.status)

        if task.status == TaskStatus.DONE.value:
            return task
        if task.status == TaskStatus.CANCELED.value:
            raise TaskCanceledError(f"Task {task_id} canceled")
        if task.status == TaskStatus.FAILED.value:
            raise TaskFailedError(f"Task {task_id} failed")

        if clock() + interval > deadline:
            raise TaskTimeoutError(
                f"Timed out after {timeout:g}s waiting for task {task_id} "
                f"(last status: {task.status or 'unknown'})"
            )
        sleep(interval)
