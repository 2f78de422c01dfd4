"""Poll the task store until a set of jobs finishes or a timeout elapses."""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable

from ..storage import Task, TaskStore

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 1.0


class JobWaiter:
    """Courtesy poll over the store; there is no wake-on-write.

    Ids that do not resolve to a task are ignored. On timeout the current,
    possibly non-terminal, tasks are returned, so callers must check statuses.
    """

    def __init__(
        self,
        store: TaskStore,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._poll_interval = poll_interval
        self._sleep = sleep
        self._clock = clock

    def snapshot(self, job_ids: Iterable[str]) -> list[Task]:
        by_id = {task.id: task for task in self._store.list()}
        return [by_id[job_id] for job_id in dict.fromkeys(job_ids) if job_id in by_id]

    def wait_for_jobs(
        self,
        job_ids: Iterable[str],
        timeout_ms: int,
        *,
        before_poll: Callable[[], object] | None = None,
    ) -> list[Task]:
        wanted = list(dict.fromkeys(job_ids))
        deadline = self._clock() + timeout_ms / 1000.0

        while True:
            if before_poll is not None:
                before_poll()
            tasks = self.snapshot(wanted)
            if all(task.is_terminal for task in tasks):
                return tasks

            remaining = deadline - self._clock()
            if remaining <= 0:
                logger.info(
                    "Timed out waiting for jobs",
                    extra={
                        "job_ids": wanted,
                        "pending": [task.id for task in tasks if not task.is_terminal],
                        "timeout_ms": timeout_ms,
                    },
                )
                return tasks
            self._sleep(min(self._poll_interval, remaining))


__all__ = ["DEFAULT_POLL_INTERVAL", "JobWaiter"]
