"""Terminate running jobs by live handle or recorded pid."""

from __future__ import annotations

import logging
import os
import signal
from typing import Callable

from ..storage import TaskStore, TaskStatus
from .dispatcher import UNKNOWN_EXIT_CODE
from .registry import LiveHandleRegistry

logger = logging.getLogger(__name__)


def pid_exists(pid: int) -> bool:
    """Whether a process with ``pid`` exists (signal 0 probe)."""

    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


class Terminator:
    """Best-effort termination; the store is marked ``failed`` once a signal is accepted."""

    def __init__(
        self,
        store: TaskStore,
        registry: LiveHandleRegistry,
        *,
        kill: Callable[[int, int], None] = os.kill,
    ) -> None:
        self._store = store
        self._registry = registry
        self._kill = kill

    def kill(self, job_id: str) -> bool:
        task = self._store.get(job_id)
        if task is None:
            return False
        if task.is_terminal:
            logger.info("Job already finished", extra={"job_id": job_id, "status": task.status.value})
            return False

        process = self._registry.get(job_id)
        if process is not None:
            if process.poll() is not None:
                # exited; the watcher thread records the real exit code
                return False
            process.terminate()
            self._registry.remove(job_id, process)
            self._mark_killed(job_id, via="handle", pid=process.pid)
            return True

        if task.pid is None:
            return False

        try:
            self._kill(task.pid, signal.SIGTERM)
        except ProcessLookupError:
            logger.info("Job process already gone", extra={"job_id": job_id, "pid": task.pid})
            return False
        except PermissionError as exc:
            logger.warning(
                "Not permitted to signal job process",
                extra={"job_id": job_id, "pid": task.pid, "error": str(exc)},
            )
            return False

        self._mark_killed(job_id, via="pid", pid=task.pid)
        return True

    def _mark_killed(self, job_id: str, *, via: str, pid: int | None) -> None:
        self._store.update(job_id, status=TaskStatus.FAILED, exit_code=UNKNOWN_EXIT_CODE)
        logger.warning("Terminated job", extra={"job_id": job_id, "via": via, "pid": pid})


__all__ = ["Terminator", "pid_exists"]
