"""In-memory map of live process handles."""

from __future__ import annotations

import subprocess
import threading


class LiveHandleRegistry:
    """Job id to ``Popen`` handle, valid only for this orchestrator's lifetime."""

    def __init__(self) -> None:
        self._handles: dict[str, subprocess.Popen] = {}
        self._lock = threading.Lock()

    def register(self, job_id: str, process: subprocess.Popen) -> None:
        with self._lock:
            self._handles[job_id] = process

    def get(self, job_id: str) -> subprocess.Popen | None:
        with self._lock:
            return self._handles.get(job_id)

    def remove(self, job_id: str, process: subprocess.Popen | None = None) -> subprocess.Popen | None:
        """Drop the handle for ``job_id``.

        With ``process`` given, only drop it if it is still the registered handle.
        """

        with self._lock:
            current = self._handles.get(job_id)
            if current is None or (process is not None and current is not process):
                return None
            return self._handles.pop(job_id)

    def job_ids(self) -> list[str]:
        with self._lock:
            return list(self._handles)

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._handles

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)


__all__ = ["LiveHandleRegistry"]
