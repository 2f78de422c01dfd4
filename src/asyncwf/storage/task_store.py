"""File-backed task table."""

from __future__ import annotations

import json
import os
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from pydantic import ValidationError

from .models import Task, TaskStatus, utcnow

_IMMUTABLE_FIELDS = {"id", "created_at", "updated_at"}

# statuses only move forward; done and failed share the terminal rank
_STATUS_RANK = {
    TaskStatus.PENDING: 0,
    TaskStatus.RUNNING: 1,
    TaskStatus.DONE: 2,
    TaskStatus.FAILED: 2,
}


class TaskStoreError(RuntimeError):
    """Base class for task store errors."""


class DuplicateTaskError(TaskStoreError):
    """Raised when creating a task whose id already exists."""


class TaskNotFoundError(TaskStoreError):
    """Raised when an operation requires a task that does not exist."""


class InvalidTransitionError(TaskStoreError):
    """Raised when an update would move a task's status backwards."""


class TaskStore:
    """Durable table of job records kept in a single JSON file.

    Every call re-reads the file, and every mutation rewrites it whole
    (temp file, fsync, rename) before returning. A re-entrant lock serializes
    read-modify-write cycles within the process so ``create`` rejects
    duplicate ids atomically. Concurrent writers in other processes can still
    lose updates; one orchestrator per state directory is assumed.
    """

    def __init__(self, path: Path, *, clock: Callable[[], datetime] | None = None) -> None:
        self._path = Path(path)
        self._clock = clock or utcnow
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> list[Task]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise TaskStoreError(f"Failed to read task table {self._path}: {exc}") from exc

        if not raw.strip():
            return []
        try:
            document = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise TaskStoreError(f"Task table {self._path} is not valid JSON: {exc}") from exc

        records = document.get("tasks") if isinstance(document, dict) else None
        if not isinstance(records, list):
            raise TaskStoreError(f"Task table {self._path} must contain a 'tasks' list")
        try:
            return [Task.model_validate(record) for record in records]
        except ValidationError as exc:
            raise TaskStoreError(f"Task table {self._path} holds an invalid record: {exc}") from exc

    def _write(self, tasks: list[Task]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"tasks": [task.to_record() for task in tasks]}
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, self._path)

    def get(self, job_id: str) -> Task | None:
        with self._lock:
            return next((task for task in self._read() if task.id == job_id), None)

    def list(self) -> list[Task]:
        with self._lock:
            return self._read()

    def list_by_status(self, status: TaskStatus | str) -> list[Task]:
        wanted = TaskStatus(status)
        return [task for task in self.list() if task.status == wanted]

    def create(self, task: Task) -> Task:
        """Persist a new record; raises ``DuplicateTaskError`` if the id exists."""

        with self._lock:
            tasks = self._read()
            if any(existing.id == task.id for existing in tasks):
                raise DuplicateTaskError(f'Job "{task.id}" already exists')
            now = self._clock()
            created = task.model_copy(update={"created_at": now, "updated_at": now})
            tasks.append(created)
            self._write(tasks)
            return created

    def update(self, job_id: str, **fields: Any) -> Task | None:
        """Merge ``fields`` into a record and bump ``updated_at``.

        Returns ``None`` when no record has ``job_id``.
        """

        unknown = set(fields) - set(Task.model_fields)
        if unknown:
            raise TaskStoreError(f"Unknown task fields: {', '.join(sorted(unknown))}")
        frozen = set(fields) & _IMMUTABLE_FIELDS
        if frozen:
            raise TaskStoreError(f"Task fields cannot be updated: {', '.join(sorted(frozen))}")

        with self._lock:
            tasks = self._read()
            index = next((i for i, task in enumerate(tasks) if task.id == job_id), None)
            if index is None:
                return None

            current = tasks[index]
            if "status" in fields:
                try:
                    new_status = TaskStatus(fields["status"])
                except ValueError as exc:
                    raise TaskStoreError(f"Invalid update for task '{job_id}': {exc}") from exc
                if _STATUS_RANK[new_status] < _STATUS_RANK[current.status]:
                    raise InvalidTransitionError(
                        f"Task '{job_id}' is {current.status.value}; cannot move to {new_status.value}"
                    )

            merged = {**current.model_dump(), **fields, "updated_at": self._clock()}
            try:
                updated = Task.model_validate(merged)
            except ValidationError as exc:
                raise TaskStoreError(f"Invalid update for task '{job_id}': {exc}") from exc

            tasks[index] = updated
            self._write(tasks)
            return updated


__all__ = [
    "DuplicateTaskError",
    "InvalidTransitionError",
    "TaskNotFoundError",
    "TaskStore",
    "TaskStoreError",
]
