"""Storage abstractions for AsyncWF."""

from .logs import LogSink
from .models import (
    TERMINAL_STATUSES,
    InvalidJobIdError,
    Task,
    TaskStatus,
    validate_job_id,
)
from .task_store import (
    DuplicateTaskError,
    InvalidTransitionError,
    TaskNotFoundError,
    TaskStore,
    TaskStoreError,
)

__all__ = [
    "DuplicateTaskError",
    "InvalidJobIdError",
    "InvalidTransitionError",
    "LogSink",
    "TERMINAL_STATUSES",
    "Task",
    "TaskNotFoundError",
    "TaskStatus",
    "TaskStore",
    "TaskStoreError",
    "validate_job_id",
]
