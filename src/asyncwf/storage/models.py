"""Data models for persistent job tracking."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

_JOB_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


class InvalidJobIdError(ValueError):
    """Raised when a job id cannot be used as a record key and log file name."""


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({TaskStatus.DONE, TaskStatus.FAILED})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_job_id(job_id: str) -> str:
    if not isinstance(job_id, str) or not _JOB_ID.match(job_id):
        raise InvalidJobIdError(
            f"Invalid job id {job_id!r}: use letters, digits, '.', '_' or '-', "
            "starting with a letter or digit"
        )
    return job_id


class Task(BaseModel):
    """One dispatched agent job as stored in ``tasks.json``."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    prompt: str
    skill: str | None = None
    agent: str | None = None
    status: TaskStatus = TaskStatus.PENDING
    pid: int | None = None
    exit_code: int | None = Field(default=None, alias="exitCode")
    log_file: str | None = Field(default=None, alias="logFile")
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")
    updated_at: datetime = Field(default_factory=utcnow, alias="updatedAt")

    @model_validator(mode="after")
    def _exit_code_matches_status(self) -> "Task":
        if self.is_terminal and self.exit_code is None:
            raise ValueError(f"Task '{self.id}' is {self.status.value} but has no exitCode")
        if not self.is_terminal and self.exit_code is not None:
            raise ValueError(f"Task '{self.id}' is {self.status.value} but carries an exitCode")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_record(self) -> dict:
        """JSON-ready dict using the on-disk camelCase field names."""

        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


__all__ = [
    "InvalidJobIdError",
    "TERMINAL_STATUSES",
    "Task",
    "TaskStatus",
    "utcnow",
    "validate_job_id",
]
