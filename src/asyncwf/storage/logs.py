"""Per-job output capture."""

from __future__ import annotations

from pathlib import Path
from typing import BinaryIO


class LogSink:
    """One append-only plain-text log file per job under ``logs_dir``."""

    def __init__(self, logs_dir: Path) -> None:
        self._logs_dir = Path(logs_dir)

    @property
    def logs_dir(self) -> Path:
        return self._logs_dir

    def path_for(self, job_id: str) -> Path:
        return self._logs_dir / f"{job_id}.log"

    def open(self, job_id: str) -> BinaryIO:
        """Create (or truncate) the job's log and return a binary handle for the child."""

        self._logs_dir.mkdir(parents=True, exist_ok=True)
        return self.path_for(job_id).open("wb")

    def append(self, job_id: str, text: str) -> None:
        self._logs_dir.mkdir(parents=True, exist_ok=True)
        with self.path_for(job_id).open("a", encoding="utf-8") as handle:
            handle.write(text)

    def read(self, job_id: str) -> str | None:
        path = self.path_for(job_id)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8", errors="replace")


__all__ = ["LogSink"]
