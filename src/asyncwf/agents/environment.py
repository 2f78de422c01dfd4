"""Environment handed to spawned agent processes."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping

JOB_ID_VAR = "ASYNCWF_JOB_ID"
JOB_LOG_VAR = "ASYNCWF_JOB_LOG"

# belong to the orchestrator's interpreter, not the agent's
_HOST_PYTHON_VARS = ("PYTHONHOME", "PYTHONPATH", "VIRTUAL_ENV", "PIP_RESPECT_VIRTUALENV")


def agent_environment(
    base: Mapping[str, str] | None = None,
    *,
    job_id: str | None = None,
    log_file: Path | str | None = None,
    overrides: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Build the environment for one agent run.

    Starts from ``base`` (the current environment by default), drops the
    orchestrator's virtualenv variables and tags the run with its job id and
    log path so the agent, and anything it spawns, can find them. Python-based
    agents run unbuffered so their output reaches the job log as it is produced.
    ``overrides`` are applied last.
    """

    env = dict(os.environ if base is None else base)
    for key in _HOST_PYTHON_VARS:
        env.pop(key, None)
    env.setdefault("PYTHONUNBUFFERED", "1")
    if job_id is not None:
        env[JOB_ID_VAR] = job_id
    if log_file is not None:
        env[JOB_LOG_VAR] = str(log_file)
    if overrides:
        env.update(overrides)
    return env


__all__ = ["JOB_ID_VAR", "JOB_LOG_VAR", "agent_environment"]
