"""Tool registration for the AsyncWF MCP server."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from typing import Any

from fastmcp import Context, FastMCP

from ..agents import probe_agents
from ..config import AsyncWFSettings
from ..jobs import Orchestrator
from ..storage import Task, TaskNotFoundError, TaskStatus

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ToolHandles:
    dispatch_job: Any
    list_jobs: Any
    job_status: Any
    wait_jobs: Any
    fetch_job: Any
    kill_job: Any
    agent_status: Any


def _task_summary(task: Task) -> dict[str, Any]:
    return {
        "id": task.id,
        "status": task.status.value,
        "agent": task.agent,
        "skill": task.skill,
        "pid": task.pid,
        "exitCode": task.exit_code,
        "logFile": task.log_file,
        "createdAt": task.created_at.isoformat(),
        "updatedAt": task.updated_at.isoformat(),
    }


def register_tools(
    server: FastMCP,
    *,
    orchestrator: Orchestrator,
    settings: AsyncWFSettings,
) -> ToolHandles:
    """Register AsyncWF's job tools on the server."""

    def _require_task(job_id: str) -> Task:
        task = orchestrator.get(job_id)
        if task is None:
            raise ValueError(f"Job '{job_id}' not found")
        return task

    def _dispatch_job(
        job_id: str,
        prompt: str,
        *,
        skill: str | None = None,
        agent: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Start an agent process for a new job and return immediately."""

        task = orchestrator.dispatch(job_id, prompt, skill=skill, agent=agent)
        _emit_log(
            context,
            "info",
            "Dispatched job",
            extra={"job_id": job_id, "agent": agent or orchestrator.default_agent, "pid": task.pid},
        )
        return _task_summary(task)

    def _list_jobs(status: str | None = None, context: Context | None = None) -> list[dict[str, Any]]:
        """List jobs, optionally filtered by status."""

        if status is not None:
            try:
                status = TaskStatus(status.strip().lower()).value
            except ValueError as exc:
                valid = ", ".join(item.value for item in TaskStatus)
                raise ValueError(f"Invalid status '{status}'. Must be one of {valid}") from exc
        tasks = orchestrator.list_tasks(status)
        _emit_log(context, "debug", "Listing jobs", extra={"status": status, "count": len(tasks)})
        return [_task_summary(task) for task in tasks]

    def _job_status(job_id: str, context: Context | None = None) -> dict[str, Any]:
        """Fetch the latest status for a job."""

        task = _require_task(job_id)
        _emit_log(context, "debug", "Job status", extra={"job_id": job_id, "status": task.status.value})
        return _task_summary(task)

    async def _wait_jobs(
        job_ids: list[str],
        timeout_ms: int | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Block until every known job is done or failed, or the timeout elapses."""

        tasks = await asyncio.to_thread(orchestrator.wait_for_jobs, job_ids, timeout_ms)
        all_terminal = all(task.is_terminal for task in tasks)
        _emit_log(
            context,
            "info",
            "Waited for jobs",
            extra={"job_ids": job_ids, "complete": all_terminal},
        )
        return {
            "complete": all_terminal,
            "jobs": [
                {"id": task.id, "status": task.status.value, "exitCode": task.exit_code}
                for task in tasks
            ],
        }

    def _fetch_job(
        job_id: str,
        tail_chars: int | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Return a job's status and captured output."""

        try:
            output = orchestrator.fetch(job_id)
        except TaskNotFoundError as exc:
            raise ValueError(f"Job '{job_id}' not found") from exc

        log = output.log
        truncated = False
        if log is not None and tail_chars is not None and tail_chars >= 0 and len(log) > tail_chars:
            log = log[len(log) - tail_chars :]
            truncated = True
        _emit_log(context, "debug", "Fetched job output", extra={"job_id": job_id, "truncated": truncated})
        return {
            "job": _task_summary(output.task),
            "output": log,
            "truncated": truncated,
        }

    def _kill_job(job_id: str, context: Context | None = None) -> dict[str, Any]:
        """Terminate a running job."""

        _require_task(job_id)
        terminated = orchestrator.kill(job_id)
        _emit_log(
            context,
            "warning" if terminated else "info",
            "Kill requested",
            extra={"job_id": job_id, "terminated": terminated},
        )
        return {"id": job_id, "terminated": terminated}

    async def _agent_status(context: Context | None = None) -> dict[str, Any]:
        """Report which agent CLIs are installed."""

        statuses = await probe_agents(orchestrator.agents, timeout=settings.probe_timeout_seconds)
        available = sum(1 for status in statuses if status.available)
        _emit_log(context, "debug", "Probed agents", extra={"available": available})
        return {
            "default_agent": orchestrator.default_agent,
            "available": available,
            "agents": [asdict(status) for status in statuses],
        }

    tool_dispatch = server.tool(
        name="dispatch_job",
        description=(
            "Spawn a coding agent (claude, codex or gemini) for a new job id with the given "
            "prompt, optionally prefixed by a stored skill. Returns immediately."
        ),
    )(_dispatch_job)

    tool_list = server.tool(
        name="list_jobs",
        description="List jobs, optionally filtered by status (pending, running, done, failed).",
    )(_list_jobs)

    tool_status = server.tool(
        name="job_status",
        description="Fetch the latest recorded status, pid and exit code for a job.",
    )(_job_status)

    tool_wait = server.tool(
        name="wait_jobs",
        description=(
            "Poll until all listed jobs finish or timeout_ms elapses. Check 'complete' and each "
            "job's status; unknown ids are ignored."
        ),
    )(_wait_jobs)

    tool_fetch = server.tool(
        name="fetch_job",
        description="Return a job's captured stdout/stderr (optionally only the last tail_chars).",
    )(_fetch_job)

    tool_kill = server.tool(
        name="kill_job",
        description="Send SIGTERM to a running job and mark it failed.",
        annotations={"destructiveHint": True},
    )(_kill_job)

    tool_agents = server.tool(
        name="agent_status",
        description="Check which agent CLIs are available on this host.",
    )(_agent_status)

    return ToolHandles(
        dispatch_job=tool_dispatch,
        list_jobs=tool_list,
        job_status=tool_status,
        wait_jobs=tool_wait,
        fetch_job=tool_fetch,
        kill_job=tool_kill,
        agent_status=tool_agents,
    )


__all__ = ["register_tools", "ToolHandles"]


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Best-effort logging that prefers the MCP context logger when available."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        if ctx_logger is not None:
            log_method = getattr(ctx_logger, level, None)
            if callable(log_method):
                log_method(message, extra=payload)
                return

    fallback = getattr(logger, level, logger.info)
    fallback(message, extra=payload)
