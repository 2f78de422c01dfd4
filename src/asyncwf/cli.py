"""AsyncWF command-line interface."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import asdict
from typing import Any

from .agents import UnknownAgentError, probe_agents
from .config import AsyncWFSettings, get_settings
from .jobs import Orchestrator
from .server import configure_logging, main as run_server
from .storage import InvalidJobIdError, Task, TaskNotFoundError, TaskStatus, TaskStoreError


def fail(message: str) -> None:
    print(f"Error: {message}")
    raise SystemExit(1)


def load_orchestrator(settings: AsyncWFSettings) -> Orchestrator:
    return Orchestrator.from_settings(settings)


def _summary(task: Task, *fields: str) -> dict[str, Any]:
    record = task.to_record()
    return {field: record.get(field) for field in fields}


def cmd_dispatch(args: argparse.Namespace) -> None:
    orchestrator = load_orchestrator(get_settings())
    try:
        task = orchestrator.dispatch(args.job, args.prompt, skill=args.skill, agent=args.agent)
    except (InvalidJobIdError, UnknownAgentError, TaskStoreError) as exc:
        fail(str(exc))
    print(json.dumps(_summary(task, "id", "agent", "status", "pid", "skill"), indent=2), flush=True)
    # the exit watcher lives in this process; stay until it has recorded the outcome
    orchestrator.join_watchers()


def cmd_list(args: argparse.Namespace) -> None:
    orchestrator = load_orchestrator(get_settings())
    status = None
    if args.status:
        try:
            status = TaskStatus(args.status)
        except ValueError:
            fail(f"Invalid status '{args.status}'. Valid options: pending, running, done, failed")
    try:
        tasks = orchestrator.list_tasks(status)
    except TaskStoreError as exc:
        fail(str(exc))
    fields = ("id", "status", "skill", "pid", "exitCode", "createdAt", "updatedAt")
    print(json.dumps([_summary(task, *fields) for task in tasks], indent=2))


def cmd_wait(args: argparse.Namespace) -> None:
    settings = get_settings()
    orchestrator = load_orchestrator(settings)
    job_ids = [job.strip() for job in args.jobs.split(",") if job.strip()]
    if not job_ids:
        fail("--jobs must name at least one job id")
    timeout_ms = settings.wait_timeout_ms if args.timeout is None else args.timeout
    if timeout_ms < 0:
        fail("--timeout must be >= 0")
    try:
        tasks = orchestrator.wait_for_jobs(job_ids, timeout_ms, reconcile=args.reconcile)
    except TaskStoreError as exc:
        fail(str(exc))
    print(json.dumps([_summary(task, "id", "status", "exitCode") for task in tasks], indent=2))


def cmd_fetch(args: argparse.Namespace) -> None:
    orchestrator = load_orchestrator(get_settings())
    try:
        output = orchestrator.fetch(args.job)
    except TaskNotFoundError as exc:
        fail(str(exc))
    if output.log is None:
        print(f'No output file found for job "{args.job}"')
        return
    print(f"Status: {output.task.status.value}")
    print("---")
    print(output.log)


def cmd_kill(args: argparse.Namespace) -> None:
    orchestrator = load_orchestrator(get_settings())
    if orchestrator.get(args.job) is None:
        fail(f'Job "{args.job}" not found')
    if orchestrator.kill(args.job):
        print(f'Job "{args.job}" terminated')
    else:
        print(f'Could not terminate job "{args.job}" (may have already finished)')


def cmd_reconcile(args: argparse.Namespace) -> None:
    orchestrator = load_orchestrator(get_settings())
    tasks = orchestrator.reconcile_orphans()
    print(json.dumps([_summary(task, "id", "status", "pid", "exitCode") for task in tasks], indent=2))


def cmd_agent_status(args: argparse.Namespace) -> None:
    settings = get_settings()
    statuses = asyncio.run(probe_agents(timeout=settings.probe_timeout_seconds))
    print(json.dumps([asdict(status) for status in statuses], indent=2))


def cmd_serve(args: argparse.Namespace) -> None:
    run_server()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="asyncwf", description="AsyncWF parallel agent workflows")
    sub = parser.add_subparsers(dest="cmd")

    taskmgr = sub.add_parser("taskmgr", help="Task manager for parallel agent jobs")
    tasks = taskmgr.add_subparsers(dest="action")

    p_dispatch = tasks.add_parser("dispatch", help="Spawn an agent job")
    p_dispatch.add_argument("--job", required=True, help="Job identifier")
    p_dispatch.add_argument("--prompt", required=True, help="Prompt for the agent")
    p_dispatch.add_argument("--skill", help="Skill to inject into the prompt")
    p_dispatch.add_argument("--agent", help="Agent type: claude, codex or gemini")
    p_dispatch.set_defaults(func=cmd_dispatch)

    p_list = tasks.add_parser("list", help="List jobs")
    p_list.add_argument("--status", help="Filter by status (pending|running|done|failed)")
    p_list.set_defaults(func=cmd_list)

    p_wait = tasks.add_parser("wait", help="Wait for jobs to finish")
    p_wait.add_argument("--jobs", required=True, help="Comma-separated job ids")
    p_wait.add_argument("--timeout", type=int, default=None, help="Timeout in milliseconds")
    p_wait.add_argument(
        "--reconcile",
        action="store_true",
        help="Fail running jobs whose process is gone (jobs dispatched by another process)",
    )
    p_wait.set_defaults(func=cmd_wait)

    p_fetch = tasks.add_parser("fetch", help="Print a job's output")
    p_fetch.add_argument("--job", required=True, help="Job identifier")
    p_fetch.set_defaults(func=cmd_fetch)

    p_kill = tasks.add_parser("kill", help="Terminate a running job")
    p_kill.add_argument("--job", required=True, help="Job identifier")
    p_kill.set_defaults(func=cmd_kill)

    p_reconcile = tasks.add_parser("reconcile", help="Fail running jobs whose process is gone")
    p_reconcile.set_defaults(func=cmd_reconcile)

    agent = sub.add_parser("agent", help="Agent backends")
    agents = agent.add_subparsers(dest="action")
    p_status = agents.add_parser("status", help="Check which agent CLIs are available")
    p_status.set_defaults(func=cmd_agent_status)

    p_serve = sub.add_parser("serve", help="Run the MCP server on stdio")
    p_serve.set_defaults(func=cmd_serve)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    configure_logging(get_settings().log_level)
    args.func(args)


if __name__ == "__main__":
    main(sys.argv[1:])
