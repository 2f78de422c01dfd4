"""Facade that owns one store, log sink and handle registry."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Mapping

from ..agents import AGENT_COMMANDS, AgentSpec
from ..config import AsyncWFSettings, resolve_default_agent
from ..skills import SkillLoader
from ..storage import LogSink, Task, TaskNotFoundError, TaskStatus, TaskStore
from .dispatcher import UNKNOWN_EXIT_CODE, ProcessDispatcher, SkillResolver
from .registry import LiveHandleRegistry
from .terminator import Terminator, pid_exists
from .waiter import DEFAULT_POLL_INTERVAL, JobWaiter

logger = logging.getLogger(__name__)

DEFAULT_WAIT_TIMEOUT_MS = 300_000


@dataclass(slots=True)
class JobOutput:
    task: Task
    log: str | None


class Orchestrator:
    """Dispatch, observe, wait on and terminate agent jobs.

    Each instance has its own :class:`LiveHandleRegistry`, so several
    orchestrators can coexist in one process against different state dirs.
    """

    def __init__(
        self,
        store: TaskStore,
        log_sink: LogSink,
        *,
        default_agent: str | Callable[[], str],
        skills: SkillResolver | None = None,
        agents: Mapping[str, AgentSpec] | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        wait_timeout_ms: int = DEFAULT_WAIT_TIMEOUT_MS,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.log_sink = log_sink
        self.registry = LiveHandleRegistry()
        self.agents: Mapping[str, AgentSpec] = AGENT_COMMANDS if agents is None else agents
        self._default_agent = default_agent if callable(default_agent) else (lambda: default_agent)
        self.wait_timeout_ms = wait_timeout_ms
        self.dispatcher = ProcessDispatcher(
            store,
            log_sink,
            self.registry,
            default_agent=self._default_agent,
            skills=skills,
            agents=self.agents,
            cwd=cwd,
            env=env,
        )
        self.terminator = Terminator(store, self.registry)
        self.waiter = JobWaiter(store, poll_interval=poll_interval, sleep=sleep, clock=clock)

    @classmethod
    def from_settings(cls, settings: AsyncWFSettings) -> "Orchestrator":
        skill_loader = SkillLoader(settings.skills_dir)
        return cls(
            TaskStore(settings.tasks_path),
            LogSink(settings.logs_dir),
            default_agent=lambda: resolve_default_agent(settings),
            skills=skill_loader.resolve,
            poll_interval=settings.poll_interval_seconds,
            wait_timeout_ms=settings.wait_timeout_ms,
        )

    @property
    def default_agent(self) -> str:
        return self._default_agent()

    def dispatch(
        self,
        job_id: str,
        prompt: str,
        skill: str | None = None,
        agent: str | None = None,
    ) -> Task:
        return self.dispatcher.dispatch(job_id, prompt, skill_name=skill, agent_type=agent)

    def join_watchers(self, timeout: float | None = None) -> bool:
        """Wait until the exits of jobs dispatched by this orchestrator are recorded."""

        return self.dispatcher.join_watchers(timeout)

    def get(self, job_id: str) -> Task | None:
        return self.store.get(job_id)

    def list_tasks(self, status: TaskStatus | str | None = None) -> list[Task]:
        if status is None:
            return self.store.list()
        return self.store.list_by_status(status)

    def fetch(self, job_id: str) -> JobOutput:
        task = self.store.get(job_id)
        if task is None:
            raise TaskNotFoundError(f'Job "{job_id}" not found')
        return JobOutput(task=task, log=self.log_sink.read(job_id))

    def kill(self, job_id: str) -> bool:
        return self.terminator.kill(job_id)

    def wait_for_jobs(
        self,
        job_ids: Iterable[str],
        timeout_ms: int | None = None,
        *,
        reconcile: bool = False,
    ) -> list[Task]:
        timeout = self.wait_timeout_ms if timeout_ms is None else timeout_ms
        return self.waiter.wait_for_jobs(
            job_ids,
            timeout,
            before_poll=self.reconcile_orphans if reconcile else None,
        )

    def reconcile_orphans(self) -> list[Task]:
        """Fail ``running`` tasks whose recorded process vanished while unobserved."""

        reconciled: list[Task] = []
        for task in self.store.list_by_status(TaskStatus.RUNNING):
            if task.id in self.registry or task.pid is None or pid_exists(task.pid):
                continue
            self.log_sink.append(
                task.id,
                f"\nError: agent process {task.pid} exited while unobserved; exit status unknown\n",
            )
            updated = self.store.update(task.id, status=TaskStatus.FAILED, exit_code=UNKNOWN_EXIT_CODE)
            if updated is not None:
                reconciled.append(updated)
                logger.warning("Reconciled orphaned job", extra={"job_id": task.id, "pid": task.pid})
        return reconciled


__all__ = ["DEFAULT_WAIT_TIMEOUT_MS", "JobOutput", "Orchestrator"]
