"""Spawn agent processes for jobs and record their lifecycle."""

from __future__ import annotations

import logging
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping

from ..agents import AGENT_COMMANDS, AgentSpec, get_agent_spec
from ..agents.environment import agent_environment
from ..storage import LogSink, Task, TaskStatus, TaskStore, validate_job_id
from .registry import LiveHandleRegistry

logger = logging.getLogger(__name__)

UNKNOWN_EXIT_CODE = -1

SkillResolver = Callable[[str], str | None]


@dataclass(frozen=True, slots=True)
class CompletionEvent:
    """Terminal outcome of one job's process."""

    job_id: str
    exit_code: int
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and self.error is None


def normalize_exit_code(returncode: int | None) -> int:
    """Map signal deaths (negative codes) and missing codes to ``-1``."""

    if returncode is None or returncode < 0:
        return UNKNOWN_EXIT_CODE
    return returncode


def compose_prompt(prompt: str, skill_text: str | None) -> str:
    if not skill_text:
        return prompt
    return f"{skill_text}\n\n{prompt}"


class ProcessDispatcher:
    """Start one detached agent process per job.

    The dispatcher writes the task record as ``running`` before spawning, wires
    stdout and stderr into the job log, attaches the pid, and hands process
    exit to a watcher thread that funnels it into :meth:`complete`.
    """

    def __init__(
        self,
        store: TaskStore,
        log_sink: LogSink,
        registry: LiveHandleRegistry,
        *,
        default_agent: Callable[[], str],
        skills: SkillResolver | None = None,
        agents: Mapping[str, AgentSpec] | None = None,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    ) -> None:
        self._store = store
        self._log_sink = log_sink
        self._registry = registry
        self._default_agent = default_agent
        self._skills = skills
        self._agents = AGENT_COMMANDS if agents is None else agents
        self._cwd = cwd
        self._env = env
        self._popen = popen
        self._watchers: dict[str, threading.Thread] = {}
        self._watchers_lock = threading.Lock()

    @property
    def agents(self) -> Mapping[str, AgentSpec]:
        return self._agents

    def dispatch(
        self,
        job_id: str,
        prompt: str,
        skill_name: str | None = None,
        agent_type: str | None = None,
    ) -> Task:
        """Create the record, spawn the agent and return without waiting.

        Invalid ids, unknown agents and duplicate ids raise before anything is
        written. Spawn failures do not raise: they end as a ``failed`` task
        with a diagnostic in the log.
        """

        validate_job_id(job_id)
        agent_name = agent_type or self._default_agent()
        spec = get_agent_spec(agent_name, self._agents)

        skill_text = self._skills(skill_name) if skill_name and self._skills else None
        full_prompt = compose_prompt(prompt, skill_text)

        task = self._store.create(
            Task(
                id=job_id,
                prompt=full_prompt,
                skill=skill_name,
                agent=agent_type,
                status=TaskStatus.RUNNING,
                log_file=str(self._log_sink.path_for(job_id)),
            )
        )

        argv = spec.build_argv(full_prompt)
        log_path = self._log_sink.path_for(job_id)
        try:
            with self._log_sink.open(job_id) as log_handle:
                process = self._popen(
                    argv,
                    stdin=subprocess.DEVNULL,
                    stdout=log_handle,
                    stderr=subprocess.STDOUT,
                    cwd=str(self._cwd) if self._cwd is not None else None,
                    env=agent_environment(job_id=job_id, log_file=log_path, overrides=self._env),
                    start_new_session=True,
                )
        except OSError as exc:
            logger.warning(
                "Failed to spawn agent",
                extra={"job_id": job_id, "agent": spec.name, "command": spec.command, "error": str(exc)},
            )
            self.complete(
                CompletionEvent(job_id, UNKNOWN_EXIT_CODE, error=f"Failed to spawn agent: {exc}")
            )
            return self._store.get(job_id) or task

        self._registry.register(job_id, process)
        watcher = threading.Thread(
            target=self._watch,
            args=(job_id, process),
            name=f"asyncwf-watch-{job_id}",
            daemon=True,
        )
        with self._watchers_lock:
            self._watchers[job_id] = watcher
        try:
            task = self._store.update(job_id, pid=process.pid) or task
        finally:
            # the child is running either way; its exit must still be recorded
            watcher.start()

        logger.info(
            "Dispatched job",
            extra={"job_id": job_id, "agent": spec.name, "pid": process.pid, "skill": skill_name},
        )
        return task

    def join_watchers(self, timeout: float | None = None) -> bool:
        """Block until every started job's exit has been recorded.

        Watchers are daemon threads, so a short-lived caller such as the CLI
        must join them before exiting or the outcome of its jobs is lost.
        Returns ``False`` if ``timeout`` (seconds, shared by all watchers)
        elapsed first.
        """

        deadline = None if timeout is None else time.monotonic() + timeout
        with self._watchers_lock:
            watchers = list(self._watchers.values())
        for watcher in watchers:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            watcher.join(remaining)
        return not any(watcher.is_alive() for watcher in watchers)

    def _watch(self, job_id: str, process: subprocess.Popen) -> None:
        try:
            returncode = process.wait()
        except OSError as exc:
            event = CompletionEvent(job_id, UNKNOWN_EXIT_CODE, error=str(exc))
        else:
            event = CompletionEvent(job_id, normalize_exit_code(returncode))

        self._registry.remove(job_id, process)
        try:
            self.complete(event)
        except Exception:
            logger.exception("Failed to record job completion", extra={"job_id": job_id})
        finally:
            with self._watchers_lock:
                if self._watchers.get(job_id) is threading.current_thread():
                    del self._watchers[job_id]

    def complete(self, event: CompletionEvent) -> Task | None:
        """Record a terminal outcome: ``done`` for exit 0, ``failed`` otherwise."""

        if event.error:
            self._log_sink.append(event.job_id, f"\nError: {event.error}\n")

        status = TaskStatus.DONE if event.ok else TaskStatus.FAILED
        task = self._store.update(event.job_id, status=status, exit_code=event.exit_code)
        logger.info(
            "Job finished",
            extra={"job_id": event.job_id, "status": status.value, "exit_code": event.exit_code},
        )
        return task


__all__ = [
    "CompletionEvent",
    "ProcessDispatcher",
    "UNKNOWN_EXIT_CODE",
    "compose_prompt",
    "normalize_exit_code",
]
