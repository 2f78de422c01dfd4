"""Async availability checks for agent executables."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Mapping

from .commands import AGENT_COMMANDS, AgentSpec
from .environment import agent_environment


@dataclass(slots=True)
class AgentStatus:
    """Outcome of running ``<command> --version`` for one agent."""

    name: str
    command: str
    available: bool
    version: str | None = None
    error: str | None = None


async def probe_agent(spec: AgentSpec, *, timeout: float = 3.0) -> AgentStatus:
    """Check whether ``spec.command`` runs and report its version line."""

    try:
        process = await asyncio.create_subprocess_exec(
            spec.command,
            "--version",
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=agent_environment(),
        )
    except OSError as exc:
        return AgentStatus(name=spec.name, command=spec.command, available=False, error=str(exc))

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(process.communicate(), timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        return AgentStatus(
            name=spec.name,
            command=spec.command,
            available=False,
            error=f"Timed out after {timeout:g}s",
        )

    stdout = stdout_bytes.decode("utf-8", errors="replace").strip()
    if process.returncode != 0:
        stderr = stderr_bytes.decode("utf-8", errors="replace").strip()
        return AgentStatus(
            name=spec.name,
            command=spec.command,
            available=False,
            error=stderr or f"Exited with code {process.returncode}",
        )

    version = stdout.splitlines()[0] if stdout else None
    return AgentStatus(name=spec.name, command=spec.command, available=True, version=version)


async def probe_agents(
    agents: Mapping[str, AgentSpec] | None = None,
    *,
    timeout: float = 3.0,
) -> list[AgentStatus]:
    """Probe every agent in the table concurrently, preserving table order."""

    table = AGENT_COMMANDS if agents is None else agents
    return list(await asyncio.gather(*(probe_agent(spec, timeout=timeout) for spec in table.values())))


__all__ = ["AgentStatus", "probe_agent", "probe_agents"]
