"""Static table of supported agent command-line programs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping


class UnknownAgentError(ValueError):
    """Raised when an agent identifier is not part of the command table."""


@dataclass(frozen=True, slots=True)
class AgentSpec:
    """How to invoke one agent backend with a prompt."""

    name: str
    command: str
    prompt_flags: tuple[str, ...] = ()
    description: str = ""

    def build_argv(self, prompt: str) -> list[str]:
        return [self.command, *self.prompt_flags, prompt]


AGENT_COMMANDS: dict[str, AgentSpec] = {
    "claude": AgentSpec(
        name="claude",
        command="claude",
        prompt_flags=("-p",),
        description="Backend, system design, complex logic",
    ),
    "codex": AgentSpec(
        name="codex",
        command="codex",
        prompt_flags=("exec",),
        description="Full-stack, rapid prototyping",
    ),
    "gemini": AgentSpec(
        name="gemini",
        command="gemini",
        prompt_flags=("-p",),
        description="Frontend, UI/UX, documentation",
    ),
}

DEFAULT_AGENT = "claude"


def get_agent_spec(name: str, agents: Mapping[str, AgentSpec] | None = None) -> AgentSpec:
    """Return the ``AgentSpec`` registered under ``name`` or raise ``UnknownAgentError``."""

    table = AGENT_COMMANDS if agents is None else agents
    try:
        return table[name]
    except KeyError as exc:
        valid = ", ".join(sorted(table))
        raise UnknownAgentError(f'Invalid agent "{name}". Valid options: {valid}') from exc


__all__ = ["AGENT_COMMANDS", "DEFAULT_AGENT", "AgentSpec", "UnknownAgentError", "get_agent_spec"]
