"""Agent backend table and availability probing."""

from .commands import (
    AGENT_COMMANDS,
    DEFAULT_AGENT,
    AgentSpec,
    UnknownAgentError,
    get_agent_spec,
)
from .probe import AgentStatus, probe_agent, probe_agents

__all__ = [
    "AGENT_COMMANDS",
    "DEFAULT_AGENT",
    "AgentSpec",
    "AgentStatus",
    "UnknownAgentError",
    "get_agent_spec",
    "probe_agent",
    "probe_agents",
]
