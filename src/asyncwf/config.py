"""Configuration management for AsyncWF."""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .agents import AGENT_COMMANDS, DEFAULT_AGENT, AgentSpec

logger = logging.getLogger(__name__)

TASKS_FILE = "tasks.json"
CONFIG_FILE = "config.json"
LOGS_DIR = "logs"


class AsyncWFSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    state_dir: Path = Field(default=Path(".asyncwf"), validation_alias="ASYNCWF_STATE_DIR")
    ckb_path: Path = Field(default=Path("~/.ckb"), validation_alias="ASYNCWF_CKB_PATH")
    default_agent: str = Field(default=DEFAULT_AGENT, validation_alias="ASYNCWF_DEFAULT_AGENT")
    log_level: str = Field(default="INFO", validation_alias="ASYNCWF_LOG_LEVEL")
    poll_interval_seconds: float = Field(default=1.0, validation_alias="ASYNCWF_POLL_INTERVAL")
    wait_timeout_ms: int = Field(default=300_000, validation_alias="ASYNCWF_WAIT_TIMEOUT_MS")
    probe_timeout_seconds: float = Field(default=3.0, validation_alias="ASYNCWF_PROBE_TIMEOUT")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "ASYNCWF_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("default_agent")
    @classmethod
    def _normalize_default_agent(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("poll_interval_seconds", "probe_timeout_seconds")
    @classmethod
    def _validate_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("intervals and timeouts must be > 0")
        return value

    @field_validator("wait_timeout_ms")
    @classmethod
    def _validate_wait_timeout(cls, value: int) -> int:
        if value < 0:
            raise ValueError("ASYNCWF_WAIT_TIMEOUT_MS must be >= 0")
        return value

    @property
    def tasks_path(self) -> Path:
        return self.state_dir / TASKS_FILE

    @property
    def logs_dir(self) -> Path:
        return self.state_dir / LOGS_DIR

    @property
    def project_config_path(self) -> Path:
        return self.state_dir / CONFIG_FILE

    @property
    def skills_dir(self) -> Path:
        return self.ckb_path / "skills"


class ProjectConfig(BaseModel):
    """Per-project ``.asyncwf/config.json`` written by project setup."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    version: str | None = None
    default_agent: str | None = Field(default=None, alias="defaultAgent")
    agent_command: str | None = Field(default=None, alias="agentCommand")
    ckb_path: str | None = Field(default=None, alias="ckbPath")


def load_project_config(path: Path) -> ProjectConfig | None:
    """Read the project config file; ``None`` when it is absent or unreadable."""

    if not path.exists():
        return None
    try:
        document = json.loads(path.read_text(encoding="utf-8"))
        return ProjectConfig.model_validate(document)
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        logger.warning("Ignoring unreadable project config", extra={"path": str(path), "error": str(exc)})
        return None


def resolve_default_agent(
    settings: AsyncWFSettings,
    agents: Mapping[str, AgentSpec] | None = None,
) -> str:
    """Pick the agent used when a dispatch names none.

    Project config wins over ``ASYNCWF_DEFAULT_AGENT``; unknown names fall
    through to the next source and finally to ``claude``.
    """

    table = AGENT_COMMANDS if agents is None else agents
    project = load_project_config(settings.project_config_path)
    candidates: list[tuple[str, str | None]] = []
    if project is not None:
        candidates.append(("project config", project.default_agent))
        candidates.append(("project config", project.agent_command))
    candidates.append(("settings", settings.default_agent))

    for source, candidate in candidates:
        if not candidate:
            continue
        name = candidate.strip().lower()
        if name in table:
            return name
        logger.warning("Unknown default agent", extra={"source": source, "agent": candidate})

    return DEFAULT_AGENT


@lru_cache(maxsize=1)
def get_settings() -> AsyncWFSettings:
    """Return cached settings instance."""

    settings = AsyncWFSettings()
    settings.state_dir = settings.state_dir.expanduser().resolve()
    settings.ckb_path = settings.ckb_path.expanduser().resolve()
    return settings


__all__ = [
    "AsyncWFSettings",
    "ProjectConfig",
    "get_settings",
    "load_project_config",
    "resolve_default_agent",
]
