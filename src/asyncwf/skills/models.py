"""Skill models for prompt injection."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SkillIndexEntry(BaseModel):
    """One row of ``skills/_index.json``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(..., description="Unique skill name; also the markdown file stem.")
    description: str = Field(default="", description="One-line summary shown in listings.")
    tags: list[str] = Field(default_factory=list, description="Free-form labels.")
    file_path: str | None = Field(default=None, alias="filePath")

    @field_validator("name")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Skill name must not be empty")
        return normalized

    @field_validator("tags", mode="before")
    @classmethod
    def _ensure_list(cls, value: Any):
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return [str(item) for item in value]
        raise TypeError("Skill tags must be a sequence of strings")


class Skill(BaseModel):
    """A reusable block of prompt text injected ahead of a job prompt."""

    name: str
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    version: str = "1.0"
    content: str
    file_path: str


__all__ = ["Skill", "SkillIndexEntry"]
