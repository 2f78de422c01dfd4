"""Skill loading utilities."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path

import yaml
from pydantic import ValidationError

from .models import Skill, SkillIndexEntry

logger = logging.getLogger(__name__)

INDEX_FILE = "_index.json"

_FRONTMATTER = re.compile(r"^---\n(.*?)\n---\n(.*)$", re.DOTALL)


class SkillLoadError(RuntimeError):
    """Raised when the skill index or a skill file cannot be parsed."""


def format_skill_for_prompt(skill: Skill) -> str:
    """Render a skill as the block prepended to a dispatched prompt."""

    description = f"Description: {skill.description}\n" if skill.description else ""
    return f"[SKILL: {skill.name}]\n{description}\n{skill.content}\n\n[/SKILL]"


class SkillLoader:
    """Loads skills from ``<skills_dir>/_index.json`` and ``<name>.md`` files."""

    def __init__(self, skills_dir: Path) -> None:
        self._skills_dir = Path(skills_dir)

    @property
    def skills_dir(self) -> Path:
        return self._skills_dir

    def _load_index(self) -> list[SkillIndexEntry]:
        index_path = self._skills_dir / INDEX_FILE
        if not index_path.exists():
            return []
        try:
            document = json.loads(index_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise SkillLoadError(f"Failed to read skill index {index_path}: {exc}") from exc

        entries = document.get("skills", []) if isinstance(document, dict) else None
        if not isinstance(entries, list):
            raise SkillLoadError(f"Skill index {index_path} must contain a 'skills' list")
        try:
            return [SkillIndexEntry.model_validate(entry) for entry in entries]
        except ValidationError as exc:
            raise SkillLoadError(f"Skill index validation error in {index_path}: {exc}") from exc

    def list_skills(self) -> list[SkillIndexEntry]:
        """Return index entries in stored order."""

        return self._load_index()

    def get(self, name: str) -> Skill | None:
        """Return a skill by name, or ``None`` when it is not indexed or its file is missing."""

        entry = next((item for item in self._load_index() if item.name == name), None)
        if entry is None:
            return None

        path = self._skills_dir / f"{name}.md"
        if not path.exists():
            return None
        text = path.read_text(encoding="utf-8")

        match = _FRONTMATTER.match(text)
        if match is None:
            return Skill(
                name=name,
                description=entry.description,
                tags=entry.tags,
                content=text,
                file_path=str(path),
            )

        try:
            frontmatter = yaml.safe_load(match.group(1)) or {}
        except yaml.YAMLError as exc:
            raise SkillLoadError(f"Failed to parse frontmatter in {path}: {exc}") from exc
        if not isinstance(frontmatter, dict):
            raise SkillLoadError(f"Frontmatter in {path} must be a mapping")

        version = frontmatter.get("version")
        return Skill(
            name=name,
            description=entry.description,
            tags=entry.tags,
            version=str(version).strip() if version is not None else "1.0",
            content=match.group(2).strip(),
            file_path=str(path),
        )

    def resolve(self, name: str) -> str | None:
        """Formatted skill text for prompt injection; failures degrade to ``None``."""

        try:
            skill = self.get(name)
        except (SkillLoadError, OSError) as exc:
            logger.warning("Skill lookup failed", extra={"skill": name, "error": str(exc)})
            return None
        if skill is None:
            logger.info("Skill not found; dispatching prompt as-is", extra={"skill": name})
            return None
        return format_skill_for_prompt(skill)


__all__ = ["SkillLoadError", "SkillLoader", "format_skill_for_prompt"]
