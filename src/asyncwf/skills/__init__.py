"""Read-only access to the markdown skill store."""

from .loader import SkillLoadError, SkillLoader, format_skill_for_prompt
from .models import Skill, SkillIndexEntry

__all__ = [
    "Skill",
    "SkillIndexEntry",
    "SkillLoadError",
    "SkillLoader",
    "format_skill_for_prompt",
]
