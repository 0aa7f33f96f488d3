"""
Read-only skills exposed to agents as tools.

Skills compute or look things up; they never mutate tenant data (that is what
actions are for). Concrete business skills are supplied by the host
application and registered here.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from compliance_agent.logging import get_logger
from compliance_agent.schema import Schema

logger = get_logger("skills")


@dataclass(frozen=True)
class SkillContext:
    organization_id: str
    user_id: str
    permissions: frozenset[str]
    entity_type: str | None = None
    entity_id: str | None = None


@dataclass
class SkillResult:
    success: bool
    data: Any = None
    error: str | None = None


SkillHandler = Callable[[dict[str, Any], SkillContext], Awaitable[Any]]


@dataclass(frozen=True)
class SkillDefinition:
    """
    A read-only capability.

    ``entity_types`` empty means the skill applies everywhere.
    """

    id: str
    description: str
    input_schema: Schema
    handler: SkillHandler
    required_permissions: frozenset[str] = frozenset()
    entity_types: frozenset[str] = field(default_factory=frozenset)


class SkillRegistry:
    """Registry of skills, filtered per caller."""

    def __init__(self, skills: Iterable[SkillDefinition] = ()) -> None:
        self._skills: dict[str, SkillDefinition] = {}
        for skill in skills:
            self.register(skill)

    def register(self, skill: SkillDefinition) -> None:
        if skill.id in self._skills:
            logger.warning("Skill %s already registered, replacing", skill.id)
        self._skills[skill.id] = skill

    def get(self, skill_id: str) -> SkillDefinition | None:
        return self._skills.get(skill_id)

    def get_available_skills(
        self,
        user_permissions: Iterable[str],
        entity_type: str | None = None,
    ) -> list[SkillDefinition]:
        granted = frozenset(user_permissions)
        return [
            s
            for s in self._skills.values()
            if s.required_permissions <= granted
            and (not s.entity_types or entity_type in s.entity_types)
        ]

    def to_tools(self, skills: Iterable[SkillDefinition]) -> list[dict[str, Any]]:
        return [
            {
                "name": s.id,
                "description": s.description,
                "input_schema": s.input_schema.describe(),
            }
            for s in skills
        ]

    async def execute_skill(
        self,
        skill_id: str,
        data: dict[str, Any],
        ctx: SkillContext,
    ) -> SkillResult:
        """Run a skill. Failures come back as ``SkillResult(success=False)``."""
        skill = self._skills.get(skill_id)
        if skill is None:
            return SkillResult(False, error=f"Unknown skill: {skill_id}")

        missing = sorted(skill.required_permissions - ctx.permissions)
        if missing:
            return SkillResult(False, error=f"Missing permissions: {', '.join(missing)}")

        outcome = skill.input_schema.validate(data)
        if not outcome.ok:
            details = "; ".join(f"{e.field or '<root>'}: {e.message}" for e in outcome.errors)
            return SkillResult(False, error=f"Invalid input: {details}")

        try:
            return SkillResult(True, data=await skill.handler(outcome.value, ctx))
        except Exception as e:
            logger.warning("Skill %s failed: %s", skill_id, e)
            return SkillResult(False, error=str(e) or type(e).__name__)
