"""
Context hierarchy for agent system prompts.

Context is layered platform -> organization -> team -> user -> entity, each
layer narrowing the one before. ``build_system_prompt`` renders a loaded
``AIContext`` as Markdown for the model provider.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml

from compliance_agent.storage import EntityStore

# ---------------------------------------------------------------------------
# Context layers
# ---------------------------------------------------------------------------


@dataclass
class PlatformContext:
    name: str = "Compliance Case Management Platform"
    version: str = "1.0.0"
    capabilities: list[str] = field(
        default_factory=lambda: [
            "Case and Investigation Management",
            "Compliance Reporting",
            "Risk Assessment",
            "Policy Management",
            "Document Analysis",
            "Timeline Reconstruction",
            "Pattern Detection",
        ]
    )
    guidelines: str = (
        "You are an AI assistant for compliance and ethics management. Your role is to:\n"
        "- Help compliance officers investigate reports efficiently\n"
        "- Maintain confidentiality of all case information\n"
        "- Provide accurate, well-sourced information\n"
        "- Never make final determinations; support human decision-making\n"
        "- Use clear, professional language appropriate for legal and HR contexts"
    )


@dataclass
class AISettings:
    formality_level: str = "professional"
    note_cleanup_style: str = "light"
    summary_default_length: str = "medium"


@dataclass
class OrganizationContext:
    id: str
    name: str
    context_file: str | None = None
    terminology: dict[str, str] = field(default_factory=dict)
    settings: AISettings | None = None


@dataclass
class TeamContext:
    id: str
    name: str
    focus_area: str | None = None
    context_file: str | None = None


@dataclass
class UserContext:
    id: str
    name: str
    role: str
    preferences: dict[str, str] = field(default_factory=dict)
    context_file: str | None = None


@dataclass
class EntityContext:
    type: str
    id: str
    status: str | None = None
    reference_number: str | None = None
    summary: str | None = None


@dataclass
class AIContext:
    platform: PlatformContext
    organization: OrganizationContext
    user: UserContext
    team: TeamContext | None = None
    entity: EntityContext | None = None
    current_datetime: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(timespec="seconds")
    )


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


class ContextLoader(ABC):
    """Loads the context hierarchy for one caller."""

    @abstractmethod
    async def load_context(
        self,
        organization_id: str,
        user_id: str,
        team_id: str | None = None,
        entity_type: str | None = None,
        entity_id: str | None = None,
    ) -> AIContext: ...


class StaticContextLoader(ContextLoader):
    """
    Context loaded from a plain document, optionally enriched with live
    entity status.

    Example YAML:
        platform:
          name: Compliance Case Management Platform
        organizations:
          org-1:
            name: Acme Corp
            terminology:
              RIU: Risk Intelligence Unit
            settings:
              formality_level: formal
            teams:
              team-1: {name: Ethics Desk, focus_area: Hotline}
            users:
              user-1: {name: Dana Reyes, role: COMPLIANCE_OFFICER}
    """

    def __init__(
        self,
        document: dict[str, Any] | None = None,
        entities: EntityStore | None = None,
    ) -> None:
        self._doc = document or {}
        self._entities = entities

    @classmethod
    def from_yaml(cls, path: Path, entities: EntityStore | None = None) -> StaticContextLoader:
        with open(path) as f:
            return cls(yaml.safe_load(f) or {}, entities)

    @classmethod
    def from_yaml_string(
        cls, content: str, entities: EntityStore | None = None
    ) -> StaticContextLoader:
        return cls(yaml.safe_load(content) or {}, entities)

    async def load_context(
        self,
        organization_id: str,
        user_id: str,
        team_id: str | None = None,
        entity_type: str | None = None,
        entity_id: str | None = None,
    ) -> AIContext:
        platform = PlatformContext(**self._doc.get("platform", {}))

        org_doc = self._doc.get("organizations", {}).get(organization_id, {})
        settings = org_doc.get("settings")
        organization = OrganizationContext(
            id=organization_id,
            name=org_doc.get("name", organization_id),
            context_file=org_doc.get("context_file"),
            terminology=org_doc.get("terminology", {}),
            settings=AISettings(**settings) if settings else None,
        )

        team = None
        if team_id:
            team_doc = org_doc.get("teams", {}).get(team_id, {})
            team = TeamContext(
                id=team_id,
                name=team_doc.get("name", team_id),
                focus_area=team_doc.get("focus_area"),
                context_file=team_doc.get("context_file"),
            )

        user_doc = org_doc.get("users", {}).get(user_id, {})
        user = UserContext(
            id=user_id,
            name=user_doc.get("name", user_id),
            role=user_doc.get("role", "USER"),
            preferences=user_doc.get("preferences", {}),
            context_file=user_doc.get("context_file"),
        )

        entity = None
        if entity_type and entity_id:
            status = None
            if self._entities is not None:
                status = self._entities.get_status(organization_id, entity_type, entity_id)
            entity = EntityContext(type=entity_type, id=entity_id, status=status)

        return AIContext(
            platform=platform,
            organization=organization,
            user=user,
            team=team,
            entity=entity,
        )


# ---------------------------------------------------------------------------
# Prompt rendering
# ---------------------------------------------------------------------------

AGENT_INSTRUCTIONS: dict[str, str] = {
    "case": (
        "As a Case Agent, you specialize in:\n"
        "- Summarizing case intake information\n"
        "- Categorizing reports by type and severity\n"
        "- Tracking case status and SLA compliance\n"
        "- Recommending case routing and assignment"
    ),
    "investigation": (
        "As an Investigation Agent, you specialize in:\n"
        "- Summarizing investigation findings and timelines\n"
        "- Suggesting interview questions based on case details\n"
        "- Identifying patterns across related cases\n"
        "- Assessing risk levels and recommending next steps"
    ),
}


def build_system_prompt(context: AIContext, agent_type: str) -> str:
    """Render the context hierarchy as a Markdown system prompt."""
    platform = context.platform
    sections = [
        f"# {platform.name}",
        f"Version: {platform.version}",
        "",
        "## Capabilities",
        "\n".join(f"- {c}" for c in platform.capabilities),
        "",
        "## Guidelines",
        platform.guidelines,
        "",
        f"## Organization: {context.organization.name}",
    ]

    org = context.organization
    if org.context_file:
        sections += ["", "### Organization Context", org.context_file]
    if org.terminology:
        sections += ["", "### Terminology"]
        sections += [f"- **{term}**: {meaning}" for term, meaning in org.terminology.items()]
    if org.settings:
        sections += [
            "",
            "### AI Settings",
            f"- Formality: {org.settings.formality_level}",
            f"- Note Cleanup Style: {org.settings.note_cleanup_style}",
            f"- Summary Length: {org.settings.summary_default_length}",
        ]

    if context.team:
        sections += ["", f"## Team: {context.team.name}"]
        if context.team.focus_area:
            sections.append(f"Focus Area: {context.team.focus_area}")
        if context.team.context_file:
            sections += ["", context.team.context_file]

    user = context.user
    sections += ["", f"## Current User: {user.name}", f"Role: {user.role}"]
    if user.preferences.get("formality_level"):
        sections.append(f"Preferred Formality: {user.preferences['formality_level']}")
    if user.preferences.get("response_length"):
        sections.append(f"Preferred Response Length: {user.preferences['response_length']}")
    if user.context_file:
        sections += ["", "### User Context", user.context_file]

    entity = context.entity
    if entity:
        sections += ["", f"## Current {entity.type.upper()}", f"ID: {entity.id}"]
        if entity.reference_number:
            sections.append(f"Reference: {entity.reference_number}")
        if entity.status:
            sections.append(f"Status: {entity.status}")
        if entity.summary:
            sections += ["", "### Summary", entity.summary]

    sections += ["", f"## Agent Type: {agent_type}"]
    instructions = AGENT_INSTRUCTIONS.get(agent_type)
    if instructions:
        sections.append(instructions)

    sections += ["", f"Current Date/Time: {context.current_datetime}"]
    return "\n".join(sections)
