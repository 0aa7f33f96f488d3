"""
Concrete agent types.
"""

from __future__ import annotations

from typing import Any

from compliance_agent.agent import AgentContext, AgentDefinition, BaseAgent


class CaseAgent(BaseAgent):
    """Intake, categorization and routing of reported cases."""

    definition = AgentDefinition(
        id="case",
        name="Case Agent",
        description="Summarizes intake, categorizes reports and recommends routing",
        entity_types=frozenset({"case"}),
        default_skills=("summarize", "categorize", "identify-parties"),
    )

    def _additional_skills(self) -> list[str]:
        return ["recommend-routing", "check-sla"]

    def get_suggested_prompts(self, ctx: AgentContext) -> list[str]:
        if not ctx.entity_id:
            return [
                "Which open cases are closest to their SLA deadline?",
                "Summarize new cases from this week",
            ]
        prompts = [
            "Summarize this case",
            "What category best fits this report?",
            "Who are the key parties involved?",
        ]
        status = self.entity_status
        if status == "NEW":
            prompts.append("Should this case be opened for review?")
        elif status == "OPEN":
            prompts.append("Is this case at risk of missing its SLA?")
        elif status == "CLOSED":
            prompts.append("Draft a closing summary for this case")
        return prompts


class InvestigationAgent(BaseAgent):
    """Findings, interviews and risk assessment for investigations."""

    definition = AgentDefinition(
        id="investigation",
        name="Investigation Agent",
        description="Summarizes findings, suggests interview questions and assesses risk",
        entity_types=frozenset({"investigation"}),
        default_skills=("summarize", "build-timeline", "clean-notes"),
    )

    def _additional_skills(self) -> list[str]:
        return ["suggest-interview-questions", "assess-risk", "find-patterns"]

    def get_suggested_prompts(self, ctx: AgentContext) -> list[str]:
        if not ctx.entity_id:
            return ["Which investigations are pending review?"]
        prompts = [
            "Summarize the findings so far",
            "Build a timeline of events",
        ]
        status = self.entity_status
        if status in ("NEW", "ASSIGNED"):
            prompts.append("Suggest an investigation plan")
        if status in ("ASSIGNED", "INVESTIGATING"):
            prompts.append("What questions should I ask in the next interview?")
        if status == "PENDING_REVIEW":
            prompts.append("Draft a findings report for review")
        prompts.append("Are there patterns with related cases?")
        return prompts


AGENT_TYPES: dict[str, type[BaseAgent]] = {
    CaseAgent.definition.id: CaseAgent,
    InvestigationAgent.definition.id: InvestigationAgent,
}


def create_agent(agent_type: str, **kwargs: Any) -> BaseAgent:
    """Instantiate a registered agent type. Raises KeyError for unknown types."""
    try:
        cls = AGENT_TYPES[agent_type]
    except KeyError:
        raise KeyError(f"Unknown agent type: {agent_type}") from None
    return cls(**kwargs)
