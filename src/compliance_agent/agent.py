"""
Scoped agents and the tool-orchestration loop.

An agent is bound to one (organization, user, entity) scope. Each chat turn
runs a single provider stream:

    rate-limit check -> persist user message -> load history -> build prompt
    -> stream (dispatching tool calls inline) -> persist assistant message

Tool dispatch is sequential and blocks the stream, so ``action_executed``
events come out in the order the model requested the tools.
"""

from __future__ import annotations

import json
import math
import time
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from compliance_agent.actions.catalog import ActionCatalog
from compliance_agent.actions.executor import ActionExecutor
from compliance_agent.actions.models import ActionContext
from compliance_agent.config import ServiceConfig
from compliance_agent.context import AIContext, ContextLoader, build_system_prompt
from compliance_agent.conversation import ConversationStore
from compliance_agent.events import StreamEvent
from compliance_agent.logging import get_logger
from compliance_agent.providers.base import ModelProvider
from compliance_agent.rate_limit import RateLimiter, UsageRecord
from compliance_agent.skills import SkillContext, SkillDefinition, SkillRegistry

logger = get_logger("agent")


@dataclass(frozen=True)
class AgentDefinition:
    """Static description of an agent type."""

    id: str
    name: str
    description: str
    entity_types: frozenset[str] = frozenset()
    default_skills: tuple[str, ...] = ()
    system_prompt_template: str | None = None  # defaults to ``id``


@dataclass(frozen=True)
class AgentContext:
    """Tenant, caller and entity scope for one chat turn."""

    organization_id: str
    user_id: str
    user_role: str
    permissions: frozenset[str] = frozenset()
    entity_type: str | None = None
    entity_id: str | None = None
    team_id: str | None = None
    user_name: str | None = None


@dataclass
class ToolCallResult:
    success: bool
    result: Any = None
    error: str | None = None
    changes: dict[str, Any] = field(default_factory=dict)
    details: dict[str, Any] = field(default_factory=dict)


def estimate_tokens(message: str) -> int:
    """Rough pre-flight estimate: four characters per token plus prompt overhead."""
    return math.ceil(len(message) / 4) + 500


class BaseAgent(ABC):
    """
    Base class for context-scoped agents.

    Example:
        agent = CaseAgent(provider, loader, conversations, skills,
                          rate_limiter=limiter, catalog=catalog, executor=executor)

        async for event in agent.chat("Summarize this case", ctx):
            if event.type == "text_delta":
                print(event.content, end="")
    """

    definition: AgentDefinition

    def __init__(
        self,
        provider: ModelProvider,
        context_loader: ContextLoader,
        conversations: ConversationStore,
        skills: SkillRegistry,
        rate_limiter: RateLimiter | None = None,
        catalog: ActionCatalog | None = None,
        executor: ActionExecutor | None = None,
        config: ServiceConfig | None = None,
        definition: AgentDefinition | None = None,
    ) -> None:
        if definition is not None:
            self.definition = definition
        self.provider = provider
        self.context_loader = context_loader
        self.conversations = conversations
        self.skills = skills
        self.rate_limiter = rate_limiter
        self.catalog = catalog
        self.executor = executor
        self.config = config or ServiceConfig()

        self.ai_context: AIContext | None = None
        self.conversation_id: str | None = None

    @property
    def id(self) -> str:
        return self.definition.id

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def description(self) -> str:
        return self.definition.description

    @property
    def entity_types(self) -> frozenset[str]:
        return self.definition.entity_types

    @property
    def action_prefix(self) -> str:
        return self.config.action_tool_prefix

    @property
    def entity_status(self) -> str | None:
        """Status of the scoped entity as of the last context load."""
        if self.ai_context is None or self.ai_context.entity is None:
            return None
        return self.ai_context.entity.status

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    async def initialize(self, ctx: AgentContext) -> None:
        """Load the context hierarchy and attach to this scope's conversation."""
        self.ai_context = await self.context_loader.load_context(
            ctx.organization_id,
            ctx.user_id,
            team_id=ctx.team_id,
            entity_type=ctx.entity_type,
            entity_id=ctx.entity_id,
        )
        conversation = self.conversations.get_or_create(
            ctx.organization_id,
            ctx.user_id,
            self.id,
            entity_type=ctx.entity_type,
            entity_id=ctx.entity_id,
        )
        self.conversation_id = conversation.id
        logger.debug("Initialized %s for %s:%s", self.name, ctx.entity_type, ctx.entity_id)

    def reset(self) -> None:
        """Drop the loaded context and conversation binding."""
        self.ai_context = None
        self.conversation_id = None

    async def build_system_prompt(self, ctx: AgentContext) -> str:
        if self.ai_context is None:
            await self.initialize(ctx)
        assert self.ai_context is not None
        return build_system_prompt(
            self.ai_context, self.definition.system_prompt_template or self.id
        )

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    def get_available_skills(self, ctx: AgentContext) -> list[SkillDefinition]:
        """Permitted skills that belong to this agent type."""
        wanted = set(self.definition.default_skills) | set(self._additional_skills())
        return [
            s
            for s in self.skills.get_available_skills(ctx.permissions, ctx.entity_type)
            if s.id in wanted
        ]

    def get_all_tools(self, ctx: AgentContext) -> list[dict[str, Any]]:
        """Skills plus permitted actions; actions carry the action prefix."""
        tools = self.skills.to_tools(self.get_available_skills(ctx))
        if self.catalog is not None and ctx.entity_type:
            actions = self.catalog.get_available_actions(ctx.entity_type, ctx.permissions)
            tools.extend(
                self.catalog.to_tool_definitions(
                    actions, prefix=self.action_prefix, entity_type=ctx.entity_type
                )
            )
        return tools

    def is_action_tool(self, tool_name: str) -> bool:
        return tool_name.startswith(self.action_prefix)

    def display_name(self, tool_name: str) -> str:
        if self.is_action_tool(tool_name):
            return tool_name[len(self.action_prefix) :]
        return tool_name

    async def execute_tool_call(
        self,
        tool_name: str,
        tool_input: dict[str, Any],
        ctx: AgentContext,
    ) -> ToolCallResult:
        """Dispatch one tool call. Never raises."""
        logger.debug("Dispatching tool %s for %s:%s", tool_name, ctx.entity_type, ctx.entity_id)
        if self.is_action_tool(tool_name):
            return await self._execute_action(self.display_name(tool_name), tool_input, ctx)
        return await self._execute_skill(tool_name, tool_input, ctx)

    async def _execute_skill(
        self,
        skill_id: str,
        tool_input: dict[str, Any],
        ctx: AgentContext,
    ) -> ToolCallResult:
        skill_ctx = SkillContext(
            organization_id=ctx.organization_id,
            user_id=ctx.user_id,
            permissions=ctx.permissions,
            entity_type=ctx.entity_type,
            entity_id=ctx.entity_id,
        )
        try:
            result = await self.skills.execute_skill(skill_id, tool_input, skill_ctx)
        except Exception as e:
            logger.error("Skill %s raised: %s", skill_id, e)
            return ToolCallResult(False, error=str(e) or "Skill execution failed")
        return ToolCallResult(result.success, result=result.data, error=result.error)

    async def _execute_action(
        self,
        action_id: str,
        tool_input: dict[str, Any],
        ctx: AgentContext,
    ) -> ToolCallResult:
        if self.executor is None or not ctx.entity_type or not ctx.entity_id:
            return ToolCallResult(False, error="Action execution not available in this context")

        action_ctx = ActionContext(
            organization_id=ctx.organization_id,
            user_id=ctx.user_id,
            user_role=ctx.user_role,
            permissions=ctx.permissions,
            entity_type=ctx.entity_type,
            entity_id=ctx.entity_id,
            conversation_id=self.conversation_id,
            user_name=ctx.user_name,
        )
        try:
            execution = await self.executor.execute(
                action_id,
                tool_input,
                action_ctx,
                skip_preview=self.config.ai_skip_preview,
            )
        except Exception as e:
            logger.error("Action %s raised: %s", action_id, e)
            return ToolCallResult(False, error=str(e) or "Action execution failed")

        result = execution.result
        return ToolCallResult(
            success=execution.success,
            result=result.message if result else None,
            error=execution.error,
            changes=(result.new_state or {}) if result and execution.success else {},
            details={
                "record_id": execution.record_id,
                "undo_available": execution.undo_available,
                "undo_expires_at": execution.undo_expires_at,
            },
        )

    def _inline_summary(self, tool_name: str, outcome: ToolCallResult) -> str:
        name = self.display_name(tool_name)
        if not outcome.success:
            return f"\n\n✗ {name} failed: {outcome.error}\n\n"
        if isinstance(outcome.result, (dict, list)):
            summary = json.dumps(outcome.result, default=str)
        else:
            summary = outcome.result or "Completed successfully"
        return f"\n\n✓ {name}: {summary}\n\n"

    # ------------------------------------------------------------------
    # Chat loop
    # ------------------------------------------------------------------

    async def chat(self, message: str, ctx: AgentContext) -> AsyncIterator[StreamEvent]:
        """
        Run one chat turn, yielding stream events.

        A rate-limit rejection or a stream failure ends the turn with an
        ``error`` event. Assistant text is persisted only when the stream
        completes.
        """
        if self.ai_context is None or self.conversation_id is None:
            await self.initialize(ctx)
        assert self.conversation_id is not None

        if self.rate_limiter is not None:
            try:
                verdict = self.rate_limiter.check_and_consume(
                    ctx.organization_id, estimate_tokens(message)
                )
            except Exception as e:
                logger.warning("Rate limiter unavailable, continuing: %s", e)
            else:
                if not verdict.allowed:
                    error = verdict.to_error()
                    yield StreamEvent(
                        type="error",
                        error=error.message,
                        retry_after_ms=error.retry_after_ms,
                    )
                    return

        full_content = ""
        started = time.monotonic()
        try:
            self.conversations.add_message(self.conversation_id, "user", message)
            history = self.conversations.get_messages(
                self.conversation_id, self.config.history_limit
            )
            messages = [m.to_dict() for m in history]
            # The provider expects the first message to come from the user.
            while messages and messages[0]["role"] != "user":
                messages.pop(0)

            system_prompt = await self.build_system_prompt(ctx)
            tools = self.get_all_tools(ctx)

            async for event in self.provider.stream(system_prompt, messages, tools):
                if event.type == "text_delta":
                    full_content += event.content
                    yield event

                elif event.type == "tool_use" and event.tool_name:
                    yield event
                    outcome = await self.execute_tool_call(
                        event.tool_name, event.tool_input, ctx
                    )
                    logger.debug("Tool %s result: success=%s", event.tool_name, outcome.success)

                    if self.is_action_tool(event.tool_name):
                        yield StreamEvent(
                            type="action_executed",
                            tool_call_id=event.tool_call_id,
                            action_result={
                                "action": self.display_name(event.tool_name),
                                "success": outcome.success,
                                "message": (
                                    (outcome.result or "Completed successfully")
                                    if outcome.success
                                    else outcome.error
                                ),
                                "changes": outcome.changes,
                                **outcome.details,
                            },
                        )

                    inline = self._inline_summary(event.tool_name, outcome)
                    full_content += inline
                    yield StreamEvent(type="text_delta", content=inline)

                elif event.type == "usage":
                    self._record_usage(event.usage or {}, ctx, started)

                else:
                    yield event

            if full_content:
                self.conversations.add_message(self.conversation_id, "assistant", full_content)
        except Exception as e:
            logger.error("Chat error in %s: %s", self.name, e)
            yield StreamEvent(type="error", error=str(e) or type(e).__name__)

    def _record_usage(self, usage: dict[str, int], ctx: AgentContext, started: float) -> None:
        if self.rate_limiter is None:
            return
        try:
            self.rate_limiter.record_usage(
                UsageRecord(
                    organization_id=ctx.organization_id,
                    user_id=ctx.user_id,
                    input_tokens=usage.get("input_tokens", 0),
                    output_tokens=usage.get("output_tokens", 0),
                    cache_read_tokens=usage.get("cache_read_tokens", 0),
                    cache_write_tokens=usage.get("cache_write_tokens", 0),
                    model=self.provider.default_model,
                    provider=self.provider.name,
                    feature_type=f"agent:{self.id}",
                    entity_type=ctx.entity_type,
                    entity_id=ctx.entity_id,
                    duration_ms=int((time.monotonic() - started) * 1000),
                )
            )
        except Exception as e:
            logger.warning("Usage recording skipped: %s", e)

    # ------------------------------------------------------------------
    # Per-agent hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def get_suggested_prompts(self, ctx: AgentContext) -> list[str]:
        """Context-aware starter prompts for this agent."""

    @abstractmethod
    def _additional_skills(self) -> list[str]:
        """Skill ids this agent type adds on top of its defaults."""
