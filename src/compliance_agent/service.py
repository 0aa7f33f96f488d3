"""
Service root.

``AgentService`` owns every collaborator (stores, catalog, executor, event
bus, rate limiter, agent cache) and exposes the operations transport code
calls. Nothing here is module-global; build one service per process or test.
"""

from __future__ import annotations

import time
from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Any

from compliance_agent.actions.catalog import ActionCatalog
from compliance_agent.actions.change_status import create_change_status_action
from compliance_agent.actions.executor import ActionExecutor
from compliance_agent.actions.models import (
    ActionCategory,
    ActionContext,
    ActionDefinition,
    ActionPreview,
    ActionRecord,
    ExecutionResult,
    UndoableAction,
    UndoStatus,
)
from compliance_agent.actions.records import ActionRecordStore
from compliance_agent.agent import AgentContext, BaseAgent
from compliance_agent.agent_cache import AgentCache
from compliance_agent.agents import create_agent
from compliance_agent.config import ServiceConfig
from compliance_agent.context import ContextLoader, StaticContextLoader
from compliance_agent.conversation import ConversationStore
from compliance_agent.events import ACTION_COMPLETED, ACTION_UNDONE, EventBus, StreamEvent
from compliance_agent.logging import get_logger, set_level
from compliance_agent.providers.base import ModelProvider
from compliance_agent.rate_limit import InMemoryRateLimiter, RateLimiter
from compliance_agent.skills import SkillRegistry
from compliance_agent.storage import AuditLogStore, EntityStore

logger = get_logger("service")


class AgentService:
    """
    Wires the action framework and agents together.

    Example:
        # Builds an AnthropicProvider from config.model and config.max_tokens
        service = AgentService.create(ServiceConfig.from_env())
        service.entities.upsert("org-1", "case", "case-1", "NEW")

        result = await service.execute(
            "change-status", {"newStatus": "OPEN"}, ctx, skip_preview=True
        )
        await service.undo(result.record_id, ctx)

        async for event in service.chat("case", "Summarize this case", agent_ctx):
            ...
    """

    def __init__(
        self,
        config: ServiceConfig,
        provider: ModelProvider,
        entities: EntityStore,
        audit_log: AuditLogStore,
        records: ActionRecordStore,
        conversations: ConversationStore,
        catalog: ActionCatalog,
        executor: ActionExecutor,
        context_loader: ContextLoader,
        skills: SkillRegistry,
        rate_limiter: RateLimiter | None,
    ) -> None:
        self.config = config
        self.provider = provider
        self.entities = entities
        self.audit_log = audit_log
        self.records = records
        self.conversations = conversations
        self.catalog = catalog
        self.executor = executor
        self.context_loader = context_loader
        self.skills = skills
        self.rate_limiter = rate_limiter
        self.agents: AgentCache[BaseAgent] = AgentCache(config.agent_cache_size)

        # Cached agents hold a snapshot of entity status; refresh after mutations.
        self.events.on(ACTION_COMPLETED, self._on_entity_changed, source="service")
        self.events.on(ACTION_UNDONE, self._on_entity_changed, source="service")

    @classmethod
    def create(
        cls,
        config: ServiceConfig,
        provider: ModelProvider | None = None,
        context_loader: ContextLoader | None = None,
        skills: SkillRegistry | None = None,
        rate_limiter: RateLimiter | None = None,
        clock: Callable[[], float] = time.time,
    ) -> AgentService:
        """
        Build a service backed by the sqlite file at ``config.db_path``.

        Without ``provider``, an ``AnthropicProvider`` is built from
        ``config.model`` and ``config.max_tokens``.
        """
        set_level(config.log_level)
        if provider is None:
            from compliance_agent.providers.anthropic import AnthropicProvider

            provider = AnthropicProvider.from_config(config)

        db_path = Path(config.db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)

        entities = EntityStore(db_path)
        audit_log = AuditLogStore(db_path)
        records = ActionRecordStore(db_path)
        catalog = ActionCatalog([create_change_status_action(entities, audit_log)])
        executor = ActionExecutor(catalog, records, EventBus(), clock=clock)

        service = cls(
            config=config,
            provider=provider,
            entities=entities,
            audit_log=audit_log,
            records=records,
            conversations=ConversationStore(db_path),
            catalog=catalog,
            executor=executor,
            context_loader=context_loader or StaticContextLoader(entities=entities),
            skills=skills or SkillRegistry(),
            rate_limiter=rate_limiter or InMemoryRateLimiter(config.rate_limits, clock=clock),
        )
        logger.info(
            "Agent service ready (db=%s, provider=%s, model=%s)",
            db_path,
            provider.name,
            provider.default_model,
        )
        return service

    @property
    def events(self) -> EventBus:
        return self.executor.events

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def register_action(self, action: ActionDefinition) -> None:
        self.catalog.register(action)

    def get_available_actions(
        self,
        entity_type: str,
        user_permissions: list[str] | frozenset[str],
        category: ActionCategory | None = None,
    ) -> list[ActionDefinition]:
        return self.catalog.get_available_actions(entity_type, user_permissions, category)

    async def preview(
        self, action_id: str, data: dict[str, Any], ctx: ActionContext
    ) -> ActionPreview:
        return await self.executor.preview(action_id, data, ctx)

    async def execute(
        self,
        action_id: str,
        data: dict[str, Any],
        ctx: ActionContext,
        skip_preview: bool = False,
    ) -> ExecutionResult:
        return await self.executor.execute(action_id, data, ctx, skip_preview=skip_preview)

    async def undo(self, record_id: str, ctx: ActionContext) -> None:
        await self.executor.undo(record_id, ctx)

    def can_undo(self, record_id: str, ctx: ActionContext) -> UndoStatus:
        return self.executor.can_undo(record_id, ctx)

    def get_undoable_actions(self, ctx: ActionContext) -> list[UndoableAction]:
        return self.executor.get_undoable_actions(ctx)

    def get_action_history(
        self,
        organization_id: str,
        entity_type: str | None = None,
        entity_id: str | None = None,
        limit: int = 50,
    ) -> list[ActionRecord]:
        return self.executor.get_action_history(organization_id, entity_type, entity_id, limit)

    # ------------------------------------------------------------------
    # Agents
    # ------------------------------------------------------------------

    @staticmethod
    def agent_key(agent_type: str, ctx: AgentContext) -> tuple[str | None, ...]:
        return (
            agent_type,
            ctx.organization_id,
            ctx.user_id,
            ctx.entity_type,
            ctx.entity_id,
        )

    def _agent_factory(self, agent_type: str) -> Callable[[], BaseAgent]:
        def factory() -> BaseAgent:
            return create_agent(
                agent_type,
                provider=self.provider,
                context_loader=self.context_loader,
                conversations=self.conversations,
                skills=self.skills,
                rate_limiter=self.rate_limiter,
                catalog=self.catalog,
                executor=self.executor,
                config=self.config,
            )

        return factory

    async def chat(
        self,
        agent_type: str,
        message: str,
        ctx: AgentContext,
    ) -> AsyncIterator[StreamEvent]:
        """
        Run one chat turn on the cached agent for this scope.

        Turns for the same (agent type, organization, user, entity) run one
        at a time; other scopes are not blocked.
        """
        key = self.agent_key(agent_type, ctx)
        async with self.agents.acquire(key, self._agent_factory(agent_type)) as agent:
            async for event in agent.chat(message, ctx):
                yield event

    async def get_suggested_prompts(self, agent_type: str, ctx: AgentContext) -> list[str]:
        key = self.agent_key(agent_type, ctx)
        async with self.agents.acquire(key, self._agent_factory(agent_type)) as agent:
            if agent.ai_context is None:
                await agent.initialize(ctx)
            return agent.get_suggested_prompts(ctx)

    def _on_entity_changed(self, event: Any) -> None:
        self.invalidate_agents(event.organization_id, event.entity_type, event.entity_id)

    def invalidate_agents(self, organization_id: str, entity_type: str, entity_id: str) -> int:
        """Drop cached agents scoped to one entity so the next turn reloads context."""
        stale = [
            key
            for key in self.agents.keys()
            if key[1] == organization_id and key[3] == entity_type and key[4] == entity_id
        ]
        for key in stale:
            self.agents.invalidate(key)
        return len(stale)
