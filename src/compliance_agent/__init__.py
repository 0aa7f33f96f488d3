"""
Compliance Agent - an action framework and tool-orchestrating agent loop for
compliance case management.

Actions are declared, permission-gated mutations with a preview step, a
durable audit record and a bounded undo window. Agents expose actions and
read-only skills as tools to a streaming model provider.

Example:
    from compliance_agent import ActionContext, AgentService, ServiceConfig

    service = AgentService.create(ServiceConfig.from_env())

    ctx = ActionContext(
        organization_id="org-1",
        user_id="user-1",
        user_role="COMPLIANCE_OFFICER",
        permissions=frozenset({"cases:update:status"}),
        entity_type="case",
        entity_id="case-1",
    )

    # Preview, then execute and undo
    preview = await service.preview("change-status", {"newStatus": "OPEN"}, ctx)
    result = await service.execute(
        "change-status", {"newStatus": "OPEN"}, ctx, skip_preview=True
    )
    await service.undo(result.record_id, ctx)
"""

from compliance_agent.actions import (
    CATEGORY_POLICIES,
    STATUS_TRANSITIONS,
    ActionCatalog,
    ActionCategory,
    ActionChange,
    ActionContext,
    ActionDefinition,
    ActionExecutor,
    ActionPreview,
    ActionRecord,
    ActionRecordStore,
    ActionResult,
    ActionStatus,
    CanExecuteResult,
    CategoryPolicy,
    ExecutionResult,
    UndoableAction,
    UndoStatus,
    UndoWindow,
    create_change_status_action,
)
from compliance_agent.agent import AgentContext, AgentDefinition, BaseAgent
from compliance_agent.agent_cache import AgentCache
from compliance_agent.agents import CaseAgent, InvestigationAgent, create_agent
from compliance_agent.config import RateLimitConfig, ServiceConfig
from compliance_agent.context import (
    AIContext,
    ContextLoader,
    StaticContextLoader,
    build_system_prompt,
)
from compliance_agent.conversation import Conversation, ConversationStore, Message
from compliance_agent.errors import (
    ActionError,
    ForbiddenError,
    NotFoundError,
    NotUndoableError,
    RateLimitedError,
    UndoFailedError,
    UndoWindowExpiredError,
    ValidationError,
)
from compliance_agent.events import (
    ACTION_COMPLETED,
    ACTION_FAILED,
    ACTION_UNDONE,
    ActionCompletedEvent,
    ActionFailedEvent,
    ActionUndoneEvent,
    EventBus,
    StreamEvent,
)
from compliance_agent.providers import ModelProvider
from compliance_agent.rate_limit import (
    InMemoryRateLimiter,
    RateLimiter,
    RateLimitResult,
    UsageRecord,
)
from compliance_agent.schema import FieldError, JsonSchema, Schema, SchemaResult, object_schema
from compliance_agent.service import AgentService
from compliance_agent.skills import SkillContext, SkillDefinition, SkillRegistry, SkillResult
from compliance_agent.storage import AuditEntry, AuditLogStore, EntityStore

__version__ = "0.1.0"

__all__ = [
    # Service
    "AgentService",
    "ServiceConfig",
    "RateLimitConfig",
    # Actions
    "ActionCatalog",
    "ActionCategory",
    "ActionChange",
    "ActionContext",
    "ActionDefinition",
    "ActionExecutor",
    "ActionPreview",
    "ActionRecord",
    "ActionRecordStore",
    "ActionResult",
    "ActionStatus",
    "CanExecuteResult",
    "CategoryPolicy",
    "CATEGORY_POLICIES",
    "ExecutionResult",
    "UndoableAction",
    "UndoStatus",
    "UndoWindow",
    "STATUS_TRANSITIONS",
    "create_change_status_action",
    # Errors
    "ActionError",
    "ForbiddenError",
    "NotFoundError",
    "NotUndoableError",
    "RateLimitedError",
    "UndoFailedError",
    "UndoWindowExpiredError",
    "ValidationError",
    # Schema
    "Schema",
    "JsonSchema",
    "FieldError",
    "SchemaResult",
    "object_schema",
    # Events
    "EventBus",
    "StreamEvent",
    "ACTION_COMPLETED",
    "ACTION_FAILED",
    "ACTION_UNDONE",
    "ActionCompletedEvent",
    "ActionFailedEvent",
    "ActionUndoneEvent",
    # Agents
    "AgentCache",
    "AgentContext",
    "AgentDefinition",
    "BaseAgent",
    "CaseAgent",
    "InvestigationAgent",
    "create_agent",
    # Context and conversations
    "AIContext",
    "ContextLoader",
    "StaticContextLoader",
    "build_system_prompt",
    "Conversation",
    "ConversationStore",
    "Message",
    # Skills
    "SkillContext",
    "SkillDefinition",
    "SkillRegistry",
    "SkillResult",
    # Rate limiting
    "InMemoryRateLimiter",
    "RateLimiter",
    "RateLimitResult",
    "UsageRecord",
    # Providers
    "ModelProvider",
    # Storage
    "AuditEntry",
    "AuditLogStore",
    "EntityStore",
]
