"""
Data models for the action framework.

An ``ActionDefinition`` declares a permission-gated mutation with a preview,
an execute behavior and an optional undo. Everything the executor needs to
decide policy (preview requirement, undo window) is derived from the
definition's category through ``CATEGORY_POLICIES``.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any

from compliance_agent.schema import Schema

# ---------------------------------------------------------------------------
# Categories and policy
# ---------------------------------------------------------------------------


class ActionCategory(str, Enum):
    """Risk class of an action."""

    QUICK = "QUICK"  # Low-risk, instantly reversible (add note, update field)
    STANDARD = "STANDARD"  # Ordinary mutation (assign, change status)
    CRITICAL = "CRITICAL"  # Significant mutation (close, archive)
    EXTERNAL = "EXTERNAL"  # Leaves the system (email, external API); never undoable


class UndoWindow(IntEnum):
    """Named undo windows, in seconds."""

    QUICK = 30
    STANDARD = 300
    SIGNIFICANT = 1800
    EXTENDED = 86400
    NONE = 0


@dataclass(frozen=True)
class CategoryPolicy:
    requires_preview: bool
    undo_window_seconds: int


CATEGORY_POLICIES: dict[ActionCategory, CategoryPolicy] = {
    ActionCategory.QUICK: CategoryPolicy(False, UndoWindow.QUICK),
    ActionCategory.STANDARD: CategoryPolicy(True, UndoWindow.STANDARD),
    ActionCategory.CRITICAL: CategoryPolicy(True, UndoWindow.SIGNIFICANT),
    ActionCategory.EXTERNAL: CategoryPolicy(True, UndoWindow.NONE),
}


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ActionContext:
    """Who is acting, on what. Passed by value into every action call."""

    organization_id: str
    user_id: str
    user_role: str
    permissions: frozenset[str]
    entity_type: str
    entity_id: str
    conversation_id: str | None = None
    user_name: str | None = None

    @property
    def actor_type(self) -> str:
        """``AI`` when the call originates from an agent conversation."""
        return "AI" if self.conversation_id else "USER"

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions


# ---------------------------------------------------------------------------
# Preview / result values
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ActionChange:
    field: str
    old_value: Any
    new_value: Any


@dataclass
class ActionPreview:
    """Dry-run description of what an action would change. Never persisted."""

    description: str
    changes: list[ActionChange] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "description": self.description,
            "changes": [
                {"field": c.field, "old_value": c.old_value, "new_value": c.new_value}
                for c in self.changes
            ],
            "warnings": list(self.warnings),
        }


@dataclass
class ActionResult:
    """What an action's execute behavior returns."""

    success: bool
    message: str | None = None
    previous_state: dict[str, Any] | None = None
    new_state: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "previous_state": self.previous_state,
            "new_state": self.new_state,
        }


@dataclass(frozen=True)
class CanExecuteResult:
    allowed: bool
    reason: str | None = None


@dataclass
class ExecutionResult:
    """What ``ActionExecutor.execute`` returns to its caller."""

    success: bool
    action_id: str
    record_id: str
    result: ActionResult | None = None
    error: str | None = None
    undo_available: bool = False
    undo_expires_at: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "action_id": self.action_id,
            "record_id": self.record_id,
            "result": self.result.to_dict() if self.result else None,
            "error": self.error,
            "undo_available": self.undo_available,
            "undo_expires_at": self.undo_expires_at,
        }


# ---------------------------------------------------------------------------
# Definition
# ---------------------------------------------------------------------------

PreviewFn = Callable[[dict[str, Any], ActionContext], Awaitable[ActionPreview]]
ExecuteFn = Callable[[dict[str, Any], ActionContext], Awaitable[ActionResult]]
UndoFn = Callable[[str, dict[str, Any], ActionContext], Awaitable[None]]
CanExecuteFn = Callable[[dict[str, Any], ActionContext], Awaitable[CanExecuteResult]]


@dataclass(frozen=True)
class ActionDefinition:
    """
    A declared, permission-gated mutation.

    ``undo_window_seconds=None`` inherits the category default from
    ``CATEGORY_POLICIES``; 0 means never undoable.
    """

    id: str
    name: str
    description: str
    category: ActionCategory
    entity_types: frozenset[str]
    input_schema: Schema
    generate_preview: PreviewFn
    execute: ExecuteFn
    required_permissions: frozenset[str] = frozenset()
    undo_window_seconds: int | None = None
    undo: UndoFn | None = None
    can_execute: CanExecuteFn | None = None

    @property
    def policy(self) -> CategoryPolicy:
        return CATEGORY_POLICIES[self.category]

    @property
    def effective_undo_window(self) -> int:
        if self.undo_window_seconds is not None:
            return self.undo_window_seconds
        return self.policy.undo_window_seconds

    @property
    def requires_preview(self) -> bool:
        return self.policy.requires_preview

    @property
    def undoable(self) -> bool:
        return self.undo is not None and self.effective_undo_window > 0


# ---------------------------------------------------------------------------
# Durable record
# ---------------------------------------------------------------------------


class ActionStatus(str, Enum):
    EXECUTING = "EXECUTING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    UNDONE = "UNDONE"


@dataclass
class ActionRecord:
    """
    Audit/undo unit for one execution attempt.

    Lifecycle: EXECUTING -> COMPLETED | FAILED; COMPLETED -> UNDONE (terminal),
    only while ``now < undo_expires_at``. Timestamps are epoch seconds.
    """

    id: str
    organization_id: str
    user_id: str
    entity_type: str
    entity_id: str
    action_id: str
    input: dict[str, Any]
    status: ActionStatus
    executed_at: float
    conversation_id: str | None = None
    previous_state: dict[str, Any] | None = None
    result: dict[str, Any] | None = None
    error: str | None = None
    undo_expires_at: float | None = None
    undone_at: float | None = None
    undone_by: str | None = None

    def remaining_undo_seconds(self, now: float) -> float:
        if self.undo_expires_at is None:
            return 0.0
        return max(0.0, self.undo_expires_at - now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action_id": self.action_id,
            "input": self.input,
            "status": self.status.value,
            "executed_at": self.executed_at,
            "conversation_id": self.conversation_id,
            "previous_state": self.previous_state,
            "result": self.result,
            "error": self.error,
            "undo_expires_at": self.undo_expires_at,
            "undone_at": self.undone_at,
            "undone_by": self.undone_by,
        }


@dataclass(frozen=True)
class UndoStatus:
    can_undo: bool
    remaining_seconds: int | None = None


@dataclass(frozen=True)
class UndoableAction:
    record_id: str
    action_id: str
    executed_at: float
    remaining_seconds: int
