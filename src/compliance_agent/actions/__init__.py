"""
Declared, permission-gated, previewable and undoable mutations.
"""

from compliance_agent.actions.catalog import ActionCatalog
from compliance_agent.actions.change_status import (
    STATUS_TRANSITIONS,
    create_change_status_action,
)
from compliance_agent.actions.executor import ActionExecutor
from compliance_agent.actions.models import (
    CATEGORY_POLICIES,
    ActionCategory,
    ActionChange,
    ActionContext,
    ActionDefinition,
    ActionPreview,
    ActionRecord,
    ActionResult,
    ActionStatus,
    CanExecuteResult,
    CategoryPolicy,
    ExecutionResult,
    UndoableAction,
    UndoStatus,
    UndoWindow,
)
from compliance_agent.actions.records import ActionRecordStore

__all__ = [
    "CATEGORY_POLICIES",
    "STATUS_TRANSITIONS",
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
    "ExecutionResult",
    "UndoStatus",
    "UndoWindow",
    "UndoableAction",
    "create_change_status_action",
]
