"""
The ``change-status`` action.

Status changes follow a per-entity-type transition table. ``can_execute``
rejects transitions absent from the table; ``undo`` restores the previous
status directly, since reverting is a restore rather than a forward
transition.
"""

from __future__ import annotations

from typing import Any

from compliance_agent.actions.models import (
    ActionCategory,
    ActionChange,
    ActionContext,
    ActionDefinition,
    ActionPreview,
    ActionResult,
    CanExecuteResult,
    UndoWindow,
)
from compliance_agent.schema import object_schema
from compliance_agent.storage import AuditEntry, AuditLogStore, EntityStore

ACTION_ID = "change-status"

# currentStatus -> legal next statuses, per entity type
STATUS_TRANSITIONS: dict[str, dict[str, list[str]]] = {
    "case": {
        "NEW": ["OPEN", "CLOSED"],
        "OPEN": ["NEW", "CLOSED"],
        "CLOSED": ["OPEN"],
    },
    "investigation": {
        "NEW": ["ASSIGNED", "CLOSED", "ON_HOLD"],
        "ASSIGNED": ["NEW", "INVESTIGATING", "CLOSED", "ON_HOLD"],
        "INVESTIGATING": ["ASSIGNED", "PENDING_REVIEW", "CLOSED", "ON_HOLD"],
        "PENDING_REVIEW": ["INVESTIGATING", "CLOSED", "ON_HOLD"],
        "CLOSED": ["INVESTIGATING"],
        "ON_HOLD": ["NEW", "ASSIGNED", "INVESTIGATING"],
    },
}

STATUS_PERMISSIONS: dict[str, str] = {
    "case": "cases:update:status",
    "investigation": "investigations:update:status",
}

change_status_schema = object_schema(
    {
        "newStatus": {
            "type": "string",
            "description": (
                "The new status to set. For cases: NEW, OPEN, or CLOSED. "
                "For investigations: NEW, ASSIGNED, INVESTIGATING, PENDING_REVIEW, "
                "CLOSED, or ON_HOLD."
            ),
        },
        "reason": {
            "type": "string",
            "description": "Optional reason for the status change",
        },
    },
    required=["newStatus"],
)


def legal_transitions(entity_type: str, current_status: str) -> list[str]:
    return STATUS_TRANSITIONS.get(entity_type, {}).get(current_status, [])


def create_change_status_action(
    entities: EntityStore,
    audit_log: AuditLogStore,
) -> ActionDefinition:
    """Build the change-status action bound to its stores."""

    def actor_name(ctx: ActionContext) -> str:
        return ctx.user_name or "AI Assistant"

    async def can_execute(data: dict[str, Any], ctx: ActionContext) -> CanExecuteResult:
        permission = STATUS_PERMISSIONS.get(ctx.entity_type)
        if permission and not ctx.has_permission(permission):
            return CanExecuteResult(False, f"Missing permission: {permission}")

        current = entities.get_status(ctx.organization_id, ctx.entity_type, ctx.entity_id)
        if current is None:
            return CanExecuteResult(False, "Entity not found")

        valid = legal_transitions(ctx.entity_type, current)
        if data["newStatus"] not in valid:
            return CanExecuteResult(
                False,
                f"Cannot transition from {current} to {data['newStatus']}. "
                f"Valid transitions: {', '.join(valid) or 'none'}",
            )
        return CanExecuteResult(True)

    async def generate_preview(data: dict[str, Any], ctx: ActionContext) -> ActionPreview:
        current = (
            entities.get_status(ctx.organization_id, ctx.entity_type, ctx.entity_id)
            or "UNKNOWN"
        )
        warnings = []
        if data["newStatus"] == "CLOSED":
            warnings.append("Closing will send notifications to assigned users")
        return ActionPreview(
            description=(
                f"Change {ctx.entity_type} status from {current} to {data['newStatus']}"
            ),
            changes=[ActionChange("status", current, data["newStatus"])],
            warnings=warnings,
        )

    async def execute(data: dict[str, Any], ctx: ActionContext) -> ActionResult:
        if ctx.entity_type not in STATUS_TRANSITIONS:
            return ActionResult(False, f"Unsupported entity type: {ctx.entity_type}")

        # Re-read: the status may have moved since can_execute ran.
        previous = entities.get_status(ctx.organization_id, ctx.entity_type, ctx.entity_id)
        if previous is None:
            return ActionResult(False, "Entity not found")
        new_status = data["newStatus"]
        reason = data.get("reason")

        if not entities.set_status(
            ctx.organization_id, ctx.entity_type, ctx.entity_id, new_status, reason
        ):
            return ActionResult(False, "Entity not found")

        name = actor_name(ctx)
        via = " via AI" if ctx.actor_type == "AI" else ""
        audit_log.append(
            AuditEntry(
                organization_id=ctx.organization_id,
                entity_type=ctx.entity_type.upper(),
                entity_id=ctx.entity_id,
                action="status_changed",
                description=(
                    f"{name} changed status from {previous} to {new_status}{via}"
                    + (f": {reason}" if reason else "")
                ),
                actor_user_id=ctx.user_id,
                actor_type=ctx.actor_type,
                actor_name=name,
                changes={"status": {"from": previous, "to": new_status}},
                context={
                    "source": "ai_action" if ctx.actor_type == "AI" else "action",
                    "reason": reason,
                },
            )
        )

        return ActionResult(
            success=True,
            message=f"Status changed to {new_status}",
            previous_state={"status": previous},
            new_state={"status": new_status},
        )

    async def undo(record_id: str, previous_state: dict[str, Any], ctx: ActionContext) -> None:
        previous = previous_state.get("status")
        if not previous:
            raise ValueError("Cannot undo: previous status not found")

        current = entities.get_status(ctx.organization_id, ctx.entity_type, ctx.entity_id)
        rationale = "Undo: reverted to previous status"
        if not entities.set_status(
            ctx.organization_id, ctx.entity_type, ctx.entity_id, previous, rationale
        ):
            raise LookupError(f"{ctx.entity_type} {ctx.entity_id} not found")

        name = actor_name(ctx)
        audit_log.append(
            AuditEntry(
                organization_id=ctx.organization_id,
                entity_type=ctx.entity_type.upper(),
                entity_id=ctx.entity_id,
                action="status_reverted",
                description=(
                    f"{name} reverted status from {current} to {previous} (reverted by undo)"
                ),
                actor_user_id=ctx.user_id,
                actor_type=ctx.actor_type,
                actor_name=name,
                changes={"status": {"from": current, "to": previous}},
                context={"source": "undo", "record_id": record_id},
            )
        )

    return ActionDefinition(
        id=ACTION_ID,
        name="Change Status",
        description="Change the status of a case or investigation",
        category=ActionCategory.STANDARD,
        entity_types=frozenset(STATUS_TRANSITIONS),
        input_schema=change_status_schema,
        undo_window_seconds=UndoWindow.STANDARD,
        generate_preview=generate_preview,
        execute=execute,
        undo=undo,
        can_execute=can_execute,
    )
