"""
Action executor: preview, execute, audit and undo.

Checks run in a fixed order for both preview and execute:

1. resolve the definition                    -> NotFoundError
2. permissions                               -> ForbiddenError
3. entity type                               -> ForbiddenError
4. input schema                              -> ValidationError
5. preview guard (execute only)              -> ForbiddenError
6. the action's own ``can_execute`` rule     -> ForbiddenError

Failures at these steps are raised and leave no record. Once a record exists,
failures of the action itself are written to the record and returned as an
unsuccessful ``ExecutionResult``.

Undo windows are passive: ``undo_expires_at`` is stored as an absolute
timestamp and compared against the clock when an undo is attempted.
"""

from __future__ import annotations

import dataclasses
import time
import uuid
from collections.abc import Callable
from typing import Any

from compliance_agent.actions.catalog import ActionCatalog
from compliance_agent.actions.models import (
    ActionContext,
    ActionDefinition,
    ActionPreview,
    ActionRecord,
    ActionResult,
    ActionStatus,
    ExecutionResult,
    UndoableAction,
    UndoStatus,
)
from compliance_agent.actions.records import ActionRecordStore
from compliance_agent.errors import (
    ForbiddenError,
    NotFoundError,
    NotUndoableError,
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
)
from compliance_agent.logging import get_logger

logger = get_logger("executor")


class ActionExecutor:
    """
    Runs actions registered in an ``ActionCatalog`` against durable records.

    Example:
        executor = ActionExecutor(catalog, ActionRecordStore(db_path))

        preview = await executor.preview("change-status", {"newStatus": "OPEN"}, ctx)
        result = await executor.execute(
            "change-status", {"newStatus": "OPEN"}, ctx, skip_preview=True
        )
        await executor.undo(result.record_id, ctx)
    """

    def __init__(
        self,
        catalog: ActionCatalog,
        records: ActionRecordStore,
        events: EventBus | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.catalog = catalog
        self.records = records
        self.events = events or EventBus()
        self._clock = clock

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _resolve(self, action_id: str) -> ActionDefinition:
        action = self.catalog.get(action_id)
        if action is None:
            raise NotFoundError(f"Action not found: {action_id}")
        return action

    def _check_access(self, action: ActionDefinition, ctx: ActionContext) -> None:
        missing = sorted(action.required_permissions - frozenset(ctx.permissions))
        if missing:
            raise ForbiddenError(
                f"Missing permissions for action {action.id}: {', '.join(missing)}",
                missing_permissions=missing,
            )
        if ctx.entity_type not in action.entity_types:
            raise ForbiddenError(
                f"Action {action.id} not available for entity type: {ctx.entity_type}"
            )

    def _validate_input(self, action: ActionDefinition, data: dict[str, Any]) -> dict[str, Any]:
        outcome = action.input_schema.validate(data)
        if not outcome.ok:
            details = "; ".join(
                f"{e.field}: {e.message}" if e.field else e.message for e in outcome.errors
            )
            raise ValidationError(f"Invalid input: {details}", field_errors=outcome.errors)
        return outcome.value

    async def _check_rules(
        self,
        action: ActionDefinition,
        data: dict[str, Any],
        ctx: ActionContext,
    ) -> None:
        if action.can_execute is None:
            return
        verdict = await action.can_execute(data, ctx)
        if not verdict.allowed:
            raise ForbiddenError(verdict.reason or "Action not allowed")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def preview(
        self,
        action_id: str,
        data: dict[str, Any],
        ctx: ActionContext,
    ) -> ActionPreview:
        """Describe what ``action_id`` would change. Performs no mutation."""
        action = self._resolve(action_id)
        self._check_access(action, ctx)
        value = self._validate_input(action, data)
        await self._check_rules(action, value, ctx)

        preview = await action.generate_preview(value, ctx)
        logger.debug(
            "Previewed action %s for %s:%s", action_id, ctx.entity_type, ctx.entity_id
        )
        return preview

    async def execute(
        self,
        action_id: str,
        data: dict[str, Any],
        ctx: ActionContext,
        skip_preview: bool = False,
    ) -> ExecutionResult:
        """
        Execute an action and record the attempt.

        Args:
            action_id: Action to run
            data: Action input, validated against the action's schema
            ctx: Execution context
            skip_preview: Caller confirms the preview step has been handled
                (shown to a human, or deliberately bypassed for agent calls)

        Returns:
            ExecutionResult; ``success=False`` when the action itself failed

        Raises:
            NotFoundError, ForbiddenError, ValidationError before anything runs
        """
        action = self._resolve(action_id)
        self._check_access(action, ctx)
        value = self._validate_input(action, data)
        if not skip_preview and action.requires_preview:
            raise ForbiddenError(
                f"Action {action_id} ({action.category.value}) requires preview "
                "before execution; confirm with skip_preview=True"
            )
        await self._check_rules(action, value, ctx)

        record = ActionRecord(
            id=uuid.uuid4().hex,
            organization_id=ctx.organization_id,
            user_id=ctx.user_id,
            entity_type=ctx.entity_type,
            entity_id=ctx.entity_id,
            action_id=action_id,
            conversation_id=ctx.conversation_id,
            input=value,
            status=ActionStatus.EXECUTING,
            executed_at=self._clock(),
        )
        self.records.create(record)

        try:
            result = await action.execute(value, ctx)
        except Exception as e:
            return await self._fail(record, str(e) or type(e).__name__)

        if not result.success:
            return await self._fail(record, result.message or "Action reported failure", result)

        undo_expires_at: float | None = None
        if action.undoable:
            undo_expires_at = record.executed_at + action.effective_undo_window

        self.records.mark_completed(
            record.id,
            previous_state=result.previous_state,
            result=result.to_dict(),
            undo_expires_at=undo_expires_at,
        )
        logger.info(
            "Executed action %s for %s:%s (record=%s)",
            action_id,
            ctx.entity_type,
            ctx.entity_id,
            record.id,
        )

        await self.events.emit(
            ACTION_COMPLETED,
            ActionCompletedEvent(
                record_id=record.id,
                action_id=action_id,
                organization_id=ctx.organization_id,
                user_id=ctx.user_id,
                entity_type=ctx.entity_type,
                entity_id=ctx.entity_id,
                message=result.message,
                new_state=result.new_state,
                undo_expires_at=undo_expires_at,
            ),
        )

        return ExecutionResult(
            success=True,
            action_id=action_id,
            record_id=record.id,
            result=result,
            undo_available=undo_expires_at is not None,
            undo_expires_at=undo_expires_at,
        )

    async def _fail(
        self,
        record: ActionRecord,
        error: str,
        result: ActionResult | None = None,
    ) -> ExecutionResult:
        self.records.mark_failed(record.id, error)
        logger.error("Execution failed for %s (record=%s): %s", record.action_id, record.id, error)
        await self.events.emit(
            ACTION_FAILED,
            ActionFailedEvent(
                record_id=record.id,
                action_id=record.action_id,
                organization_id=record.organization_id,
                user_id=record.user_id,
                entity_type=record.entity_type,
                entity_id=record.entity_id,
                error=error,
            ),
        )
        return ExecutionResult(
            success=False,
            action_id=record.action_id,
            record_id=record.id,
            result=result,
            error=error,
        )

    async def undo(self, record_id: str, ctx: ActionContext) -> None:
        """
        Undo a completed action inside its window.

        The record is claimed with a conditional update before the action's
        undo behavior runs, so concurrent callers get at most one success.

        Raises:
            NotFoundError: no COMPLETED record in this organization
            NotUndoableError: the action has no undo behavior or a 0 window
            UndoWindowExpiredError: ``now >= undo_expires_at``
            UndoFailedError: the undo behavior raised (record stays COMPLETED)
        """
        record = self.records.get(record_id, ctx.organization_id)
        if record is None or record.status != ActionStatus.COMPLETED:
            raise NotFoundError(f"No completed action record: {record_id}")

        action = self.catalog.get(record.action_id)
        if action is None or not action.undoable or record.undo_expires_at is None:
            raise NotUndoableError(f"Action {record.action_id} cannot be undone")

        now = self._clock()
        if now >= record.undo_expires_at:
            raise UndoWindowExpiredError(
                f"Undo window for {record.action_id} expired "
                f"({action.effective_undo_window} seconds)"
            )

        if not self.records.claim_undo(record_id, ctx.organization_id, ctx.user_id, now):
            current = self.records.get(record_id, ctx.organization_id)
            if current is not None and current.status == ActionStatus.COMPLETED:
                raise UndoWindowExpiredError(f"Undo window for {record.action_id} expired")
            raise NotFoundError(f"Action record {record_id} was already undone")

        # The undo targets the record's entity, acted on by the current caller.
        undo_ctx = dataclasses.replace(
            ctx, entity_type=record.entity_type, entity_id=record.entity_id
        )
        try:
            await action.undo(record_id, record.previous_state or {}, undo_ctx)
        except Exception as e:
            self.records.release_undo(record_id)
            logger.warning("Undo failed for %s (record=%s): %s", record.action_id, record_id, e)
            raise UndoFailedError(str(e) or "Undo failed") from e

        logger.info(
            "Undid action %s for %s:%s (record=%s)",
            record.action_id,
            record.entity_type,
            record.entity_id,
            record_id,
        )
        await self.events.emit(
            ACTION_UNDONE,
            ActionUndoneEvent(
                record_id=record_id,
                action_id=record.action_id,
                organization_id=record.organization_id,
                undone_by=ctx.user_id,
                entity_type=record.entity_type,
                entity_id=record.entity_id,
                undone_at=now,
            ),
        )

    def can_undo(self, record_id: str, ctx: ActionContext) -> UndoStatus:
        """Read-only window check for UI countdowns."""
        record = self.records.get(record_id, ctx.organization_id)
        if record is None or record.status != ActionStatus.COMPLETED:
            return UndoStatus(can_undo=False)
        action = self.catalog.get(record.action_id)
        if action is None or not action.undoable:
            return UndoStatus(can_undo=False)
        remaining = record.remaining_undo_seconds(self._clock())
        if remaining <= 0:
            return UndoStatus(can_undo=False)
        return UndoStatus(can_undo=True, remaining_seconds=int(remaining))

    def get_undoable_actions(self, ctx: ActionContext) -> list[UndoableAction]:
        """Records on the context's entity that can still be undone."""
        now = self._clock()
        undoable: list[UndoableAction] = []
        for record in self.records.list_undoable(
            ctx.organization_id, ctx.entity_type, ctx.entity_id, now
        ):
            action = self.catalog.get(record.action_id)
            if action is None or not action.undoable:
                continue
            undoable.append(
                UndoableAction(
                    record_id=record.id,
                    action_id=record.action_id,
                    executed_at=record.executed_at,
                    remaining_seconds=int(record.remaining_undo_seconds(now)),
                )
            )
        return undoable

    def get_action_history(
        self,
        organization_id: str,
        entity_type: str | None = None,
        entity_id: str | None = None,
        limit: int = 50,
    ) -> list[ActionRecord]:
        return self.records.list_history(organization_id, entity_type, entity_id, limit)
