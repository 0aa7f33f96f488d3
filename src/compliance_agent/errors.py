"""
Error taxonomy for action execution.

Pre-execution failures (not found, forbidden, validation) are raised to the
caller and never create an action record. Failures inside an action's own
execute behavior are recorded and reported through ``ExecutionResult``
instead of being raised.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from compliance_agent.schema import FieldError


class ActionError(Exception):
    """Base class for all action framework errors."""

    code = "ACTION_ERROR"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        return {"code": self.code, "message": self.message}


class NotFoundError(ActionError):
    """Unknown action id, or a record that is missing, foreign or not undoable in its state."""

    code = "NOT_FOUND"


class ForbiddenError(ActionError):
    """The caller may not run this action here."""

    code = "FORBIDDEN"

    def __init__(self, message: str, missing_permissions: list[str] | None = None) -> None:
        super().__init__(message)
        self.missing_permissions = missing_permissions or []

    def to_dict(self) -> dict[str, object]:
        data = super().to_dict()
        if self.missing_permissions:
            data["missing_permissions"] = list(self.missing_permissions)
        return data


class ValidationError(ActionError):
    """Action input does not match the action's input schema."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field_errors: list[FieldError] | None = None) -> None:
        super().__init__(message)
        self.field_errors = field_errors or []

    def to_dict(self) -> dict[str, object]:
        data = super().to_dict()
        data["field_errors"] = [
            {"field": e.field, "message": e.message} for e in self.field_errors
        ]
        return data


class UndoWindowExpiredError(ActionError):
    code = "UNDO_WINDOW_EXPIRED"


class NotUndoableError(ActionError):
    code = "NOT_UNDOABLE"


class UndoFailedError(ActionError):
    """The action's undo behavior raised; the record stays COMPLETED."""

    code = "UNDO_FAILED"


class RateLimitedError(ActionError):
    """Turn rejected by the rate limiter. No retry is attempted."""

    code = "RATE_LIMITED"

    def __init__(
        self,
        message: str,
        retry_after_ms: int | None = None,
        reason: str | None = None,
    ) -> None:
        super().__init__(message)
        self.retry_after_ms = retry_after_ms
        self.reason = reason

    def to_dict(self) -> dict[str, object]:
        data = super().to_dict()
        data["retry_after_ms"] = self.retry_after_ms
        data["reason"] = self.reason
        return data
