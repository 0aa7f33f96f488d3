"""
Event types for the compliance agent.

Two families live here:

- ``StreamEvent``: what a chat turn yields to its caller (text deltas, tool
  use, executed actions, errors).
- Action lifecycle events (``action_completed``, ``action_failed``,
  ``action_undone``) published on an ``EventBus`` so activity feeds and
  notifications can react without the executor knowing about them.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from compliance_agent.logging import get_logger

logger = get_logger("events")

# ---------------------------------------------------------------------------
# Event name constants
# ---------------------------------------------------------------------------

ACTION_COMPLETED = "action_completed"
ACTION_FAILED = "action_failed"
ACTION_UNDONE = "action_undone"


# ---------------------------------------------------------------------------
# Action lifecycle payloads
# ---------------------------------------------------------------------------


@dataclass
class ActionCompletedEvent:
    """Published after an action executed successfully and its record is COMPLETED."""

    record_id: str
    action_id: str
    organization_id: str
    user_id: str
    entity_type: str
    entity_id: str
    message: str | None = None
    new_state: dict[str, Any] | None = None
    undo_expires_at: float | None = None


@dataclass
class ActionFailedEvent:
    """Published after an execution attempt was recorded as FAILED."""

    record_id: str
    action_id: str
    organization_id: str
    user_id: str
    entity_type: str
    entity_id: str
    error: str


@dataclass
class ActionUndoneEvent:
    """Published after a record transitioned to UNDONE."""

    record_id: str
    action_id: str
    organization_id: str
    undone_by: str
    entity_type: str
    entity_id: str
    undone_at: float


# ---------------------------------------------------------------------------
# Stream event types
# ---------------------------------------------------------------------------


@dataclass
class StreamEvent:
    """
    A structured event flowing through a chat turn.

    Provider streams produce ``text_delta``, ``tool_use``, ``usage`` and
    ``error``. The agent loop adds ``action_executed`` and may synthesize
    extra ``text_delta`` events for inline tool outcomes. Any other type a
    provider emits is passed through to the caller unchanged.
    """

    type: str
    """Event type. One of:
    - ``text_delta``: a chunk of assistant text
    - ``tool_use``: the model requests a tool call
    - ``usage``: token accounting (consumed by the agent loop, not forwarded)
    - ``action_executed``: outcome of an action-prefixed tool call
    - ``error``: terminal failure for the turn
    """

    content: str = ""
    """Text content (for text_delta)."""

    tool_name: str | None = None
    """Tool name (for tool_use)."""

    tool_call_id: str | None = None
    """Provider's id for the tool call (for tool_use)."""

    tool_input: dict[str, Any] = field(default_factory=dict)
    """Parsed tool arguments (for tool_use)."""

    action_result: dict[str, Any] | None = None
    """Outcome payload (for action_executed)."""

    usage: dict[str, int] | None = None
    """Token counts (for usage): input_tokens, output_tokens, cache_* ."""

    error: str | None = None
    """Error message (for error events)."""

    retry_after_ms: int | None = None
    """Back-off hint when the turn was rejected by the rate limiter."""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type}
        if self.content:
            data["content"] = self.content
        if self.tool_name is not None:
            data["tool_name"] = self.tool_name
            data["tool_call_id"] = self.tool_call_id
            data["tool_input"] = self.tool_input
        if self.action_result is not None:
            data["action_result"] = self.action_result
        if self.usage is not None:
            data["usage"] = self.usage
        if self.error is not None:
            data["error"] = self.error
        if self.retry_after_ms is not None:
            data["retry_after_ms"] = self.retry_after_ms
        return data


# ---------------------------------------------------------------------------
# Handler types
# ---------------------------------------------------------------------------

# Handlers can be sync or async, and optionally return a result object.
EventHandler = Callable[..., Any]


@dataclass
class _HandlerEntry:
    """Internal: a registered handler with metadata."""

    event: str
    handler: EventHandler
    priority: int = 0  # lower runs first
    source: str = ""


# ---------------------------------------------------------------------------
# EventBus
# ---------------------------------------------------------------------------


class EventBus:
    """
    Publish/subscribe bus for action lifecycle events.

    Handlers are called in priority order (lower first) and may be sync or
    async. A handler that raises is logged and skipped; it never affects the
    emitter or the other handlers.

    Usage:
        bus = EventBus()

        @bus.on(ACTION_COMPLETED)
        def feed(event: ActionCompletedEvent):
            print(f"{event.action_id} on {event.entity_type}:{event.entity_id}")

        unsub = bus.on(ACTION_UNDONE, on_undone)
        unsub()
    """

    def __init__(self) -> None:
        self._handlers: list[_HandlerEntry] = []

    def on(
        self,
        event: str,
        handler: EventHandler | None = None,
        priority: int = 0,
        source: str = "",
    ) -> Callable[[], None] | Callable[[EventHandler], EventHandler]:
        """
        Register an event handler.

        Called with a handler it returns an unsubscribe function; called
        without one it works as a decorator.
        """
        if handler is not None:
            entry = _HandlerEntry(
                event=event, handler=handler, priority=priority, source=source
            )
            self._handlers.append(entry)

            def unsubscribe() -> None:
                try:
                    self._handlers.remove(entry)
                except ValueError:
                    pass

            return unsubscribe

        def decorator(fn: EventHandler) -> EventHandler:
            self.on(event, fn, priority=priority, source=source)
            return fn

        return decorator

    def off(self, event: str, handler: EventHandler) -> None:
        """Remove a specific handler for an event."""
        self._handlers = [
            h for h in self._handlers if not (h.event == event and h.handler is handler)
        ]

    def clear(self, event: str | None = None) -> None:
        """Remove all handlers, or all handlers for a specific event."""
        if event is None:
            self._handlers.clear()
        else:
            self._handlers = [h for h in self._handlers if h.event != event]

    async def emit(self, event: str, data: Any = None) -> list[Any]:
        """
        Emit an event and collect handler results.

        Args:
            event: Event name
            data: Event payload (e.g., ActionCompletedEvent)

        Returns:
            List of non-None results from handlers
        """
        relevant = sorted(
            (h for h in self._handlers if h.event == event),
            key=lambda h: h.priority,
        )

        results: list[Any] = []
        for entry in relevant:
            try:
                result = entry.handler(data)
                if asyncio.iscoroutine(result) or asyncio.isfuture(result):
                    result = await result
                if result is not None:
                    results.append(result)
            except Exception as e:
                logger.warning(
                    "Event handler error (event=%s, source=%s): %s",
                    event,
                    entry.source,
                    e,
                )
        return results

    @property
    def handler_count(self) -> int:
        """Total number of registered handlers."""
        return len(self._handlers)

    def has_handlers(self, event: str) -> bool:
        """Check if any handlers are registered for an event."""
        return any(h.event == event for h in self._handlers)
