"""Shared pytest fixtures for compliance-agent tests."""

from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

import pytest

from compliance_agent.actions import (
    ActionCatalog,
    ActionCategory,
    ActionContext,
    ActionDefinition,
    ActionExecutor,
    ActionPreview,
    ActionRecordStore,
    ActionResult,
    create_change_status_action,
)
from compliance_agent.agent import AgentContext
from compliance_agent.conversation import ConversationStore
from compliance_agent.events import EventBus, StreamEvent
from compliance_agent.providers.base import ModelProvider
from compliance_agent.schema import object_schema
from compliance_agent.storage import AuditLogStore, EntityStore

START = 1_700_000_000.0


class FakeClock:
    """Controllable epoch clock."""

    def __init__(self, now: float = START) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedProvider(ModelProvider):
    """Provider that replays a fixed list of events per call."""

    default_model = "scripted-model"

    def __init__(self, *turns: list[StreamEvent], fail_after: int | None = None) -> None:
        self.turns = list(turns)
        self.fail_after = fail_after
        self.calls: list[dict[str, Any]] = []

    async def stream(
        self,
        system: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> AsyncIterator[StreamEvent]:
        self.calls.append({"system": system, "messages": messages, "tools": tools})
        events = self.turns.pop(0) if self.turns else []
        for i, event in enumerate(events):
            if self.fail_after is not None and i == self.fail_after:
                raise ConnectionError("stream dropped")
            yield event


def make_counter_action(
    action_id: str = "bump-counter",
    category: ActionCategory = ActionCategory.QUICK,
    state: dict[str, int] | None = None,
    undo_window_seconds: int | None = None,
    undoable: bool = True,
    fail: bool = False,
    required_permissions: frozenset[str] = frozenset(),
) -> ActionDefinition:
    """An action that increments ``state["count"]`` for the entity type ``case``."""
    state = state if state is not None else {"count": 0}

    async def preview(data: dict[str, Any], ctx: ActionContext) -> ActionPreview:
        return ActionPreview(f"Increment counter by {data['by']}")

    async def execute(data: dict[str, Any], ctx: ActionContext) -> ActionResult:
        if fail:
            raise RuntimeError("counter service unavailable")
        previous = state["count"]
        state["count"] += data["by"]
        return ActionResult(
            True,
            f"Counter is now {state['count']}",
            previous_state={"count": previous},
            new_state={"count": state["count"]},
        )

    async def undo(record_id: str, previous_state: dict[str, Any], ctx: ActionContext) -> None:
        state["count"] = previous_state["count"]

    return ActionDefinition(
        id=action_id,
        name="Bump Counter",
        description="Increment a counter",
        category=category,
        entity_types=frozenset({"case"}),
        input_schema=object_schema(
            {"by": {"type": "integer", "minimum": 1}}, required=["by"]
        ),
        generate_preview=preview,
        execute=execute,
        required_permissions=required_permissions,
        undo_window_seconds=undo_window_seconds,
        undo=undo if undoable else None,
    )


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "agent.db"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def entities(db_path: Path) -> EntityStore:
    store = EntityStore(db_path)
    store.upsert("org-1", "case", "case-1", "NEW")
    store.upsert("org-1", "investigation", "inv-1", "ASSIGNED")
    return store


@pytest.fixture
def audit_log(db_path: Path) -> AuditLogStore:
    return AuditLogStore(db_path)


@pytest.fixture
def records(db_path: Path) -> ActionRecordStore:
    return ActionRecordStore(db_path)


@pytest.fixture
def catalog(entities: EntityStore, audit_log: AuditLogStore) -> ActionCatalog:
    return ActionCatalog([create_change_status_action(entities, audit_log)])


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def executor(
    catalog: ActionCatalog,
    records: ActionRecordStore,
    bus: EventBus,
    clock: FakeClock,
) -> ActionExecutor:
    return ActionExecutor(catalog, records, bus, clock=clock)


@pytest.fixture
def case_ctx() -> ActionContext:
    return ActionContext(
        organization_id="org-1",
        user_id="user-1",
        user_role="COMPLIANCE_OFFICER",
        permissions=frozenset({"cases:update:status", "investigations:update:status"}),
        entity_type="case",
        entity_id="case-1",
        user_name="Dana Reyes",
    )


@pytest.fixture
def investigation_ctx(case_ctx: ActionContext) -> ActionContext:
    return ActionContext(
        organization_id=case_ctx.organization_id,
        user_id=case_ctx.user_id,
        user_role=case_ctx.user_role,
        permissions=case_ctx.permissions,
        entity_type="investigation",
        entity_id="inv-1",
        user_name=case_ctx.user_name,
    )


@pytest.fixture
def conversations(db_path: Path) -> ConversationStore:
    return ConversationStore(db_path)


@pytest.fixture
def agent_ctx(case_ctx: ActionContext) -> AgentContext:
    return AgentContext(
        organization_id=case_ctx.organization_id,
        user_id=case_ctx.user_id,
        user_role=case_ctx.user_role,
        permissions=case_ctx.permissions | {"skills:read"},
        entity_type="case",
        entity_id="case-1",
        user_name=case_ctx.user_name,
    )
