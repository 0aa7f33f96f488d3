"""Registry of action definitions."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from compliance_agent.actions.models import ActionCategory, ActionDefinition
from compliance_agent.logging import get_logger

logger = get_logger("catalog")


class ActionCatalog:
    """
    Registry of ``ActionDefinition`` objects.

    Owned by the service root and handed to the executor and agents; there is
    no module-level registry. Lookups never raise: unknown ids yield ``None``
    or an empty list.
    """

    def __init__(self, actions: Iterable[ActionDefinition] = ()) -> None:
        self._actions: dict[str, ActionDefinition] = {}
        for action in actions:
            self.register(action)

    def register(self, action: ActionDefinition) -> None:
        """Register an action. A later registration with the same id wins."""
        if action.id in self._actions:
            logger.warning("Action %s already registered, replacing", action.id)
        self._actions[action.id] = action
        logger.debug("Registered action %s (%s)", action.id, action.category.value)

    def unregister(self, action_id: str) -> bool:
        return self._actions.pop(action_id, None) is not None

    def get(self, action_id: str) -> ActionDefinition | None:
        return self._actions.get(action_id)

    def list_actions(self) -> list[ActionDefinition]:
        return list(self._actions.values())

    def get_available_actions(
        self,
        entity_type: str,
        user_permissions: Iterable[str],
        category: ActionCategory | None = None,
    ) -> list[ActionDefinition]:
        """Actions applicable to ``entity_type`` whose permissions the user holds."""
        granted = frozenset(user_permissions)
        return [
            action
            for action in self._actions.values()
            if entity_type in action.entity_types
            and action.required_permissions <= granted
            and (category is None or action.category == category)
        ]

    def requires_preview(self, action_id: str) -> bool:
        action = self._actions.get(action_id)
        return action.requires_preview if action else False

    def undo_window_seconds(self, action_id: str) -> int:
        action = self._actions.get(action_id)
        return action.effective_undo_window if action else 0

    def to_tool_definitions(
        self,
        actions: Iterable[ActionDefinition],
        prefix: str = "action_",
        entity_type: str | None = None,
    ) -> list[dict[str, Any]]:
        """Describe actions as provider tool definitions, names prefixed with ``prefix``."""
        target = entity_type or "entity"
        return [
            {
                "name": f"{prefix}{action.id}",
                "description": (
                    f"[ACTION] {action.description}. This will modify the {target}."
                ),
                "input_schema": action.input_schema.describe(),
            }
            for action in actions
        ]

    def __len__(self) -> int:
        return len(self._actions)

    def __contains__(self, action_id: object) -> bool:
        return action_id in self._actions
