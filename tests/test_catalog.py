"""Tests for the action catalog."""

from __future__ import annotations

import logging
from itertools import product

import pytest

from compliance_agent.actions import (
    CATEGORY_POLICIES,
    ActionCatalog,
    ActionCategory,
    UndoWindow,
)

from conftest import make_counter_action


class TestRegistry:
    def test_register_and_get(self) -> None:
        catalog = ActionCatalog()
        action = make_counter_action()
        catalog.register(action)
        assert catalog.get("bump-counter") is action
        assert "bump-counter" in catalog
        assert len(catalog) == 1

    def test_replace_logs_warning(self, caplog: pytest.LogCaptureFixture) -> None:
        catalog = ActionCatalog([make_counter_action()])
        with caplog.at_level(logging.WARNING, logger="compliance_agent"):
            catalog.register(make_counter_action())
        assert "already registered" in caplog.text
        assert len(catalog) == 1

    def test_unregister(self) -> None:
        catalog = ActionCatalog([make_counter_action()])
        assert catalog.unregister("bump-counter") is True
        assert catalog.unregister("bump-counter") is False
        assert catalog.get("bump-counter") is None

    def test_list_actions(self) -> None:
        catalog = ActionCatalog(
            [make_counter_action("a"), make_counter_action("b")]
        )
        assert [a.id for a in catalog.list_actions()] == ["a", "b"]

    def test_catalogs_are_independent(self) -> None:
        first = ActionCatalog([make_counter_action()])
        second = ActionCatalog()
        assert "bump-counter" in first
        assert "bump-counter" not in second


class TestAvailability:
    def test_available_iff_permissions_and_entity_type_match(self) -> None:
        permission_sets = [frozenset(), frozenset({"p"}), frozenset({"p", "q"})]
        catalog = ActionCatalog(
            [
                make_counter_action(f"needs-{i}", required_permissions=perms)
                for i, perms in enumerate(permission_sets)
            ]
        )
        for granted, entity_type in product(permission_sets, ["case", "investigation"]):
            available = {
                a.id for a in catalog.get_available_actions(entity_type, granted)
            }
            expected = {
                a.id
                for a in catalog.list_actions()
                if a.required_permissions <= granted and entity_type in a.entity_types
            }
            assert available == expected

    def test_change_status_available_for_case_and_investigation(
        self, catalog: ActionCatalog
    ) -> None:
        assert [a.id for a in catalog.get_available_actions("case", [])] == ["change-status"]
        assert [a.id for a in catalog.get_available_actions("investigation", [])] == [
            "change-status"
        ]
        assert catalog.get_available_actions("policy", []) == []

    def test_category_filter(self) -> None:
        catalog = ActionCatalog(
            [
                make_counter_action("quick"),
                make_counter_action("external", category=ActionCategory.EXTERNAL),
            ]
        )
        found = catalog.get_available_actions("case", [], category=ActionCategory.EXTERNAL)
        assert [a.id for a in found] == ["external"]


class TestPolicy:
    def test_category_table(self) -> None:
        assert CATEGORY_POLICIES[ActionCategory.QUICK].requires_preview is False
        assert CATEGORY_POLICIES[ActionCategory.QUICK].undo_window_seconds == 30
        assert CATEGORY_POLICIES[ActionCategory.STANDARD].undo_window_seconds == 300
        assert CATEGORY_POLICIES[ActionCategory.CRITICAL].undo_window_seconds == 1800
        assert CATEGORY_POLICIES[ActionCategory.EXTERNAL].undo_window_seconds == 0
        assert all(
            CATEGORY_POLICIES[c].requires_preview
            for c in (ActionCategory.STANDARD, ActionCategory.CRITICAL, ActionCategory.EXTERNAL)
        )

    def test_every_category_has_a_policy(self) -> None:
        assert set(CATEGORY_POLICIES) == set(ActionCategory)

    def test_window_inherits_category_default(self) -> None:
        catalog = ActionCatalog(
            [
                make_counter_action("inherit", category=ActionCategory.CRITICAL),
                make_counter_action("override", undo_window_seconds=UndoWindow.EXTENDED),
            ]
        )
        assert catalog.undo_window_seconds("inherit") == 1800
        assert catalog.undo_window_seconds("override") == 86400
        assert catalog.undo_window_seconds("missing") == 0

    def test_requires_preview(self, catalog: ActionCatalog) -> None:
        catalog.register(make_counter_action())
        assert catalog.requires_preview("change-status") is True
        assert catalog.requires_preview("bump-counter") is False

    def test_external_is_never_undoable(self) -> None:
        action = make_counter_action(category=ActionCategory.EXTERNAL)
        assert action.undo is not None
        assert action.undoable is False


class TestToolDefinitions:
    def test_prefixed_names_and_schema(self, catalog: ActionCatalog) -> None:
        tools = catalog.to_tool_definitions(catalog.list_actions(), entity_type="case")
        assert len(tools) == 1
        tool = tools[0]
        assert tool["name"] == "action_change-status"
        assert tool["description"].startswith("[ACTION] ")
        assert tool["description"].endswith("This will modify the case.")
        assert tool["input_schema"]["required"] == ["newStatus"]

    def test_custom_prefix(self, catalog: ActionCatalog) -> None:
        tools = catalog.to_tool_definitions(catalog.list_actions(), prefix="do__")
        assert tools[0]["name"] == "do__change-status"
