"""Tests for conversation persistence."""

from __future__ import annotations

from pathlib import Path

import pytest

from compliance_agent.conversation import ConversationStore, Message


@pytest.fixture
def store(db_path: Path) -> ConversationStore:
    return ConversationStore(db_path)


class TestGetOrCreate:
    def test_reuses_active_conversation(self, store: ConversationStore) -> None:
        first = store.get_or_create("org-1", "user-1", "case", "case", "case-1")
        second = store.get_or_create("org-1", "user-1", "case", "case", "case-1")
        assert first.id == second.id
        assert second.status == "ACTIVE"

    def test_scope_includes_entity_and_agent(self, store: ConversationStore) -> None:
        base = store.get_or_create("org-1", "user-1", "case", "case", "case-1")
        others = [
            store.get_or_create("org-1", "user-1", "case", "case", "case-2"),
            store.get_or_create("org-1", "user-1", "investigation", "case", "case-1"),
            store.get_or_create("org-1", "user-2", "case", "case", "case-1"),
            store.get_or_create("org-2", "user-1", "case", "case", "case-1"),
        ]
        assert len({base.id, *(c.id for c in others)}) == 5

    def test_entityless_scope(self, store: ConversationStore) -> None:
        first = store.get_or_create("org-1", "user-1", "case")
        assert store.get_or_create("org-1", "user-1", "case").id == first.id
        assert first.entity_type is None

    def test_archived_conversation_is_replaced(self, store: ConversationStore) -> None:
        first = store.get_or_create("org-1", "user-1", "case", "case", "case-1")
        assert store.archive(first.id, "org-1")
        second = store.get_or_create("org-1", "user-1", "case", "case", "case-1")
        assert second.id != first.id


class TestMessages:
    def test_history_is_chronological_and_bounded(self, store: ConversationStore) -> None:
        conv = store.get_or_create("org-1", "user-1", "case")
        for i in range(5):
            store.add_message(conv.id, "user" if i % 2 == 0 else "assistant", f"m{i}")

        messages = store.get_messages(conv.id, limit=3)
        assert [m.content for m in messages] == ["m2", "m3", "m4"]
        assert [m.to_dict() for m in messages][0] == {"role": "user", "content": "m2"}

    def test_metadata_round_trip(self, store: ConversationStore) -> None:
        conv = store.get_or_create("org-1", "user-1", "case")
        store.add_message(conv.id, "assistant", "done", metadata={"model": "scripted-model"})
        [message] = store.get_messages(conv.id)
        assert message.metadata == {"model": "scripted-model"}
        assert message.conversation_id == conv.id

    def test_message_to_dict_omits_metadata(self) -> None:
        message = Message(role="assistant", content="hi", metadata={"x": 1})
        assert message.to_dict() == {"role": "assistant", "content": "hi"}


class TestLookup:
    def test_get_is_org_scoped(self, store: ConversationStore) -> None:
        conv = store.get_or_create("org-1", "user-1", "case")
        assert store.get(conv.id) is not None
        assert store.get(conv.id, "org-1") is not None
        assert store.get(conv.id, "org-2") is None

    def test_archive_requires_owning_org(self, store: ConversationStore) -> None:
        conv = store.get_or_create("org-1", "user-1", "case")
        assert store.archive(conv.id, "org-2") is False
        assert store.archive(conv.id, "org-1") is True
        assert store.archive(conv.id, "org-1") is False

    def test_list_conversations(self, store: ConversationStore) -> None:
        a = store.get_or_create("org-1", "user-1", "case", "case", "case-1")
        b = store.get_or_create("org-1", "user-1", "investigation", "investigation", "inv-1")
        store.get_or_create("org-1", "user-2", "case")
        store.archive(a.id, "org-1")

        assert [c.id for c in store.list_conversations("org-1", "user-1")] == [b.id]
        assert {c.id for c in store.list_conversations("org-1", "user-1", True)} == {a.id, b.id}
