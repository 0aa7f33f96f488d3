"""
Conversation persistence for agent chats.

One active conversation per (organization, user, entity, agent type). Messages
are appended in order; history reads return the most recent messages in
chronological order.
"""

from __future__ import annotations

import sqlite3
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

from compliance_agent.storage import SQLiteStore, dumps_json, loads_json


@dataclass
class Message:
    role: str  # user | assistant
    content: str
    conversation_id: str = ""
    metadata: dict[str, Any] | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role, "content": self.content}


@dataclass
class Conversation:
    id: str
    organization_id: str
    user_id: str
    agent_type: str
    entity_type: str | None = None
    entity_id: str | None = None
    status: str = "ACTIVE"  # ACTIVE | ARCHIVED
    title: str | None = None
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)


class ConversationStore(SQLiteStore):
    def _init_db(self, conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS conversations (
                id TEXT PRIMARY KEY,
                organization_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                agent_type TEXT NOT NULL,
                entity_type TEXT,
                entity_id TEXT,
                status TEXT NOT NULL DEFAULT 'ACTIVE',
                title TEXT,
                created_at REAL NOT NULL,
                updated_at REAL NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS conversation_messages (
                id TEXT PRIMARY KEY,
                conversation_id TEXT NOT NULL REFERENCES conversations(id),
                role TEXT NOT NULL,
                content TEXT NOT NULL,
                metadata TEXT,
                created_at REAL NOT NULL
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_messages_conversation
            ON conversation_messages (conversation_id, created_at)
        """)

    def get_or_create(
        self,
        organization_id: str,
        user_id: str,
        agent_type: str,
        entity_type: str | None = None,
        entity_id: str | None = None,
    ) -> Conversation:
        """Return the active conversation for this scope, creating it if needed."""
        with self._connect() as conn:
            row = conn.execute(
                """SELECT * FROM conversations
                   WHERE organization_id = ? AND user_id = ? AND agent_type = ?
                     AND entity_type IS ? AND entity_id IS ? AND status = 'ACTIVE'
                   ORDER BY updated_at DESC LIMIT 1""",
                (organization_id, user_id, agent_type, entity_type, entity_id),
            ).fetchone()
            if row:
                return self._row_to_conversation(row)

            conversation = Conversation(
                id=uuid.uuid4().hex,
                organization_id=organization_id,
                user_id=user_id,
                agent_type=agent_type,
                entity_type=entity_type,
                entity_id=entity_id,
            )
            conn.execute(
                """INSERT INTO conversations (
                       id, organization_id, user_id, agent_type, entity_type,
                       entity_id, status, title, created_at, updated_at
                   ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    conversation.id,
                    organization_id,
                    user_id,
                    agent_type,
                    entity_type,
                    entity_id,
                    conversation.status,
                    conversation.title,
                    conversation.created_at,
                    conversation.updated_at,
                ),
            )
        return conversation

    def get(self, conversation_id: str, organization_id: str | None = None) -> Conversation | None:
        query = "SELECT * FROM conversations WHERE id = ?"
        params: list[Any] = [conversation_id]
        if organization_id is not None:
            query += " AND organization_id = ?"
            params.append(organization_id)
        with self._connect() as conn:
            row = conn.execute(query, params).fetchone()
        return self._row_to_conversation(row) if row else None

    def add_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> Message:
        message = Message(
            role=role,
            content=content,
            conversation_id=conversation_id,
            metadata=metadata,
        )
        with self._connect() as conn:
            conn.execute(
                """INSERT INTO conversation_messages
                   (id, conversation_id, role, content, metadata, created_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    message.id,
                    conversation_id,
                    role,
                    content,
                    dumps_json(metadata),
                    message.created_at,
                ),
            )
            conn.execute(
                "UPDATE conversations SET updated_at = ? WHERE id = ?",
                (message.created_at, conversation_id),
            )
        return message

    def get_messages(self, conversation_id: str, limit: int = 20) -> list[Message]:
        """The most recent ``limit`` messages, oldest first."""
        with self._connect() as conn:
            rows = conn.execute(
                """SELECT * FROM conversation_messages
                   WHERE conversation_id = ?
                   ORDER BY created_at DESC, rowid DESC LIMIT ?""",
                (conversation_id, limit),
            ).fetchall()
        return [
            Message(
                id=r["id"],
                conversation_id=r["conversation_id"],
                role=r["role"],
                content=r["content"],
                metadata=loads_json(r["metadata"]),
                created_at=r["created_at"],
            )
            for r in reversed(rows)
        ]

    def archive(self, conversation_id: str, organization_id: str) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                """UPDATE conversations SET status = 'ARCHIVED', updated_at = ?
                   WHERE id = ? AND organization_id = ? AND status = 'ACTIVE'""",
                (time.time(), conversation_id, organization_id),
            )
            return cur.rowcount == 1

    def list_conversations(
        self,
        organization_id: str,
        user_id: str,
        include_archived: bool = False,
        limit: int = 50,
    ) -> list[Conversation]:
        """Most recently updated first."""
        query = "SELECT * FROM conversations WHERE organization_id = ? AND user_id = ?"
        if not include_archived:
            query += " AND status = 'ACTIVE'"
        query += " ORDER BY updated_at DESC LIMIT ?"
        with self._connect() as conn:
            rows = conn.execute(query, (organization_id, user_id, limit)).fetchall()
        return [self._row_to_conversation(r) for r in rows]

    @staticmethod
    def _row_to_conversation(row: sqlite3.Row) -> Conversation:
        return Conversation(
            id=row["id"],
            organization_id=row["organization_id"],
            user_id=row["user_id"],
            agent_type=row["agent_type"],
            entity_type=row["entity_type"],
            entity_id=row["entity_id"],
            status=row["status"],
            title=row["title"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
