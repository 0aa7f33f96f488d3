"""
SQLite-backed persistence: the store base class, the append-only audit log
and the minimal entity state the built-in actions mutate.

Every store opens a short-lived connection per call, so instances are safe to
share across threads and event loops.
"""

from __future__ import annotations

import json
import sqlite3
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_DB_PATH = Path.home() / ".compliance-agent" / "agent.db"


def dumps_json(value: Any) -> str | None:
    return None if value is None else json.dumps(value)


def loads_json(value: str | None) -> Any:
    return None if value is None else json.loads(value)


class SQLiteStore:
    """Base class: owns the database path and connection handling."""

    def __init__(self, db_path: str | Path | None = None) -> None:
        if db_path is None:
            DEFAULT_DB_PATH.parent.mkdir(parents=True, exist_ok=True)
            db_path = DEFAULT_DB_PATH
        self._db_path = str(db_path)
        with self._connect() as conn:
            self._init_db(conn)

    @property
    def db_path(self) -> str:
        return self._db_path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._db_path, timeout=30.0)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self, conn: sqlite3.Connection) -> None:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------


@dataclass
class AuditEntry:
    """One activity-feed line. Append-only."""

    organization_id: str
    entity_type: str
    entity_id: str
    action: str
    description: str
    actor_user_id: str
    actor_type: str = "USER"  # USER | AI
    actor_name: str | None = None
    action_category: str = "UPDATE"
    changes: dict[str, Any] = field(default_factory=dict)
    context: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: float = field(default_factory=time.time)


class AuditLogStore(SQLiteStore):
    def _init_db(self, conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS audit_log (
                id TEXT PRIMARY KEY,
                organization_id TEXT NOT NULL,
                entity_type TEXT NOT NULL,
                entity_id TEXT NOT NULL,
                action TEXT NOT NULL,
                action_category TEXT NOT NULL,
                description TEXT NOT NULL,
                actor_user_id TEXT NOT NULL,
                actor_type TEXT NOT NULL,
                actor_name TEXT,
                changes TEXT NOT NULL DEFAULT '{}',
                context TEXT NOT NULL DEFAULT '{}',
                created_at REAL NOT NULL
            )
        """)

    def append(self, entry: AuditEntry) -> str:
        with self._connect() as conn:
            conn.execute(
                """INSERT INTO audit_log (
                       id, organization_id, entity_type, entity_id, action,
                       action_category, description, actor_user_id, actor_type,
                       actor_name, changes, context, created_at
                   ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    entry.id,
                    entry.organization_id,
                    entry.entity_type,
                    entry.entity_id,
                    entry.action,
                    entry.action_category,
                    entry.description,
                    entry.actor_user_id,
                    entry.actor_type,
                    entry.actor_name,
                    json.dumps(entry.changes),
                    json.dumps(entry.context),
                    entry.created_at,
                ),
            )
        return entry.id

    def list_for_entity(
        self,
        organization_id: str,
        entity_type: str,
        entity_id: str,
        limit: int = 100,
    ) -> list[AuditEntry]:
        """Oldest first."""
        with self._connect() as conn:
            rows = conn.execute(
                """SELECT * FROM audit_log
                   WHERE organization_id = ? AND entity_type = ? AND entity_id = ?
                   ORDER BY created_at ASC, rowid ASC LIMIT ?""",
                (organization_id, entity_type, entity_id, limit),
            ).fetchall()
        return [
            AuditEntry(
                id=r["id"],
                organization_id=r["organization_id"],
                entity_type=r["entity_type"],
                entity_id=r["entity_id"],
                action=r["action"],
                action_category=r["action_category"],
                description=r["description"],
                actor_user_id=r["actor_user_id"],
                actor_type=r["actor_type"],
                actor_name=r["actor_name"],
                changes=json.loads(r["changes"]),
                context=json.loads(r["context"]),
                created_at=r["created_at"],
            )
            for r in rows
        ]


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


class EntityStore(SQLiteStore):
    """Status-bearing entities (cases, investigations), scoped by organization."""

    def _init_db(self, conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS entities (
                organization_id TEXT NOT NULL,
                entity_type TEXT NOT NULL,
                entity_id TEXT NOT NULL,
                status TEXT NOT NULL,
                status_rationale TEXT,
                status_changed_at REAL,
                PRIMARY KEY (organization_id, entity_type, entity_id)
            )
        """)

    def upsert(
        self,
        organization_id: str,
        entity_type: str,
        entity_id: str,
        status: str,
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                """INSERT INTO entities (organization_id, entity_type, entity_id,
                                         status, status_changed_at)
                   VALUES (?, ?, ?, ?, ?)
                   ON CONFLICT(organization_id, entity_type, entity_id) DO UPDATE SET
                   status=excluded.status, status_changed_at=excluded.status_changed_at""",
                (organization_id, entity_type, entity_id, status, time.time()),
            )

    def get(self, organization_id: str, entity_type: str, entity_id: str) -> dict[str, Any] | None:
        with self._connect() as conn:
            row = conn.execute(
                """SELECT * FROM entities
                   WHERE organization_id = ? AND entity_type = ? AND entity_id = ?""",
                (organization_id, entity_type, entity_id),
            ).fetchone()
        return dict(row) if row else None

    def get_status(self, organization_id: str, entity_type: str, entity_id: str) -> str | None:
        entity = self.get(organization_id, entity_type, entity_id)
        return entity["status"] if entity else None

    def set_status(
        self,
        organization_id: str,
        entity_type: str,
        entity_id: str,
        status: str,
        rationale: str | None = None,
    ) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                """UPDATE entities
                   SET status = ?, status_rationale = ?, status_changed_at = ?
                   WHERE organization_id = ? AND entity_type = ? AND entity_id = ?""",
                (status, rationale, time.time(), organization_id, entity_type, entity_id),
            )
            return cur.rowcount == 1
