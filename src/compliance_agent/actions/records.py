"""
Durable store for action records.

State transitions are single conditional UPDATE statements; the row count
tells the caller whether it won.
"""

from __future__ import annotations

import json
import sqlite3
from typing import Any

from compliance_agent.actions.models import ActionRecord, ActionStatus
from compliance_agent.storage import SQLiteStore, dumps_json, loads_json


class ActionRecordStore(SQLiteStore):
    """Durable store for ``ActionRecord``. The executor is its only writer."""

    def _init_db(self, conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS action_records (
                id TEXT PRIMARY KEY,
                organization_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                entity_type TEXT NOT NULL,
                entity_id TEXT NOT NULL,
                action_id TEXT NOT NULL,
                conversation_id TEXT,
                input TEXT NOT NULL DEFAULT '{}',
                status TEXT NOT NULL,
                previous_state TEXT,
                result TEXT,
                error TEXT,
                undo_expires_at REAL,
                executed_at REAL NOT NULL,
                undone_at REAL,
                undone_by TEXT
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_action_records_entity
            ON action_records (organization_id, entity_type, entity_id, executed_at)
        """)

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> ActionRecord:
        return ActionRecord(
            id=row["id"],
            organization_id=row["organization_id"],
            user_id=row["user_id"],
            entity_type=row["entity_type"],
            entity_id=row["entity_id"],
            action_id=row["action_id"],
            conversation_id=row["conversation_id"],
            input=loads_json(row["input"]) or {},
            status=ActionStatus(row["status"]),
            previous_state=loads_json(row["previous_state"]),
            result=loads_json(row["result"]),
            error=row["error"],
            undo_expires_at=row["undo_expires_at"],
            executed_at=row["executed_at"],
            undone_at=row["undone_at"],
            undone_by=row["undone_by"],
        )

    def create(self, record: ActionRecord) -> None:
        with self._connect() as conn:
            conn.execute(
                """INSERT INTO action_records (
                       id, organization_id, user_id, entity_type, entity_id,
                       action_id, conversation_id, input, status, executed_at
                   ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    record.id,
                    record.organization_id,
                    record.user_id,
                    record.entity_type,
                    record.entity_id,
                    record.action_id,
                    record.conversation_id,
                    json.dumps(record.input),
                    record.status.value,
                    record.executed_at,
                ),
            )

    def get(self, record_id: str, organization_id: str | None = None) -> ActionRecord | None:
        """Load a record; with ``organization_id`` set, foreign records are invisible."""
        query = "SELECT * FROM action_records WHERE id = ?"
        params: list[Any] = [record_id]
        if organization_id is not None:
            query += " AND organization_id = ?"
            params.append(organization_id)
        with self._connect() as conn:
            row = conn.execute(query, params).fetchone()
        return self._row_to_record(row) if row else None

    def mark_completed(
        self,
        record_id: str,
        previous_state: dict[str, Any] | None,
        result: dict[str, Any] | None,
        undo_expires_at: float | None,
    ) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                """UPDATE action_records
                   SET status = ?, previous_state = ?, result = ?, undo_expires_at = ?
                   WHERE id = ? AND status = ?""",
                (
                    ActionStatus.COMPLETED.value,
                    dumps_json(previous_state),
                    dumps_json(result),
                    undo_expires_at,
                    record_id,
                    ActionStatus.EXECUTING.value,
                ),
            )
            return cur.rowcount == 1

    def mark_failed(self, record_id: str, error: str) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE action_records SET status = ?, error = ? WHERE id = ? AND status = ?",
                (ActionStatus.FAILED.value, error, record_id, ActionStatus.EXECUTING.value),
            )
            return cur.rowcount == 1

    def claim_undo(
        self,
        record_id: str,
        organization_id: str,
        undone_by: str,
        now: float,
    ) -> bool:
        """
        Atomically move COMPLETED -> UNDONE if the window is still open.

        Returns True for exactly one caller per record.
        """
        with self._connect() as conn:
            cur = conn.execute(
                """UPDATE action_records
                   SET status = ?, undone_at = ?, undone_by = ?
                   WHERE id = ? AND organization_id = ? AND status = ?
                     AND undo_expires_at IS NOT NULL AND undo_expires_at > ?""",
                (
                    ActionStatus.UNDONE.value,
                    now,
                    undone_by,
                    record_id,
                    organization_id,
                    ActionStatus.COMPLETED.value,
                    now,
                ),
            )
            return cur.rowcount == 1

    def release_undo(self, record_id: str) -> bool:
        """Reverse a claim whose undo behavior failed."""
        with self._connect() as conn:
            cur = conn.execute(
                """UPDATE action_records
                   SET status = ?, undone_at = NULL, undone_by = NULL
                   WHERE id = ? AND status = ?""",
                (ActionStatus.COMPLETED.value, record_id, ActionStatus.UNDONE.value),
            )
            return cur.rowcount == 1

    def list_history(
        self,
        organization_id: str,
        entity_type: str | None = None,
        entity_id: str | None = None,
        limit: int = 50,
    ) -> list[ActionRecord]:
        """Most recent first."""
        query = "SELECT * FROM action_records WHERE organization_id = ?"
        params: list[Any] = [organization_id]
        if entity_type is not None:
            query += " AND entity_type = ?"
            params.append(entity_type)
        if entity_id is not None:
            query += " AND entity_id = ?"
            params.append(entity_id)
        query += " ORDER BY executed_at DESC, rowid DESC LIMIT ?"
        params.append(limit)
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_record(r) for r in rows]

    def list_undoable(
        self,
        organization_id: str,
        entity_type: str,
        entity_id: str,
        now: float,
    ) -> list[ActionRecord]:
        with self._connect() as conn:
            rows = conn.execute(
                """SELECT * FROM action_records
                   WHERE organization_id = ? AND entity_type = ? AND entity_id = ?
                     AND status = ? AND undo_expires_at > ?
                   ORDER BY executed_at DESC""",
                (organization_id, entity_type, entity_id, ActionStatus.COMPLETED.value, now),
            ).fetchall()
        return [self._row_to_record(r) for r in rows]

