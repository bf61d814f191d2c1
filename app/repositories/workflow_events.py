from __future__ import annotations

import json
from collections.abc import Callable
from datetime import datetime
from typing import Any

from app.db.postgres import validate_identifier


class InMemoryWorkflowEventsRepository:
    """Append-only audit trail."""

    def __init__(
        self,
        events: list[dict[str, Any]],
        *,
        on_write: Callable[[], None] | None = None,
    ) -> None:
        self._events = events
        self._on_write = on_write or (lambda: None)

    def append(self, *, tenant_id: str, event: dict[str, Any]) -> dict[str, Any]:
        item = dict(event)
        item["tenant_id"] = tenant_id
        self._on_write()
        self._events.append(item)
        return dict(item)

    def list(self, *, tenant_id: str, submission_id: str) -> list[dict[str, Any]]:
        return [
            dict(x)
            for x in self._events
            if x.get("tenant_id") == tenant_id and x.get("submission_id") == submission_id
        ]


class PostgresWorkflowEventsRepository:
    def __init__(self, *, conn: Any, table_name: str = "workflow_events") -> None:
        self._conn = conn
        self._table_name = validate_identifier(table_name)

    def append(self, *, tenant_id: str, event: dict[str, Any]) -> dict[str, Any]:
        item = dict(event)
        item["tenant_id"] = tenant_id
        sql = f"""
            INSERT INTO {self._table_name} (
                event_id, submission_id, tenant_id, event_type, from_state, to_state, metadata, created_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s::jsonb, %s)
        """
        with self._conn.cursor() as cur:
            cur.execute(
                sql,
                (
                    item["event_id"],
                    item["submission_id"],
                    tenant_id,
                    item["event_type"],
                    item.get("from_state"),
                    item.get("to_state"),
                    json.dumps(item.get("metadata") or {}, ensure_ascii=True, sort_keys=True),
                    item["created_at"],
                ),
            )
        return item

    def list(self, *, tenant_id: str, submission_id: str) -> list[dict[str, Any]]:
        sql = f"""
            SELECT event_id, submission_id, tenant_id, event_type, from_state, to_state, metadata, created_at
            FROM {self._table_name}
            WHERE tenant_id = %s AND submission_id = %s
            ORDER BY created_at ASC
        """
        with self._conn.cursor() as cur:
            cur.execute(sql, (tenant_id, submission_id))
            rows = cur.fetchall()
        return [
            {
                "event_id": row[0],
                "submission_id": row[1],
                "tenant_id": row[2],
                "event_type": row[3],
                "from_state": row[4],
                "to_state": row[5],
                "metadata": row[6] if isinstance(row[6], dict) else {},
                "created_at": row[7].isoformat() if isinstance(row[7], datetime) else row[7],
            }
            for row in rows
        ]
