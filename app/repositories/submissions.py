from __future__ import annotations

import json
from collections.abc import Callable
from datetime import datetime
from typing import Any

from app.db.postgres import validate_identifier

_COLUMNS = (
    "submission_id",
    "tenant_id",
    "jurisdiction_id",
    "jurisdiction_code",
    "project_name",
    "state",
    "completeness_score",
    "submission_details",
    "rule_set_id",
    "rule_set_version",
    "created_at",
    "updated_at",
)


class InMemorySubmissionsRepository:
    def __init__(
        self,
        submissions: dict[str, dict[str, Any]],
        *,
        on_write: Callable[[], None] | None = None,
    ) -> None:
        self._submissions = submissions
        self._on_write = on_write or (lambda: None)

    def create(self, *, tenant_id: str, submission: dict[str, Any]) -> dict[str, Any]:
        item = dict(submission)
        item["tenant_id"] = tenant_id
        self._on_write()
        self._submissions[str(item["submission_id"])] = item
        return dict(item)

    def get(self, *, tenant_id: str, submission_id: str, for_update: bool = False) -> dict[str, Any] | None:
        row = self._submissions.get(submission_id)
        if row is None or row.get("tenant_id") != tenant_id:
            return None
        return dict(row)

    def update(self, *, tenant_id: str, submission: dict[str, Any]) -> dict[str, Any]:
        submission_id = str(submission["submission_id"])
        row = self._submissions.get(submission_id)
        if row is None or row.get("tenant_id") != tenant_id:
            raise KeyError(submission_id)
        self._on_write()
        item = dict(submission)
        item["tenant_id"] = tenant_id
        self._submissions[submission_id] = item
        return dict(item)

    def list(self, *, tenant_id: str, limit: int) -> list[dict[str, Any]]:
        rows = [dict(x) for x in reversed(list(self._submissions.values())) if x.get("tenant_id") == tenant_id]
        rows.sort(key=lambda x: str(x.get("created_at", "")), reverse=True)
        return rows[: max(0, int(limit))]


class PostgresSubmissionsRepository:
    """Submission rows; every statement filters on tenant_id in addition to RLS."""

    def __init__(self, *, conn: Any, table_name: str = "permit_submissions") -> None:
        self._conn = conn
        self._table_name = validate_identifier(table_name)

    def create(self, *, tenant_id: str, submission: dict[str, Any]) -> dict[str, Any]:
        item = dict(submission)
        item["tenant_id"] = tenant_id
        sql = f"""
            INSERT INTO {self._table_name} ({", ".join(_COLUMNS)})
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s::jsonb, %s, %s, %s, %s)
        """
        with self._conn.cursor() as cur:
            cur.execute(
                sql,
                (
                    item["submission_id"],
                    tenant_id,
                    item["jurisdiction_id"],
                    item["jurisdiction_code"],
                    item["project_name"],
                    item["state"],
                    float(item["completeness_score"]),
                    json.dumps(item.get("submission_details", {}), ensure_ascii=True, sort_keys=True),
                    item.get("rule_set_id"),
                    item.get("rule_set_version"),
                    item["created_at"],
                    item["updated_at"],
                ),
            )
        return item

    def get(self, *, tenant_id: str, submission_id: str, for_update: bool = False) -> dict[str, Any] | None:
        sql = f"""
            SELECT {", ".join(_COLUMNS)}
            FROM {self._table_name}
            WHERE tenant_id = %s AND submission_id = %s
            LIMIT 1
        """
        if for_update:
            sql += " FOR UPDATE"
        with self._conn.cursor() as cur:
            cur.execute(sql, (tenant_id, submission_id))
            row = cur.fetchone()
        if row is None:
            return None
        return _row_to_submission(row)

    def update(self, *, tenant_id: str, submission: dict[str, Any]) -> dict[str, Any]:
        item = dict(submission)
        item["tenant_id"] = tenant_id
        sql = f"""
            UPDATE {self._table_name} SET
                project_name = %s,
                state = %s,
                completeness_score = %s,
                submission_details = %s::jsonb,
                rule_set_id = %s,
                rule_set_version = %s,
                updated_at = %s
            WHERE tenant_id = %s AND submission_id = %s
        """
        with self._conn.cursor() as cur:
            cur.execute(
                sql,
                (
                    item["project_name"],
                    item["state"],
                    float(item["completeness_score"]),
                    json.dumps(item.get("submission_details", {}), ensure_ascii=True, sort_keys=True),
                    item.get("rule_set_id"),
                    item.get("rule_set_version"),
                    item["updated_at"],
                    tenant_id,
                    item["submission_id"],
                ),
            )
            if cur.rowcount == 0:
                raise KeyError(item["submission_id"])
        return item

    def list(self, *, tenant_id: str, limit: int) -> list[dict[str, Any]]:
        sql = f"""
            SELECT {", ".join(_COLUMNS)}
            FROM {self._table_name}
            WHERE tenant_id = %s
            ORDER BY created_at DESC
            LIMIT %s
        """
        with self._conn.cursor() as cur:
            cur.execute(sql, (tenant_id, int(limit)))
            rows = cur.fetchall()
        return [_row_to_submission(row) for row in rows]


def _iso(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _row_to_submission(row: tuple[Any, ...]) -> dict[str, Any]:
    item = dict(zip(_COLUMNS, row))
    details = item.get("submission_details")
    if isinstance(details, str):
        details = json.loads(details)
    item["submission_details"] = details if isinstance(details, dict) else {}
    item["completeness_score"] = float(item["completeness_score"])
    if item.get("rule_set_version") is not None:
        item["rule_set_version"] = int(item["rule_set_version"])
    item["created_at"] = _iso(item["created_at"])
    item["updated_at"] = _iso(item["updated_at"])
    return item
