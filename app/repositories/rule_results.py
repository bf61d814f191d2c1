from __future__ import annotations

from collections.abc import Callable
from typing import Any

from app.db.postgres import validate_identifier
from app.rule_types import RuleResult


class InMemoryRuleResultsRepository:
    def __init__(
        self,
        rule_results: dict[str, dict[str, Any]],
        *,
        on_write: Callable[[], None] | None = None,
    ) -> None:
        self._rule_results = rule_results
        self._on_write = on_write or (lambda: None)

    def replace_all(self, *, tenant_id: str, submission_id: str, results: list[RuleResult]) -> list[RuleResult]:
        self._on_write()
        self._rule_results[submission_id] = {
            "tenant_id": tenant_id,
            "items": [result.as_dict() for result in results],
        }
        return list(results)

    def list(self, *, tenant_id: str, submission_id: str) -> list[RuleResult]:
        entry = self._rule_results.get(submission_id)
        if entry is None or entry.get("tenant_id") != tenant_id:
            return []
        return [RuleResult.from_dict(x) for x in entry["items"]]


class PostgresRuleResultsRepository:
    def __init__(self, *, conn: Any, table_name: str = "rule_results") -> None:
        self._conn = conn
        self._table_name = validate_identifier(table_name)

    def replace_all(self, *, tenant_id: str, submission_id: str, results: list[RuleResult]) -> list[RuleResult]:
        delete_sql = f"DELETE FROM {self._table_name} WHERE tenant_id = %s AND submission_id = %s"
        insert_sql = f"""
            INSERT INTO {self._table_name} (
                submission_id, tenant_id, position, rule_key, passed, message, severity
            ) VALUES (%s, %s, %s, %s, %s, %s, %s)
        """
        with self._conn.cursor() as cur:
            cur.execute(delete_sql, (tenant_id, submission_id))
            for position, result in enumerate(results):
                cur.execute(
                    insert_sql,
                    (
                        submission_id,
                        tenant_id,
                        position,
                        result.rule_key,
                        result.passed,
                        result.message,
                        result.severity.value,
                    ),
                )
        return list(results)

    def list(self, *, tenant_id: str, submission_id: str) -> list[RuleResult]:
        sql = f"""
            SELECT rule_key, passed, message, severity
            FROM {self._table_name}
            WHERE tenant_id = %s AND submission_id = %s
            ORDER BY position
        """
        with self._conn.cursor() as cur:
            cur.execute(sql, (tenant_id, submission_id))
            rows = cur.fetchall()
        return [
            RuleResult.from_dict({"rule_key": row[0], "passed": row[1], "message": row[2], "severity": row[3]})
            for row in rows
        ]
