from __future__ import annotations

from typing import Any

from app.db.postgres import _import_psycopg, validate_identifier


class PostgresRlsManager:
    """Apply organization-scoped RLS policies on tenant-owned permit tables."""

    DEFAULT_TABLES: tuple[str, ...] = (
        "permit_submissions",
        "rule_results",
        "workflow_events",
        "packets",
    )

    def __init__(self, dsn: str, *, tables: list[str] | tuple[str, ...] | None = None) -> None:
        if not dsn.strip():
            raise ValueError("POSTGRES_DSN must not be empty")
        self._dsn = dsn.strip()
        target_tables = list(self.DEFAULT_TABLES if tables is None else tables)
        if not target_tables:
            raise ValueError("tables must not be empty")
        self._tables = [validate_identifier(name) for name in target_tables]

    def policy_statements(self) -> list[str]:
        statements: list[str] = []
        for table in self._tables:
            policy = f"{table}_tenant_isolation"
            statements.extend(
                [
                    f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY",
                    f"ALTER TABLE {table} FORCE ROW LEVEL SECURITY",
                    f"DROP POLICY IF EXISTS {policy} ON {table}",
                    f"CREATE POLICY {policy} ON {table} "
                    f"USING ({table}.tenant_id = current_setting('app.current_tenant', true)) "
                    f"WITH CHECK ({table}.tenant_id = current_setting('app.current_tenant', true))",
                ]
            )
        return statements

    def apply(self, conn: Any | None = None) -> list[str]:
        if conn is not None:
            self._execute(conn)
            return list(self._tables)
        psycopg = _import_psycopg()
        with psycopg.connect(self._dsn) as owned:
            self._execute(owned)
            owned.commit()
        return list(self._tables)

    def _execute(self, conn: Any) -> None:
        with conn.cursor() as cur:
            for statement in self.policy_statements():
                cur.execute(statement)
