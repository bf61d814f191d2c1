from __future__ import annotations

from typing import Any

SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS jurisdictions (
        jurisdiction_id TEXT PRIMARY KEY,
        code TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS rule_sets (
        rule_set_id TEXT PRIMARY KEY,
        jurisdiction_id TEXT NOT NULL REFERENCES jurisdictions(jurisdiction_id),
        version INTEGER NOT NULL,
        effective_date TIMESTAMPTZ NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        UNIQUE (jurisdiction_id, version)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS rules (
        rule_set_id TEXT NOT NULL REFERENCES rule_sets(rule_set_id),
        position INTEGER NOT NULL,
        key TEXT NOT NULL,
        severity TEXT NOT NULL CHECK (severity IN ('REQUIRED', 'WARNING')),
        description TEXT NOT NULL,
        PRIMARY KEY (rule_set_id, position)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS permit_submissions (
        submission_id TEXT PRIMARY KEY,
        tenant_id TEXT NOT NULL,
        jurisdiction_id TEXT NOT NULL REFERENCES jurisdictions(jurisdiction_id),
        jurisdiction_code TEXT NOT NULL,
        project_name TEXT NOT NULL,
        state TEXT NOT NULL DEFAULT 'DRAFT',
        completeness_score DOUBLE PRECISION NOT NULL DEFAULT 0.0,
        submission_details JSONB NOT NULL,
        rule_set_id TEXT,
        rule_set_version INTEGER,
        created_at TIMESTAMPTZ NOT NULL,
        updated_at TIMESTAMPTZ NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_permit_submissions_tenant_created
    ON permit_submissions(tenant_id, created_at DESC)
    """,
    """
    CREATE TABLE IF NOT EXISTS rule_results (
        submission_id TEXT NOT NULL REFERENCES permit_submissions(submission_id),
        tenant_id TEXT NOT NULL,
        position INTEGER NOT NULL,
        rule_key TEXT NOT NULL,
        passed BOOLEAN NOT NULL,
        message TEXT NOT NULL,
        severity TEXT NOT NULL,
        PRIMARY KEY (submission_id, position)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS workflow_events (
        event_id TEXT PRIMARY KEY,
        submission_id TEXT NOT NULL REFERENCES permit_submissions(submission_id),
        tenant_id TEXT NOT NULL,
        event_type TEXT NOT NULL,
        from_state TEXT,
        to_state TEXT,
        metadata JSONB,
        created_at TIMESTAMPTZ NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS packets (
        packet_id TEXT PRIMARY KEY,
        submission_id TEXT NOT NULL UNIQUE REFERENCES permit_submissions(submission_id),
        tenant_id TEXT NOT NULL,
        storage_uri TEXT NOT NULL,
        size_bytes INTEGER NOT NULL,
        created_at TIMESTAMPTZ NOT NULL
    )
    """,
)


def apply_schema(conn: Any) -> int:
    with conn.cursor() as cur:
        for statement in SCHEMA_STATEMENTS:
            cur.execute(statement)
    return len(SCHEMA_STATEMENTS)
