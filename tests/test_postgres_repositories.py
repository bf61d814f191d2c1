from __future__ import annotations

from datetime import UTC, datetime

import pytest

from app.repositories.jurisdictions import PostgresJurisdictionsRepository
from app.repositories.packets import PostgresPacketsRepository
from app.repositories.rule_results import PostgresRuleResultsRepository
from app.repositories.submissions import PostgresSubmissionsRepository
from app.repositories.workflow_events import PostgresWorkflowEventsRepository
from app.rule_types import RuleDefinition, RuleResult, RuleSet, Severity


class FakeConnection:
    """Records statements; SELECTs pop canned rows in order."""

    def __init__(self, rows: list | None = None, *, rowcount: int = 1):
        self.statements: list[tuple[str, tuple | None]] = []
        self.rows = list(rows or [])
        self.rowcount = rowcount

    def cursor(self):
        conn = self

        class FakeCursor:
            rowcount = conn.rowcount

            def __enter__(self):
                return self

            def __exit__(self, exc_type, exc, tb):
                return False

            def execute(self, query: str, params=None):
                conn.statements.append((" ".join(query.strip().split()), params))

            def fetchone(self):
                return conn.rows.pop(0) if conn.rows else None

            def fetchall(self):
                return conn.rows.pop(0) if conn.rows else []

        return FakeCursor()


def _submission() -> dict:
    return {
        "submission_id": "sub_pg_1",
        "jurisdiction_id": "jur_jcy",
        "jurisdiction_code": "JCY",
        "project_name": "Harbor View Duplex",
        "state": "DRAFT",
        "completeness_score": 0.6,
        "submission_details": {"building_height": 45},
        "rule_set_id": "rs_jcy_v1",
        "rule_set_version": 1,
        "created_at": "2025-01-01T00:00:00+00:00",
        "updated_at": "2025-01-01T00:00:00+00:00",
    }


def test_postgres_repositories_reject_invalid_table_name():
    with pytest.raises(ValueError, match="invalid SQL identifier"):
        PostgresSubmissionsRepository(conn=None, table_name="permit_submissions;drop table x")
    with pytest.raises(ValueError, match="invalid SQL identifier"):
        PostgresJurisdictionsRepository(conn=None, rules_table="rules x")


def test_submissions_create_serializes_details_as_json():
    conn = FakeConnection()
    created = PostgresSubmissionsRepository(conn=conn).create(tenant_id="tenant_a", submission=_submission())

    assert created["tenant_id"] == "tenant_a"
    sql, params = conn.statements[0]
    assert sql.startswith("INSERT INTO permit_submissions")
    assert params[1] == "tenant_a"
    assert params[7] == '{"building_height": 45}'


def test_submissions_get_for_update_locks_row_and_decodes_it():
    created_at = datetime(2025, 1, 1, tzinfo=UTC)
    row = (
        "sub_pg_1",
        "tenant_a",
        "jur_jcy",
        "JCY",
        "Harbor View Duplex",
        "DRAFT",
        "0.6",
        '{"building_height": 45}',
        "rs_jcy_v1",
        "1",
        created_at,
        created_at,
    )
    conn = FakeConnection([row])
    found = PostgresSubmissionsRepository(conn=conn).get(
        tenant_id="tenant_a",
        submission_id="sub_pg_1",
        for_update=True,
    )

    sql, params = conn.statements[0]
    assert sql.endswith("FOR UPDATE")
    assert "WHERE tenant_id = %s AND submission_id = %s" in sql
    assert params == ("tenant_a", "sub_pg_1")
    assert found["completeness_score"] == 0.6
    assert found["rule_set_version"] == 1
    assert found["submission_details"] == {"building_height": 45}
    assert found["created_at"] == created_at.isoformat()


def test_submissions_get_missing_returns_none():
    conn = FakeConnection()
    assert PostgresSubmissionsRepository(conn=conn).get(tenant_id="tenant_b", submission_id="sub_pg_1") is None
    assert "FOR UPDATE" not in conn.statements[0][0]


def test_submissions_update_raises_when_no_row_matches():
    conn = FakeConnection(rowcount=0)
    with pytest.raises(KeyError):
        PostgresSubmissionsRepository(conn=conn).update(tenant_id="tenant_b", submission=_submission())
    assert conn.statements[0][1][-2:] == ("tenant_b", "sub_pg_1")


def test_rule_results_replace_all_deletes_then_inserts_in_order():
    conn = FakeConnection()
    results = [
        RuleResult("ARCHITECTURAL_PLANS_SUBMITTED", True, "Architectural plans submitted.", Severity.REQUIRED),
        RuleResult("BUILDING_HEIGHT_LIMIT", False, "Height exceeds limit.", Severity.REQUIRED),
    ]
    PostgresRuleResultsRepository(conn=conn).replace_all(
        tenant_id="tenant_a",
        submission_id="sub_pg_1",
        results=results,
    )

    assert conn.statements[0] == (
        "DELETE FROM rule_results WHERE tenant_id = %s AND submission_id = %s",
        ("tenant_a", "sub_pg_1"),
    )
    assert [params[2] for _sql, params in conn.statements[1:]] == [0, 1]
    assert conn.statements[2][1][3:] == ("BUILDING_HEIGHT_LIMIT", False, "Height exceeds limit.", "REQUIRED")


def test_rule_results_list_restores_severity():
    conn = FakeConnection([[("BUILDING_HEIGHT_LIMIT", False, "Height exceeds limit.", "REQUIRED")]])
    items = PostgresRuleResultsRepository(conn=conn).list(tenant_id="tenant_a", submission_id="sub_pg_1")
    assert items == [RuleResult("BUILDING_HEIGHT_LIMIT", False, "Height exceeds limit.", Severity.REQUIRED)]
    assert conn.statements[0][0].endswith("ORDER BY position")


def test_workflow_events_append_encodes_metadata():
    conn = FakeConnection()
    PostgresWorkflowEventsRepository(conn=conn).append(
        tenant_id="tenant_a",
        event={
            "event_id": "evt_1",
            "submission_id": "sub_pg_1",
            "event_type": "STATE_TRANSITION",
            "from_state": "DRAFT",
            "to_state": "VALIDATED",
            "metadata": {"actor": "user_a"},
            "created_at": "2025-01-01T00:00:00+00:00",
        },
    )
    assert conn.statements[0][1][6] == '{"actor": "user_a"}'


def test_packets_create_conflict_raises_value_error():
    conn = FakeConnection(rowcount=0)
    packet = {
        "packet_id": "pkt_1",
        "submission_id": "sub_pg_1",
        "storage_uri": "object://local/packets/x.pdf",
        "size_bytes": 10,
        "created_at": "2025-01-01T00:00:00+00:00",
    }
    with pytest.raises(ValueError, match="packet already exists"):
        PostgresPacketsRepository(conn=conn).create(tenant_id="tenant_a", packet=packet)
    assert "ON CONFLICT(submission_id) DO NOTHING" in conn.statements[0][0]


def test_jurisdictions_add_rule_set_rejects_duplicate_version():
    conn = FakeConnection([(1,)])
    rule_set = RuleSet(
        rule_set_id="rs_jcy_v1",
        jurisdiction_id="jur_jcy",
        version=1,
        effective_date=datetime(2024, 1, 1, tzinfo=UTC),
        rules=(RuleDefinition("BUILDING_HEIGHT_LIMIT", Severity.REQUIRED, "Height limit."),),
    )
    with pytest.raises(ValueError, match="already exists"):
        PostgresJurisdictionsRepository(conn=conn).add_rule_set(rule_set=rule_set)
    assert len(conn.statements) == 1


def test_jurisdictions_list_rule_sets_groups_rules_in_position_order():
    conn = FakeConnection(
        [
            [("rs_jcy_v1", "jur_jcy", 1, datetime(2024, 1, 1))],
            [
                ("rs_jcy_v1", "ARCHITECTURAL_PLANS_SUBMITTED", "REQUIRED", "Plans."),
                ("rs_jcy_v1", "PLUMBING_FIXTURE_COUNT_SUBMITTED", "WARNING", "Fixtures."),
            ],
        ]
    )
    (rule_set,) = PostgresJurisdictionsRepository(conn=conn).list_rule_sets(jurisdiction_id="jur_jcy")

    assert rule_set.effective_date.tzinfo is not None
    assert [rule.key for rule in rule_set.rules] == [
        "ARCHITECTURAL_PLANS_SUBMITTED",
        "PLUMBING_FIXTURE_COUNT_SUBMITTED",
    ]
    assert rule_set.rules[1].severity is Severity.WARNING
