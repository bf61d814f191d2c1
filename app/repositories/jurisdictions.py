from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from app.db.postgres import validate_identifier
from app.rule_types import Jurisdiction, RuleDefinition, RuleSet, Severity


class InMemoryJurisdictionsRepository:
    def __init__(
        self,
        jurisdictions: dict[str, Jurisdiction],
        rule_sets: dict[str, RuleSet],
        *,
        on_write: Callable[[], None] | None = None,
    ) -> None:
        self._jurisdictions = jurisdictions
        self._rule_sets = rule_sets
        self._on_write = on_write or (lambda: None)

    def upsert_jurisdiction(self, *, jurisdiction: Jurisdiction) -> Jurisdiction:
        for existing in self._jurisdictions.values():
            if existing.code == jurisdiction.code and existing.jurisdiction_id != jurisdiction.jurisdiction_id:
                raise ValueError(f"jurisdiction code already registered: {jurisdiction.code}")
        self._on_write()
        self._jurisdictions[jurisdiction.jurisdiction_id] = jurisdiction
        return jurisdiction

    def get(self, *, jurisdiction_id: str) -> Jurisdiction | None:
        return self._jurisdictions.get(jurisdiction_id)

    def get_by_code(self, *, code: str) -> Jurisdiction | None:
        for jurisdiction in self._jurisdictions.values():
            if jurisdiction.code == code:
                return jurisdiction
        return None

    def add_rule_set(self, *, rule_set: RuleSet) -> RuleSet:
        if rule_set.jurisdiction_id not in self._jurisdictions:
            raise ValueError(f"unknown jurisdiction: {rule_set.jurisdiction_id}")
        for existing in self._rule_sets.values():
            if existing.jurisdiction_id == rule_set.jurisdiction_id and existing.version == rule_set.version:
                raise ValueError(
                    f"rule set version {rule_set.version} already exists for {rule_set.jurisdiction_id}"
                )
        self._on_write()
        self._rule_sets[rule_set.rule_set_id] = rule_set
        return rule_set

    def list_rule_sets(self, *, jurisdiction_id: str) -> list[RuleSet]:
        return [x for x in self._rule_sets.values() if x.jurisdiction_id == jurisdiction_id]


class PostgresJurisdictionsRepository:
    """Jurisdictions and their rule sets are shared reference data, not tenant rows."""

    def __init__(
        self,
        *,
        conn: Any,
        jurisdictions_table: str = "jurisdictions",
        rule_sets_table: str = "rule_sets",
        rules_table: str = "rules",
    ) -> None:
        self._conn = conn
        self._jurisdictions_table = validate_identifier(jurisdictions_table)
        self._rule_sets_table = validate_identifier(rule_sets_table)
        self._rules_table = validate_identifier(rules_table)

    def upsert_jurisdiction(self, *, jurisdiction: Jurisdiction) -> Jurisdiction:
        sql = f"""
            INSERT INTO {self._jurisdictions_table} (jurisdiction_id, code, name)
            VALUES (%s, %s, %s)
            ON CONFLICT(jurisdiction_id) DO UPDATE SET name = EXCLUDED.name
        """
        with self._conn.cursor() as cur:
            cur.execute(sql, (jurisdiction.jurisdiction_id, jurisdiction.code, jurisdiction.name))
        return jurisdiction

    def get(self, *, jurisdiction_id: str) -> Jurisdiction | None:
        sql = f"""
            SELECT jurisdiction_id, code, name
            FROM {self._jurisdictions_table}
            WHERE jurisdiction_id = %s
            LIMIT 1
        """
        with self._conn.cursor() as cur:
            cur.execute(sql, (jurisdiction_id,))
            row = cur.fetchone()
        if row is None:
            return None
        return Jurisdiction(jurisdiction_id=row[0], code=row[1], name=row[2])

    def get_by_code(self, *, code: str) -> Jurisdiction | None:
        sql = f"""
            SELECT jurisdiction_id, code, name
            FROM {self._jurisdictions_table}
            WHERE code = %s
            LIMIT 1
        """
        with self._conn.cursor() as cur:
            cur.execute(sql, (code,))
            row = cur.fetchone()
        if row is None:
            return None
        return Jurisdiction(jurisdiction_id=row[0], code=row[1], name=row[2])

    def add_rule_set(self, *, rule_set: RuleSet) -> RuleSet:
        exists_sql = f"""
            SELECT 1 FROM {self._rule_sets_table}
            WHERE jurisdiction_id = %s AND version = %s
            LIMIT 1
        """
        insert_set_sql = f"""
            INSERT INTO {self._rule_sets_table} (rule_set_id, jurisdiction_id, version, effective_date)
            VALUES (%s, %s, %s, %s)
        """
        insert_rule_sql = f"""
            INSERT INTO {self._rules_table} (rule_set_id, position, key, severity, description)
            VALUES (%s, %s, %s, %s, %s)
        """
        with self._conn.cursor() as cur:
            cur.execute(exists_sql, (rule_set.jurisdiction_id, rule_set.version))
            if cur.fetchone() is not None:
                raise ValueError(
                    f"rule set version {rule_set.version} already exists for {rule_set.jurisdiction_id}"
                )
            cur.execute(
                insert_set_sql,
                (rule_set.rule_set_id, rule_set.jurisdiction_id, rule_set.version, rule_set.effective_date),
            )
            for position, rule in enumerate(rule_set.rules):
                cur.execute(
                    insert_rule_sql,
                    (rule_set.rule_set_id, position, rule.key, rule.severity.value, rule.description),
                )
        return rule_set

    def list_rule_sets(self, *, jurisdiction_id: str) -> list[RuleSet]:
        sets_sql = f"""
            SELECT rule_set_id, jurisdiction_id, version, effective_date
            FROM {self._rule_sets_table}
            WHERE jurisdiction_id = %s
        """
        rules_sql = f"""
            SELECT r.rule_set_id, r.key, r.severity, r.description
            FROM {self._rules_table} r
            JOIN {self._rule_sets_table} s ON s.rule_set_id = r.rule_set_id
            WHERE s.jurisdiction_id = %s
            ORDER BY r.rule_set_id, r.position
        """
        with self._conn.cursor() as cur:
            cur.execute(sets_sql, (jurisdiction_id,))
            set_rows = cur.fetchall()
            cur.execute(rules_sql, (jurisdiction_id,))
            rule_rows = cur.fetchall()
        rules_by_set: dict[str, list[RuleDefinition]] = {}
        for rule_set_id, key, severity, description in rule_rows:
            rules_by_set.setdefault(rule_set_id, []).append(
                RuleDefinition(key=key, severity=Severity(severity), description=description)
            )
        return [
            RuleSet(
                rule_set_id=row[0],
                jurisdiction_id=row[1],
                version=int(row[2]),
                effective_date=_as_aware(row[3]),
                rules=tuple(rules_by_set.get(row[0], [])),
            )
            for row in set_rows
        ]


def _as_aware(value: Any) -> datetime:
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value
