from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from app.db.postgres import PostgresTxRunner
from app.db.rls import PostgresRlsManager
from app.db.schema import apply_schema
from app.repositories.jurisdictions import InMemoryJurisdictionsRepository, PostgresJurisdictionsRepository
from app.repositories.packets import InMemoryPacketsRepository, PostgresPacketsRepository
from app.repositories.rule_results import InMemoryRuleResultsRepository, PostgresRuleResultsRepository
from app.repositories.submissions import InMemorySubmissionsRepository, PostgresSubmissionsRepository
from app.repositories.workflow_events import (
    InMemoryWorkflowEventsRepository,
    PostgresWorkflowEventsRepository,
)
from app.settings import ServiceSettings

logger = logging.getLogger(__name__)

SYSTEM_TENANT = "system"


@dataclass
class UnitOfWork:
    tenant_id: str
    jurisdictions: Any
    submissions: Any
    rule_results: Any
    events: Any
    packets: Any


class InMemoryStore:
    """Process-local store; a unit of work holds the store lock and is all-or-nothing."""

    backend_name = "memory"

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.jurisdictions: dict[str, Any] = {}
        self.rule_sets: dict[str, Any] = {}
        self.submissions: dict[str, dict[str, Any]] = {}
        self.rule_results: dict[str, dict[str, Any]] = {}
        self.workflow_events: list[dict[str, Any]] = []
        self.packets: dict[str, dict[str, Any]] = {}

    def _state_snapshot(self) -> dict[str, Any]:
        return {
            "jurisdictions": dict(self.jurisdictions),
            "rule_sets": dict(self.rule_sets),
            "submissions": copy.deepcopy(self.submissions),
            "rule_results": copy.deepcopy(self.rule_results),
            "workflow_events": copy.deepcopy(self.workflow_events),
            "packets": copy.deepcopy(self.packets),
        }

    def _restore_state(self, payload: dict[str, Any]) -> None:
        # repositories hold references to these containers, so restore in place
        for name in ("jurisdictions", "rule_sets", "submissions", "rule_results", "packets"):
            table = getattr(self, name)
            table.clear()
            table.update(payload[name])
        self.workflow_events[:] = payload["workflow_events"]

    @contextmanager
    def unit_of_work(self, *, tenant_id: str) -> Iterator[UnitOfWork]:
        with self._lock:
            snapshots: list[dict[str, Any]] = []

            def before_write() -> None:
                # first write captures the state as of unit start
                if not snapshots:
                    snapshots.append(self._state_snapshot())

            uow = UnitOfWork(
                tenant_id=tenant_id,
                jurisdictions=InMemoryJurisdictionsRepository(
                    self.jurisdictions,
                    self.rule_sets,
                    on_write=before_write,
                ),
                submissions=InMemorySubmissionsRepository(self.submissions, on_write=before_write),
                rule_results=InMemoryRuleResultsRepository(self.rule_results, on_write=before_write),
                events=InMemoryWorkflowEventsRepository(self.workflow_events, on_write=before_write),
                packets=InMemoryPacketsRepository(self.packets, on_write=before_write),
            )
            try:
                yield uow
            except BaseException:
                if snapshots:
                    self._restore_state(snapshots[0])
                    logger.debug("unit_of_work_rolled_back tenant_id=%s", tenant_id)
                raise


class PostgresBackedStore:
    """One psycopg transaction per unit of work with the tenant injected into the session."""

    backend_name = "postgres"

    def __init__(
        self,
        *,
        dsn: str,
        apply_ddl: bool = False,
        apply_rls: bool = False,
        tx_runner: PostgresTxRunner | None = None,
    ) -> None:
        if not dsn.strip():
            raise ValueError("POSTGRES_DSN must be provided for postgres store backend")
        self._dsn = dsn.strip()
        self._tx_runner = tx_runner or PostgresTxRunner(self._dsn)
        if apply_ddl or apply_rls:
            self.initialize(apply_ddl=apply_ddl, apply_rls=apply_rls)

    def initialize(self, *, apply_ddl: bool = True, apply_rls: bool = True) -> None:
        with self._tx_runner.transaction(tenant_id=SYSTEM_TENANT) as conn:
            if apply_ddl:
                count = apply_schema(conn)
                logger.info("postgres_schema_applied statements=%s", count)
            if apply_rls:
                tables = PostgresRlsManager(self._dsn).apply(conn)
                logger.info("postgres_rls_applied tables=%s", ",".join(tables))

    @contextmanager
    def unit_of_work(self, *, tenant_id: str) -> Iterator[UnitOfWork]:
        with self._tx_runner.transaction(tenant_id=tenant_id) as conn:
            yield UnitOfWork(
                tenant_id=tenant_id,
                jurisdictions=PostgresJurisdictionsRepository(conn=conn),
                submissions=PostgresSubmissionsRepository(conn=conn),
                rule_results=PostgresRuleResultsRepository(conn=conn),
                events=PostgresWorkflowEventsRepository(conn=conn),
                packets=PostgresPacketsRepository(conn=conn),
            )


def create_store_from_env(settings: ServiceSettings) -> InMemoryStore | PostgresBackedStore:
    backend = settings.store_backend
    if backend == "postgres":
        if not settings.postgres_dsn:
            raise ValueError("POSTGRES_DSN must be set when PERMIT_STORE_BACKEND=postgres")
        return PostgresBackedStore(
            dsn=settings.postgres_dsn,
            apply_ddl=settings.postgres_apply_ddl,
            apply_rls=settings.postgres_apply_rls,
        )
    if backend != "memory":
        raise ValueError(f"unsupported store backend: {backend}")
    return InMemoryStore()
