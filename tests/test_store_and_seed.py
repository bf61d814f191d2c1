from __future__ import annotations

import pytest

from app.seed_profiles import DEFAULT_PROFILES, seed_default_jurisdictions
from app.settings import ServiceSettings
from app.store import InMemoryStore, create_store_from_env


def _submission(submission_id: str) -> dict:
    return {
        "submission_id": submission_id,
        "jurisdiction_id": "jur_jcy",
        "jurisdiction_code": "JCY",
        "project_name": "Store Test",
        "state": "DRAFT",
        "completeness_score": 0.0,
        "submission_details": {},
        "created_at": "2025-01-01T00:00:00+00:00",
        "updated_at": "2025-01-01T00:00:00+00:00",
    }


def test_store_factory_defaults_to_in_memory():
    store = create_store_from_env(ServiceSettings.from_env({}))
    assert isinstance(store, InMemoryStore)
    assert store.backend_name == "memory"


def test_seed_default_jurisdictions_is_idempotent():
    store = InMemoryStore()
    first = seed_default_jurisdictions(store)
    second = seed_default_jurisdictions(store)

    assert first == [profile.code for profile in DEFAULT_PROFILES]
    assert second == []
    assert len(store.rule_sets) == len(DEFAULT_PROFILES)
    assert store.rule_sets["rs_jcy_v1"].version == 1


def test_unit_of_work_rolls_back_every_write_on_error():
    store = InMemoryStore()
    with store.unit_of_work(tenant_id="tenant_a") as uow:
        uow.submissions.create(tenant_id="tenant_a", submission=_submission("sub_kept"))

    with pytest.raises(RuntimeError):
        with store.unit_of_work(tenant_id="tenant_a") as uow:
            uow.submissions.create(tenant_id="tenant_a", submission=_submission("sub_dropped"))
            uow.events.append(
                tenant_id="tenant_a",
                event={"event_id": "evt_1", "submission_id": "sub_dropped", "event_type": "CREATED"},
            )
            raise RuntimeError("boom")

    assert set(store.submissions) == {"sub_kept"}
    assert store.workflow_events == []


def test_in_memory_repositories_hide_other_tenants_rows():
    store = InMemoryStore()
    with store.unit_of_work(tenant_id="tenant_a") as uow:
        uow.submissions.create(tenant_id="tenant_a", submission=_submission("sub_a"))

    with store.unit_of_work(tenant_id="tenant_b") as uow:
        assert uow.submissions.get(tenant_id="tenant_b", submission_id="sub_a") is None
        assert uow.submissions.list(tenant_id="tenant_b", limit=10) == []


def test_read_only_unit_of_work_skips_snapshot(monkeypatch):
    store = InMemoryStore()
    seed_default_jurisdictions(store)
    snapshots: list[str] = []
    original = store._state_snapshot

    def counting_snapshot():
        snapshots.append("taken")
        return original()

    monkeypatch.setattr(store, "_state_snapshot", counting_snapshot)

    with store.unit_of_work(tenant_id="tenant_a") as uow:
        uow.submissions.list(tenant_id="tenant_a", limit=10)
        uow.jurisdictions.get_by_code(code="JCY")
    with pytest.raises(RuntimeError):
        with store.unit_of_work(tenant_id="tenant_a") as uow:
            uow.submissions.get(tenant_id="tenant_a", submission_id="sub_missing")
            raise RuntimeError("boom")
    assert snapshots == []

    with store.unit_of_work(tenant_id="tenant_a") as uow:
        uow.submissions.create(tenant_id="tenant_a", submission=_submission("sub_1"))
        uow.submissions.create(tenant_id="tenant_a", submission=_submission("sub_2"))
    assert snapshots == ["taken"]


def test_rollback_restores_state_from_before_first_write():
    store = InMemoryStore()
    with store.unit_of_work(tenant_id="tenant_a") as uow:
        uow.submissions.create(tenant_id="tenant_a", submission=_submission("sub_kept"))

    with pytest.raises(RuntimeError):
        with store.unit_of_work(tenant_id="tenant_a") as uow:
            row = uow.submissions.get(tenant_id="tenant_a", submission_id="sub_kept")
            uow.submissions.update(tenant_id="tenant_a", submission={**row, "state": "VALIDATED"})
            raise RuntimeError("boom")

    assert store.submissions["sub_kept"]["state"] == "DRAFT"
