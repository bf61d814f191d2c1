from __future__ import annotations

from datetime import UTC, datetime

import pytest

from app.errors import InvalidJurisdictionError, NoActiveRuleSetError
from app.repositories.jurisdictions import InMemoryJurisdictionsRepository
from app.rule_catalog import RuleCatalog, select_active_rule_set
from app.rule_types import Jurisdiction, RuleSet


def _rule_set(rule_set_id: str, *, version: int, effective: datetime) -> RuleSet:
    return RuleSet(rule_set_id=rule_set_id, jurisdiction_id="jur_tst", version=version, effective_date=effective)


def _repo(*rule_sets: RuleSet) -> InMemoryJurisdictionsRepository:
    repo = InMemoryJurisdictionsRepository({}, {})
    repo.upsert_jurisdiction(jurisdiction=Jurisdiction(jurisdiction_id="jur_tst", code="TST", name="Testville"))
    for rule_set in rule_sets:
        repo.add_rule_set(rule_set=rule_set)
    return repo


def test_most_recent_effective_rule_set_wins():
    repo = _repo(
        _rule_set("rs_v1", version=1, effective=datetime(2023, 1, 1, tzinfo=UTC)),
        _rule_set("rs_v2", version=2, effective=datetime(2024, 6, 1, tzinfo=UTC)),
    )
    catalog = RuleCatalog(clock=lambda: datetime(2025, 1, 1, tzinfo=UTC))

    jurisdiction, rule_set = catalog.resolve_active_rule_set(repo, "TST")
    assert jurisdiction.name == "Testville"
    assert rule_set.rule_set_id == "rs_v2"


def test_future_dated_rule_set_is_not_active_yet():
    repo = _repo(
        _rule_set("rs_v1", version=1, effective=datetime(2023, 1, 1, tzinfo=UTC)),
        _rule_set("rs_v2", version=2, effective=datetime(2030, 1, 1, tzinfo=UTC)),
    )
    catalog = RuleCatalog(clock=lambda: datetime(2025, 1, 1, tzinfo=UTC))

    _, rule_set = catalog.resolve_active_rule_set(repo, "TST")
    assert rule_set.rule_set_id == "rs_v1"

    _, later = catalog.resolve_active_rule_set(repo, "TST", as_of=datetime(2031, 1, 1))
    assert later.rule_set_id == "rs_v2"


def test_higher_version_breaks_effective_date_tie():
    same_day = datetime(2024, 1, 1, tzinfo=UTC)
    chosen = select_active_rule_set(
        [
            _rule_set("rs_v3", version=3, effective=same_day),
            _rule_set("rs_v4", version=4, effective=same_day),
        ],
        as_of=datetime(2024, 2, 1, tzinfo=UTC),
    )
    assert chosen is not None
    assert chosen.rule_set_id == "rs_v4"


def test_unknown_jurisdiction_code_is_invalid():
    catalog = RuleCatalog()
    with pytest.raises(InvalidJurisdictionError) as excinfo:
        catalog.resolve_active_rule_set(_repo(), "ZZZ")
    assert excinfo.value.http_status == 400
    assert excinfo.value.code == "RULES_JURISDICTION_INVALID"


def test_jurisdiction_without_effective_rule_set_is_a_configuration_error():
    repo = _repo(_rule_set("rs_future", version=1, effective=datetime(2030, 1, 1, tzinfo=UTC)))
    catalog = RuleCatalog(clock=lambda: datetime(2025, 1, 1, tzinfo=UTC))

    with pytest.raises(NoActiveRuleSetError) as excinfo:
        catalog.resolve_active_rule_set(repo, "TST")
    assert excinfo.value.http_status == 500


def test_duplicate_rule_set_version_is_rejected():
    repo = _repo(_rule_set("rs_v1", version=1, effective=datetime(2023, 1, 1, tzinfo=UTC)))
    with pytest.raises(ValueError, match="already exists"):
        repo.add_rule_set(rule_set=_rule_set("rs_v1_copy", version=1, effective=datetime(2024, 1, 1, tzinfo=UTC)))


def test_active_rule_set_endpoint_returns_seeded_profile(client):
    resp = client.get("/api/v1/jurisdictions/ATX/active-rule-set")
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["jurisdiction"]["code"] == "ATX"
    assert data["rule_set"]["version"] == 1
    keys = [x["key"] for x in data["rule_set"]["rules"]]
    assert keys[0] == "ATX_IMPERVIOUS_COVER"
    assert "ATX_VISITABILITY" in keys


def test_active_rule_set_endpoint_rejects_unknown_code(client):
    resp = client.get("/api/v1/jurisdictions/XYZ/active-rule-set")
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "RULES_JURISDICTION_INVALID"
