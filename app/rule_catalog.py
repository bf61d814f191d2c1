from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import UTC, datetime

from app.errors import InvalidJurisdictionError, NoActiveRuleSetError
from app.rule_types import Jurisdiction, RuleSet


def _utcnow() -> datetime:
    return datetime.now(UTC)


def select_active_rule_set(rule_sets: Iterable[RuleSet], *, as_of: datetime) -> RuleSet | None:
    """Most recently effective rule set not dated after ``as_of``; higher version wins a date tie."""
    eligible = [x for x in rule_sets if x.effective_date <= as_of]
    if not eligible:
        return None
    eligible.sort(key=lambda x: (x.effective_date, x.version), reverse=True)
    return eligible[0]


class RuleCatalog:
    def __init__(self, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    def resolve_active_rule_set(
        self,
        jurisdictions_repo,
        jurisdiction_code: str,
        as_of: datetime | None = None,
    ) -> tuple[Jurisdiction, RuleSet]:
        jurisdiction = jurisdictions_repo.get_by_code(code=jurisdiction_code)
        if jurisdiction is None:
            raise InvalidJurisdictionError(jurisdiction_code)
        return jurisdiction, self._resolve(jurisdictions_repo, jurisdiction, as_of)

    def resolve_for_jurisdiction_id(
        self,
        jurisdictions_repo,
        jurisdiction_id: str,
        as_of: datetime | None = None,
    ) -> tuple[Jurisdiction, RuleSet]:
        jurisdiction = jurisdictions_repo.get(jurisdiction_id=jurisdiction_id)
        if jurisdiction is None:
            raise InvalidJurisdictionError(jurisdiction_id)
        return jurisdiction, self._resolve(jurisdictions_repo, jurisdiction, as_of)

    def _resolve(self, jurisdictions_repo, jurisdiction: Jurisdiction, as_of: datetime | None) -> RuleSet:
        moment = self.now() if as_of is None else as_of
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=UTC)
        rule_sets = jurisdictions_repo.list_rule_sets(jurisdiction_id=jurisdiction.jurisdiction_id)
        active = select_active_rule_set(rule_sets, as_of=moment)
        if active is None:
            raise NoActiveRuleSetError(jurisdiction.code)
        return active
