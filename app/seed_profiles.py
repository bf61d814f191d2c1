from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from app.rule_types import Jurisdiction, RuleDefinition, RuleSet, Severity

logger = logging.getLogger(__name__)

BASELINE_EFFECTIVE_DATE = datetime(2024, 1, 1, tzinfo=UTC)

_R = Severity.REQUIRED
_W = Severity.WARNING

_PLANS = RuleDefinition(
    "ARCHITECTURAL_PLANS_SUBMITTED",
    _R,
    "A full set of architectural plans must be attached to the submission.",
)
_CALCS = RuleDefinition(
    "STRUCTURAL_CALCS_INCLUDED",
    _R,
    "Structural engineering calculations must be provided for all load-bearing elements.",
)


@dataclass(frozen=True)
class JurisdictionProfile:
    code: str
    name: str
    rules: tuple[RuleDefinition, ...]

    @property
    def jurisdiction_id(self) -> str:
        return f"jur_{self.code.lower()}"


DEFAULT_PROFILES: tuple[JurisdictionProfile, ...] = (
    JurisdictionProfile(
        code="JCY",
        name="Jersey City",
        rules=(
            _PLANS,
            _CALCS,
            RuleDefinition(
                "SETBACK_REQUIREMENT_MET",
                _R,
                "Building must respect the front, side, and rear setback distances from property lines.",
            ),
            RuleDefinition(
                "BUILDING_HEIGHT_LIMIT",
                _R,
                "Proposed building height must not exceed the maximum limit for the designated zone.",
            ),
            RuleDefinition(
                "FIRE_SAFETY_EGRESS_COMPLIANT",
                _R,
                "The design must include at least two means of egress as per fire safety code.",
            ),
            # no logic is registered for this key; evaluation skips it
            RuleDefinition(
                "PLUMBING_FIXTURE_COUNT_SUBMITTED",
                _W,
                "A count of all plumbing fixtures should be provided for impact fee assessment.",
            ),
        ),
    ),
    JurisdictionProfile(
        code="ATX",
        name="Austin",
        rules=(
            RuleDefinition("ATX_IMPERVIOUS_COVER", _R, "Impervious cover must not exceed 45% of the lot area."),
            RuleDefinition("ATX_HERITAGE_TREE", _R, "Removal of heritage trees requires a forestry review."),
            RuleDefinition("ATX_HEIGHT_RESIDENTIAL", _R, "Residential height in SF-3 zoning is limited to 35 feet."),
            _PLANS,
            _CALCS,
            RuleDefinition("ATX_VISITABILITY", _W, "New residences should meet the Visitability Ordinance."),
        ),
    ),
    JurisdictionProfile(
        code="NYC",
        name="New York City",
        rules=(
            RuleDefinition("NYC_FIRE_STANDPIPE", _R, "Buildings over 75 feet require a standpipe system."),
            _PLANS,
            _CALCS,
            RuleDefinition(
                "FIRE_SAFETY_EGRESS_COMPLIANT",
                _R,
                "The design must include at least two means of egress.",
            ),
        ),
    ),
)


def seed_default_jurisdictions(
    store,
    *,
    profiles: tuple[JurisdictionProfile, ...] = DEFAULT_PROFILES,
    effective_date: datetime = BASELINE_EFFECTIVE_DATE,
    tenant_id: str = "system",
) -> list[str]:
    """Install each profile as version 1 of its jurisdiction; existing rule sets are left alone."""
    seeded: list[str] = []
    with store.unit_of_work(tenant_id=tenant_id) as uow:
        for profile in profiles:
            jurisdiction = uow.jurisdictions.get_by_code(code=profile.code)
            if jurisdiction is None:
                jurisdiction = uow.jurisdictions.upsert_jurisdiction(
                    jurisdiction=Jurisdiction(
                        jurisdiction_id=profile.jurisdiction_id,
                        code=profile.code,
                        name=profile.name,
                    )
                )
            if uow.jurisdictions.list_rule_sets(jurisdiction_id=jurisdiction.jurisdiction_id):
                continue
            uow.jurisdictions.add_rule_set(
                rule_set=RuleSet(
                    rule_set_id=f"rs_{profile.code.lower()}_v1",
                    jurisdiction_id=jurisdiction.jurisdiction_id,
                    version=1,
                    effective_date=effective_date,
                    rules=profile.rules,
                )
            )
            seeded.append(profile.code)
    if seeded:
        logger.info("jurisdictions_seeded codes=%s", ",".join(seeded))
    return seeded
