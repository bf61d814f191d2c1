from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class Severity(str, Enum):
    REQUIRED = "REQUIRED"
    WARNING = "WARNING"


@dataclass(frozen=True)
class RuleContext:
    """Snapshot of submission attributes a rule set is evaluated against.

    Optional jurisdiction-specific fields are ``None`` when the applicant did not
    provide them. Rule logic must test for ``None`` explicitly instead of relying
    on truthiness, so a legitimate zero never reads as "missing".
    """

    project_name: str
    has_architectural_plans: bool
    has_structural_calcs: bool
    building_height: float
    setback_front: float
    setback_side: float
    setback_rear: float
    fire_egress_count: int
    lot_area: float | None = None
    impervious_area: float | None = None
    heritage_trees_removed: bool | None = None
    zoning_district: str | None = None
    proposed_use: str | None = None

    @classmethod
    def from_details(cls, details: Mapping[str, Any]) -> "RuleContext":
        return cls(
            project_name=str(details.get("project_name", "")),
            has_architectural_plans=bool(details.get("has_architectural_plans", False)),
            has_structural_calcs=bool(details.get("has_structural_calcs", False)),
            building_height=float(details.get("building_height", 0)),
            setback_front=float(details.get("setback_front", 0)),
            setback_side=float(details.get("setback_side", 0)),
            setback_rear=float(details.get("setback_rear", 0)),
            fire_egress_count=int(details.get("fire_egress_count", 0)),
            lot_area=_optional_float(details.get("lot_area")),
            impervious_area=_optional_float(details.get("impervious_area")),
            heritage_trees_removed=_optional_bool(details.get("heritage_trees_removed")),
            zoning_district=_optional_str(details.get("zoning_district")),
            proposed_use=_optional_str(details.get("proposed_use")),
        )

    def to_details(self) -> dict[str, Any]:
        return asdict(self)


def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    return float(value)


def _optional_bool(value: Any) -> bool | None:
    if value is None:
        return None
    return bool(value)


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


@dataclass(frozen=True)
class RuleOutcome:
    passed: bool
    message: str


@dataclass(frozen=True)
class RuleResult:
    rule_key: str
    passed: bool
    message: str
    severity: Severity

    def as_dict(self) -> dict[str, Any]:
        return {
            "rule_key": self.rule_key,
            "passed": self.passed,
            "message": self.message,
            "severity": self.severity.value,
        }

    @classmethod
    def from_dict(cls, row: Mapping[str, Any]) -> "RuleResult":
        return cls(
            rule_key=str(row["rule_key"]),
            passed=bool(row["passed"]),
            message=str(row["message"]),
            severity=Severity(str(row["severity"])),
        )


@dataclass(frozen=True)
class RuleDefinition:
    key: str
    severity: Severity
    description: str


@dataclass(frozen=True)
class RuleSet:
    rule_set_id: str
    jurisdiction_id: str
    version: int
    effective_date: datetime
    rules: tuple[RuleDefinition, ...] = field(default_factory=tuple)

    def as_dict(self) -> dict[str, Any]:
        return {
            "rule_set_id": self.rule_set_id,
            "jurisdiction_id": self.jurisdiction_id,
            "version": self.version,
            "effective_date": self.effective_date.isoformat(),
            "rules": [
                {"key": rule.key, "severity": rule.severity.value, "description": rule.description}
                for rule in self.rules
            ],
        }


@dataclass(frozen=True)
class Jurisdiction:
    jurisdiction_id: str
    code: str
    name: str
