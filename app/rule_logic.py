from __future__ import annotations

from enum import Enum
from typing import Protocol

from app.rule_types import RuleContext, RuleOutcome


class RuleKey(str, Enum):
    ARCHITECTURAL_PLANS_SUBMITTED = "ARCHITECTURAL_PLANS_SUBMITTED"
    STRUCTURAL_CALCS_INCLUDED = "STRUCTURAL_CALCS_INCLUDED"
    SETBACK_REQUIREMENT_MET = "SETBACK_REQUIREMENT_MET"
    BUILDING_HEIGHT_LIMIT = "BUILDING_HEIGHT_LIMIT"
    FIRE_SAFETY_EGRESS_COMPLIANT = "FIRE_SAFETY_EGRESS_COMPLIANT"
    ATX_IMPERVIOUS_COVER = "ATX_IMPERVIOUS_COVER"
    ATX_HERITAGE_TREE = "ATX_HERITAGE_TREE"
    ATX_HEIGHT_RESIDENTIAL = "ATX_HEIGHT_RESIDENTIAL"
    ATX_VISITABILITY = "ATX_VISITABILITY"
    NYC_FIRE_STANDPIPE = "NYC_FIRE_STANDPIPE"

    @classmethod
    def parse(cls, raw: str) -> "RuleKey | None":
        try:
            return cls(raw)
        except ValueError:
            return None


class RuleLogic(Protocol):
    def evaluate(self, context: RuleContext) -> RuleOutcome: ...


class FlagRequirement:
    """Pass-through of a boolean flag on the context."""

    def __init__(self, *, attribute: str, pass_message: str, fail_message: str) -> None:
        self._attribute = attribute
        self._pass_message = pass_message
        self._fail_message = fail_message

    def evaluate(self, context: RuleContext) -> RuleOutcome:
        passed = bool(getattr(context, self._attribute))
        return RuleOutcome(passed=passed, message=self._pass_message if passed else self._fail_message)


class HeightLimit:
    def __init__(self, *, max_height: float, pass_message: str, fail_message: str) -> None:
        self.max_height = max_height
        self._pass_message = pass_message
        self._fail_message = fail_message

    def evaluate(self, context: RuleContext) -> RuleOutcome:
        passed = context.building_height <= self.max_height
        return RuleOutcome(passed=passed, message=self._pass_message if passed else self._fail_message)


class SetbackMinimums:
    def __init__(self, *, front: float, side: float, rear: float) -> None:
        self.front = front
        self.side = side
        self.rear = rear

    def evaluate(self, context: RuleContext) -> RuleOutcome:
        passed = (
            context.setback_front >= self.front
            and context.setback_side >= self.side
            and context.setback_rear >= self.rear
        )
        if passed:
            return RuleOutcome(passed=True, message="Setback requirements are met.")
        return RuleOutcome(passed=False, message="One or more setbacks do not meet the minimum distance.")


class EgressMinimum:
    def __init__(self, *, min_count: int) -> None:
        self.min_count = min_count

    def evaluate(self, context: RuleContext) -> RuleOutcome:
        if context.fire_egress_count >= self.min_count:
            return RuleOutcome(passed=True, message="Fire egress requirements are met.")
        return RuleOutcome(
            passed=False,
            message="Design includes fewer than the required two means of egress.",
        )


class ImperviousCoverLimit:
    def __init__(self, *, max_ratio: float) -> None:
        self.max_ratio = max_ratio

    def evaluate(self, context: RuleContext) -> RuleOutcome:
        lot_area = context.lot_area
        impervious_area = context.impervious_area
        if lot_area is None or impervious_area is None:
            return RuleOutcome(passed=False, message="Missing lot/impervious area data.")
        if lot_area <= 0:
            return RuleOutcome(passed=False, message="Lot area must be greater than zero.")
        ratio = impervious_area / lot_area
        limit_pct = f"{self.max_ratio * 100:g}%"
        if ratio <= self.max_ratio:
            return RuleOutcome(
                passed=True,
                message=f"Impervious cover ({ratio * 100:.1f}%) is within the {limit_pct} limit.",
            )
        return RuleOutcome(
            passed=False,
            message=f"Impervious cover ({ratio * 100:.1f}%) exceeds the {limit_pct} limit.",
        )


class HeritageTreeProtection:
    def evaluate(self, context: RuleContext) -> RuleOutcome:
        removed = context.heritage_trees_removed
        if removed is None or removed is False:
            return RuleOutcome(passed=True, message="No heritage trees affected.")
        return RuleOutcome(
            passed=False,
            message="Heritage tree removal requires a separate forestry review.",
        )


class Advisory:
    """Always passes; the rule's WARNING severity is what surfaces it."""

    def __init__(self, *, message: str) -> None:
        self._message = message

    def evaluate(self, context: RuleContext) -> RuleOutcome:
        return RuleOutcome(passed=True, message=self._message)


class RuleLogicRegistry:
    def __init__(self, logic: dict[RuleKey, RuleLogic]) -> None:
        self._logic = dict(logic)

    def lookup(self, raw_key: str) -> RuleLogic | None:
        key = RuleKey.parse(raw_key)
        if key is None:
            return None
        return self._logic.get(key)


def build_default_rule_registry() -> RuleLogicRegistry:
    return RuleLogicRegistry(
        {
            RuleKey.ARCHITECTURAL_PLANS_SUBMITTED: FlagRequirement(
                attribute="has_architectural_plans",
                pass_message="Architectural plans are attached.",
                fail_message="Missing required architectural plans.",
            ),
            RuleKey.STRUCTURAL_CALCS_INCLUDED: FlagRequirement(
                attribute="has_structural_calcs",
                pass_message="Structural calculations are included.",
                fail_message="Missing required structural calculations.",
            ),
            # Jersey City residential zone
            RuleKey.SETBACK_REQUIREMENT_MET: SetbackMinimums(front=20, side=5, rear=25),
            RuleKey.BUILDING_HEIGHT_LIMIT: HeightLimit(
                max_height=40,
                pass_message="Building height is within the legal limit.",
                fail_message="Proposed height exceeds the 40-foot limit.",
            ),
            RuleKey.FIRE_SAFETY_EGRESS_COMPLIANT: EgressMinimum(min_count=2),
            RuleKey.ATX_IMPERVIOUS_COVER: ImperviousCoverLimit(max_ratio=0.45),
            RuleKey.ATX_HERITAGE_TREE: HeritageTreeProtection(),
            RuleKey.ATX_HEIGHT_RESIDENTIAL: HeightLimit(
                max_height=35,
                pass_message="Height is compliant with SF-3 zoning.",
                fail_message="Height exceeds 35ft limit for SF-3.",
            ),
            RuleKey.ATX_VISITABILITY: Advisory(
                message="Note: Ensure compliance with Visitability Ordinance (no-step entrance).",
            ),
            RuleKey.NYC_FIRE_STANDPIPE: HeightLimit(
                max_height=75,
                pass_message="Building under 75ft, standpipe rules ok.",
                fail_message="Building exceeds 75ft; standpipe system is required.",
            ),
        }
    )
