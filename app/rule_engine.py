from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal

from app.observability import Observability
from app.rule_logic import RuleLogicRegistry
from app.rule_types import RuleContext, RuleResult, RuleSet, Severity

logger = logging.getLogger(__name__)


class RuleEvaluator:
    """Runs the registered logic for each rule in a rule set.

    Rules whose key has no registered logic are skipped with a warning so that
    seeded rule sets may reference rules that are not deployed yet.
    """

    def __init__(self, *, registry: RuleLogicRegistry, observability: Observability) -> None:
        self._registry = registry
        self._observability = observability

    def evaluate(self, context: RuleContext, rule_set: RuleSet) -> list[RuleResult]:
        results: list[RuleResult] = []
        for rule in rule_set.rules:
            logic = self._registry.lookup(rule.key)
            if logic is None:
                logger.warning(
                    "rule_logic_missing rule_key=%s rule_set_id=%s",
                    rule.key,
                    rule_set.rule_set_id,
                )
                self._observability.increment("rules_skipped_total", rule_key=rule.key)
                continue
            outcome = logic.evaluate(context)
            results.append(
                RuleResult(
                    rule_key=rule.key,
                    passed=outcome.passed,
                    message=outcome.message,
                    severity=rule.severity,
                )
            )
        return results


class CompletenessScorer:
    @staticmethod
    def score(results: list[RuleResult]) -> float:
        required = [x for x in results if x.severity == Severity.REQUIRED]
        if not required:
            return 1.0
        passed = sum(1 for x in required if x.passed)
        ratio = Decimal(passed) / Decimal(len(required))
        return float(ratio.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
