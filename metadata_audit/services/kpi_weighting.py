"""KPI weighting: rule results -> weighted element scores with provenance.

``effective_weight = weight * product(multipliers)`` where the multiplier
chain starts at the base scope (1.0) and adds one entry per scope that set a
KPI override for the rule.
"""

from __future__ import annotations

from collections.abc import Sequence

from metadata_audit.config import settings
from metadata_audit.services.rule_evaluators import RuleDefinition
from metadata_audit.services.ruleset.types import KpiProvenanceEntry, MergedRuleSet, Scope
from metadata_audit.services.types import KpiScore, RuleEvaluationResult

DEFAULT_RULE_WEIGHT = 1.0


def provenance_for(rule_id: str, ruleset: MergedRuleSet) -> tuple[KpiProvenanceEntry, ...]:
    chain = ruleset.kpi_provenance.get(rule_id)
    if chain:
        return chain
    return (
        KpiProvenanceEntry(
            scope=Scope.BASE,
            multiplier=1.0,
            source_id=ruleset.scope_sources.get(Scope.BASE),
        ),
    )


def build_kpi_scores(
    evaluated: Sequence[tuple[RuleDefinition, RuleEvaluationResult]],
    ruleset: MergedRuleSet,
    *,
    fallback_mode: bool = False,
    fallback_floor: float | None = None,
) -> list[KpiScore]:
    """Weight each rule result.

    In fallback mode, intent-derived rules are floored at ``fallback_floor``
    so a missing pattern table does not drag the element score down. The
    raw rule result is left untouched.
    """
    floor = settings.intent_fallback_floor if fallback_floor is None else fallback_floor
    kpis: list[KpiScore] = []
    for rule, result in evaluated:
        weight = ruleset.rule_weights.get(rule.rule_id, DEFAULT_RULE_WEIGHT)
        provenance = provenance_for(rule.rule_id, ruleset)
        multiplier = 1.0
        for entry in provenance:
            multiplier *= entry.multiplier

        score = float(result.score)
        dampened = False
        if fallback_mode and rule.intent_derived and score < floor:
            score = floor
            dampened = True

        kpis.append(
            KpiScore(
                rule_id=rule.rule_id,
                weight=weight,
                effective_weight=round(weight * multiplier, 6),
                override_multiplier=round(multiplier, 6),
                score=score,
                provenance=provenance,
                dampened=dampened,
            )
        )
    return kpis


def weighted_score(kpis: Sequence[KpiScore]) -> int:
    """Weighted mean of KPI scores, rounded and clamped to 0-100."""
    total_weight = sum(kpi.effective_weight for kpi in kpis)
    if total_weight <= 0:
        return 0
    value = sum(kpi.score * kpi.effective_weight for kpi in kpis) / total_weight
    return max(0, min(100, round(value)))
