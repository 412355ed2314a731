"""Unit tests for KPI weighting and fallback dampening."""

import math

from metadata_audit.integrations.fragment_store import load_builtin_base
from metadata_audit.services.kpi_weighting import build_kpi_scores, provenance_for, weighted_score
from metadata_audit.services.rule_evaluators import RULES_BY_ID, rules_for
from metadata_audit.services.ruleset.merger import merge_fragments
from metadata_audit.services.ruleset.types import RuleSetFragment, Scope, ScopedFragment
from metadata_audit.services.types import KpiScore, RuleEvaluationResult


def _ruleset(*extra: tuple[Scope, dict]):
    fragments = [ScopedFragment(Scope.BASE, load_builtin_base())]
    for scope, payload in extra:
        fragments.append(ScopedFragment(scope, RuleSetFragment.from_dict(payload, scope), scope.value))
    return merge_fragments(fragments)


def _result(rule_id: str, score: float, passed: bool = True) -> RuleEvaluationResult:
    return RuleEvaluationResult(rule_id=rule_id, score=score, passed=passed, message="")


def test_effective_weight_applies_override_chain() -> None:
    ruleset = _ruleset(
        (Scope.VERTICAL, {"kpi_weights": {"title_character_usage": 1.5}}),
        (Scope.APP, {"kpi_weights": {"title_character_usage": 1.2}}),
    )
    evaluated = [(rule, _result(rule.rule_id, 80)) for rule in rules_for("title")]

    kpis = {kpi.rule_id: kpi for kpi in build_kpi_scores(evaluated, ruleset)}

    usage = kpis["title_character_usage"]
    assert usage.weight == 0.25
    assert usage.override_multiplier == 1.8
    assert usage.effective_weight == 0.45
    assert [entry.scope for entry in usage.provenance] == [Scope.BASE, Scope.VERTICAL, Scope.APP]
    assert kpis["title_keyword_density"].effective_weight == 0.25
    for kpi in kpis.values():
        product = math.prod(entry.multiplier for entry in kpi.provenance)
        assert math.isclose(kpi.effective_weight, kpi.weight * product)


def test_rules_without_overrides_get_base_provenance() -> None:
    ruleset = _ruleset()

    chain = provenance_for("description_length", ruleset)

    assert len(chain) == 1
    assert chain[0].scope is Scope.BASE
    assert chain[0].multiplier == 1.0
    assert chain[0].source_id == "base-v1"


def test_fallback_mode_floors_intent_derived_rules_only() -> None:
    ruleset = _ruleset()
    alignment = RULES_BY_ID["title_intent_alignment"]
    density = RULES_BY_ID["title_keyword_density"]
    evaluated = [(alignment, _result(alignment.rule_id, 0)), (density, _result(density.rule_id, 20))]

    dampened = build_kpi_scores(evaluated, ruleset, fallback_mode=True, fallback_floor=50)
    normal = build_kpi_scores(evaluated, ruleset, fallback_mode=False, fallback_floor=50)

    assert dampened[0].score == 50
    assert dampened[0].dampened
    assert dampened[1].score == 20
    assert not dampened[1].dampened
    assert normal[0].score == 0
    assert evaluated[0][1].score == 0


def test_weighted_score_is_weighted_mean() -> None:
    kpis = [
        KpiScore(rule_id="a", weight=1.0, effective_weight=1.0, override_multiplier=1.0, score=100),
        KpiScore(rule_id="b", weight=3.0, effective_weight=3.0, override_multiplier=1.0, score=0),
    ]

    assert weighted_score(kpis) == 25
    assert weighted_score([]) == 0
