"""Unit tests for title, subtitle and description rules."""

from dataclasses import replace

from metadata_audit.integrations.fragment_store import load_builtin_base
from metadata_audit.services.intent_classifier import IntentClassifier, IntentPatternTable
from metadata_audit.services.keyword_extraction import extract_element_terms
from metadata_audit.services.kpi_weighting import build_kpi_scores
from metadata_audit.services.rule_evaluators import (
    RULE_REGISTRY,
    RULES_BY_ID,
    RuleContext,
    count_syllables,
    evaluate_rule,
    flesch_reading_ease,
    rules_for,
    unknown_rule_gaps,
)
from metadata_audit.services.ruleset.merger import merge_fragments
from metadata_audit.services.ruleset.types import MergedRuleSet, RuleSetFragment, Scope, ScopedFragment
from metadata_audit.services.transactional_safety import TransactionalSafetyDetector
from metadata_audit.services.types import RuleEvaluationResult


def _ruleset(app_payload: dict | None = None) -> MergedRuleSet:
    fragments = [ScopedFragment(Scope.BASE, load_builtin_base())]
    if app_payload is not None:
        fragments.append(ScopedFragment(Scope.APP, RuleSetFragment.from_dict(app_payload, Scope.APP), "app-1"))
    return merge_fragments(fragments)


def _context(
    title: str = "",
    subtitle: str = "",
    description: str = "",
    *,
    platform: str = "ios",
    ruleset: MergedRuleSet | None = None,
) -> RuleContext:
    ruleset = ruleset or _ruleset()
    texts = {"title": title, "subtitle": subtitle, "description": description}
    return RuleContext(
        ruleset=ruleset,
        platform=platform,
        texts=texts,
        terms=extract_element_terms(texts, ruleset),
        classifier=IntentClassifier(IntentPatternTable.from_ruleset(ruleset)),
        transactional=TransactionalSafetyDetector.from_ruleset(ruleset),
    )


def _run(rule_id: str, ctx: RuleContext) -> RuleEvaluationResult:
    rule = RULES_BY_ID[rule_id]
    return evaluate_rule(rule, ctx.texts[rule.element], ctx)


def test_registry_covers_every_element_in_order() -> None:
    assert len(RULE_REGISTRY) == 19
    assert [len(rules_for(element)) for element in ("title", "subtitle", "description")] == [8, 5, 6]
    assert RULE_REGISTRY[0].rule_id == "title_character_usage"
    assert [rule.rule_id for rule in RULE_REGISTRY if rule.intent_derived] == [
        "title_intent_alignment",
        "intent_balance",
        "intent_diversity",
        "intent_gap",
    ]


def test_title_character_usage_threshold_boundary() -> None:
    title = "Photo Editor Studio!"
    assert len(title) == 20

    default = _run("title_character_usage", _context(title))
    relaxed = _run(
        "title_character_usage",
        _context(title, ruleset=_ruleset({"rule_thresholds": {"title_character_usage": {"low": 0.5}}})),
    )

    assert default.score == 60
    assert not default.passed
    assert default.facts == {"characterUsage": 20, "maxCharacters": 30, "usagePercent": 67}
    assert relaxed.score == 85
    assert relaxed.passed


def test_character_usage_over_limit_fails() -> None:
    result = _run("title_character_usage", _context("A" * 31))

    assert result.score == 0
    assert not result.passed


def test_subtitle_limit_depends_on_platform() -> None:
    subtitle = "Edit photos with filters and effects in seconds"

    ios = _run("subtitle_character_usage", _context("Photo Editor", subtitle))
    android = _run("subtitle_character_usage", _context("Photo Editor", subtitle, platform="android"))

    assert ios.score == 0
    assert android.facts["maxCharacters"] == 80
    assert android.score == 60


def test_title_keyword_rules_for_duolingo() -> None:
    ctx = _context("Duolingo - Language Lessons", "Learn Spanish, French & more")

    density = _run("title_keyword_density", ctx)
    combos = _run("title_combo_coverage", ctx)
    filler = _run("title_filler_penalty", ctx)
    intent = _run("title_intent_alignment", ctx)

    assert density.score == 80
    assert density.passed
    assert combos.score == 75
    assert combos.facts == {"comboCount": 3}
    assert filler.score == 100
    assert filler.passed
    assert intent.score == 33
    assert intent.passed
    assert intent.evidence == ("lessons:informational",)


def test_title_filler_penalty_flags_noise() -> None:
    result = _run("title_filler_penalty", _context("The Best of the App"))

    assert result.score == 70
    assert not result.passed
    assert result.evidence == ("the", "of")
    assert result.facts == {"fillerPercent": 60}


def test_title_intent_alignment_in_fallback_mode() -> None:
    ctx = _context("Duolingo - Language Lessons")
    empty = RuleContext(
        ruleset=ctx.ruleset,
        platform="ios",
        texts=ctx.texts,
        terms=ctx.terms,
        classifier=IntentClassifier(IntentPatternTable([])),
        transactional=ctx.transactional,
    )

    result = _run("title_intent_alignment", empty)

    assert result.score == 0
    assert result.passed


def test_intent_mix_rules_for_balanced_listing() -> None:
    ctx = _context("Learn Photo Editing - Best App", "Download Filters")

    balance = _run("intent_balance", ctx)
    diversity = _run("intent_diversity", ctx)
    gap = _run("intent_gap", ctx)

    assert balance.score == 100
    assert balance.passed
    assert balance.evidence == ("informational:1", "commercial:1", "transactional:1", "navigational:1")
    assert diversity.score == 100
    assert diversity.facts == {"intentTypeCount": 4}
    assert gap.score == 100
    assert gap.facts == {"gapIndex": 0}
    assert gap.message == "No missing search intents"


def test_intent_mix_rules_for_single_intent_listing() -> None:
    ctx = _context("Duolingo - Language Lessons", "Learn Spanish, French & more")

    balance = _run("intent_balance", ctx)
    diversity = _run("intent_diversity", ctx)
    gap = _run("intent_gap", ctx)

    assert balance.score == 0
    assert not balance.passed
    assert balance.facts == {"classifiedCount": 2}
    assert diversity.score == 25
    assert diversity.evidence == ("informational",)
    assert not diversity.passed
    assert gap.score == 33
    assert gap.facts == {"gapIndex": 67}
    assert gap.evidence == ("commercial", "transactional")
    assert not gap.passed


def test_intent_mix_rules_without_classified_keywords() -> None:
    ctx = _context("Photo Editor")

    assert _run("intent_balance", ctx).score == 0
    assert _run("intent_diversity", ctx).score == 0
    assert _run("intent_gap", ctx).score == 0


def test_intent_mix_rules_are_floored_in_fallback_mode() -> None:
    ctx = replace(_context("Duolingo - Language Lessons"), classifier=IntentClassifier(IntentPatternTable([])))
    rules = [RULES_BY_ID[rule_id] for rule_id in ("intent_balance", "intent_diversity", "intent_gap")]
    evaluated = [(rule, evaluate_rule(rule, ctx.texts["title"], ctx)) for rule in rules]

    kpis = build_kpi_scores(evaluated, ctx.ruleset, fallback_mode=True, fallback_floor=50)

    assert all(result.score == 0 and result.passed for _, result in evaluated)
    assert [kpi.score for kpi in kpis] == [50, 50, 50]
    assert all(kpi.dampened for kpi in kpis)


def test_subtitle_rules_for_complementary_subtitle() -> None:
    ctx = _context("Duolingo - Language Lessons", "Learn Spanish, French & more")

    incremental = _run("subtitle_incremental_value", ctx)
    combos = _run("subtitle_combo_coverage", ctx)
    complementarity = _run("subtitle_complementarity", ctx)
    safety = _run("subtitle_transactional_safety", ctx)

    assert incremental.score == 95
    assert incremental.evidence == ("learn", "spanish", "french", "more")
    assert combos.score == 80
    assert combos.passed
    assert complementarity.score == 100
    assert complementarity.message == "Excellent complementarity with title"
    assert safety.score == 100
    assert safety.passed


def test_subtitle_overlap_and_risky_language_fail() -> None:
    overlap = _run("subtitle_complementarity", _context("Duolingo - Language Lessons", "Language Lessons Daily"))
    risky = _run("subtitle_transactional_safety", _context("Duolingo", "Download Free Lessons"))

    assert overlap.score == 33
    assert not overlap.passed
    assert overlap.evidence == ("language", "lessons")
    assert risky.score == 10
    assert not risky.passed
    assert risky.evidence == ("free", "download")


def test_empty_subtitle_rules() -> None:
    ctx = _context("Duolingo")

    for rule in rules_for("subtitle"):
        result = evaluate_rule(rule, "", ctx)
        if rule.rule_id == "subtitle_transactional_safety":
            assert result.passed
            continue
        assert result.score == 0
        assert not result.passed
    assert _run("subtitle_incremental_value", ctx).message == "No subtitle provided"


def test_description_hook_strength() -> None:
    strong = _run("description_hook_strength", _context(description="Discover and master new skills every day."))
    weak = _run("description_hook_strength", _context(description="This app is a list of things."))

    assert strong.score == 90
    assert strong.passed
    assert "time_to_result:every day" in strong.evidence
    assert strong.evidence[:2] == ("learning_educational:master", "learning_educational:discover")
    assert weak.score == 60
    assert not weak.passed


def test_description_length_bands() -> None:
    short = _run("description_length", _context(description=" ".join(["word"] * 60)))
    full = _run("description_length", _context(description=" ".join(["word"] * 150)))
    too_long = _run("description_length", _context(description="x" * 4001))

    assert short.score == 45
    assert short.facts["minWords"] == 150
    assert full.score == 100
    assert full.passed
    assert too_long.score == 0


def test_description_feature_and_cta_counts() -> None:
    features = _run(
        "description_feature_mentions",
        _context(description="Features: smart tools and real benefits. One more feature."),
    )
    ctas = _run("description_cta_strength", _context(description="Try it today. Start now and join us."))

    assert features.score == 60
    assert features.passed
    assert ctas.evidence == ("try", "start", "join")
    assert ctas.score == 75
    assert ctas.passed


def test_readability_uses_flesch_reading_ease() -> None:
    assert count_syllables("cat") == 1
    assert count_syllables("banana") == 3
    assert count_syllables("make") == 1
    assert flesch_reading_ease("") is None
    assert round(flesch_reading_ease("The cat sat. The dog ran."), 2) == 119.19

    result = _run("description_readability", _context(description="The cat sat. The dog ran."))

    assert result.score == 100
    assert result.passed


def test_duplicate_keyword_penalty() -> None:
    filler = "alpha bravo charlie delta echo foxtrot golf hotel india juliet"
    stuffed = _run("description_duplicate_keyword_penalty", _context(description="spanish " * 10 + filler))
    clean = _run("description_duplicate_keyword_penalty", _context(description=filler))

    assert stuffed.score == 80
    assert not stuffed.passed
    assert stuffed.evidence == ("spanish x10",)
    assert clean.score == 100
    assert clean.passed


def test_unknown_rule_ids_become_configuration_gaps() -> None:
    ruleset = _ruleset({"rule_weights": {"bogus_rule": 1.0}, "kpi_weights": {"other_rule": 1.2}})

    gaps = unknown_rule_gaps(ruleset)

    assert [(gap.type, gap.details["ruleId"]) for gap in gaps] == [
        ("unknown_rule_id", "bogus_rule"),
        ("unknown_rule_id", "other_rule"),
    ]
