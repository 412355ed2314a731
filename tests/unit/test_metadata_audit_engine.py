"""Unit tests for the metadata audit engine."""

import json
from dataclasses import replace

import pytest

from metadata_audit.config import Settings
from metadata_audit.core.exceptions import MetadataValidationError
from metadata_audit.integrations.fragment_store import InMemoryFragmentStore
from metadata_audit.schemas.metadata_audit import AppMetadata
from metadata_audit.services.metadata_audit import MetadataAuditEngine, render_recommendation
from metadata_audit.services.rule_evaluators import REGISTRY_ORDER
from metadata_audit.services.ruleset.resolver import RulesetResolver
from metadata_audit.services.ruleset.types import RulesetContext, Scope
from metadata_audit.services.types import RuleEvaluationResult

DUOLINGO = {
    "title": "Duolingo - Language Lessons",
    "subtitle": "Learn Spanish, French & more",
    "description": (
        "Learn a new language with the world's most popular language app. "
        "Practice speaking, reading and listening with quick, fun lessons. "
        "Start today and join millions of learners."
    ),
    "applicationCategory": "Education",
    "locale": "en-US",
    "platform": "ios",
}


def _engine(store: InMemoryFragmentStore | None = None, **settings_overrides) -> MetadataAuditEngine:
    return MetadataAuditEngine(
        RulesetResolver(store or InMemoryFragmentStore()),
        app_settings=Settings(**settings_overrides),
    )


def test_duolingo_listing_end_to_end() -> None:
    result = _engine().evaluate(DUOLINGO)
    payload = result.to_dict()

    assert 0 <= result.overall_score <= 100
    assert set(payload["elements"]) == {"title", "subtitle", "description"}
    assert payload["keywordCoverage"]["titleKeywords"] == ["duolingo", "language", "lessons"]
    assert payload["keywordCoverage"]["subtitleNewKeywords"] == ["learn", "spanish", "french", "more"]
    assert payload["comboCoverage"]["titleCombos"][0] == "duolingo language"
    assert payload["elements"]["title"]["metadata"]["characterUsage"] == 27
    assert payload["elements"]["title"]["metadata"]["maxCharacters"] == 30
    assert payload["intentCoverage"]["fallbackMode"] is False
    assert payload["transactionalSafety"]["subtitle"]["safety"] is None
    assert payload["diagnostics"]["leakWarnings"] == []
    assert payload["diagnostics"]["inheritanceChain"]["stopwords"] == "base"
    assert payload["diagnostics"]["scopeSources"]["base"] == "base-v1"
    assert len(payload["topRecommendations"]) <= 5
    assert all(message.startswith("[") for message in payload["topRecommendations"])
    json.dumps(payload)


def test_element_scores_stay_in_range() -> None:
    result = _engine().evaluate(DUOLINGO)

    for element in result.elements.values():
        assert 0 <= element.score <= 100
        assert len(element.kpis) == len(element.rule_results)


def test_evaluation_is_deterministic() -> None:
    engine = _engine()

    assert engine.evaluate(DUOLINGO).to_dict() == engine.evaluate(DUOLINGO).to_dict()


def test_missing_title_is_rejected_before_scoring() -> None:
    engine = _engine()

    with pytest.raises(MetadataValidationError) as exc_info:
        engine.evaluate({"title": "   ", "subtitle": "Anything"})
    assert exc_info.value.errors[0]["field"] == "title"

    with pytest.raises(MetadataValidationError):
        engine.evaluate({"subtitle": "No title"})


def test_unknown_platform_is_rejected() -> None:
    with pytest.raises(MetadataValidationError) as exc_info:
        _engine().evaluate({"title": "Photo Editor", "platform": "windows"})

    assert exc_info.value.errors[0]["field"] == "platform"


def test_empty_optional_elements_score_zero() -> None:
    result = _engine().evaluate({"title": "Photo Editor Studio!", "subtitle": None})

    subtitle = result.elements["subtitle"]
    description = result.elements["description"]
    assert description.score == 0
    assert subtitle.character_usage == 0
    assert {r.rule_id for r in subtitle.rule_results if r.passed} == {"subtitle_transactional_safety"}


def test_recommendations_are_sorted_and_limited() -> None:
    engine = _engine()
    metadata = {"title": "The App", "subtitle": "Download free now"}

    everything = engine.evaluate(metadata, top_n=50).top_recommendations
    limited = engine.evaluate(metadata, top_n=2).top_recommendations

    assert len(limited) == 2
    assert limited == everything[:2]
    keys = [(-rec.severity, REGISTRY_ORDER[rec.rule_id]) for rec in everything]
    assert keys == sorted(keys)
    assert all(rec.severity > 0 for rec in everything)
    assert {rec.element for rec in everything} == {"title", "subtitle", "description"}


def test_default_recommendation_limit_comes_from_settings() -> None:
    result = _engine(recommendation_limit=3).evaluate({"title": "The App"})

    assert len(result.top_recommendations) == 3


def test_app_template_is_rendered_with_rule_facts() -> None:
    store = InMemoryFragmentStore({
        (Scope.APP, "photo-1"): {
            "recommendation_templates": {
                "title_character_usage": "Fix {ruleId}: {characterUsage}/{maxCharacters} scored {score} {unknown}",
            }
        }
    })

    result = _engine(store).evaluate({"appId": "photo-1", "title": "Photo Editor Studio!"}, top_n=50)

    messages = [rec.message for rec in result.top_recommendations if rec.rule_id == "title_character_usage"]
    assert messages == ["[TITLE] Fix title_character_usage: 20/30 scored 60 {unknown}"]
    assert result.scope_sources["app"] == "photo-1"


def test_malformed_template_falls_back_to_rule_message() -> None:
    rule_result = RuleEvaluationResult(
        rule_id="title_character_usage", score=60, passed=False, message="Using 20/30 characters (67%)"
    )

    assert render_recommendation("Broken {template", "title", rule_result) == "Using 20/30 characters (67%)"
    assert render_recommendation("{evidence}", "title", rule_result) == "none"


def test_template_indexing_a_number_falls_back_to_rule_message() -> None:
    store = InMemoryFragmentStore({
        (Scope.APP, "a1"): {
            "recommendation_templates": {"title_character_usage": "Use more: {characterUsage[0]}"},
        }
    })

    result = _engine(store).evaluate({"appId": "a1", "title": "Photo Editor Studio!"}, top_n=50)

    messages = [rec.message for rec in result.top_recommendations if rec.rule_id == "title_character_usage"]
    assert messages == ["[TITLE] Using 20/30 characters (67%)"]


def test_zero_top_n_returns_no_recommendations() -> None:
    result = _engine(recommendation_limit=3).evaluate({"title": "The App"}, top_n=0)

    assert result.top_recommendations == ()


def test_leaking_template_is_reported_and_not_used() -> None:
    store = InMemoryFragmentStore({
        (Scope.CLIENT, "acme"): {
            "recommendation_templates": {"title_character_usage": "Try keywords like 'learn spanish'."},
        }
    })

    result = _engine(store).evaluate(
        {"title": "Budget Tracker", "category": "Finance", "organizationId": "acme"},
        top_n=50,
    )

    assert [warning["type"] for warning in result.leak_warnings] == ["recommendation_leak"]
    assert not any("learn spanish" in rec.message for rec in result.top_recommendations)


def test_fallback_mode_dampens_intent_alignment() -> None:
    engine = _engine()
    app = AppMetadata(title="Duolingo - Language Lessons")
    ruleset = replace(engine.resolver.resolve(RulesetContext(locale="en-US")), intent_patterns=())

    dampened = engine.evaluate(app, ruleset=ruleset)
    undampened = _engine(intent_fallback_floor=0).evaluate(app, ruleset=ruleset)

    alignment = next(k for k in dampened.elements["title"].kpis if k.rule_id == "title_intent_alignment")
    assert alignment.dampened
    assert alignment.score == 50
    assert [gap.type for gap in dampened.configuration_gaps] == ["no_intent_patterns"]
    assert dampened.intent_coverage["fallbackMode"] is True
    assert dampened.elements["title"].score >= undampened.elements["title"].score


def test_element_weights_drive_overall_score() -> None:
    store = InMemoryFragmentStore({
        (Scope.APP, "title-only"): {"element_weights": {"title": 1.0, "subtitle": 0.0, "description": 0.0}},
    })

    result = _engine(store).evaluate({"appId": "title-only", "title": "Duolingo - Language Lessons"})

    assert result.overall_score == result.elements["title"].score
