"""Metadata audit engine: the single entry point for scoring a listing."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from metadata_audit.config import Settings, settings
from metadata_audit.core.exceptions import MetadataValidationError
from metadata_audit.integrations.fragment_store import build_fragment_store
from metadata_audit.schemas.metadata_audit import AppMetadata
from metadata_audit.services.intent_classifier import IntentClassifier, IntentPatternTable
from metadata_audit.services.keyword_extraction import (
    build_combo_coverage,
    build_keyword_coverage,
    extract_element_terms,
)
from metadata_audit.services.kpi_weighting import build_kpi_scores, weighted_score
from metadata_audit.services.rule_evaluators import (
    REGISTRY_ORDER,
    RuleContext,
    evaluate_rule,
    rules_for,
    unknown_rule_gaps,
)
from metadata_audit.services.ruleset.resolver import RulesetResolver
from metadata_audit.services.ruleset.types import MergedRuleSet, RulesetContext
from metadata_audit.services.transactional_safety import TransactionalSafetyDetector
from metadata_audit.services.types import (
    ELEMENTS,
    AuditResult,
    ElementScore,
    Recommendation,
    RuleEvaluationResult,
)

logger = logging.getLogger(__name__)

MAX_ELEMENT_COMBOS = 10


class _TemplateValues(dict[str, Any]):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def validate_metadata(metadata: AppMetadata | Mapping[str, Any]) -> AppMetadata:
    """Coerce raw input into ``AppMetadata``.

    Raises:
        MetadataValidationError: if the title is missing/empty or a field is invalid.
    """
    if isinstance(metadata, AppMetadata):
        if not metadata.title.strip():
            raise MetadataValidationError(
                "Listing metadata is invalid",
                errors=[{"field": "title", "message": "Title is required"}],
            )
        return metadata
    try:
        return AppMetadata.model_validate(dict(metadata))
    except PydanticValidationError as exc:
        errors = [
            {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
            for error in exc.errors()
        ]
        raise MetadataValidationError("Listing metadata is invalid", errors=errors) from exc


def render_recommendation(
    template: str,
    element: str,
    result: RuleEvaluationResult,
) -> str:
    values = _TemplateValues(
        {
            **result.facts,
            "ruleId": result.rule_id,
            "element": element,
            "score": round(result.score),
            "message": result.message,
            "evidence": ", ".join(result.evidence) or "none",
        }
    )
    try:
        return template.format_map(values)
    except (ValueError, IndexError, KeyError, AttributeError, TypeError):
        logger.warning(
            "Malformed recommendation template; using rule message",
            extra={"rule_id": result.rule_id},
        )
        return result.message


class MetadataAuditEngine:
    """Scores title, subtitle and description against a merged ruleset."""

    def __init__(
        self,
        resolver: RulesetResolver | None = None,
        *,
        app_settings: Settings | None = None,
    ) -> None:
        self.settings = app_settings or settings
        self.resolver = resolver or RulesetResolver()

    @classmethod
    def from_settings(cls, app_settings: Settings | None = None) -> MetadataAuditEngine:
        """Engine wired to the fragment store and cache selected by settings."""
        app_settings = app_settings or settings
        store = build_fragment_store(app_settings)
        return cls(RulesetResolver.from_settings(store, app_settings), app_settings=app_settings)

    def resolve_ruleset(self, metadata: AppMetadata) -> MergedRuleSet:
        context = RulesetContext(
            locale=metadata.locale,
            app_id=metadata.app_id,
            category=metadata.category,
            organization_id=metadata.organization_id,
            vertical=metadata.vertical,
            title=metadata.title,
            subtitle=metadata.subtitle,
            description=metadata.description,
        )
        return self.resolver.resolve(context)

    def evaluate(
        self,
        metadata: AppMetadata | Mapping[str, Any],
        *,
        ruleset: MergedRuleSet | None = None,
        top_n: int | None = None,
    ) -> AuditResult:
        """Run the full audit.

        Args:
            metadata: Listing metadata (model or camelCase/snake_case mapping).
            ruleset: Pre-resolved ruleset; resolved from the context when omitted.
            top_n: Number of recommendations to return.

        Returns:
            The complete ``AuditResult``.

        Raises:
            MetadataValidationError: before any scoring when the input is invalid.
        """
        app = validate_metadata(metadata)
        if ruleset is None:
            ruleset = self.resolve_ruleset(app)

        table = IntentPatternTable.from_ruleset(ruleset)
        classifier = IntentClassifier(table, fallback_confidence=self.settings.intent_fallback_confidence)
        detector = TransactionalSafetyDetector.from_ruleset(ruleset, app_settings=self.settings)

        texts = {"title": app.title, "subtitle": app.subtitle, "description": app.description}
        terms = extract_element_terms(texts, ruleset)
        context = RuleContext(
            ruleset=ruleset,
            platform=app.platform,
            texts=texts,
            terms=terms,
            classifier=classifier,
            transactional=detector,
        )
        gaps = [*table.gaps, *unknown_rule_gaps(ruleset)]

        elements: dict[str, ElementScore] = {}
        for element in ELEMENTS:
            evaluated = [(rule, evaluate_rule(rule, texts[element], context)) for rule in rules_for(element)]
            kpis = build_kpi_scores(
                evaluated,
                ruleset,
                fallback_mode=classifier.fallback_mode,
                fallback_floor=self.settings.intent_fallback_floor,
            )
            element_terms = terms[element]
            elements[element] = ElementScore(
                element=element,
                score=weighted_score(kpis),
                rule_results=tuple(result for _, result in evaluated),
                character_usage=len(texts[element]),
                max_characters=ruleset.max_characters(app.platform, element),
                kpis=tuple(kpis),
                keywords=element_terms.keywords,
                combos=element_terms.combos[:MAX_ELEMENT_COMBOS],
                ignored_keywords=element_terms.ignored,
            )

        ranking_terms = [
            *terms["title"].keywords,
            *terms["title"].combos,
            *terms["subtitle"].new_keywords,
            *terms["subtitle"].new_combos,
        ]
        transactional_safety = {
            "title": detector.analyze(app.title).to_dict(),
            "subtitle": detector.analyze(app.subtitle).to_dict(),
            "terms": detector.analyze_batch(ranking_terms).to_dict(),
        }

        limit = self.settings.recommendation_limit if top_n is None else top_n
        result = AuditResult(
            overall_score=self.overall_score(elements, ruleset),
            elements=elements,
            keyword_coverage=build_keyword_coverage(terms, ruleset),
            combo_coverage=build_combo_coverage(terms),
            top_recommendations=tuple(self.recommendations(elements, ruleset, limit=limit)),
            intent_coverage=classifier.intent_coverage(terms["title"].keywords, terms["subtitle"].keywords),
            transactional_safety=transactional_safety,
            leak_warnings=tuple(warning.to_dict() for warning in ruleset.leak_warnings),
            inheritance_chain={group: scope.value for group, scope in ruleset.inheritance_chain.items()},
            scope_sources={scope.value: source for scope, source in ruleset.scope_sources.items()},
            configuration_gaps=tuple(gaps),
        )

        logger.info(
            "Metadata audit completed",
            extra={
                "app_id": app.app_id,
                "locale": app.locale,
                "platform": app.platform,
                "overall_score": result.overall_score,
                "leak_warnings": len(result.leak_warnings),
                "configuration_gaps": len(result.configuration_gaps),
            },
        )
        return result

    @staticmethod
    def _element_shares(ruleset: MergedRuleSet) -> dict[str, float]:
        weights = {element: max(0.0, ruleset.element_weights.get(element, 0.0)) for element in ELEMENTS}
        total = sum(weights.values())
        if total <= 0:
            return {element: 1 / len(ELEMENTS) for element in ELEMENTS}
        return {element: weight / total for element, weight in weights.items()}

    def overall_score(self, elements: dict[str, ElementScore], ruleset: MergedRuleSet) -> int:
        shares = self._element_shares(ruleset)
        value = sum(elements[element].score * shares[element] for element in ELEMENTS)
        return max(0, min(100, round(value)))

    def recommendations(
        self,
        elements: dict[str, ElementScore],
        ruleset: MergedRuleSet,
        *,
        limit: int,
    ) -> list[Recommendation]:
        """Failing rules ordered by severity, then registry order."""
        shares = self._element_shares(ruleset)
        candidates: list[Recommendation] = []
        for element in ELEMENTS:
            element_score = elements[element]
            rule_total = sum(kpi.effective_weight for kpi in element_score.kpis)
            for result, kpi in zip(element_score.rule_results, element_score.kpis):
                if result.passed:
                    continue
                rule_share = kpi.effective_weight / rule_total if rule_total > 0 else 0.0
                severity = shares[element] * rule_share * (100 - result.score)
                template = ruleset.recommendation_templates.get(result.rule_id)
                message = (
                    render_recommendation(template.message, element, result)
                    if template is not None
                    else result.message
                )
                candidates.append(
                    Recommendation(
                        element=element,
                        rule_id=result.rule_id,
                        severity=round(severity, 4),
                        message=f"[{element.upper()}] {message}",
                    )
                )

        candidates.sort(key=lambda rec: (-rec.severity, REGISTRY_ORDER[rec.rule_id]))
        return candidates[: max(0, limit)]
