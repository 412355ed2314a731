"""Result types produced by one audit evaluation.

All values are frozen and built fresh per call; ``to_dict`` renders the
camelCase JSON contract consumed by the dashboard.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from metadata_audit.services.ruleset.types import KpiProvenanceEntry

ELEMENTS: tuple[str, ...] = ("title", "subtitle", "description")


@dataclass(frozen=True, slots=True)
class ConfigurationGap:
    """Non-fatal configuration problem with the fallback that was applied."""

    type: str
    message: str
    fallback: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "message": self.message,
            "fallback": self.fallback,
            "details": self.details,
        }


@dataclass(frozen=True, slots=True)
class RuleEvaluationResult:
    rule_id: str
    score: float
    passed: bool
    message: str
    evidence: tuple[str, ...] = ()
    # Numeric facts used to fill recommendation templates.
    facts: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ruleId": self.rule_id,
            "score": self.score,
            "passed": self.passed,
            "message": self.message,
            "evidence": list(self.evidence),
        }


@dataclass(frozen=True, slots=True)
class KpiScore:
    """A rule result weighted for its element score."""

    rule_id: str
    weight: float
    effective_weight: float
    override_multiplier: float
    score: float
    provenance: tuple[KpiProvenanceEntry, ...] = ()
    dampened: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "ruleId": self.rule_id,
            "weight": self.weight,
            "effectiveWeight": self.effective_weight,
            "overrideMultiplier": self.override_multiplier,
            "score": self.score,
            "dampened": self.dampened,
            "provenance": [entry.to_dict() for entry in self.provenance],
        }


@dataclass(frozen=True, slots=True)
class ElementScore:
    element: str
    score: int
    rule_results: tuple[RuleEvaluationResult, ...]
    character_usage: int
    max_characters: int
    kpis: tuple[KpiScore, ...] = ()
    keywords: tuple[str, ...] = ()
    combos: tuple[str, ...] = ()
    ignored_keywords: tuple[str, ...] = ()

    @property
    def noise_ratio(self) -> float:
        total = len(self.keywords) + len(self.ignored_keywords)
        return round(len(self.ignored_keywords) / total, 4) if total else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "element": self.element,
            "score": self.score,
            "ruleResults": [result.to_dict() for result in self.rule_results],
            "kpis": [kpi.to_dict() for kpi in self.kpis],
            "recommendations": [result.message for result in self.rule_results if not result.passed],
            "insights": [
                result.message for result in self.rule_results if result.passed and result.evidence
            ],
            "metadata": {
                "characterUsage": self.character_usage,
                "maxCharacters": self.max_characters,
                "keywords": list(self.keywords),
                "combos": list(self.combos),
                "ignoredKeywords": list(self.ignored_keywords),
                "noiseRatio": self.noise_ratio,
            },
        }


@dataclass(frozen=True, slots=True)
class Recommendation:
    element: str
    rule_id: str
    severity: float
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "element": self.element,
            "ruleId": self.rule_id,
            "severity": self.severity,
            "message": self.message,
        }


@dataclass(frozen=True, slots=True)
class KeywordCoverage:
    total_unique_keywords: int
    title_keywords: tuple[str, ...]
    subtitle_new_keywords: tuple[str, ...]
    description_new_keywords: tuple[str, ...]
    title_ignored_count: int = 0
    subtitle_ignored_count: int = 0
    description_ignored_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalUniqueKeywords": self.total_unique_keywords,
            "titleKeywords": list(self.title_keywords),
            "subtitleNewKeywords": list(self.subtitle_new_keywords),
            "descriptionNewKeywords": list(self.description_new_keywords),
            "titleIgnoredCount": self.title_ignored_count,
            "subtitleIgnoredCount": self.subtitle_ignored_count,
            "descriptionIgnoredCount": self.description_ignored_count,
        }


@dataclass(frozen=True, slots=True)
class ComboCoverage:
    total_combos: int
    title_combos: tuple[str, ...]
    subtitle_new_combos: tuple[str, ...]
    description_new_combos: tuple[str, ...]

    @property
    def all_combined_combos(self) -> tuple[str, ...]:
        return self.title_combos + self.subtitle_new_combos

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalCombos": self.total_combos,
            "titleCombos": list(self.title_combos),
            "subtitleNewCombos": list(self.subtitle_new_combos),
            "descriptionNewCombos": list(self.description_new_combos),
            "allCombinedCombos": list(self.all_combined_combos),
        }


@dataclass(frozen=True, slots=True)
class AuditResult:
    """Complete audit output for one listing."""

    overall_score: int
    elements: dict[str, ElementScore]
    keyword_coverage: KeywordCoverage
    combo_coverage: ComboCoverage
    top_recommendations: tuple[Recommendation, ...]
    intent_coverage: dict[str, Any]
    transactional_safety: dict[str, Any]
    leak_warnings: tuple[dict[str, Any], ...] = ()
    inheritance_chain: dict[str, str] = field(default_factory=dict)
    scope_sources: dict[str, str | None] = field(default_factory=dict)
    configuration_gaps: tuple[ConfigurationGap, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "overallScore": self.overall_score,
            "elements": {name: element.to_dict() for name, element in self.elements.items()},
            "keywordCoverage": self.keyword_coverage.to_dict(),
            "comboCoverage": self.combo_coverage.to_dict(),
            "topRecommendations": [rec.message for rec in self.top_recommendations],
            "recommendationDetails": [rec.to_dict() for rec in self.top_recommendations],
            "intentCoverage": self.intent_coverage,
            "transactionalSafety": self.transactional_safety,
            "diagnostics": {
                "leakWarnings": list(self.leak_warnings),
                "inheritanceChain": self.inheritance_chain,
                "scopeSources": self.scope_sources,
                "provenance": {
                    kpi.rule_id: [entry.to_dict() for entry in kpi.provenance]
                    for element in self.elements.values()
                    for kpi in element.kpis
                },
                "configurationGaps": [gap.to_dict() for gap in self.configuration_gaps],
            },
        }
