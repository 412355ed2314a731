"""Search-intent classification from weighted patterns.

Patterns are compiled once into an ``IntentPatternTable`` ordered by priority
(descending) then insertion order. Classification scans the whole table and
accumulates the weight of every matching pattern per intent; the dominant
intent is the highest total, ties going to the intent matched first in table
order.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any

from metadata_audit.config import settings
from metadata_audit.services.ruleset.types import INTENT_TYPES, IntentPattern, MergedRuleSet
from metadata_audit.services.tokenizer import tokenize
from metadata_audit.services.types import ConfigurationGap

logger = logging.getLogger(__name__)

IDEAL_INTENT_MIX: dict[str, float] = {
    "informational": 40.0,
    "commercial": 30.0,
    "transactional": 20.0,
    "navigational": 10.0,
}
TITLE_COVERAGE_WEIGHT = 0.6
SUBTITLE_COVERAGE_WEIGHT = 0.4


@dataclass(frozen=True, slots=True)
class CompiledPattern:
    pattern: IntentPattern
    regex: re.Pattern[str]
    index: int


def compile_pattern(pattern: IntentPattern) -> re.Pattern[str]:
    """Compile one pattern; literal patterns match on word boundaries unless disabled.

    Raises:
        re.error: if a regex pattern does not compile.
    """
    if pattern.is_regex:
        return re.compile(pattern.pattern, re.IGNORECASE)
    parts = tokenize(pattern.pattern)
    if not parts:
        raise re.error("pattern has no word characters")
    source = r"\s+".join(re.escape(part) for part in parts)
    if pattern.word_boundary:
        source = rf"(?<!\w){source}(?!\w)"
    return re.compile(source, re.IGNORECASE)


class IntentPatternTable:
    """Active intent patterns in match order."""

    def __init__(self, patterns: Sequence[IntentPattern]) -> None:
        self.gaps: list[ConfigurationGap] = []
        compiled: list[CompiledPattern] = []
        for index, pattern in enumerate(patterns):
            if not pattern.is_active:
                continue
            try:
                regex = compile_pattern(pattern)
            except re.error as exc:
                self.gaps.append(
                    ConfigurationGap(
                        type="invalid_intent_pattern",
                        message=f"Intent pattern '{pattern.pattern}' is not a valid regex: {exc}",
                        fallback="pattern skipped",
                        details={"pattern": pattern.pattern, "scope": pattern.scope.value},
                    )
                )
                logger.warning(
                    "Skipping invalid intent pattern",
                    extra={"pattern": pattern.pattern, "scope": pattern.scope.value, "error": str(exc)},
                )
                continue
            compiled.append(CompiledPattern(pattern=pattern, regex=regex, index=index))

        compiled.sort(key=lambda item: (-item.pattern.priority, item.index))
        self._patterns: tuple[CompiledPattern, ...] = tuple(compiled)

        if not self._patterns:
            self.gaps.append(
                ConfigurationGap(
                    type="no_intent_patterns",
                    message="No active intent patterns are configured",
                    fallback="fallback classification",
                )
            )
            logger.warning("No active intent patterns; using fallback classification")

    @classmethod
    def from_ruleset(cls, ruleset: MergedRuleSet) -> IntentPatternTable:
        return cls(ruleset.intent_patterns)

    @property
    def fallback_mode(self) -> bool:
        return not self._patterns

    def __iter__(self) -> Iterator[CompiledPattern]:
        return iter(self._patterns)

    def __len__(self) -> int:
        return len(self._patterns)


@dataclass(frozen=True, slots=True)
class IntentClassification:
    text: str
    dominant_intent: str | None
    confidence: float
    intent_scores: dict[str, float] = field(default_factory=dict)
    matched_patterns: tuple[str, ...] = ()
    fallback_mode: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "dominantIntent": self.dominant_intent,
            "confidence": self.confidence,
            "intentScores": self.intent_scores,
            "matchedPatterns": list(self.matched_patterns),
            "fallbackMode": self.fallback_mode,
        }


def _empty_scores() -> dict[str, float]:
    return {intent: 0.0 for intent in INTENT_TYPES}


def mix_score(distribution: dict[str, int]) -> int:
    """Closeness of an intent distribution to the ideal mix, 0-100."""
    classified = sum(distribution.get(intent, 0) for intent in INTENT_TYPES)
    if classified == 0:
        return 0
    distance = sum(
        abs(distribution.get(intent, 0) / classified * 100 - ideal)
        for intent, ideal in IDEAL_INTENT_MIX.items()
    )
    return max(0, round(100 - distance / 2))


class IntentClassifier:
    """Classifies text, keywords and combos against an ``IntentPatternTable``."""

    def __init__(self, table: IntentPatternTable, *, fallback_confidence: float | None = None) -> None:
        self.table = table
        self.fallback_confidence = (
            settings.intent_fallback_confidence if fallback_confidence is None else fallback_confidence
        )

    @property
    def fallback_mode(self) -> bool:
        return self.table.fallback_mode

    def classify(self, text: str) -> IntentClassification:
        normalized = " ".join(tokenize(text))
        if self.table.fallback_mode:
            return IntentClassification(
                text=text,
                dominant_intent=None,
                confidence=self.fallback_confidence,
                intent_scores=_empty_scores(),
                fallback_mode=True,
            )

        scores = _empty_scores()
        first_match: dict[str, int] = {}
        matched: list[str] = []
        for position, compiled in enumerate(self.table):
            if not compiled.regex.search(normalized):
                continue
            intent = compiled.pattern.intent_type
            scores[intent] += compiled.pattern.weight
            first_match.setdefault(intent, position)
            matched.append(compiled.pattern.pattern)

        total = sum(scores.values())
        if total <= 0:
            return IntentClassification(text=text, dominant_intent=None, confidence=0.0, intent_scores=scores)

        dominant = min(first_match, key=lambda intent: (-scores[intent], first_match[intent]))
        return IntentClassification(
            text=text,
            dominant_intent=dominant,
            confidence=round(scores[dominant] / total, 4),
            intent_scores={intent: round(score, 4) for intent, score in scores.items()},
            matched_patterns=tuple(matched),
        )

    def classify_many(self, texts: Sequence[str]) -> list[IntentClassification]:
        return [self.classify(text) for text in texts]

    def element_coverage(self, terms: Sequence[str]) -> dict[str, Any]:
        """Distribution of dominant intents over an element's keywords."""
        distribution = {intent: 0 for intent in INTENT_TYPES}
        unclassified: list[str] = []
        classified: list[dict[str, Any]] = []
        for result in self.classify_many(terms):
            if result.dominant_intent is None:
                unclassified.append(result.text)
                continue
            distribution[result.dominant_intent] += 1
            classified.append(
                {"token": result.text, "intentType": result.dominant_intent, "confidence": result.confidence}
            )

        total = len(terms)
        classified_count = len(classified)
        percentages = {
            intent: round(count / total * 100) if total else 0 for intent, count in distribution.items()
        }
        return {
            "score": round(classified_count / total * 100) if total else 0,
            "totalTokens": total,
            "classifiedTokens": classified_count,
            "unclassifiedTokens": len(unclassified),
            "distribution": {**distribution, "unclassified": len(unclassified)},
            "distributionPercentage": {
                **percentages,
                "unclassified": round(len(unclassified) / total * 100) if total else 0,
            },
            "classifiedTokensList": classified,
            "unclassifiedTokensList": unclassified,
            "mixScore": mix_score(distribution),
            "patternsUsed": len(self.table),
            "fallbackMode": self.fallback_mode,
        }

    def intent_coverage(self, title_terms: Sequence[str], subtitle_terms: Sequence[str]) -> dict[str, Any]:
        """Combined title/subtitle intent coverage."""
        title = self.element_coverage(title_terms)
        subtitle = self.element_coverage(subtitle_terms)
        combined = {
            intent: title["distribution"][intent] + subtitle["distribution"][intent]
            for intent in (*INTENT_TYPES, "unclassified")
        }
        total = len(title_terms) + len(subtitle_terms)
        return {
            "title": title,
            "subtitle": subtitle,
            "overallScore": round(
                title["score"] * TITLE_COVERAGE_WEIGHT + subtitle["score"] * SUBTITLE_COVERAGE_WEIGHT
            ),
            "mixScore": mix_score(combined),
            "idealMix": dict(IDEAL_INTENT_MIX),
            "combinedDistribution": combined,
            "combinedDistributionPercentage": {
                intent: round(count / total * 100) if total else 0 for intent, count in combined.items()
            },
            "fallbackMode": self.fallback_mode,
        }
