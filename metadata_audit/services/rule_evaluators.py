"""Rule evaluators for title, subtitle and description.

Each rule is a pure function ``(text, context, thresholds) -> RuleEvaluationResult``
registered in ``RULE_REGISTRY``; registry order is also the tie-break order
for recommendations. Thresholds come from the merged ruleset's
``rule_thresholds`` entry for the rule.
"""

from __future__ import annotations

import logging
import math
import re
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass

from metadata_audit.services.intent_classifier import IntentClassifier
from metadata_audit.services.keyword_extraction import ElementTerms
from metadata_audit.services.ruleset.types import INTENT_TYPES, MergedRuleSet
from metadata_audit.services.tokenizer import tokenize, unique
from metadata_audit.services.transactional_safety import TransactionalSafetyDetector, normalize_phrase
from metadata_audit.services.types import ConfigurationGap, RuleEvaluationResult

logger = logging.getLogger(__name__)

_FEATURE_RE = re.compile(r"\b(?:features?|tools?|functions?|capabilit(?:y|ies)|benefits?)\b", re.IGNORECASE)
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
_VOWELS = "aeiouy"
REQUIRED_INTENTS: tuple[str, ...] = ("informational", "commercial", "transactional")


@dataclass(frozen=True, slots=True)
class RuleContext:
    """Everything a rule may read besides its own element text."""

    ruleset: MergedRuleSet
    platform: str
    texts: dict[str, str]
    terms: dict[str, ElementTerms]
    classifier: IntentClassifier
    transactional: TransactionalSafetyDetector

    def max_characters(self, element: str) -> int:
        return self.ruleset.max_characters(self.platform, element)


Thresholds = dict[str, float]
RuleEvaluator = Callable[[str, RuleContext, Thresholds], RuleEvaluationResult]


@dataclass(frozen=True, slots=True)
class RuleDefinition:
    rule_id: str
    element: str
    evaluator: RuleEvaluator
    intent_derived: bool = False


def _missing(rule_id: str, element: str) -> RuleEvaluationResult:
    return RuleEvaluationResult(rule_id=rule_id, score=0, passed=False, message=f"No {element} provided")


def _band(value: int, bands: tuple[tuple[int, int], ...], top: int) -> int:
    """Score for the first ``(upper_bound, score)`` band containing ``value``."""
    for upper, score in bands:
        if value <= upper:
            return score
    return top


def _phrase_count(phrase: str, normalized: str) -> int:
    parts = tokenize(phrase)
    if not parts:
        return 0
    regex = r"(?<!\w)" + r"\s+".join(re.escape(part) for part in parts) + r"(?!\w)"
    return len(re.findall(regex, normalized))


def count_syllables(word: str) -> int:
    word = re.sub(r"[^a-z]", "", word.lower())
    if not word:
        return 0
    if len(word) <= 3:
        return 1
    count = 0
    previous_vowel = False
    for char in word:
        is_vowel = char in _VOWELS
        if is_vowel and not previous_vowel:
            count += 1
        previous_vowel = is_vowel
    if word.endswith("e") and count > 1:
        count -= 1
    return max(1, count)


def flesch_reading_ease(text: str) -> float | None:
    """Flesch reading ease, or None when there is nothing to measure."""
    sentences = [part for part in _SENTENCE_SPLIT_RE.split(text) if part.strip()]
    words = text.split()
    if not sentences or not words:
        return None
    syllables = sum(count_syllables(word) for word in words)
    return 206.835 - 1.015 * (len(words) / len(sentences)) - 84.6 * (syllables / len(words))


# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------


def _character_usage(rule_id: str, element: str) -> RuleEvaluator:
    def evaluate(text: str, ctx: RuleContext, thresholds: Thresholds) -> RuleEvaluationResult:
        chars = len(text)
        max_chars = ctx.max_characters(element)
        low = thresholds.get("low", 0.7)
        high = thresholds.get("high", 1.0)
        ratio = chars / max_chars if max_chars else 0.0

        if chars == 0:
            score = 0
        elif ratio < 0.5:
            score = 40
        elif ratio < low:
            score = 60
        elif ratio < 0.9:
            score = 85
        elif ratio <= 1.0:
            score = 100
        else:
            score = 0

        percent = round(ratio * 100)
        return RuleEvaluationResult(
            rule_id=rule_id,
            score=score,
            passed=chars > 0 and low <= ratio <= high,
            message=(
                f"Using {chars}/{max_chars} characters ({percent}%)" if chars else f"No {element} set"
            ),
            facts={"characterUsage": chars, "maxCharacters": max_chars, "usagePercent": percent},
        )

    return evaluate


# ---------------------------------------------------------------------------
# Title
# ---------------------------------------------------------------------------


def title_keyword_density(text: str, ctx: RuleContext, thresholds: Thresholds) -> RuleEvaluationResult:
    terms = ctx.terms["title"]
    keyword_count = len(terms.keywords)
    density = keyword_count / len(terms.tokens) if terms.tokens else 0.0
    score = min(100, min(80, keyword_count * 20) + round(density * 20))
    return RuleEvaluationResult(
        rule_id="title_keyword_density",
        score=score,
        passed=keyword_count >= thresholds.get("min_keywords", 2),
        message=f"{keyword_count} unique keywords ({round(density * 100)}% keyword density)",
        evidence=terms.keywords,
        facts={"keywordCount": keyword_count},
    )


def title_combo_coverage(text: str, ctx: RuleContext, thresholds: Thresholds) -> RuleEvaluationResult:
    combos = ctx.terms["title"].combos
    count = len(combos)
    return RuleEvaluationResult(
        rule_id="title_combo_coverage",
        score=_band(count, ((0, 20), (2, 50), (5, 75)), 90),
        passed=count >= thresholds.get("min_combos", 2),
        message=f"{count} meaningful keyword combinations",
        evidence=combos[:5],
        facts={"comboCount": count},
    )


def title_filler_penalty(text: str, ctx: RuleContext, thresholds: Thresholds) -> RuleEvaluationResult:
    terms = ctx.terms["title"]
    if not terms.tokens:
        return RuleEvaluationResult(
            rule_id="title_filler_penalty", score=0, passed=False, message="Title has no words"
        )
    max_ratio = thresholds.get("max_filler_ratio", 0.3)
    ratio = len(terms.ignored) / len(terms.tokens)
    if ratio > 0.5:
        penalty = 30
    elif ratio > max_ratio:
        penalty = 15
    else:
        penalty = 0
    percent = round(ratio * 100)
    return RuleEvaluationResult(
        rule_id="title_filler_penalty",
        score=max(0, 100 - penalty),
        passed=ratio <= max_ratio,
        message=f"{len(terms.ignored)} filler tokens ({percent}% noise ratio)",
        evidence=tuple(unique(terms.ignored)),
        facts={"fillerPercent": percent},
    )


def title_intent_alignment(text: str, ctx: RuleContext, thresholds: Thresholds) -> RuleEvaluationResult:
    if ctx.classifier.fallback_mode:
        return RuleEvaluationResult(
            rule_id="title_intent_alignment",
            score=0,
            passed=True,
            message="Intent patterns unavailable; alignment not evaluated",
        )
    coverage = ctx.classifier.element_coverage(ctx.terms["title"].keywords)
    score = coverage["score"]
    return RuleEvaluationResult(
        rule_id="title_intent_alignment",
        score=score,
        passed=score >= thresholds.get("min_score", 30),
        message=f"{coverage['classifiedTokens']}/{coverage['totalTokens']} title keywords carry a search intent",
        evidence=tuple(f"{item['token']}:{item['intentType']}" for item in coverage["classifiedTokensList"]),
        facts={"classifiedCount": coverage["classifiedTokens"]},
    )


# Listing-wide intent quality over title and subtitle keywords. Scored with
# the title because it is the one element always present.


def _intent_not_evaluated(rule_id: str) -> RuleEvaluationResult:
    return RuleEvaluationResult(
        rule_id=rule_id,
        score=0,
        passed=True,
        message="Intent patterns unavailable; intent mix not evaluated",
    )


def _combined_intent_counts(ctx: RuleContext) -> dict[str, int]:
    coverage = ctx.classifier.intent_coverage(ctx.terms["title"].keywords, ctx.terms["subtitle"].keywords)
    distribution = coverage["combinedDistribution"]
    return {intent: distribution[intent] for intent in INTENT_TYPES}


def intent_balance(text: str, ctx: RuleContext, thresholds: Thresholds) -> RuleEvaluationResult:
    """Normalized Shannon entropy of the classified intent mix."""
    if ctx.classifier.fallback_mode:
        return _intent_not_evaluated("intent_balance")
    counts = _combined_intent_counts(ctx)
    total = sum(counts.values())
    entropy = 0.0
    for count in counts.values():
        if count:
            share = count / total
            entropy -= share * math.log2(share)
    score = round(entropy / math.log2(len(INTENT_TYPES)) * 100) if total else 0
    return RuleEvaluationResult(
        rule_id="intent_balance",
        score=score,
        passed=score >= thresholds.get("min_score", 50),
        message=f"Intent balance {score}/100 across {total} classified keywords",
        evidence=tuple(f"{intent}:{count}" for intent, count in counts.items() if count),
        facts={"classifiedCount": total},
    )


def intent_diversity(text: str, ctx: RuleContext, thresholds: Thresholds) -> RuleEvaluationResult:
    if ctx.classifier.fallback_mode:
        return _intent_not_evaluated("intent_diversity")
    present = tuple(intent for intent, count in _combined_intent_counts(ctx).items() if count)
    score = round(len(present) / len(INTENT_TYPES) * 100)
    return RuleEvaluationResult(
        rule_id="intent_diversity",
        score=score,
        passed=score >= thresholds.get("min_score", 50),
        message=f"{len(present)} of {len(INTENT_TYPES)} search intents covered",
        evidence=present,
        facts={"intentTypeCount": len(present)},
    )


def intent_gap(text: str, ctx: RuleContext, thresholds: Thresholds) -> RuleEvaluationResult:
    """Missing informational, commercial or transactional intent; navigational is not required."""
    if ctx.classifier.fallback_mode:
        return _intent_not_evaluated("intent_gap")
    counts = _combined_intent_counts(ctx)
    missing = tuple(intent for intent in REQUIRED_INTENTS if not counts[intent])
    gap_index = round(len(missing) / len(REQUIRED_INTENTS) * 100)
    return RuleEvaluationResult(
        rule_id="intent_gap",
        score=100 - gap_index,
        passed=gap_index <= thresholds.get("max_gap_index", 34),
        message=f"Missing intents: {', '.join(missing)}" if missing else "No missing search intents",
        evidence=missing,
        facts={"gapIndex": gap_index},
    )


# ---------------------------------------------------------------------------
# Subtitle
# ---------------------------------------------------------------------------


def subtitle_incremental_value(text: str, ctx: RuleContext, thresholds: Thresholds) -> RuleEvaluationResult:
    if not text.strip():
        return _missing("subtitle_incremental_value", "subtitle")
    new_keywords = ctx.terms["subtitle"].new_keywords
    count = len(new_keywords)
    return RuleEvaluationResult(
        rule_id="subtitle_incremental_value",
        score=_band(count, ((0, 20), (1, 50), (2, 75)), 95),
        passed=count >= thresholds.get("min_new_keywords", 2),
        message=f"{count} new keywords not already in the title",
        evidence=new_keywords,
        facts={"newKeywordCount": count},
    )


def subtitle_combo_coverage(text: str, ctx: RuleContext, thresholds: Thresholds) -> RuleEvaluationResult:
    if not text.strip():
        return _missing("subtitle_combo_coverage", "subtitle")
    new_combos = ctx.terms["subtitle"].new_combos
    count = len(new_combos)
    return RuleEvaluationResult(
        rule_id="subtitle_combo_coverage",
        score=_band(count, ((0, 20), (2, 50), (5, 80)), 95),
        passed=count >= thresholds.get("min_new_combos", 2),
        message=f"{count} new keyword combinations",
        evidence=new_combos[:5],
        facts={"newComboCount": count},
    )


def subtitle_complementarity(text: str, ctx: RuleContext, thresholds: Thresholds) -> RuleEvaluationResult:
    if not text.strip():
        return _missing("subtitle_complementarity", "subtitle")
    subtitle_keywords = ctx.terms["subtitle"].keywords
    title_keywords = set(ctx.terms["title"].keywords)
    overlap = tuple(keyword for keyword in subtitle_keywords if keyword in title_keywords)
    ratio = len(overlap) / len(subtitle_keywords) if subtitle_keywords else 0.0

    if ratio < 0.3:
        message = "Excellent complementarity with title"
    elif ratio < 0.5:
        message = "Good complementarity"
    else:
        message = "Too much overlap with title"

    return RuleEvaluationResult(
        rule_id="subtitle_complementarity",
        score=round((1 - ratio) * 100),
        passed=ratio < thresholds.get("max_overlap", 0.4),
        message=message,
        evidence=overlap,
        facts={"overlapPercent": round(ratio * 100)},
    )


def subtitle_transactional_safety(text: str, ctx: RuleContext, thresholds: Thresholds) -> RuleEvaluationResult:
    result = ctx.transactional.analyze(text)
    if result.safety == "risky":
        return RuleEvaluationResult(
            rule_id="subtitle_transactional_safety",
            score=result.safety_score,
            passed=False,
            message=f"Risky call-to-action language: {', '.join(result.risk_flags)}",
            evidence=result.risk_flags,
            facts={"riskScore": result.risk_score},
        )
    return RuleEvaluationResult(
        rule_id="subtitle_transactional_safety",
        score=100,
        passed=True,
        message="No risky call-to-action language",
        evidence=result.safe_flags,
    )


# ---------------------------------------------------------------------------
# Description
# ---------------------------------------------------------------------------


def description_hook_strength(text: str, ctx: RuleContext, thresholds: Thresholds) -> RuleEvaluationResult:
    if not text.strip():
        return _missing("description_hook_strength", "description")

    opening = next((line for line in text.splitlines() if line.strip()), "")
    normalized = " ".join(tokenize(opening))
    weighted = 0.0
    evidence: list[str] = []
    for category, group in ctx.ruleset.hook_patterns.items():
        for phrase in group.phrases:
            occurrences = _phrase_count(phrase, normalized)
            if occurrences:
                weighted += group.weight * occurrences
                evidence.append(f"{category}:{phrase}")

    first_sentence = opening.split(".")[0].strip()
    strong_opening = 50 <= len(first_sentence) <= 150
    score = min(100, 60 + (10 if strong_opening else 0) + min(30, round(15 * weighted)))
    return RuleEvaluationResult(
        rule_id="description_hook_strength",
        score=score,
        passed=score >= thresholds.get("min_score", 70),
        message=(
            "Strong opening hook detected" if evidence else "Consider adding compelling hook words in the first sentence"
        ),
        evidence=tuple(evidence),
        facts={"hookWeight": round(weighted, 2)},
    )


def description_length(text: str, ctx: RuleContext, thresholds: Thresholds) -> RuleEvaluationResult:
    words = len(text.split())
    if words == 0:
        return _missing("description_length", "description")
    chars = len(text)
    max_chars = ctx.max_characters("description")
    min_words = int(thresholds.get("min_words", 150))
    facts = {"wordCount": words, "minWords": min_words, "characterUsage": chars, "maxCharacters": max_chars}

    if max_chars and chars > max_chars:
        return RuleEvaluationResult(
            rule_id="description_length",
            score=0,
            passed=False,
            message=f"Description exceeds {max_chars} characters ({chars})",
            facts=facts,
        )

    if words < 50:
        score = 20
    elif words < 100:
        score = 45
    elif words < min_words:
        score = 70
    else:
        score = 100
    return RuleEvaluationResult(
        rule_id="description_length",
        score=score,
        passed=words >= min_words,
        message=f"{words} words, {chars}/{max_chars} characters",
        facts=facts,
    )


def description_feature_mentions(text: str, ctx: RuleContext, thresholds: Thresholds) -> RuleEvaluationResult:
    if not text.strip():
        return _missing("description_feature_mentions", "description")
    count = len(_FEATURE_RE.findall(text))
    return RuleEvaluationResult(
        rule_id="description_feature_mentions",
        score=min(100, count * 15),
        passed=count >= thresholds.get("min_mentions", 3),
        message=f"{count} feature mention{'' if count == 1 else 's'}",
        facts={"featureCount": count},
    )


def description_cta_strength(text: str, ctx: RuleContext, thresholds: Thresholds) -> RuleEvaluationResult:
    if not text.strip():
        return _missing("description_cta_strength", "description")
    normalized = normalize_phrase(text)
    verbs = unique(normalize_phrase(verb) for verb in ctx.ruleset.transactional_keywords.get("safe", ()))
    found = tuple(verb for verb in verbs if verb and verb in normalized)
    count = len(found)
    return RuleEvaluationResult(
        rule_id="description_cta_strength",
        score=min(100, count * 25),
        passed=count >= thresholds.get("min_ctas", 2),
        message=f"{count} CTA{'' if count == 1 else 's'} detected",
        evidence=found,
        facts={"ctaCount": count},
    )


def description_readability(text: str, ctx: RuleContext, thresholds: Thresholds) -> RuleEvaluationResult:
    if not text.strip():
        return _missing("description_readability", "description")
    reading_ease = flesch_reading_ease(text)
    if reading_ease is None:
        return RuleEvaluationResult(
            rule_id="description_readability",
            score=0,
            passed=False,
            message="Insufficient content for readability analysis",
        )
    score = max(0, min(100, round(reading_ease)))
    if score >= 80:
        level = "Very easy"
    elif score >= 60:
        level = "Easy"
    elif score >= 40:
        level = "Moderate"
    else:
        level = "Difficult"
    return RuleEvaluationResult(
        rule_id="description_readability",
        score=score,
        passed=score >= thresholds.get("min_score", 60),
        message=f"Flesch reading ease: {score}/100 ({level})",
    )


def description_duplicate_keyword_penalty(
    text: str, ctx: RuleContext, thresholds: Thresholds
) -> RuleEvaluationResult:
    terms = ctx.terms["description"]
    if not terms.tokens:
        return _missing("description_duplicate_keyword_penalty", "description")
    max_density = thresholds.get("max_density", 0.04)
    min_occurrences = thresholds.get("min_occurrences", 4)
    keywords = set(terms.keywords)
    counts = Counter(token for token in terms.tokens if token in keywords)
    stuffed = [
        (keyword, count)
        for keyword, count in counts.most_common()
        if count >= min_occurrences and count / len(terms.tokens) > max_density
    ]
    return RuleEvaluationResult(
        rule_id="description_duplicate_keyword_penalty",
        score=max(0, 100 - 20 * len(stuffed)),
        passed=not stuffed,
        message=(
            f"{len(stuffed)} keyword(s) repeated too often" if stuffed else "No keyword stuffing detected"
        ),
        evidence=tuple(f"{keyword} x{count}" for keyword, count in stuffed),
        facts={"stuffedCount": len(stuffed)},
    )


RULE_REGISTRY: tuple[RuleDefinition, ...] = (
    RuleDefinition("title_character_usage", "title", _character_usage("title_character_usage", "title")),
    RuleDefinition("title_keyword_density", "title", title_keyword_density),
    RuleDefinition("title_combo_coverage", "title", title_combo_coverage),
    RuleDefinition("title_filler_penalty", "title", title_filler_penalty),
    RuleDefinition("title_intent_alignment", "title", title_intent_alignment, intent_derived=True),
    RuleDefinition("intent_balance", "title", intent_balance, intent_derived=True),
    RuleDefinition("intent_diversity", "title", intent_diversity, intent_derived=True),
    RuleDefinition("intent_gap", "title", intent_gap, intent_derived=True),
    RuleDefinition(
        "subtitle_character_usage", "subtitle", _character_usage("subtitle_character_usage", "subtitle")
    ),
    RuleDefinition("subtitle_incremental_value", "subtitle", subtitle_incremental_value),
    RuleDefinition("subtitle_combo_coverage", "subtitle", subtitle_combo_coverage),
    RuleDefinition("subtitle_complementarity", "subtitle", subtitle_complementarity),
    RuleDefinition("subtitle_transactional_safety", "subtitle", subtitle_transactional_safety),
    RuleDefinition("description_hook_strength", "description", description_hook_strength),
    RuleDefinition("description_length", "description", description_length),
    RuleDefinition("description_feature_mentions", "description", description_feature_mentions),
    RuleDefinition("description_cta_strength", "description", description_cta_strength),
    RuleDefinition("description_readability", "description", description_readability),
    RuleDefinition(
        "description_duplicate_keyword_penalty", "description", description_duplicate_keyword_penalty
    ),
)

RULES_BY_ID: dict[str, RuleDefinition] = {rule.rule_id: rule for rule in RULE_REGISTRY}
REGISTRY_ORDER: dict[str, int] = {rule.rule_id: index for index, rule in enumerate(RULE_REGISTRY)}


def rules_for(element: str) -> list[RuleDefinition]:
    return [rule for rule in RULE_REGISTRY if rule.element == element]


def evaluate_rule(rule: RuleDefinition, text: str, ctx: RuleContext) -> RuleEvaluationResult:
    thresholds = ctx.ruleset.rule_thresholds.get(rule.rule_id, {})
    return rule.evaluator(text, ctx, thresholds)


def unknown_rule_gaps(ruleset: MergedRuleSet) -> list[ConfigurationGap]:
    """Rule ids referenced by configuration that no evaluator implements."""
    referenced = {
        "rule_thresholds": ruleset.rule_thresholds,
        "rule_weights": ruleset.rule_weights,
        "kpi_weights": ruleset.kpi_weights,
        "recommendation_templates": ruleset.recommendation_templates,
    }
    gaps: list[ConfigurationGap] = []
    for group, mapping in referenced.items():
        for rule_id in mapping:
            if rule_id in RULES_BY_ID:
                continue
            gaps.append(
                ConfigurationGap(
                    type="unknown_rule_id",
                    message=f"Unknown rule id '{rule_id}' in {group}",
                    fallback="entry ignored",
                    details={"ruleId": rule_id, "fieldGroup": group},
                )
            )
            logger.warning("Unknown rule id in ruleset", extra={"rule_id": rule_id, "field_group": group})
    return gaps
