"""Leak detection for ruleset fragments.

A leak is a vertical- or market-specific signal (stopword list, intent
pattern, hook group, recommendation template) that would apply to an app
outside the vertical or market it was written for. Leaking signals are
excluded from the merge and reported as ``LeakWarning`` entries; the check
never raises.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from metadata_audit.services.ruleset.selectors import expected_verticals
from metadata_audit.services.ruleset.types import (
    HookPatternGroup,
    IntentPattern,
    LeakWarning,
    RecommendationTemplate,
    Scope,
    ScopedFragment,
)

logger = logging.getLogger(__name__)

LANGUAGE_LEARNING_EXAMPLES: tuple[str, ...] = (
    "learn spanish",
    "language lessons",
    "fluency",
)
LANGUAGE_LEARNING_VERTICAL = "language_learning"


def _tag_leaks(tag: str | None, current: str | None) -> bool:
    return tag is not None and tag != current


def _screen_patterns(
    patterns: tuple[IntentPattern, ...],
    *,
    scope: Scope,
    vertical: str | None,
    market: str | None,
) -> tuple[tuple[IntentPattern, ...], list[LeakWarning]]:
    kept: list[IntentPattern] = []
    warnings: list[LeakWarning] = []
    for pattern in patterns:
        if _tag_leaks(pattern.vertical, vertical):
            warnings.append(
                LeakWarning(
                    type="pattern_leak",
                    severity="medium",
                    message=(
                        f"Intent pattern '{pattern.pattern}' is scoped to vertical "
                        f"'{pattern.vertical}' and was excluded"
                    ),
                    details={"scope": scope.value, "vertical": vertical, "pattern": pattern.pattern},
                )
            )
            continue
        if _tag_leaks(pattern.market, market):
            warnings.append(
                LeakWarning(
                    type="pattern_leak",
                    severity="low",
                    message=(
                        f"Intent pattern '{pattern.pattern}' is scoped to market "
                        f"'{pattern.market}' and was excluded"
                    ),
                    details={"scope": scope.value, "market": market, "pattern": pattern.pattern},
                )
            )
            continue
        kept.append(pattern)
    return tuple(kept), warnings


def _screen_hooks(
    hooks: dict[str, HookPatternGroup],
    *,
    scope: Scope,
    vertical: str | None,
) -> tuple[dict[str, HookPatternGroup], list[LeakWarning]]:
    kept: dict[str, HookPatternGroup] = {}
    warnings: list[LeakWarning] = []
    for category, group in hooks.items():
        if _tag_leaks(group.vertical, vertical):
            warnings.append(
                LeakWarning(
                    type="pattern_leak",
                    severity="medium",
                    message=f"Hook group '{category}' belongs to vertical '{group.vertical}'",
                    details={"scope": scope.value, "vertical": vertical, "hookCategory": category},
                )
            )
            continue
        kept[category] = group
    return kept, warnings


def _screen_templates(
    templates: dict[str, RecommendationTemplate],
    *,
    scope: Scope,
    vertical: str | None,
) -> tuple[dict[str, RecommendationTemplate], list[LeakWarning]]:
    kept: dict[str, RecommendationTemplate] = {}
    warnings: list[LeakWarning] = []
    for rule_id, template in templates.items():
        if _tag_leaks(template.vertical, vertical):
            warnings.append(
                LeakWarning(
                    type="recommendation_leak",
                    severity="medium",
                    message=f"Recommendation '{rule_id}' belongs to vertical '{template.vertical}'",
                    details={"scope": scope.value, "recommendationId": rule_id},
                )
            )
            continue
        lowered = template.message.lower()
        if vertical != LANGUAGE_LEARNING_VERTICAL and any(
            example in lowered for example in LANGUAGE_LEARNING_EXAMPLES
        ):
            warnings.append(
                LeakWarning(
                    type="recommendation_leak",
                    severity="high",
                    message="Hard-coded language-learning example in a non-Education recommendation",
                    details={"scope": scope.value, "recommendationId": rule_id, "vertical": vertical},
                )
            )
            continue
        kept[rule_id] = template
    return kept, warnings


def _screen_fragment(
    scoped: ScopedFragment,
    *,
    vertical: str | None,
    market: str | None,
) -> tuple[ScopedFragment, list[LeakWarning]]:
    fragment = scoped.fragment
    warnings: list[LeakWarning] = []

    declared_vertical_leaks = _tag_leaks(fragment.vertical, vertical)
    declared_market_leaks = _tag_leaks(fragment.market, market)
    if declared_vertical_leaks or declared_market_leaks:
        dropped = [
            name
            for name in ("stopwords", "hook_patterns", "intent_patterns", "recommendation_templates")
            if getattr(fragment, name) is not None
        ]
        target = (
            f"vertical '{fragment.vertical}'" if declared_vertical_leaks else f"market '{fragment.market}'"
        )
        warnings.append(
            LeakWarning(
                type="scope_leak",
                severity="high",
                message=f"{scoped.scope.value} fragment targets {target}; scoped signals excluded",
                details={
                    "scope": scoped.scope.value,
                    "fragmentId": fragment.id,
                    "vertical": vertical,
                    "market": market,
                    "excludedGroups": dropped,
                },
            )
        )
        fragment = replace(
            fragment,
            stopwords=None,
            hook_patterns=None,
            intent_patterns=None,
            recommendation_templates=None,
        )

    if fragment.intent_patterns is not None:
        patterns, found = _screen_patterns(
            fragment.intent_patterns, scope=scoped.scope, vertical=vertical, market=market
        )
        warnings.extend(found)
        fragment = replace(fragment, intent_patterns=patterns)

    if fragment.hook_patterns is not None:
        hooks, found = _screen_hooks(fragment.hook_patterns, scope=scoped.scope, vertical=vertical)
        warnings.extend(found)
        fragment = replace(fragment, hook_patterns=hooks)

    if fragment.recommendation_templates is not None:
        templates, found = _screen_templates(
            fragment.recommendation_templates, scope=scoped.scope, vertical=vertical
        )
        warnings.extend(found)
        fragment = replace(fragment, recommendation_templates=templates)

    return replace(scoped, fragment=fragment), warnings


def detect_vertical_mismatch(vertical: str | None, category: str | None) -> LeakWarning | None:
    """Warn when the selected vertical is unusual for the app category.

    Only annotates; nothing is excluded.
    """
    if not vertical or not category:
        return None
    expected = expected_verticals(category)
    if vertical in expected:
        return None
    return LeakWarning(
        type="vertical_mismatch",
        severity="medium",
        message=f"Ruleset vertical '{vertical}' may not match app category '{category}'",
        details={
            "vertical": vertical,
            "category": category,
            "expectedVerticals": ["base", *expected],
        },
    )


def screen_fragments(
    fragments: list[ScopedFragment],
    *,
    vertical: str | None,
    market: str | None,
) -> tuple[list[ScopedFragment], list[LeakWarning]]:
    """Exclude leaking signals from every fragment and collect warnings."""
    screened: list[ScopedFragment] = []
    warnings: list[LeakWarning] = []
    for scoped in fragments:
        try:
            cleaned, found = _screen_fragment(scoped, vertical=vertical, market=market)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Leak check failed for fragment",
                exc_info=True,
                extra={"scope": scoped.scope.value, "selector": scoped.selector},
            )
            warnings.append(
                LeakWarning(
                    type="leak_check_error",
                    severity="low",
                    message=f"Leak check skipped for {scoped.scope.value} fragment: {exc}",
                    details={"scope": scoped.scope.value, "selector": scoped.selector},
                )
            )
            screened.append(scoped)
            continue
        screened.append(cleaned)
        warnings.extend(found)

    if warnings:
        logger.info(
            "Leak warnings detected",
            extra={
                "vertical": vertical,
                "market": market,
                "warnings": [warning.type for warning in warnings],
            },
        )
    return screened, warnings
