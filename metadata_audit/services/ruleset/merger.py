"""Ruleset merger: base -> vertical -> market -> client -> app.

Pure functions only. Fragments are folded left to right; a later fragment's
present fields override earlier ones and absent fields inherit.

Per field group:
- mappings (thresholds, weights, hooks, templates) merge per key, last wins
- nested mappings (``rule_thresholds``, ``character_limits``) merge per inner key
- ``stopwords`` merge as an ordered union
- ``intent_patterns`` merge by (pattern, intent type); a later scope replaces
  the pattern in place, so insertion order stays reproducible
- ``kpi_weights`` multipliers are clamped and compose multiplicatively, with
  one provenance entry per scope that set them
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from metadata_audit.core.exceptions import ConfigurationError
from metadata_audit.services.ruleset.leak_detection import detect_vertical_mismatch, screen_fragments
from metadata_audit.services.ruleset.types import (
    SCOPE_ORDER,
    HookPatternGroup,
    IntentPattern,
    KpiProvenanceEntry,
    MergedRuleSet,
    RecommendationTemplate,
    Scope,
    ScopedFragment,
    clamp_multiplier,
)

logger = logging.getLogger(__name__)


@dataclass
class _MergeState:
    discovery_thresholds: dict[str, float] = field(default_factory=dict)
    rule_thresholds: dict[str, dict[str, float]] = field(default_factory=dict)
    stopwords: dict[str, None] = field(default_factory=dict)
    hook_patterns: dict[str, HookPatternGroup] = field(default_factory=dict)
    kpi_chains: dict[str, list[KpiProvenanceEntry]] = field(default_factory=dict)
    intent_patterns: dict[tuple[str, str], IntentPattern] = field(default_factory=dict)
    transactional_keywords: dict[str, tuple[str, ...]] = field(default_factory=dict)
    character_limits: dict[str, dict[str, float]] = field(default_factory=dict)
    element_weights: dict[str, float] = field(default_factory=dict)
    rule_weights: dict[str, float] = field(default_factory=dict)
    recommendation_templates: dict[str, RecommendationTemplate] = field(default_factory=dict)
    inheritance_chain: dict[str, Scope] = field(default_factory=dict)
    scope_sources: dict[Scope, str | None] = field(
        default_factory=lambda: {scope: None for scope in SCOPE_ORDER}
    )


def _merge_nested(target: dict[str, dict[str, float]], updates: dict[str, dict[str, float]]) -> None:
    for key, values in updates.items():
        target[key] = {**target.get(key, {}), **values}


def _apply_fragment(state: _MergeState, scoped: ScopedFragment) -> None:
    fragment = scoped.fragment
    scope = scoped.scope
    state.scope_sources[scope] = fragment.id or scoped.selector or scope.value

    if fragment.discovery_thresholds is not None:
        state.discovery_thresholds.update(fragment.discovery_thresholds)
    if fragment.rule_thresholds is not None:
        _merge_nested(state.rule_thresholds, fragment.rule_thresholds)
    if fragment.character_limits is not None:
        _merge_nested(state.character_limits, fragment.character_limits)
    if fragment.stopwords is not None:
        for word in fragment.stopwords:
            state.stopwords.setdefault(word, None)
    if fragment.hook_patterns is not None:
        state.hook_patterns.update(fragment.hook_patterns)
    if fragment.intent_patterns is not None:
        for pattern in fragment.intent_patterns:
            state.intent_patterns[pattern.key] = pattern
    if fragment.transactional_keywords is not None:
        state.transactional_keywords.update(fragment.transactional_keywords)
    if fragment.element_weights is not None:
        state.element_weights.update(fragment.element_weights)
    if fragment.rule_weights is not None:
        state.rule_weights.update(fragment.rule_weights)
    if fragment.recommendation_templates is not None:
        state.recommendation_templates.update(fragment.recommendation_templates)
    if fragment.kpi_weights is not None:
        for rule_id, raw_multiplier in fragment.kpi_weights.items():
            multiplier = clamp_multiplier(raw_multiplier)
            if multiplier != raw_multiplier:
                logger.warning(
                    "KPI multiplier clamped",
                    extra={"rule_id": rule_id, "scope": scope.value, "requested": raw_multiplier},
                )
            state.kpi_chains.setdefault(rule_id, []).append(
                KpiProvenanceEntry(scope=scope, multiplier=multiplier, source_id=fragment.id)
            )

    for group in fragment.present_groups():
        state.inheritance_chain[group] = scope


def _ordered(fragments: list[ScopedFragment]) -> list[ScopedFragment]:
    seen: set[Scope] = set()
    for scoped in fragments:
        if scoped.scope in seen:
            raise ConfigurationError(
                f"Duplicate {scoped.scope.value} fragment in merge input",
                {"scope": scoped.scope.value},
            )
        seen.add(scoped.scope)
    if Scope.BASE not in seen:
        raise ConfigurationError("A base ruleset fragment is required")
    return sorted(fragments, key=lambda scoped: SCOPE_ORDER.index(scoped.scope))


def _compose_kpi_weights(
    chains: dict[str, list[KpiProvenanceEntry]],
    base_source: str | None,
) -> tuple[dict[str, float], dict[str, tuple[KpiProvenanceEntry, ...]]]:
    weights: dict[str, float] = {}
    provenance: dict[str, tuple[KpiProvenanceEntry, ...]] = {}
    for rule_id, entries in chains.items():
        chain = list(entries)
        if not chain or chain[0].scope is not Scope.BASE:
            chain.insert(0, KpiProvenanceEntry(scope=Scope.BASE, multiplier=1.0, source_id=base_source))
        product = 1.0
        for entry in chain:
            product *= entry.multiplier
        weights[rule_id] = product
        provenance[rule_id] = tuple(chain)
    return weights, provenance


def merge_fragments(
    fragments: list[ScopedFragment],
    *,
    vertical: str | None = None,
    market: str | None = None,
    category: str | None = None,
) -> MergedRuleSet:
    """Fold scoped fragments into a merged ruleset.

    Args:
        fragments: Loaded fragments; must include exactly one base fragment.
        vertical: Vertical id of the app being audited (for leak checks).
        market: Market id of the app being audited (for leak checks).
        category: App-store category, checked against the vertical.

    Returns:
        The merged, read-only ruleset with provenance and leak warnings.
    """
    ordered = _ordered(fragments)
    screened, leak_warnings = screen_fragments(ordered, vertical=vertical, market=market)
    mismatch = detect_vertical_mismatch(vertical, category)
    if mismatch is not None:
        leak_warnings.append(mismatch)

    state = _MergeState()
    for scoped in screened:
        _apply_fragment(state, scoped)

    kpi_weights, kpi_provenance = _compose_kpi_weights(
        state.kpi_chains, state.scope_sources.get(Scope.BASE)
    )

    merged = MergedRuleSet(
        discovery_thresholds=state.discovery_thresholds,
        rule_thresholds=state.rule_thresholds,
        stopwords=tuple(state.stopwords),
        hook_patterns=state.hook_patterns,
        kpi_weights=kpi_weights,
        intent_patterns=tuple(state.intent_patterns.values()),
        transactional_keywords=state.transactional_keywords,
        character_limits=state.character_limits,
        element_weights=state.element_weights,
        rule_weights=state.rule_weights,
        recommendation_templates=state.recommendation_templates,
        inheritance_chain=state.inheritance_chain,
        scope_sources=state.scope_sources,
        kpi_provenance=kpi_provenance,
        leak_warnings=tuple(leak_warnings),
        vertical=vertical,
        market=market,
    )

    logger.debug(
        "Merged ruleset",
        extra={
            "vertical": vertical,
            "market": market,
            "scopes": [scoped.scope.value for scoped in screened],
            "stopwords": len(merged.stopwords),
            "intent_patterns": len(merged.intent_patterns),
            "kpi_overrides": len(merged.kpi_weights),
            "leak_warnings": len(merged.leak_warnings),
        },
    )
    return merged
