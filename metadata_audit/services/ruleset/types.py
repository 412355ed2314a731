"""Domain types for ruleset fragments and the merged ruleset."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Scope(str, Enum):
    """Configuration precedence level, lowest first."""

    BASE = "base"
    VERTICAL = "vertical"
    MARKET = "market"
    CLIENT = "client"
    APP = "app"


SCOPE_ORDER: tuple[Scope, ...] = (
    Scope.BASE,
    Scope.VERTICAL,
    Scope.MARKET,
    Scope.CLIENT,
    Scope.APP,
)

FIELD_GROUPS: tuple[str, ...] = (
    "discovery_thresholds",
    "rule_thresholds",
    "stopwords",
    "hook_patterns",
    "kpi_weights",
    "intent_patterns",
    "transactional_keywords",
    "character_limits",
    "element_weights",
    "rule_weights",
    "recommendation_templates",
)

INTENT_TYPES: tuple[str, ...] = (
    "informational",
    "commercial",
    "transactional",
    "navigational",
)

KPI_MULTIPLIER_MIN = 0.5
KPI_MULTIPLIER_MAX = 2.0


def _as_dict(value: Any, name: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ValueError(f"'{name}' must be a mapping")
    return value


def _as_str_list(value: Any, name: str) -> tuple[str, ...]:
    if isinstance(value, str) or not isinstance(value, list | tuple):
        raise ValueError(f"'{name}' must be a list of strings")
    items: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ValueError(f"'{name}' must only contain strings")
        normalized = item.strip().lower()
        if normalized:
            items.append(normalized)
    return tuple(items)


def _as_float(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise ValueError(f"'{name}' must be a number")
    return float(value)


def _as_float_map(value: Any, name: str) -> dict[str, float]:
    return {
        str(key): _as_float(item, f"{name}.{key}")
        for key, item in _as_dict(value, name).items()
    }


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def clamp_multiplier(value: float) -> float:
    """Clamp a KPI weight multiplier to the supported band."""
    return min(KPI_MULTIPLIER_MAX, max(KPI_MULTIPLIER_MIN, value))


@dataclass(frozen=True, slots=True)
class IntentPattern:
    """Weighted pattern that labels text with a searcher intent."""

    pattern: str
    intent_type: str
    weight: float = 1.0
    priority: int = 100
    scope: Scope = Scope.BASE
    is_active: bool = True
    is_regex: bool = False
    word_boundary: bool = True
    vertical: str | None = None
    market: str | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.pattern.lower(), self.intent_type)

    @classmethod
    def from_dict(cls, payload: dict[str, Any], scope: Scope) -> IntentPattern:
        """Deserialize a pattern row."""
        payload = _as_dict(payload, "intent_patterns[]")
        pattern = str(payload.get("pattern") or "").strip()
        if not pattern:
            raise ValueError("intent pattern requires a non-empty 'pattern'")
        intent_type = str(payload.get("intent_type") or payload.get("intentType") or "")
        if intent_type not in INTENT_TYPES:
            raise ValueError(f"unknown intent type '{intent_type}' for pattern '{pattern}'")
        weight = _as_float(payload.get("weight", 1.0), "weight")
        if weight <= 0:
            raise ValueError(f"intent pattern '{pattern}' weight must be positive")
        priority = payload.get("priority", 100)
        if isinstance(priority, bool) or not isinstance(priority, int):
            raise ValueError(f"intent pattern '{pattern}' priority must be an integer")
        return cls(
            pattern=pattern,
            intent_type=intent_type,
            weight=weight,
            priority=priority,
            scope=scope,
            is_active=bool(payload.get("is_active", payload.get("isActive", True))),
            is_regex=bool(payload.get("is_regex", payload.get("isRegex", False))),
            word_boundary=bool(payload.get("word_boundary", payload.get("wordBoundary", True))),
            vertical=_optional_str(payload.get("vertical")),
            market=_optional_str(payload.get("market")),
        )


@dataclass(frozen=True, slots=True)
class HookPatternGroup:
    """A hook category with its trigger phrases and weight."""

    category: str
    phrases: tuple[str, ...]
    weight: float = 1.0
    vertical: str | None = None

    @classmethod
    def from_dict(cls, category: str, payload: Any) -> HookPatternGroup:
        """Deserialize either a bare phrase list or a full mapping."""
        if isinstance(payload, list):
            return cls(category=category, phrases=_as_str_list(payload, f"hook_patterns.{category}"))
        payload = _as_dict(payload, f"hook_patterns.{category}")
        return cls(
            category=category,
            phrases=_as_str_list(payload.get("phrases", []), f"hook_patterns.{category}.phrases"),
            weight=_as_float(payload.get("weight", 1.0), f"hook_patterns.{category}.weight"),
            vertical=_optional_str(payload.get("vertical")),
        )


@dataclass(frozen=True, slots=True)
class RecommendationTemplate:
    """Templated recommendation message for a rule."""

    message: str
    vertical: str | None = None

    @classmethod
    def from_dict(cls, rule_id: str, payload: Any) -> RecommendationTemplate:
        if isinstance(payload, str):
            return cls(message=payload)
        payload = _as_dict(payload, f"recommendation_templates.{rule_id}")
        message = str(payload.get("message") or "").strip()
        if not message:
            raise ValueError(f"recommendation template '{rule_id}' requires a message")
        return cls(message=message, vertical=_optional_str(payload.get("vertical")))


@dataclass(frozen=True, slots=True)
class RuleSetFragment:
    """One scope's configuration. ``None`` means the field is absent."""

    id: str | None = None
    vertical: str | None = None
    market: str | None = None
    discovery_thresholds: dict[str, float] | None = None
    rule_thresholds: dict[str, dict[str, float]] | None = None
    stopwords: tuple[str, ...] | None = None
    hook_patterns: dict[str, HookPatternGroup] | None = None
    kpi_weights: dict[str, float] | None = None
    intent_patterns: tuple[IntentPattern, ...] | None = None
    transactional_keywords: dict[str, tuple[str, ...]] | None = None
    character_limits: dict[str, dict[str, float]] | None = None
    element_weights: dict[str, float] | None = None
    rule_weights: dict[str, float] | None = None
    recommendation_templates: dict[str, RecommendationTemplate] | None = None

    def present_groups(self) -> list[str]:
        """Field groups this fragment sets."""
        return [name for name in FIELD_GROUPS if getattr(self, name) is not None]

    @classmethod
    def from_dict(cls, payload: dict[str, Any], scope: Scope) -> RuleSetFragment:
        """Deserialize a stored fragment.

        Raises:
            ValueError: if any present field has the wrong shape.
        """
        payload = _as_dict(payload, "fragment")

        rule_thresholds = None
        if payload.get("rule_thresholds") is not None:
            rule_thresholds = {
                str(rule_id): _as_float_map(values, f"rule_thresholds.{rule_id}")
                for rule_id, values in _as_dict(payload["rule_thresholds"], "rule_thresholds").items()
            }

        character_limits = None
        if payload.get("character_limits") is not None:
            character_limits = {
                str(platform): _as_float_map(limits, f"character_limits.{platform}")
                for platform, limits in _as_dict(payload["character_limits"], "character_limits").items()
            }

        hook_patterns = None
        if payload.get("hook_patterns") is not None:
            hook_patterns = {
                str(category): HookPatternGroup.from_dict(str(category), value)
                for category, value in _as_dict(payload["hook_patterns"], "hook_patterns").items()
            }

        intent_patterns = None
        if payload.get("intent_patterns") is not None:
            raw_patterns = payload["intent_patterns"]
            if not isinstance(raw_patterns, list):
                raise ValueError("'intent_patterns' must be a list")
            intent_patterns = tuple(IntentPattern.from_dict(row, scope) for row in raw_patterns)

        transactional_keywords = None
        if payload.get("transactional_keywords") is not None:
            raw_keywords = _as_dict(payload["transactional_keywords"], "transactional_keywords")
            unknown = set(raw_keywords) - {"risky", "safe"}
            if unknown:
                raise ValueError(f"unknown transactional keyword lists: {sorted(unknown)}")
            transactional_keywords = {
                name: _as_str_list(values, f"transactional_keywords.{name}")
                for name, values in raw_keywords.items()
            }

        recommendation_templates = None
        if payload.get("recommendation_templates") is not None:
            recommendation_templates = {
                str(rule_id): RecommendationTemplate.from_dict(str(rule_id), value)
                for rule_id, value in _as_dict(
                    payload["recommendation_templates"], "recommendation_templates"
                ).items()
            }

        def float_map(name: str) -> dict[str, float] | None:
            value = payload.get(name)
            return None if value is None else _as_float_map(value, name)

        stopwords = payload.get("stopwords")
        return cls(
            id=_optional_str(payload.get("id")),
            vertical=_optional_str(payload.get("vertical")),
            market=_optional_str(payload.get("market")),
            discovery_thresholds=float_map("discovery_thresholds"),
            rule_thresholds=rule_thresholds,
            stopwords=None if stopwords is None else _as_str_list(stopwords, "stopwords"),
            hook_patterns=hook_patterns,
            kpi_weights=float_map("kpi_weights"),
            intent_patterns=intent_patterns,
            transactional_keywords=transactional_keywords,
            character_limits=character_limits,
            element_weights=float_map("element_weights"),
            rule_weights=float_map("rule_weights"),
            recommendation_templates=recommendation_templates,
        )


@dataclass(frozen=True, slots=True)
class ScopedFragment:
    """A fragment tagged with the scope and selector it was loaded for."""

    scope: Scope
    fragment: RuleSetFragment
    selector: str | None = None


@dataclass(frozen=True, slots=True)
class RulesetContext:
    """App context used to select and sanity-check fragments."""

    locale: str
    app_id: str | None = None
    category: str | None = None
    organization_id: str | None = None
    vertical: str | None = None
    title: str = ""
    subtitle: str = ""
    description: str = ""

    @property
    def cache_key(self) -> tuple[str, ...]:
        key = (
            self.app_id or "default",
            self.category or "default",
            self.locale,
            self.organization_id or "default",
        )
        # A pinned vertical selects different fragments for the same app.
        return key + (self.vertical,) if self.vertical else key


@dataclass(frozen=True, slots=True)
class LeakWarning:
    """Non-fatal diagnostic for a signal that does not belong to this context."""

    type: str
    severity: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "severity": self.severity,
            "message": self.message,
            "details": self.details,
        }


@dataclass(frozen=True, slots=True)
class KpiProvenanceEntry:
    """One link in a KPI weight multiplier chain."""

    scope: Scope
    multiplier: float
    source_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "scope": self.scope.value,
            "multiplier": self.multiplier,
            "sourceId": self.source_id,
        }


@dataclass(frozen=True, slots=True)
class MergedRuleSet:
    """Read-only configuration resolved for one app context."""

    discovery_thresholds: dict[str, float]
    rule_thresholds: dict[str, dict[str, float]]
    stopwords: tuple[str, ...]
    hook_patterns: dict[str, HookPatternGroup]
    kpi_weights: dict[str, float]
    intent_patterns: tuple[IntentPattern, ...]
    transactional_keywords: dict[str, tuple[str, ...]]
    character_limits: dict[str, dict[str, float]]
    element_weights: dict[str, float]
    rule_weights: dict[str, float]
    recommendation_templates: dict[str, RecommendationTemplate]
    inheritance_chain: dict[str, Scope] = field(default_factory=dict)
    scope_sources: dict[Scope, str | None] = field(default_factory=dict)
    kpi_provenance: dict[str, tuple[KpiProvenanceEntry, ...]] = field(default_factory=dict)
    leak_warnings: tuple[LeakWarning, ...] = ()
    vertical: str | None = None
    market: str | None = None

    @property
    def stopword_set(self) -> frozenset[str]:
        return frozenset(self.stopwords)

    def threshold(self, rule_id: str, name: str, default: float) -> float:
        """Look up one rule threshold with a fallback."""
        return self.rule_thresholds.get(rule_id, {}).get(name, default)

    def discovery(self, name: str, default: float) -> float:
        return self.discovery_thresholds.get(name, default)

    def max_characters(self, platform: str, element: str) -> int:
        limits = self.character_limits.get(platform) or self.character_limits.get("ios", {})
        return int(limits.get(element, 0))

    def to_diagnostics(self) -> dict[str, Any]:
        """Diagnostics payload for the admin surface."""
        return {
            "vertical": self.vertical,
            "market": self.market,
            "inheritanceChain": {
                group: scope.value for group, scope in self.inheritance_chain.items()
            },
            "scopeSources": {
                scope.value: source_id for scope, source_id in self.scope_sources.items()
            },
            "kpiProvenance": {
                rule_id: [entry.to_dict() for entry in chain]
                for rule_id, chain in self.kpi_provenance.items()
            },
            "leakWarnings": [warning.to_dict() for warning in self.leak_warnings],
            "stopwordCount": len(self.stopwords),
            "intentPatternCount": len(self.intent_patterns),
        }
