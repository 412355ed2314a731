"""Transactional-safety detection for call-to-action language.

Risky terms ("free", "download", ...) can read as spammy in ranking fields;
safe terms ("try", "start", ...) are acceptable. Any risky match makes the
text risky regardless of safe matches.

Phrases match as substrings of the normalized text, so "free" also flags
"freebies" and "download" flags "downloads".
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

from metadata_audit.config import Settings, settings
from metadata_audit.services.ruleset.types import MergedRuleSet
from metadata_audit.services.tokenizer import tokenize

Safety = Literal["safe", "risky"]

DEFAULT_RISKY_KEYWORDS: tuple[str, ...] = ("free", "download", "install", "now", "today")
DEFAULT_SAFE_KEYWORDS: tuple[str, ...] = ("try", "start", "get", "use", "begin")


@dataclass(frozen=True, slots=True)
class TransactionalSafetyResult:
    safety: Safety | None
    risk_flags: tuple[str, ...] = ()
    safe_flags: tuple[str, ...] = ()
    confidence: float = 0.0
    risk_score: int = 0
    safety_score: int = 0

    @property
    def is_transactional(self) -> bool:
        return self.safety is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "safety": self.safety,
            "riskFlags": list(self.risk_flags),
            "safeFlags": list(self.safe_flags),
            "confidence": self.confidence,
            "riskScore": self.risk_score,
            "safetyScore": self.safety_score,
        }


@dataclass(frozen=True, slots=True)
class TransactionalBatchSummary:
    total: int
    transactional: int
    risky: int
    safe: int
    risk_level: str
    results: tuple[TransactionalSafetyResult, ...] = field(default=())

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "transactional": self.transactional,
            "risky": self.risky,
            "safe": self.safe,
            "riskLevel": self.risk_level,
        }


def normalize_phrase(text: str) -> str:
    """Lower-case, punctuation-free, single-spaced form used for substring matching."""
    return " ".join(tokenize(text))


def risk_level_for(risky: int, transactional: int) -> str:
    """Map the risky share of transactional items to a level."""
    if transactional == 0:
        return "low"
    share = risky / transactional
    if share > 0.5:
        return "critical"
    if share > 0.3:
        return "high"
    if share > 0.15:
        return "medium"
    return "low"


class TransactionalSafetyDetector:
    """Flags risky and safe CTA phrases in text."""

    def __init__(
        self,
        risky_keywords: Sequence[str] = DEFAULT_RISKY_KEYWORDS,
        safe_keywords: Sequence[str] = DEFAULT_SAFE_KEYWORDS,
        *,
        app_settings: Settings | None = None,
    ) -> None:
        app_settings = app_settings or settings
        self.risky_base = app_settings.transactional_risky_base_confidence
        self.safe_base = app_settings.transactional_safe_base_confidence
        self.step = app_settings.transactional_confidence_step
        self._risky = self._compile(risky_keywords)
        self._safe = self._compile(safe_keywords)

    @staticmethod
    def _compile(phrases: Sequence[str]) -> tuple[str, ...]:
        return tuple(
            phrase for phrase in dict.fromkeys(normalize_phrase(phrase) for phrase in phrases) if phrase
        )

    @classmethod
    def from_ruleset(
        cls,
        ruleset: MergedRuleSet,
        *,
        app_settings: Settings | None = None,
    ) -> TransactionalSafetyDetector:
        keywords = ruleset.transactional_keywords
        return cls(
            keywords.get("risky", DEFAULT_RISKY_KEYWORDS),
            keywords.get("safe", DEFAULT_SAFE_KEYWORDS),
            app_settings=app_settings,
        )

    def analyze(self, text: str) -> TransactionalSafetyResult:
        normalized = normalize_phrase(text)
        risk_flags = tuple(phrase for phrase in self._risky if phrase in normalized)
        safe_flags = tuple(phrase for phrase in self._safe if phrase in normalized)

        if risk_flags:
            confidence = round(min(1.0, self.risky_base + self.step * len(risk_flags)), 4)
            risk_score = round(confidence * 100)
            return TransactionalSafetyResult(
                safety="risky",
                risk_flags=risk_flags,
                safe_flags=safe_flags,
                confidence=confidence,
                risk_score=risk_score,
                safety_score=100 - risk_score,
            )
        if safe_flags:
            confidence = round(min(1.0, self.safe_base + self.step * len(safe_flags)), 4)
            return TransactionalSafetyResult(
                safety="safe",
                safe_flags=safe_flags,
                confidence=confidence,
                risk_score=0,
                safety_score=round(confidence * 100),
            )
        return TransactionalSafetyResult(safety=None)

    def analyze_batch(self, texts: Sequence[str]) -> TransactionalBatchSummary:
        results = tuple(self.analyze(text) for text in texts)
        risky = sum(1 for result in results if result.safety == "risky")
        safe = sum(1 for result in results if result.safety == "safe")
        transactional = risky + safe
        return TransactionalBatchSummary(
            total=len(results),
            transactional=transactional,
            risky=risky,
            safe=safe,
            risk_level=risk_level_for(risky, transactional),
            results=results,
        )
