"""Keyword and combo extraction across title, subtitle and description."""

from __future__ import annotations

from collections.abc import Collection, Sequence
from dataclasses import dataclass

from metadata_audit.services.ruleset.types import MergedRuleSet
from metadata_audit.services.tokenizer import tokenize, unique
from metadata_audit.services.types import ELEMENTS, ComboCoverage, KeywordCoverage

DEFAULT_MIN_KEYWORD_LENGTH = 3
DEFAULT_COMBO_MIN_N = 2
DEFAULT_COMBO_MAX_N = 3
DEFAULT_MAX_DESCRIPTION_NEW_KEYWORDS = 20


@dataclass(frozen=True, slots=True)
class ElementTerms:
    """Tokens, keywords and combos of one element.

    ``new_keywords``/``new_combos`` exclude anything already present in a
    higher-priority element (title > subtitle > description).
    """

    element: str
    tokens: tuple[str, ...]
    keywords: tuple[str, ...]
    ignored: tuple[str, ...]
    combos: tuple[str, ...]
    new_keywords: tuple[str, ...]
    new_combos: tuple[str, ...]


def extract_keywords(
    tokens: Sequence[str],
    stopwords: Collection[str],
    min_length: int = DEFAULT_MIN_KEYWORD_LENGTH,
) -> list[str]:
    return unique(token for token in tokens if token not in stopwords and len(token) >= min_length)


def ignored_tokens(
    tokens: Sequence[str],
    stopwords: Collection[str],
    min_length: int = DEFAULT_MIN_KEYWORD_LENGTH,
) -> list[str]:
    """Stopwords and too-short tokens, in order of appearance."""
    return [token for token in tokens if token in stopwords or len(token) < min_length]


def extract_combos(
    tokens: Sequence[str],
    stopwords: Collection[str],
    min_n: int = DEFAULT_COMBO_MIN_N,
    max_n: int = DEFAULT_COMBO_MAX_N,
) -> list[str]:
    """Adjacent n-grams of one element, skipping windows bounded by a stopword."""
    combos: list[str] = []
    for size in range(min_n, max_n + 1):
        for start in range(len(tokens) - size + 1):
            window = tokens[start:start + size]
            if window[0] in stopwords or window[-1] in stopwords:
                continue
            combos.append(" ".join(window))
    return unique(combos)


def extract_element_terms(
    texts: dict[str, str],
    ruleset: MergedRuleSet,
) -> dict[str, ElementTerms]:
    """Extract terms for every element in priority order."""
    stopwords = ruleset.stopword_set
    min_length = int(ruleset.discovery("min_keyword_length", DEFAULT_MIN_KEYWORD_LENGTH))
    min_n = int(ruleset.discovery("combo_min_n", DEFAULT_COMBO_MIN_N))
    max_n = int(ruleset.discovery("combo_max_n", DEFAULT_COMBO_MAX_N))

    seen_keywords: set[str] = set()
    seen_combos: set[str] = set()
    terms: dict[str, ElementTerms] = {}
    for element in ELEMENTS:
        tokens = tokenize(texts.get(element))
        keywords = extract_keywords(tokens, stopwords, min_length)
        combos = extract_combos(tokens, stopwords, min_n, max_n)
        terms[element] = ElementTerms(
            element=element,
            tokens=tuple(tokens),
            keywords=tuple(keywords),
            ignored=tuple(ignored_tokens(tokens, stopwords, min_length)),
            combos=tuple(combos),
            new_keywords=tuple(k for k in keywords if k not in seen_keywords),
            new_combos=tuple(c for c in combos if c not in seen_combos),
        )
        seen_keywords.update(keywords)
        seen_combos.update(combos)
    return terms


def build_keyword_coverage(
    terms: dict[str, ElementTerms],
    ruleset: MergedRuleSet,
) -> KeywordCoverage:
    limit = int(
        ruleset.discovery("max_description_new_keywords", DEFAULT_MAX_DESCRIPTION_NEW_KEYWORDS)
    )
    all_keywords = {keyword for element in terms.values() for keyword in element.keywords}
    return KeywordCoverage(
        total_unique_keywords=len(all_keywords),
        title_keywords=terms["title"].keywords,
        subtitle_new_keywords=terms["subtitle"].new_keywords,
        description_new_keywords=terms["description"].new_keywords[:max(0, limit)],
        title_ignored_count=len(terms["title"].ignored),
        subtitle_ignored_count=len(terms["subtitle"].ignored),
        description_ignored_count=len(terms["description"].ignored),
    )


def build_combo_coverage(terms: dict[str, ElementTerms]) -> ComboCoverage:
    title_combos = terms["title"].combos
    subtitle_new = terms["subtitle"].new_combos
    description_new = terms["description"].new_combos
    return ComboCoverage(
        total_combos=len(title_combos) + len(subtitle_new),
        title_combos=title_combos,
        subtitle_new_combos=subtitle_new,
        description_new_combos=description_new,
    )
